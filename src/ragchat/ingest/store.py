"""Document store — walk RAG roots and route files to chunkers.

Extension dispatch:
  .md (configurable)    → MarkdownChunker
  .sol (configurable)   → SolidityChunker
  anything else         → skipped silently

A file that cannot be read or chunked is recorded as an IngestError and
skipped; the remaining files are still ingested.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from ragchat.config import ChunkingCfg
from ragchat.errors import IngestError
from ragchat.ingest import ChunkKind, make_chunker
from ragchat.ingest.base import BaseChunker
from ragchat.models import Chunk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceFile:
    path: Path
    name: str
    kind: ChunkKind


@dataclass
class KindStats:
    files: int = 0
    chunks: int = 0


@dataclass
class IngestReport:
    """Outcome of one ``DocumentStore.ingest()`` pass."""

    chunks: tuple[Chunk, ...] = ()
    errors: tuple[IngestError, ...] = ()
    stats: dict[ChunkKind, KindStats] = field(default_factory=dict)


class DocumentStore:
    """Build the chunk collection for a set of root directories.

    Args:
        config: Chunking configuration (size limit, extensions, worker count).

    Raises:
        ConfigurationError: If a chunker cannot be constructed (invalid size,
            missing grammar).
    """

    def __init__(self, config: ChunkingCfg | None = None) -> None:
        self._config = config or ChunkingCfg()
        self._chunkers: dict[ChunkKind, BaseChunker] = {
            kind: make_chunker(kind, self._config.max_chunk_size) for kind in ChunkKind
        }
        self.report = IngestReport()

    @property
    def chunks(self) -> tuple[Chunk, ...]:
        return self.report.chunks

    @property
    def errors(self) -> tuple[IngestError, ...]:
        return self.report.errors

    def kind_for(self, path: Path) -> ChunkKind | None:
        """Return the chunker kind for *path* by extension, or None to skip."""
        suffix = path.suffix.lower()
        if suffix in self._config.markdown_extensions:
            return ChunkKind.MARKDOWN
        if suffix == self._config.source_extension:
            return ChunkKind.SOURCE_CODE
        return None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ingest(self, root_directories: list[Path] | tuple[Path, ...]) -> list[Chunk]:
        """Walk *root_directories* and return all chunks, in walk order.

        Also refreshes ``self.report`` with per-kind stats and IngestErrors.
        """
        errors: list[IngestError] = []
        files = self._discover(root_directories, errors)

        with ThreadPoolExecutor(max_workers=max(1, self._config.workers)) as pool:
            results = list(pool.map(self._chunk_file, files))

        chunks: list[Chunk] = []
        stats: dict[ChunkKind, KindStats] = {kind: KindStats() for kind in ChunkKind}
        for source, (file_chunks, error) in zip(files, results):
            if error is not None:
                logger.warning("Skipping %s", error)
                errors.append(error)
                continue
            stats[source.kind].files += 1
            stats[source.kind].chunks += len(file_chunks)
            chunks.extend(file_chunks)

        logger.info(
            "Ingested %d chunks from %d files (%d errors)",
            len(chunks),
            sum(s.files for s in stats.values()),
            len(errors),
        )
        self.report = IngestReport(chunks=tuple(chunks), errors=tuple(errors), stats=stats)
        return chunks

    def ingest_file(self, source: SourceFile) -> list[Chunk]:
        """Read and chunk a single file.

        Raises:
            IngestError: If the file cannot be read, decoded, or chunked.
        """
        try:
            content = source.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise IngestError(str(source.path), f"cannot read file: {exc}") from exc

        try:
            return self._chunkers[source.kind].chunk(source.name, content)
        except (ValueError, RuntimeError, RecursionError) as exc:
            raise IngestError(str(source.path), f"cannot chunk file: {exc}") from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _discover(
        self, roots: list[Path] | tuple[Path, ...], errors: list[IngestError]
    ) -> list[SourceFile]:
        """Collect routable regular files under *roots*, sorted per directory."""
        found: list[SourceFile] = []
        for root in roots:
            root = Path(root)
            if not root.is_dir():
                error = IngestError(str(root), "RAG directory does not exist")
                logger.warning("Skipping %s", error)
                errors.append(error)
                continue

            label = root.resolve().name or str(root)
            for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
                dirnames.sort()
                for filename in sorted(filenames):
                    path = Path(dirpath) / filename
                    if path.is_symlink() or not path.is_file():
                        continue
                    kind = self.kind_for(path)
                    if kind is None:
                        continue
                    name = f"{label}/{path.relative_to(root).as_posix()}"
                    logger.debug("Ingesting file: %s", name)
                    found.append(SourceFile(path=path, name=name, kind=kind))
        return found

    def _chunk_file(self, source: SourceFile) -> tuple[list[Chunk], IngestError | None]:
        try:
            return self.ingest_file(source), None
        except IngestError as exc:
            return [], exc
