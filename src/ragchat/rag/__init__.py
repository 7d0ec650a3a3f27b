"""Retrieval: litellm client, embedding index, and context assembler."""
