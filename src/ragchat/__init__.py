"""ragchat — retrieval-augmented chat REPL with remote tool support."""

__version__ = "0.1.0"
