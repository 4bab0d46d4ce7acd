"""MindLens: multi-tenant retrieval-augmented question answering over your own sources."""

__version__ = "0.1.0"
