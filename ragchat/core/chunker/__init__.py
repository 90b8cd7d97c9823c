"""
Format-aware chunking for knowledge base documents.
"""

from ragchat.core.chunker.chunker import Chunker, estimate_tokens

__all__ = [
    "Chunker",
    "estimate_tokens",
]
