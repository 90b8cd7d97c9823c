"""ragchat - self-hosted retrieval-augmented chat core."""

__version__ = "1.0.0"
