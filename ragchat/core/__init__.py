"""Core components: chunking, parsing, embeddings, storage and chat runtimes."""
