"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document chunking with overlap
- Embedding generation with rate-limit recovery
- In-memory vector index with cosine kNN search
- Document ingestion
- Retrieval and grounded answer streaming
"""
