"""Application configuration with sensible defaults."""
import os

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "mxbai-embed-large:latest")
PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "60.0"))

# Chunking (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "100"))

# Embedding throughput and rate-limit recovery
EMBED_BATCH_SIZE = int(os.getenv("EMBED_BATCH_SIZE", "5"))           # concurrent calls per group
EMBED_BATCH_PAUSE = float(os.getenv("EMBED_BATCH_PAUSE", "0.15"))    # seconds between groups
EMBED_MAX_RETRIES = int(os.getenv("EMBED_MAX_RETRIES", "2"))         # extra attempts on 429
EMBED_RETRY_DELAY = float(os.getenv("EMBED_RETRY_DELAY", "1.0"))     # seconds before each retry

# Retrieval
SEARCH_TOP_K = int(os.getenv("SEARCH_TOP_K", "3"))
CHAT_TOP_K = int(os.getenv("CHAT_TOP_K", "5"))

# Generation sampling (passed through to the provider untouched)
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.3"))
GENERATION_TOP_P = float(os.getenv("GENERATION_TOP_P", "0.8"))
GENERATION_TOP_K = int(os.getenv("GENERATION_TOP_K", "40"))

# HTTP surface
MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", "2000"))
URL_FETCH_TIMEOUT = float(os.getenv("URL_FETCH_TIMEOUT", "15.0"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
