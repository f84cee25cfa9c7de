"""Ollama client implementing the embedding and generation provider boundary.

Every failure leaving this module is a ProviderError whose kind says whether
it was a rate limit (HTTP 429) or a permanent failure. Callers never have to
look inside error messages.
"""
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
import structlog

from docmind import config
from docmind.errors import ProviderError, ProviderErrorKind
from docmind.rag.models import SamplingConfig

logger = structlog.get_logger()

USER_PROMPT_TEMPLATE = """Context Information:
{context}

User Question:
{prompt}

Instructions: Answer the question using ONLY the context provided above."""


def build_user_prompt(prompt: str, context: str) -> str:
    """Combine the retrieved context and the user question into one message."""
    return USER_PROMPT_TEMPLATE.format(context=context, prompt=prompt)


def classify_http_error(error: Exception) -> ProviderError:
    """Map an httpx (or payload) error onto a ProviderError.

    Args:
        error: The exception raised while talking to the provider

    Returns:
        ProviderError with kind RATE_LIMITED for HTTP 429, PERMANENT otherwise
    """
    if isinstance(error, httpx.HTTPStatusError):
        status_code = error.response.status_code
        kind = (
            ProviderErrorKind.RATE_LIMITED
            if status_code == 429
            else ProviderErrorKind.PERMANENT
        )
        return ProviderError(
            f"Provider returned HTTP {status_code}",
            kind=kind,
            status_code=status_code,
        )

    return ProviderError(f"{type(error).__name__}: {error}")


class OllamaClient:
    """Async client for interacting with Ollama API."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        embedding_model: str = None,
        chat_model: str = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds (defaults to config.PROVIDER_TIMEOUT)
            embedding_model: Model used by embed_content (default from config)
            chat_model: Model used by stream_generate (default from config)
            transport: Optional httpx transport, used to fake the server in tests
        """
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = timeout or config.PROVIDER_TIMEOUT
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.chat_model = chat_model or config.CHAT_MODEL
        self.transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            transport=self.transport,
        )

    async def embed_content(self, text: str) -> List[float]:
        """Generate an embedding for a text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as returned by the server (may be empty; the
            embedding client decides what an unusable vector means)

        Raises:
            ProviderError: On transport, HTTP or payload errors
        """
        payload = {
            "model": self.embedding_model,
            "prompt": text,
        }

        try:
            async with self._client() as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=self.embedding_model,
                    prompt_length=len(text),
                )

                response = await client.post("/api/embeddings", json=payload)
                response.raise_for_status()
                data = response.json()

        except (httpx.HTTPError, ValueError) as e:
            error = classify_http_error(e)
            logger.error(
                "ollama_embedding_error",
                error=str(e),
                kind=error.kind.value,
                status_code=error.status_code,
            )
            raise error from e

        embedding = data.get("embedding") if isinstance(data, dict) else None

        logger.debug(
            "ollama_embedding_response",
            model=self.embedding_model,
            dimension=len(embedding or []),
        )

        return embedding

    async def stream_generate(
        self,
        prompt: str,
        context: str,
        system_instructions: str,
        sampling: SamplingConfig = None,
    ) -> AsyncIterator[str]:
        """Stream a grounded chat completion, one text fragment at a time.

        Args:
            prompt: The user question
            context: Retrieved context block
            system_instructions: System message for the model
            sampling: Sampling settings, forwarded as Ollama options

        Yields:
            Non-empty text fragments in arrival order

        Raises:
            ProviderError: On transport, HTTP or stream errors
        """
        sampling = sampling or SamplingConfig()
        payload: Dict[str, Any] = {
            "model": self.chat_model,
            "messages": [
                {"role": "system", "content": system_instructions},
                {"role": "user", "content": build_user_prompt(prompt, context)},
            ],
            "stream": True,
            "options": sampling.to_options(),
        }

        logger.info(
            "ollama_chat_stream_request",
            model=self.chat_model,
            prompt_length=len(prompt),
            context_length=len(context),
        )

        fragments = 0
        try:
            async with self._client() as client:
                async with client.stream("POST", "/api/chat", json=payload) as response:
                    response.raise_for_status()

                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue

                        data = json.loads(line)
                        if not isinstance(data, dict):
                            raise ProviderError(f"Malformed stream line: {line[:100]}")

                        if data.get("error"):
                            raise ProviderError(f"Stream error: {data['error']}")

                        message = data.get("message") or {}
                        content = message.get("content") if isinstance(message, dict) else None
                        if isinstance(content, str) and content:
                            fragments += 1
                            yield content

                        if data.get("done"):
                            break

        except (httpx.HTTPError, ValueError) as e:
            error = classify_http_error(e)
            logger.error(
                "ollama_chat_stream_error",
                error=str(e),
                kind=error.kind.value,
                status_code=error.status_code,
            )
            raise error from e

        logger.info(
            "ollama_chat_stream_completed",
            model=self.chat_model,
            fragments=fragments,
        )

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Returns:
            List of model names

        Raises:
            ProviderError: On API errors
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except (httpx.HTTPError, ValueError) as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise classify_http_error(e) from e
