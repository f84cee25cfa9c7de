"""Ingest pipeline for making documents searchable.

Orchestrates:
- Document record creation
- Text chunking
- Batched embedding and index insertion (with progress reporting)
- The registry of successfully indexed documents
- Fetching documents from URLs
"""
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx
import structlog

from docmind import config
from docmind.errors import IngestionFailure
from docmind.rag.chunker import TextChunker
from docmind.rag.models import DocumentRecord, new_id
from docmind.rag.vector_index import ProgressCallback, VectorIndex

logger = structlog.get_logger()

MAX_URL_NAME_LENGTH = 30


def _empty_stats() -> Dict[str, int]:
    return {
        "documents_ingested": 0,
        "documents_failed": 0,
        "chunks_created": 0,
        "vectors_added": 0,
    }


def document_name_for_url(url: str) -> str:
    """Display name for a fetched URL: host plus path, shortened if long."""
    parsed = urlparse(url)
    name = f"{parsed.hostname or ''}{parsed.path}"
    if len(name) > MAX_URL_NAME_LENGTH:
        name = name[:MAX_URL_NAME_LENGTH] + "..."
    return name


class IngestPipeline:
    """Pipeline for ingesting documents into the vector index."""

    def __init__(
        self,
        index: VectorIndex,
        chunker: Optional[TextChunker] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            index: Vector index that receives the embedded chunks
            chunker: Text chunker (default: TextChunker with config settings)
        """
        self.index = index
        self.chunker = chunker or TextChunker()
        self._documents: Dict[str, DocumentRecord] = {}
        self.stats = _empty_stats()

        logger.info(
            "ingest_pipeline_initialized",
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
        )

    async def ingest_document(
        self,
        content: str,
        name: str,
        mime_type: str = "text/plain",
        size: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> DocumentRecord:
        """Chunk, embed and index a document.

        Args:
            content: Full document text
            name: Display name of the document
            mime_type: MIME type reported by the caller
            size: Size in bytes (defaults to the UTF-8 length of content)
            progress_callback: Optional callback(processed, total) during embedding

        Returns:
            The registered DocumentRecord

        Raises:
            IngestionFailure: If nothing from the document became searchable;
                the document is not registered in that case
        """
        document = DocumentRecord(
            id=new_id(),
            name=name,
            mime_type=mime_type or "text/plain",
            byte_size=len(content.encode("utf-8")) if size is None else size,
            content=content,
        )

        logger.info(
            "ingesting_document",
            document_id=document.id,
            name=name,
            mime_type=document.mime_type,
            byte_size=document.byte_size,
        )

        chunks = self.chunker.chunk_document(document.id, document.name, content)

        if not chunks:
            self.stats["documents_failed"] += 1
            logger.warning("no_chunks_created", document_id=document.id, name=name)
            raise IngestionFailure(f"Document '{name}' contains no text to index")

        try:
            added = await self.index.add_chunks(chunks, progress_callback)
        except IngestionFailure:
            self.stats["documents_failed"] += 1
            logger.error(
                "document_ingestion_failed",
                document_id=document.id,
                name=name,
                chunk_count=len(chunks),
            )
            raise

        document.chunk_count = added
        self._documents[document.id] = document

        self.stats["documents_ingested"] += 1
        self.stats["chunks_created"] += len(chunks)
        self.stats["vectors_added"] += added

        logger.info(
            "document_ingested",
            document_id=document.id,
            name=name,
            chunks_created=len(chunks),
            vectors_added=added,
        )

        return document

    async def ingest_url(
        self,
        url: str,
        progress_callback: Optional[ProgressCallback] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> DocumentRecord:
        """Fetch a URL and ingest its body as a document.

        Args:
            url: Address to fetch
            progress_callback: Optional callback(processed, total) during embedding
            client: Optional httpx client (a short-lived one is created otherwise)

        Returns:
            The registered DocumentRecord

        Raises:
            IngestionFailure: If the fetch fails or nothing became searchable
        """
        logger.info("fetching_url", url=url)

        try:
            if client is None:
                async with httpx.AsyncClient(
                    timeout=config.URL_FETCH_TIMEOUT, follow_redirects=True
                ) as owned_client:
                    response = await owned_client.get(url)
            else:
                response = await client.get(url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.stats["documents_failed"] += 1
            logger.error("url_fetch_failed", url=url, error=str(e))
            raise IngestionFailure(f"URL fetch failed: {e}") from e

        text = response.text
        mime_type = response.headers.get("content-type", "text/html").split(";")[0]

        return await self.ingest_document(
            content=text,
            name=document_name_for_url(url),
            mime_type=mime_type.strip() or "text/html",
            size=len(text),
            progress_callback=progress_callback,
        )

    def remove_document(self, document_id: str) -> bool:
        """Remove a document and all of its vectors.

        Args:
            document_id: ID of the document to remove

        Returns:
            True if the document was registered, False otherwise
        """
        self.index.remove_document(document_id)
        document = self._documents.pop(document_id, None)

        logger.info(
            "document_removed",
            document_id=document_id,
            found=document is not None,
        )

        return document is not None

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        return self._documents.get(document_id)

    def list_documents(self) -> List[DocumentRecord]:
        """Registered documents in ingestion order."""
        return list(self._documents.values())

    def clear(self) -> None:
        """Forget every document and empty the index."""
        self._documents.clear()
        self.index.clear()
        self.stats = _empty_stats()
        logger.info("ingest_pipeline_cleared")

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "documents": len(self._documents),
            "index": self.index.get_stats(),
        }
