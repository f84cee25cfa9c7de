"""Quart application exposing the DocMind retrieval core over HTTP."""
import json
from typing import Optional

from pydantic import BaseModel, Field, ValidationError
from quart import Quart, Response, jsonify, request
import structlog

from docmind import config
from docmind.errors import DocMindError, GenerationFailure, IngestionFailure
from docmind.llm_client import OllamaClient
from docmind.log import configure_logging
from docmind.rag.answer import RagChat
from docmind.rag.embedder import EmbeddingClient
from docmind.rag.ingest import IngestPipeline
from docmind.rag.retriever import Retriever
from docmind.rag.vector_index import VectorIndex

configure_logging()

logger = structlog.get_logger()


class DocumentIn(BaseModel):
    """Body of POST /api/documents."""

    content: str = Field(..., description="Full text of the document")
    name: str = Field(..., min_length=1, description="Display name")
    mime_type: str = Field("text/plain", description="MIME type of the source")
    size: Optional[int] = Field(None, ge=0, description="Size in bytes")


class UrlIn(BaseModel):
    """Body of POST /api/documents/url."""

    url: str = Field(..., pattern=r"^https?://", description="Address to fetch")


class ChatIn(BaseModel):
    """Body of POST /api/chat."""

    message: str = Field(..., min_length=1, max_length=config.MAX_MESSAGE_LENGTH)


def _errors(error: ValidationError) -> list:
    return error.errors(include_url=False, include_context=False, include_input=False)


def _ndjson(payload: dict) -> str:
    return json.dumps(payload) + "\n"


def create_app(provider=None) -> Quart:
    """Build the application with its own index and pipelines.

    Args:
        provider: Embedding/generation provider (default: OllamaClient)

    Returns:
        Configured Quart application
    """
    provider = provider or OllamaClient()
    index = VectorIndex(EmbeddingClient(provider))
    pipeline = IngestPipeline(index)
    chat = RagChat(Retriever(index), provider)

    app = Quart(__name__)
    app.extensions["docmind"] = {
        "provider": provider,
        "index": index,
        "pipeline": pipeline,
        "chat": chat,
    }

    async def _parse(model):
        data = await request.get_json(silent=True)
        return model.model_validate(data if data is not None else {})

    @app.route("/api/documents", methods=["POST"])
    async def add_document():
        """Ingest a document given as text.

        Returns:
            201 with the document summary, 400 on a bad body,
            422 if nothing from the document could be indexed
        """
        try:
            body = await _parse(DocumentIn)
        except ValidationError as e:
            return jsonify({"error": "Invalid document", "details": _errors(e)}), 400

        try:
            document = await pipeline.ingest_document(
                content=body.content,
                name=body.name,
                mime_type=body.mime_type,
                size=body.size,
            )
        except IngestionFailure as e:
            return jsonify({"error": str(e)}), 422

        return jsonify(document.to_dict()), 201

    @app.route("/api/documents/url", methods=["POST"])
    async def add_document_from_url():
        """Fetch a URL and ingest its body."""
        try:
            body = await _parse(UrlIn)
        except ValidationError as e:
            return jsonify({"error": "Invalid URL", "details": _errors(e)}), 400

        try:
            document = await pipeline.ingest_url(body.url)
        except IngestionFailure as e:
            return jsonify({"error": str(e)}), 422

        return jsonify(document.to_dict()), 201

    @app.route("/api/documents", methods=["GET"])
    async def list_documents():
        documents = pipeline.list_documents()
        return jsonify(
            {
                "documents": [d.to_dict() for d in documents],
                "chunk_count": index.count(),
            }
        )

    @app.route("/api/documents/<document_id>", methods=["DELETE"])
    async def delete_document(document_id: str):
        """Delete a document and its vectors.

        Returns:
            204 No Content if successful
            404 Not Found if the document doesn't exist
        """
        if pipeline.remove_document(document_id):
            return "", 204
        return jsonify({"error": "Document not found"}), 404

    @app.route("/api/stats")
    async def stats():
        return jsonify(pipeline.get_stats())

    @app.route("/api/chat", methods=["POST"])
    async def chat_endpoint():
        """Answer a question, streamed as newline-delimited JSON.

        Expects JSON body:
        {
            "message": "user question"
        }

        Streams lines:
            {"sources": ["doc-a.txt", ...]}
            {"delta": "partial answer text"}   (repeated)
            {"done": true}  or  {"error": "..."}
        """
        try:
            body = await _parse(ChatIn)
        except ValidationError as e:
            return jsonify({"error": "Invalid message", "details": _errors(e)}), 400

        message = body.message.strip()
        if not message:
            return jsonify({"error": "Message cannot be empty"}), 400

        logger.info("chat_request_received", message_length=len(message))

        try:
            stream = await chat.ask(message)
        except DocMindError as e:
            logger.error("chat_query_failed", error=str(e), error_type=type(e).__name__)
            return jsonify({"error": "Failed to retrieve context for the question"}), 503

        async def generate():
            yield _ndjson({"sources": stream.sources})
            try:
                async for fragment in stream:
                    yield _ndjson({"delta": fragment})
            except GenerationFailure as e:
                yield _ndjson({"error": str(e)})
                return
            finally:
                if not stream.finished:
                    await stream.aclose()
            yield _ndjson({"done": True})

        return Response(generate(), mimetype="application/x-ndjson")

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - check that the provider is reachable and has the chat model."""
        checks = {"status": "healthy", "provider": False, "models": False}

        try:
            models = await provider.list_models()
            checks["provider"] = True

            chat_model = getattr(provider, "chat_model", config.CHAT_MODEL)
            if chat_model in models:
                checks["models"] = True
            else:
                checks["status"] = "unhealthy"
                checks["error"] = f"Missing chat model: {chat_model}"

        except Exception as e:
            logger.error("health_check_failed", error=str(e))
            checks["status"] = "unhealthy"
            checks["error"] = str(e)

        status_code = 200 if checks["status"] == "healthy" else 503
        return jsonify(checks), status_code

    @app.route("/health/live")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "alive"}), 200

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    return app


app = create_app()


if __name__ == "__main__":
    # For development - use hypercorn docmind.main:app in production
    app.run(host="0.0.0.0", port=5000, debug=True)
