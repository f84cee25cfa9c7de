#!/usr/bin/env python
"""Index a folder of text documents and ask one question about them.

Usage:
    python scripts/ask.py docs/ "What does the report conclude?"
    python scripts/ask.py docs/ "Summarize the notes" --glob "*.md"
    python scripts/ask.py docs/ "Who is the author?" --verbose
"""
import argparse
import asyncio
import mimetypes
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from docmind import config
from docmind.errors import DocMindError, IngestionFailure
from docmind.llm_client import OllamaClient
from docmind.log import configure_logging
from docmind.rag.answer import RagChat
from docmind.rag.embedder import EmbeddingClient
from docmind.rag.ingest import IngestPipeline
from docmind.rag.retriever import Retriever
from docmind.rag.vector_index import VectorIndex
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, name: str):
        """Update progress for the document being embedded."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {name[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"  📁 Documents indexed:  {stats['documents_ingested']}")
        print(f"  ❌ Documents failed:   {stats['documents_failed']}")
        print(f"  📝 Chunks created:     {stats['chunks_created']}")
        print(f"  🧮 Vectors stored:     {stats['vectors_added']}")
        print(f"  ⏱️  Time elapsed:       {elapsed_seconds:.1f}s\n")


def read_documents(directory: Path, pattern: str):
    """Yield (path, text) for every readable file matching pattern."""
    for path in sorted(directory.rglob(pattern)):
        if not path.is_file():
            continue
        try:
            yield path, path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            logger.warning("skipping_binary_file", path=str(path))


async def main():
    """Main entry point for the ask script."""
    parser = argparse.ArgumentParser(
        description="Index text documents and answer a question about them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("directory", type=Path, help="Folder with documents")
    parser.add_argument("question", help="Question to ask")
    parser.add_argument(
        "--glob",
        default="*.txt",
        help="File pattern to index (default: *.txt)",
    )
    parser.add_argument(
        "--top-k",
        type=int,
        default=config.CHAT_TOP_K,
        help=f"Chunks used as context (default: {config.CHAT_TOP_K})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show log output and per-batch progress",
    )

    args = parser.parse_args()
    configure_logging(level="DEBUG" if args.verbose else "WARNING", json=False)

    if not args.directory.is_dir():
        print(f"\n❌ Error: Not a directory: {args.directory}\n")
        sys.exit(1)

    provider = OllamaClient()
    index = VectorIndex(EmbeddingClient(provider))
    pipeline = IngestPipeline(index)
    chat = RagChat(Retriever(index), provider, top_k=args.top_k)
    progress = ProgressReporter(verbose=args.verbose)

    print("\n📋 Configuration:")
    print(f"   Directory:        {args.directory}")
    print(f"   Embedding model:  {provider.embedding_model}")
    print(f"   Chat model:       {provider.chat_model}")
    print(f"   Chunk size:       {pipeline.chunker.chunk_size} chars")
    print(f"   Chunk overlap:    {pipeline.chunker.chunk_overlap} chars")

    try:
        progress.start("Indexing Documents")

        for path, text in read_documents(args.directory, args.glob):
            mime_type = mimetypes.guess_type(path.name)[0] or "text/plain"
            try:
                await pipeline.ingest_document(
                    content=text,
                    name=path.name,
                    mime_type=mime_type,
                    size=path.stat().st_size,
                    progress_callback=lambda current, total, name=path.name: progress.update(
                        current, total, name
                    ),
                )
            except IngestionFailure as e:
                print(f"\n  ⚠️  {path.name}: {e}")

        progress.finish(pipeline.stats)

        if index.count() == 0:
            print("⚠️  Nothing was indexed; the answer will not be grounded.\n")

        stream = await chat.ask(args.question)
        print(f"💬 {args.question}\n")
        async for fragment in stream:
            print(fragment, end="", flush=True)
        print("\n")

        if stream.sources:
            print("📚 Sources:")
            for name in stream.sources:
                print(f"   - {name}")
            print()

    except KeyboardInterrupt:
        print("\n\n⚠️  Cancelled by user.\n")
        sys.exit(1)

    except DocMindError as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("ask_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
