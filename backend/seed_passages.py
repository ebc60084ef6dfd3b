"""
Passage seeding script for RefDesk RAG service.

This script:
1. Optionally clears existing passages from Supabase
2. Loads passages from a JSON array or a newline-delimited text file
3. Generates embeddings using HuggingFace API
4. Upserts everything into Supabase pgvector (re-seeding is idempotent)

Usage:
    python seed_passages.py data/passages.json [--clear]
"""
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from config import LOG_LEVEL
from logger import setup_logging
from services.embedding_model import EmbeddingModel
from services.vector_store import VectorStore

logger = logging.getLogger(__name__)


def load_passages(path: Path) -> List[str]:
    """
    Read passages from a file.

    A .json file must hold an array of strings or of objects with a
    "content" field. Any other file is read as one passage per non-empty line.
    """
    text = path.read_text(encoding="utf-8")

    if path.suffix.lower() == ".json":
        data = json.loads(text)
        if not isinstance(data, list):
            raise ValueError(f"{path} must contain a JSON array")
        return [item["content"] if isinstance(item, dict) else str(item) for item in data]

    return [line.strip() for line in text.splitlines() if line.strip()]


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed reference passages into the vector store")
    parser.add_argument("source", type=Path, help="JSON array or newline-delimited text file")
    parser.add_argument("--clear", action="store_true", help="Delete existing passages first")
    args = parser.parse_args()

    setup_logging(LOG_LEVEL)

    passages = load_passages(args.source)
    logger.info(f"Loaded {len(passages)} passages from {args.source}")

    embedding_model = EmbeddingModel()
    vector_store = VectorStore(embedding_model)

    if args.clear:
        logger.info(f"Clearing {vector_store.count()} existing passages...")
        vector_store.clear()

    logger.info("Warming up embedding model (may take 15-20s on a cold start)...")
    embedding_model.warmup()

    written = vector_store.add_passages(passages)
    logger.info(f"Seeding complete: {written} passages written, {vector_store.count()} in store")
    return 0


if __name__ == "__main__":
    sys.exit(main())
