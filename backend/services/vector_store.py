"""Vector store implementation using Supabase pgvector."""
import hashlib
import logging
from typing import List
from supabase import create_client, Client
from models.candidate import Candidate
from services.embedding_model import EmbeddingModel
from services.errors import RetrievalError
from config import SUPABASE_URL, SUPABASE_KEY

logger = logging.getLogger(__name__)


def passage_id_for(text: str) -> str:
    """Stable passage ID derived from the passage content."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]


class VectorStore:
    """Store passage embeddings and rank them by similarity using Supabase pgvector."""

    def __init__(
        self,
        embedding_model: EmbeddingModel,
        supabase_url: str = SUPABASE_URL,
        supabase_key: str = SUPABASE_KEY,
        table_name: str = "passages",
        match_function: str = "match_passages"
    ):
        """
        Initialize the vector store with Supabase client.

        Args:
            embedding_model: EmbeddingModel instance for generating embeddings
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            table_name: Name of the table to store passages
            match_function: Name of the similarity search RPC

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

        self.embedding_model = embedding_model
        self.table_name = table_name
        self.match_function = match_function

        self.client: Client = create_client(supabase_url, supabase_key)

        logger.info(f"Initialized VectorStore with table: {table_name}")

    def add_passages(self, texts: List[str]) -> int:
        """
        Embed and store passages; passages already stored are overwritten in place.

        Uses batch embedding to send multiple passages in one API call
        to stay under rate limits.

        Args:
            texts: Passage texts to store

        Returns:
            Number of passages written

        Raises:
            ValueError: If texts contains no non-empty passage
            RetrievalError: If embedding or the database operation fails
        """
        # Dedupe while keeping order so one batch never upserts the same key twice
        unique_texts = list(dict.fromkeys(t.strip() for t in texts if t and t.strip()))
        if not unique_texts:
            raise ValueError("Passages list cannot be empty")

        logger.info(f"Adding {len(unique_texts)} passages to vector store...")

        try:
            embeddings = self.embedding_model.embed_batch(unique_texts)

            records = [
                {
                    "passage_id": passage_id_for(text),
                    "content": text,
                    "embedding": embedding
                }
                for text, embedding in zip(unique_texts, embeddings)
            ]

            # Upsert keyed by content hash makes re-seeding idempotent
            self.client.table(self.table_name).upsert(records, on_conflict="passage_id").execute()

            logger.info(f"Successfully added {len(records)} passages to vector store")
            return len(records)

        except Exception as e:
            error_msg = f"Failed to add passages to vector store: {str(e)}"
            logger.error(error_msg)
            raise RetrievalError(error_msg, code="WRITE_FAILED")

    def search(
        self,
        query_embedding: List[float],
        top_k: int = 3
    ) -> List[Candidate]:
        """
        Find the passages most similar to the query using cosine similarity.

        Args:
            query_embedding: Embedding vector for user query
            top_k: Maximum number of candidates to return

        Returns:
            At most top_k candidates sorted by descending score. Scores are
            passed through as returned by the database.

        Raises:
            ValueError: If query_embedding is empty or top_k is invalid
            RetrievalError: If database operation fails
        """
        if not query_embedding:
            raise ValueError("Query embedding cannot be empty")

        if top_k <= 0:
            raise ValueError("top_k must be positive")

        try:
            # The RPC function is created in Supabase with:
            # CREATE OR REPLACE FUNCTION match_passages(
            #   query_embedding vector(1024),
            #   match_count int
            # )
            # RETURNS TABLE (passage_id text, content text, similarity float)
            # LANGUAGE sql STABLE
            # AS $$
            #   SELECT passage_id, content,
            #          1 - (passages.embedding <=> query_embedding) AS similarity
            #   FROM passages
            #   ORDER BY passages.embedding <=> query_embedding
            #   LIMIT match_count;
            # $$;

            response = self.client.rpc(
                self.match_function,
                {
                    "query_embedding": query_embedding,
                    "match_count": top_k
                }
            ).execute()

            candidates = [
                Candidate(
                    content=row["content"],
                    score=float(row["similarity"]),
                    passage_id=row.get("passage_id")
                )
                for row in response.data or []
            ]

        except Exception as e:
            error_msg = f"Failed to search vector store: {str(e)}"
            logger.error(error_msg)
            raise RetrievalError(error_msg, code="SEARCH_FAILED")

        candidates.sort(key=lambda c: c.score, reverse=True)
        candidates = candidates[:top_k]

        logger.debug(f"Found {len(candidates)} candidates for query")
        return candidates

    def clear(self) -> None:
        """
        Clear all passages from the vector store.

        Raises:
            RetrievalError: If database operation fails
        """
        try:
            self.client.table(self.table_name).delete().neq("passage_id", "").execute()
            logger.info("Cleared all passages from vector store")
        except Exception as e:
            error_msg = f"Failed to clear vector store: {str(e)}"
            logger.error(error_msg)
            raise RetrievalError(error_msg, code="WRITE_FAILED")

    def count(self) -> int:
        """
        Get the total number of passages in the vector store.

        Raises:
            RetrievalError: If database operation fails
        """
        try:
            response = self.client.table(self.table_name).select("passage_id", count="exact").execute()
            return response.count if response.count is not None else 0
        except Exception as e:
            error_msg = f"Failed to count passages in vector store: {str(e)}"
            logger.error(error_msg)
            raise RetrievalError(error_msg, code="READ_FAILED")
