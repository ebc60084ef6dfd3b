"""Query and passage embeddings via the Hugging Face Inference API."""
import time
import logging
from typing import List, Optional
import httpx
import numpy as np
from config import HUGGINGFACE_API_KEY, EMBEDDING_MODEL
from services.errors import EmbeddingError

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 60.0


class EmbeddingModel:
    """
    Feature-extraction client for a hosted embedding model.

    Free-tier models are unloaded when idle and answer 503 while they warm up,
    so 503 responses, timeouts and network errors are retried with exponential
    backoff. Rate limit, authentication and other HTTP errors fail at once.
    """

    def __init__(
        self,
        api_key: str = HUGGINGFACE_API_KEY,
        model_name: str = EMBEDDING_MODEL,
        max_retries: int = 5,
        initial_delay: float = 5.0,
        timeout: float = 120.0,
        normalize: bool = True
    ):
        """
        Initialize the embedding model client.

        Args:
            api_key: Hugging Face API key
            model_name: Model identifier (default: BAAI/bge-m3)
            max_retries: Maximum number of attempts per request
            initial_delay: First backoff delay in seconds, doubled after each retry
            timeout: Request timeout in seconds
            normalize: L2-normalize returned vectors
        """
        if not api_key:
            raise ValueError("HUGGINGFACE_API_KEY environment variable is required")

        self.api_key = api_key
        self.model_name = model_name
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.timeout = timeout
        self.normalize = normalize
        self.api_url = f"https://router.huggingface.co/hf-inference/models/{model_name}/pipeline/feature-extraction"

        logger.info(f"EmbeddingModel ready: {model_name} (normalize={normalize})")

    def embed_text(self, text: str) -> List[float]:
        """
        Embed a single question or passage.

        Raises:
            ValueError: If text is empty
            EmbeddingError: If the service fails or returns a malformed payload
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        return self._request_embeddings([text])[0]

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed several passages in one request; empty strings are skipped.

        Raises:
            ValueError: If texts list is empty or contains only empty strings
            EmbeddingError: If the service fails or returns a malformed payload
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")

        non_empty = [t for t in texts if t and t.strip()]
        if not non_empty:
            raise ValueError("All texts in batch are empty")
        if len(non_empty) < len(texts):
            logger.warning(f"Skipping {len(texts) - len(non_empty)} empty texts in batch")

        return self._request_embeddings(non_empty)

    def warmup(self) -> bool:
        """Embed a dummy query so the first real question skips the cold start."""
        started = time.time()
        try:
            self.embed_text("warmup query")
        except (EmbeddingError, ValueError) as e:
            logger.error(f"Embedding warmup failed: {e}")
            return False

        logger.info(f"Embedding warmup took {time.time() - started:.1f}s")
        return True

    def _request_embeddings(self, texts: List[str]) -> List[List[float]]:
        payload = {"inputs": texts, "options": {"wait_for_model": True}}
        delay = self.initial_delay
        last_failure: Optional[str] = None

        for attempt in range(1, self.max_retries + 1):
            started = time.time()
            try:
                response = self._post(payload)
            except httpx.TimeoutException:
                last_failure = f"Request timeout after {self.timeout}s"
            except httpx.RequestError as e:
                last_failure = f"Network error: {e}"
            else:
                if response.status_code != 503:
                    self._raise_for_status(response)
                    embeddings = self._parse_embeddings(response, len(texts))
                    logger.debug(
                        f"Embedded {len(texts)} texts in {time.time() - started:.2f}s (attempt {attempt})"
                    )
                    return embeddings
                last_failure = "Model is still loading (503)"

            logger.warning(f"{last_failure} on attempt {attempt}/{self.max_retries}")
            if attempt < self.max_retries:
                time.sleep(delay)
                delay = min(delay * 2, MAX_BACKOFF_SECONDS)

        message = f"Failed to generate embeddings after {self.max_retries} attempts. Last error: {last_failure}"
        logger.error(message, extra={"error_code": "RETRIES_EXHAUSTED"})
        raise EmbeddingError(
            message,
            code="RETRIES_EXHAUSTED",
            details={"model": self.model_name, "attempts": self.max_retries}
        )

    def _post(self, payload: dict) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(self.api_url, headers=headers, json=payload)

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status == 200:
            return

        if status == 429:
            code, message = "RATE_LIMIT_ERROR", "Rate limit exceeded. Please try again later."
        elif status == 401:
            code, message = "AUTHENTICATION_ERROR", "Invalid API key"
        else:
            code, message = "API_ERROR", f"API request failed with status {status}: {response.text}"

        logger.error(f"Embedding request failed: {message}", extra={"error_code": code})
        raise EmbeddingError(message, code=code, details={"model": self.model_name, "status_code": status})

    def _parse_embeddings(self, response: httpx.Response, expected: int) -> List[List[float]]:
        """Validate the payload shape and optionally L2-normalize each vector."""
        try:
            matrix = np.asarray(response.json(), dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise EmbeddingError(
                f"Malformed embedding response: {e}",
                code="MALFORMED_RESPONSE",
                details={"model": self.model_name}
            )

        if matrix.ndim != 2 or matrix.shape[0] != expected or matrix.shape[1] == 0:
            raise EmbeddingError(
                f"Expected {expected} embedding vectors, got shape {matrix.shape}",
                code="MALFORMED_RESPONSE",
                details={"model": self.model_name, "shape": list(matrix.shape)}
            )

        if self.normalize:
            norms = np.linalg.norm(matrix, axis=1, keepdims=True)
            norms[norms == 0] = 1.0  # zero vectors stay zero
            matrix = matrix / norms

        return matrix.tolist()
