"""Append-only JSON Lines audit trail of retrieval decisions."""
import json
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class DecisionLogger:
    """Writes one JSON object per answered question."""

    def __init__(self, log_file_path: str = "logs/decisions.jsonl"):
        """
        Open the audit log for appending.

        Args:
            log_file_path: Path of the JSON Lines file; parent directories are created
        """
        self.log_file_path = log_file_path
        directory = os.path.dirname(log_file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self._file = open(log_file_path, "a", encoding="utf-8")
        self._lock = threading.Lock()
        logger.info(f"DecisionLogger writing to {log_file_path}")

    def log_decision(
        self,
        question: str,
        strategy: str,
        confidence: float,
        top_score: Optional[float],
        candidates_retrieved: int,
        model_used: str,
        tokens_input: int,
        tokens_output: int,
        latency_ms: int,
        conversation_id: Optional[str] = None
    ) -> None:
        """Append a decision entry. Write failures are logged, never raised."""
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "question": question,
            "strategy": strategy,
            "confidence": confidence,
            "top_score": top_score,
            "candidates_retrieved": candidates_retrieved,
            "model_used": model_used,
            "tokens_input": tokens_input,
            "tokens_output": tokens_output,
            "latency_ms": latency_ms,
            "conversation_id": conversation_id,
        }

        try:
            with self._lock:
                self._file.write(json.dumps(entry, ensure_ascii=False) + "\n")
                self._file.flush()
        except (OSError, ValueError) as e:
            logger.error(f"Failed to write decision log entry: {e}")

    def close(self) -> None:
        with self._lock:
            if not self._file.closed:
                self._file.close()
