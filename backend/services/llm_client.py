"""LLM Client for Groq API integration."""
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from groq import Groq
from groq import RateLimitError, AuthenticationError, APIError, APITimeoutError
import logging

from config import (
    AVAILABLE_MODELS,
    GENERATION_MAX_TOKENS,
    GENERATION_MODEL,
    GENERATION_TEMPERATURE,
    GENERATION_TIMEOUT_SECONDS,
    GROQ_API_KEY,
)
from services.errors import GenerationError

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    tokens_input: int
    tokens_output: int
    total_tokens: int
    latency_ms: int
    model_used: str

    def usage(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.tokens_input,
            "completion_tokens": self.tokens_output,
            "total_tokens": self.total_tokens,
        }


class LLMClient:
    """Client for interfacing with Groq API for chat generation."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: str = GENERATION_MODEL,
        timeout: float = GENERATION_TIMEOUT_SECONDS,
        available_models: Optional[Dict[str, str]] = None
    ):
        """
        Initialize LLM client with Groq API key.

        Args:
            api_key: Groq API key (defaults to GROQ_API_KEY from environment)
            default_model: Model used when a request names none or an unknown one
            timeout: Per-request timeout in seconds
            available_models: Selectable model names mapped to model IDs
        """
        self.api_key = api_key or GROQ_API_KEY
        if not self.api_key:
            raise ValueError("GROQ_API_KEY must be provided or set in environment")

        self.default_model = default_model
        self.timeout = timeout
        self.available_models = available_models if available_models is not None else dict(AVAILABLE_MODELS)

        self.client = Groq(api_key=self.api_key, timeout=timeout)
        logger.info("LLMClient initialized successfully")

    def resolve_model(self, model_key: Optional[str] = None) -> str:
        """Map a selectable model name to a model ID, falling back to the default."""
        if model_key and model_key in self.available_models:
            return self.available_models[model_key]
        if model_key:
            logger.warning(f"Unknown model '{model_key}', using default {self.default_model}")
        return self.default_model

    def available(self) -> Dict[str, Any]:
        return {
            "available_models": list(self.available_models.keys()),
            "default_model": self.default_model,
            "models": dict(self.available_models),
        }

    def generate(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        max_tokens: int = GENERATION_MAX_TOKENS,
        temperature: float = GENERATION_TEMPERATURE
    ) -> LLMResponse:
        """
        Generate a reply using Groq API.

        Args:
            messages: Role-tagged messages, sent in the given order
            model: Model ID (defaults to the configured generation model)
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature

        Returns:
            LLMResponse with text, token counts, and latency

        Raises:
            GenerationError: Structured error with code, message, and details
        """
        model = model or self.default_model
        start_time = time.time()

        try:
            logger.debug(f"Generating response with model: {model} ({len(messages)} messages)")

            response = self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature
            )

        except RateLimitError as e:
            raise self._error(
                "RATE_LIMIT_ERROR",
                "Rate limit exceeded. Please try again in a few moments.",
                model, start_time, e,
                retry_after=60  # Suggest retry after 60 seconds
            )

        except AuthenticationError as e:
            raise self._error(
                "AUTHENTICATION_ERROR",
                "Authentication failed. Please check your API key.",
                model, start_time, e
            )

        except APITimeoutError as e:
            raise self._error(
                "TIMEOUT_ERROR",
                f"Request timed out after {self.timeout}s. Please try again.",
                model, start_time, e
            )

        except APIError as e:
            raise self._error("API_ERROR", f"Groq API error: {str(e)}", model, start_time, e)

        except Exception as e:
            raise self._error(
                "UNKNOWN_ERROR",
                f"Unexpected error during generation: {str(e)}",
                model, start_time, e,
                error_type=type(e).__name__
            )

        latency_ms = int((time.time() - start_time) * 1000)

        try:
            text = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise self._error("MALFORMED_RESPONSE", "Generation response had no message", model, start_time, e)

        if not text or not text.strip():
            raise self._error(
                "MALFORMED_RESPONSE",
                "Generation response was empty",
                model, start_time, ValueError("empty content")
            )

        usage = getattr(response, "usage", None)
        tokens_input = getattr(usage, "prompt_tokens", 0) or 0
        tokens_output = getattr(usage, "completion_tokens", 0) or 0
        total_tokens = getattr(usage, "total_tokens", None)
        if not isinstance(total_tokens, int):
            total_tokens = tokens_input + tokens_output

        logger.info(
            f"Generated response: model={model}, "
            f"input_tokens={tokens_input}, output_tokens={tokens_output}, "
            f"latency={latency_ms}ms"
        )

        return LLMResponse(
            text=text.strip(),
            tokens_input=tokens_input,
            tokens_output=tokens_output,
            total_tokens=total_tokens,
            latency_ms=latency_ms,
            model_used=model
        )

    @staticmethod
    def _error(
        code: str,
        message: str,
        model: str,
        start_time: float,
        original: Exception,
        **extra: Any
    ) -> GenerationError:
        latency_ms = int((time.time() - start_time) * 1000)
        details = {
            "model": model,
            "latency_ms": latency_ms,
            "original_error": str(original),
            **extra
        }
        logger.error(
            f"Generation error {code}: model={model}, latency={latency_ms}ms, error={original}",
            exc_info=not isinstance(original, ValueError),
            extra={"error_code": code, "error_details": details}
        )
        return GenerationError(message, code=code, details=details)
