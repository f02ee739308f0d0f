"""
LLM text generation for focus insights.

Sends prompts to an Ollama server over its HTTP chat API. This is the
external generative text service used by the insight orchestrator; the
orchestrator only relies on ``generate_text(prompt) -> str`` and on
GenerationUnavailable being raised when no text can be produced.
"""

import logging
import time

import requests

from .errors import GenerationUnavailable
from .prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_HOST = "http://localhost:11434"

# Status codes worth another attempt
RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class OllamaTextGenerator:
    """
    Generates insight text with an Ollama-hosted model.

    Attributes:
        model: The Ollama model to use.
        ollama_host: Base URL for the Ollama API.
        timeout: Timeout in seconds for a single HTTP request.
        max_retries: Extra attempts after a retryable failure.
        retry_delay: Base backoff delay in seconds, doubled per attempt.
        temperature: Sampling temperature.
        max_tokens: Upper bound on generated tokens.
        system_prompt: System message sent with every request.
        deadline: Total seconds allowed for one generate_text call, retries
            and backoff included (None for no limit).
        min_request_interval: Minimum seconds between request starts.
    """

    def __init__(
        self,
        model: str = "gemma3:12b-it-qat",
        ollama_host: str = None,
        timeout: float = 60,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        temperature: float = 0.7,
        max_tokens: int = 400,
        system_prompt: str = SYSTEM_PROMPT,
        deadline: float = None,
        min_request_interval: float = 1.0,
    ):
        self.model = model
        self.ollama_host = (ollama_host or DEFAULT_OLLAMA_HOST).rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.system_prompt = system_prompt
        self.deadline = deadline
        self.min_request_interval = min_request_interval
        self.request_count = 0
        self.last_request_time = 0.0

    def _enforce_rate_limit(self):
        """Sleep until min_request_interval has passed since the last request."""
        elapsed = time.time() - self.last_request_time
        if elapsed < self.min_request_interval:
            wait = self.min_request_interval - elapsed
            logger.debug(f"Rate limiting: waiting {wait:.2f}s before next request")
            time.sleep(wait)

    def _call_ollama_api(self, prompt: str, timeout: float = None) -> str:
        """
        Make one chat request.

        Args:
            prompt: The user prompt.
            timeout: Request timeout (defaults to self.timeout).

        Returns:
            The model's response text, stripped.

        Raises:
            requests.exceptions.RequestException: On transport or HTTP errors.
            GenerationUnavailable: If the response carries no text.
        """
        url = f"{self.ollama_host}/api/chat"
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }

        self._enforce_rate_limit()
        start_time = time.time()
        self.last_request_time = start_time
        response = requests.post(url, json=payload, timeout=timeout or self.timeout)
        response.raise_for_status()

        inference_time = time.time() - start_time
        logger.info(f"LLM inference completed in {inference_time:.2f}s")

        try:
            text = response.json()["message"]["content"]
        except (ValueError, KeyError, TypeError) as e:
            raise GenerationUnavailable(f"Malformed Ollama response: {e}") from e

        if not text or not text.strip():
            raise GenerationUnavailable("Empty response from Ollama")

        self.request_count += 1
        return text.strip()

    def _should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        if isinstance(error, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
            return True
        if isinstance(error, requests.exceptions.HTTPError) and error.response is not None:
            return error.response.status_code in RETRYABLE_STATUS
        return False

    def generate_text(self, prompt: str) -> str:
        """
        Generate text from a prompt, retrying transient failures.

        Timeouts, connection errors and 429/5xx responses are retried with
        exponential backoff (retry_delay, 2x, 4x, ...). With a deadline set,
        each request timeout is capped at the time left and no retry starts
        once its backoff would run past the deadline.

        Args:
            prompt: The user prompt.

        Returns:
            The generated text.

        Raises:
            GenerationUnavailable: If no text could be generated.
        """
        expires_at = None if self.deadline is None else time.monotonic() + self.deadline
        attempt = 0
        while True:
            request_timeout = self.timeout
            if expires_at is not None:
                remaining = expires_at - time.monotonic()
                if remaining <= 0:
                    raise GenerationUnavailable(
                        f"Ollama generation exceeded its {self.deadline}s deadline"
                    )
                request_timeout = min(self.timeout, remaining)

            try:
                return self._call_ollama_api(prompt, request_timeout)
            except requests.exceptions.RequestException as e:
                logger.error(f"Ollama request failed (attempt {attempt + 1}): {e}")
                if not self._should_retry(e, attempt):
                    if isinstance(e, requests.exceptions.Timeout):
                        raise GenerationUnavailable(
                            f"Ollama API timed out after {self.timeout}s"
                        ) from e
                    if isinstance(e, requests.exceptions.ConnectionError):
                        raise GenerationUnavailable(
                            f"Cannot connect to Ollama at {self.ollama_host}"
                        ) from e
                    raise GenerationUnavailable(f"Ollama API error: {e}") from e

                delay = self.retry_delay * (2 ** attempt)
                if expires_at is not None and time.monotonic() + delay >= expires_at:
                    raise GenerationUnavailable(
                        f"Ollama generation exceeded its {self.deadline}s deadline: {e}"
                    ) from e
                logger.info(f"Retrying Ollama request in {delay:.1f}s")
                time.sleep(delay)
                attempt += 1

    def is_available(self) -> bool:
        """
        Check that Ollama is reachable and the configured model is pulled.

        Returns:
            True if the model is listed by ``/api/tags``.
        """
        try:
            response = requests.get(f"{self.ollama_host}/api/tags", timeout=5)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.ConnectionError:
            logger.warning(f"Cannot connect to Ollama at {self.ollama_host}")
            return False
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Ollama check failed: {e}")
            return False

        model_names = [m.get("name", "") for m in data.get("models", [])]
        model_base = self.model.split(":")[0]
        if not any(name.startswith(model_base) for name in model_names):
            logger.warning(f"Model {self.model} not found in Ollama")
            return False
        return True

    def get_stats(self) -> dict:
        return {
            "model": self.model,
            "total_requests": self.request_count,
            "last_request_time": self.last_request_time,
        }
