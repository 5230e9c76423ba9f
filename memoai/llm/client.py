"""
OpenAI-compatible chat completions client.

Sends a single user prompt, asks for a JSON object response and returns
the parsed object. Works with any endpoint that speaks the
/chat/completions wire format.
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx
from loguru import logger

from memoai.errors import ConfigurationError, ExternalServiceError

DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-3.5-turbo"


def normalize_api_base(api_base: str | None) -> str:
    """Strip trailing slashes and a trailing /chat/completions."""
    base = (api_base or DEFAULT_API_BASE).strip().rstrip("/")
    base = re.sub(r"/chat/completions/?$", "", base)
    return base or DEFAULT_API_BASE


class LLMClient:
    """Blocking JSON-mode chat completions client."""

    def __init__(
        self,
        api_key: str | None,
        api_base: str | None = None,
        model: str | None = None,
        timeout_seconds: float = 60,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: Bearer token; calls fail with ConfigurationError if empty
            api_base: API base URL (default: OpenAI)
            model: Model name
            timeout_seconds: Request timeout
            transport: Custom httpx transport (used by tests)
        """
        self.api_key = api_key or ""
        self.api_base = normalize_api_base(api_base)
        self.model = model or DEFAULT_MODEL
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key.strip())

    @property
    def url(self) -> str:
        return f"{self.api_base}/chat/completions"

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=httpx.Timeout(self.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def complete_json(self, prompt: str, temperature: float = 0.3) -> dict[str, Any]:
        """
        Send a prompt and return the JSON object the model replied with.

        Raises:
            ConfigurationError: No API key configured (no request is sent)
            ExternalServiceError: Network failure, non-2xx status, or a
                reply that is empty or not a JSON object
        """
        if not self.is_configured:
            raise ConfigurationError("LLM API key not configured")

        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            response = self.client.post(self.url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.error(f"LLM request to {self.url} timed out")
            raise ExternalServiceError(
                "Request timeout. Please check your network connection or try again."
            ) from e
        except httpx.RequestError as e:
            logger.error(f"LLM request to {self.url} failed: {e}")
            raise ExternalServiceError(
                f"Network error: Cannot connect to {self.api_base}. "
                "Please check your network connection and API endpoint."
            ) from e

        if not response.is_success:
            raise ExternalServiceError(f"LLM API error: {self._error_message(response)}")

        try:
            data = response.json()
        except ValueError as e:
            raise ExternalServiceError("Invalid response format from LLM API") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ExternalServiceError("Invalid response format from LLM API") from e
        if not content:
            raise ExternalServiceError("Empty response from LLM API")

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse LLM response: {content[:200]}")
            raise ExternalServiceError(f"Failed to parse LLM response as JSON: {e}") from e

        if not isinstance(parsed, dict):
            raise ExternalServiceError("LLM response is not a JSON object")
        return parsed

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if body.get("message"):
                return str(body["message"])
        return response.text or f"HTTP {response.status_code}"
