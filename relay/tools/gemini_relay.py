from __future__ import annotations

from typing import Any, Optional

import httpx

from config.settings import get_settings


class RelayError(RuntimeError):
    """Upstream call failed or returned something other than JSON."""


class GeminiRelay:
    """Forwards a generateContent body to Gemini and hands back its JSON as-is."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        api_base: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    def relay(self, payload: Any) -> Any:
        # Upstream error bodies are JSON too; they are passed through untouched.
        params = {"key": self.api_key or ""}
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.endpoint, params=params, json=payload)
        except httpx.HTTPError as exc:
            raise RelayError(f"Gemini API call failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise RelayError(
                f"Gemini API returned non-JSON response (status {response.status_code})"
            ) from exc


def build_relay() -> GeminiRelay:
    settings = get_settings()
    return GeminiRelay(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        api_base=settings.gemini_api_base,
        timeout=settings.http_timeout,
    )
