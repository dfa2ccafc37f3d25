from __future__ import annotations

import logging
from typing import Optional

import httpx

from config.settings import get_settings


logger = logging.getLogger("line_relay.line_push")


class LinePushNotifier:
    """Best-effort push of a single text message to a LINE user.

    Delivery failures are logged and reported through the return value only;
    nothing is raised to the caller.
    """

    def __init__(
        self,
        token: Optional[str],
        endpoint: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.token = token
        self.endpoint = endpoint
        self.timeout = timeout
        self._transport = transport

    def push(self, line_user_id: Optional[str], text: str) -> bool:
        if not self.token or not line_user_id:
            logger.info(
                "Skipping LINE push: token_set=%s user_set=%s",
                bool(self.token),
                bool(line_user_id),
            )
            return False

        payload = {
            "to": line_user_id,
            "messages": [{"type": "text", "text": text}],
        }
        headers = {"Authorization": f"Bearer {self.token}"}

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.endpoint, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "LINE push rejected: %s",
                exc,
                extra={
                    "line_user_id": line_user_id,
                    "status_code": exc.response.status_code,
                },
            )
            return False
        except httpx.HTTPError as exc:
            logger.error(
                "LINE push failed: %s",
                exc,
                extra={"line_user_id": line_user_id, "status_code": None},
            )
            return False

        logger.info("LINE push delivered to %s", line_user_id)
        return True


def build_notifier() -> LinePushNotifier:
    settings = get_settings()
    return LinePushNotifier(
        token=settings.line_token,
        endpoint=settings.line_push_url,
        timeout=settings.http_timeout,
    )
