from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from relay.core.store import UNLINKED_KEY, LinkStore


logger = logging.getLogger("line_relay.linking")

INVALID_DATE = "Invalid Date"


class Notifier(Protocol):
    def push(self, line_user_id: Optional[str], text: str) -> bool:
        ...


class LinkError(Exception):
    """Rejected request; rendered to the caller as ``{"error": message}``."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _sender_id(event: Any) -> Optional[str]:
    if not isinstance(event, dict):
        return None
    source = event.get("source")
    if not isinstance(source, dict):
        return None
    user_id = source.get("userId")
    return user_id if isinstance(user_id, str) and user_id else None


def _zone(tz_name: str) -> tzinfo:
    if not tz_name or tz_name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to UTC", tz_name)
        return timezone.utc


def render_time(time_iso: Optional[str], tz_name: str = "UTC") -> str:
    if not time_iso or not isinstance(time_iso, str):
        return INVALID_DATE
    text = time_iso.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return INVALID_DATE
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(_zone(tz_name))
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return (
        f"{local.month}/{local.day}/{local.year}, "
        f"{hour}:{local.minute:02d}:{local.second:02d} {meridiem}"
    )


def format_reminder(text: Optional[str], time_iso: Optional[str], tz_name: str = "UTC") -> str:
    return f"🔔 Reminder:\n{text or ''}\n⏰ {render_time(time_iso, tz_name)}"


class LinkRegistry:
    """Pairs LINE senders with emails and sends reminders to linked users.

    Each operation is one load/mutate/save against the store. Mutations are
    serialized with a process-local lock; separate processes sharing a file
    can still lose updates.
    """

    def __init__(self, store: LinkStore, tz_name: str = "UTC"):
        self.store = store
        self.tz_name = tz_name
        self._lock = threading.Lock()

    def ingest(self, events: Iterable[Any]) -> List[str]:
        """Queue every sender userId found in ``events``. Returns the ids queued."""
        with self._lock:
            data = self.store.load()
            captured: List[str] = []
            for event in events or []:
                user_id = _sender_id(event)
                if not user_id:
                    continue
                data.setdefault(UNLINKED_KEY, []).append(user_id)
                captured.append(user_id)
                logger.info("Captured userId in %s: %s", UNLINKED_KEY, user_id)
            self.store.save(data)
        return captured

    def link(self, email: Optional[str]) -> str:
        if not email:
            raise LinkError("email required")
        if email == UNLINKED_KEY:
            raise LinkError("invalid email")

        with self._lock:
            data = self.store.load()
            if data.get(email):
                raise LinkError("This email is already linked to a LINE account")

            pending: List[str] = data.get(UNLINKED_KEY) or []
            if not pending:
                raise LinkError("No LINE user to link. Please message the bot first.")

            # Most recently queued sender wins.
            user_id = pending.pop()
            data[email] = user_id
            if pending:
                data[UNLINKED_KEY] = pending
            else:
                data.pop(UNLINKED_KEY, None)
            self.store.save(data)

        logger.info("Linked %s <-> LINE", email)
        return user_id

    def lookup(self, email: Optional[str]) -> Optional[str]:
        if not email or email == UNLINKED_KEY:
            return None
        value = self.store.load().get(email)
        return value if isinstance(value, str) and value else None

    def remind(
        self,
        email: Optional[str],
        text: Optional[str],
        time_iso: Optional[str],
        notifier: Notifier,
    ) -> Dict[str, Any]:
        if not email:
            raise LinkError("email required")
        line_user_id = self.lookup(email)
        if not line_user_id:
            raise LinkError("LINE not linked")

        message = format_reminder(text, time_iso, self.tz_name)
        delivered = notifier.push(line_user_id, message)
        logger.info("Reminder for %s pushed (delivered=%s)", email, delivered)
        return {"lineUserId": line_user_id, "message": message, "delivered": delivered}
