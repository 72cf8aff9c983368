from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone


logger = logging.getLogger("agencydesk.toasts")

GENERIC_ERROR = "Something went wrong. Please try again."


@dataclass(frozen=True)
class Toast:
    title: str
    description: str | None = None
    variant: str = "default"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


ToastListener = Callable[[Toast], None]


class ToastCenter:
    """Collects user feedback raised by screens. Listeners are notified fire-and-forget."""

    def __init__(self, limit: int = 20) -> None:
        self.limit = limit
        self._toasts: list[Toast] = []
        self._listeners: list[ToastListener] = []

    def subscribe(self, listener: ToastListener) -> None:
        self._listeners.append(listener)

    def success(self, title: str, description: str | None = None) -> Toast:
        return self._push(Toast(title=title, description=description))

    def error(self, title: str = "Error", description: str | None = GENERIC_ERROR) -> Toast:
        return self._push(Toast(title=title, description=description, variant="destructive"))

    def _push(self, toast: Toast) -> Toast:
        self._toasts.append(toast)
        overflow = len(self._toasts) - max(self.limit, 0)
        if overflow > 0:
            del self._toasts[:overflow]
        for listener in list(self._listeners):
            try:
                listener(toast)
            except Exception as exc:
                logger.warning("toast.listener_failed", extra={"error": str(exc)})
        return toast

    def drain(self) -> list[Toast]:
        toasts, self._toasts = self._toasts, []
        return toasts

    @property
    def pending(self) -> list[Toast]:
        return list(self._toasts)
