"""In-process event bus for sandbox process lifecycle notifications."""

from __future__ import annotations

import threading
import uuid
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Final

_DEFAULT_ERROR_BUFFER: Final[int] = 256


class EventType(str, Enum):
    """Event names published by the sandbox lifecycle."""

    PROCESS_STARTED = "ProcessStarted"
    PROCESS_EXITED = "ProcessExited"


@dataclass(frozen=True, slots=True)
class ProcessEvent:
    """One lifecycle notification for the process attached to ``channel``."""

    event_type: EventType
    channel: str
    payload: Mapping[str, object] = field(default_factory=dict)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def status(self) -> str | None:
        value = self.payload.get("status")
        return value if isinstance(value, str) else None


Subscriber = Callable[[ProcessEvent], object]


@dataclass(frozen=True, slots=True)
class DispatchError:
    """Subscriber failure captured without interrupting publishers."""

    event_id: str
    target: str
    error_type: str
    message: str


@dataclass(frozen=True, slots=True)
class _Subscription:
    token: int
    event_type: EventType | None
    channel: str | None
    callback: Subscriber
    once: bool


class EventBus:
    """Thread-safe bus with per-channel filters and one-shot subscriptions.

    Publishing happens on whichever thread observed the event (process watchers
    publish from their own thread). A one-shot subscription is removed before its
    callback runs, so it fires at most once even under concurrent publishes.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[int, _Subscription] = {}
        self._dispatch_errors = deque[DispatchError](maxlen=_DEFAULT_ERROR_BUFFER)
        self._next_token = 1
        self._lock = threading.RLock()

    def subscribe(
        self,
        event_type: EventType | str | None,
        callback: Subscriber,
        *,
        channel: str | None = None,
        once: bool = False,
    ) -> int:
        """Subscribe to an event type (``None`` for all), optionally for one channel."""

        if not callable(callback):
            raise ValueError("callback must be callable")
        normalized = _normalize_event_type(event_type)

        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._subscriptions[token] = _Subscription(
                token=token,
                event_type=normalized,
                channel=channel,
                callback=callback,
                once=once,
            )
        return token

    def subscribe_once(
        self,
        event_type: EventType | str,
        callback: Subscriber,
        *,
        channel: str | None = None,
    ) -> int:
        return self.subscribe(event_type, callback, channel=channel, once=True)

    def unsubscribe(self, token: int) -> bool:
        """Unsubscribe callback token. Returns ``True`` when token existed."""

        with self._lock:
            return self._subscriptions.pop(token, None) is not None

    def publish(self, event: ProcessEvent) -> tuple[DispatchError, ...]:
        """Deliver ``event`` to matching subscribers in subscription order."""

        if not isinstance(event, ProcessEvent):
            raise TypeError(f"expected ProcessEvent, got {type(event).__name__}")

        with self._lock:
            matched: list[_Subscription] = []
            for subscription in sorted(self._subscriptions.values(), key=lambda s: s.token):
                if not _matches(subscription, event):
                    continue
                if subscription.once:
                    del self._subscriptions[subscription.token]
                matched.append(subscription)

        errors: list[DispatchError] = []
        for subscription in matched:
            try:
                subscription.callback(event)
            except Exception as exc:  # noqa: BLE001 - subscriber isolation.
                errors.append(
                    DispatchError(
                        event_id=event.event_id,
                        target=_callback_name(subscription.callback),
                        error_type=type(exc).__name__,
                        message=str(exc),
                    )
                )

        if errors:
            with self._lock:
                self._dispatch_errors.extend(errors)
        return tuple(errors)

    def emit(
        self,
        event_type: EventType | str,
        channel: str,
        payload: Mapping[str, object] | None = None,
    ) -> tuple[ProcessEvent, tuple[DispatchError, ...]]:
        """Create and publish an event."""

        normalized = _normalize_event_type(event_type)
        if normalized is None:
            raise ValueError("event_type must not be None")
        event = ProcessEvent(event_type=normalized, channel=channel, payload=dict(payload or {}))
        return event, self.publish(event)

    def dispatch_errors(self) -> tuple[DispatchError, ...]:
        with self._lock:
            return tuple(self._dispatch_errors)


def _normalize_event_type(value: EventType | str | None) -> EventType | None:
    if value is None or isinstance(value, EventType):
        return value
    try:
        return EventType(value)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in EventType)
        raise ValueError(f"unknown event type {value!r}; expected one of: {allowed}") from exc


def _matches(subscription: _Subscription, event: ProcessEvent) -> bool:
    if subscription.event_type is not None and subscription.event_type is not event.event_type:
        return False
    return subscription.channel is None or subscription.channel == event.channel


def _callback_name(callback: Subscriber) -> str:
    name = getattr(callback, "__qualname__", None) or getattr(callback, "__name__", None)
    return name if isinstance(name, str) else repr(callback)


__all__ = [
    "DispatchError",
    "EventBus",
    "EventType",
    "ProcessEvent",
    "Subscriber",
]
