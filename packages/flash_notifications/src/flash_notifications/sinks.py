"""Notification sinks: where a fired notification is shown."""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

DisplayFn = Callable[[dict[str, Any]], Union[Awaitable[Any], Any]]
AudioFn = Callable[[str], Union[Awaitable[Any], Any]]


class NotificationSink(ABC):
    """
    Interface for presenting a fired notification to the user.

    The payload is the opaque dictionary supplied at registration. Sinks
    run after the fire has been committed; an exception here is reported
    as an error event and never undoes the fire.
    """

    @abstractmethod
    async def display(self, payload: dict[str, Any]) -> None:
        """Show the notification."""
        ...

    async def play_audio(self, audio_ref: str) -> None:
        """Play the notification's sound. No-op by default."""
        return None


class LoggingNotificationSink(NotificationSink):
    """
    Sink that writes each notification to a logger.

    Useful on headless hosts and in development. A payload with an
    ``audio`` key also goes through :meth:`play_audio`.
    """

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO) -> None:
        self._log = log or logger
        self._level = level

    async def display(self, payload: dict[str, Any]) -> None:
        self._log.log(
            self._level,
            "Notification: %s - %s",
            payload.get("title", ""),
            payload.get("body", ""),
        )
        audio = payload.get("audio")
        if audio:
            await self.play_audio(str(audio))

    async def play_audio(self, audio_ref: str) -> None:
        self._log.log(self._level, "Playing audio %s", audio_ref)


class CallbackNotificationSink(NotificationSink):
    """
    Sink that forwards to plain callables, sync or async.

    Examples:
        >>> shown = []
        >>> sink = CallbackNotificationSink(shown.append)
    """

    def __init__(self, display: DisplayFn, play_audio: AudioFn | None = None) -> None:
        self._display = display
        self._play_audio = play_audio

    async def display(self, payload: dict[str, Any]) -> None:
        result = self._display(payload)
        if inspect.isawaitable(result):
            await result
        audio = payload.get("audio")
        if audio:
            await self.play_audio(str(audio))

    async def play_audio(self, audio_ref: str) -> None:
        if self._play_audio is None:
            return
        result = self._play_audio(audio_ref)
        if inspect.isawaitable(result):
            await result
