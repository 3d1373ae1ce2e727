"""通知接收器

向外部（状态界面、事件总线等）广播工作区状态变化。通知是即发即弃的。
"""
import asyncio
import inspect
from typing import Any, Callable, Dict, Protocol, Set

from config.logging import get_logger


logger = get_logger(__name__)


class NotificationSink(Protocol):
    def notify(self, workspace_id: str, event_name: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotifier:
    """Writes every event to the log at DEBUG level."""

    def notify(self, workspace_id: str, event_name: str, payload: Dict[str, Any]) -> None:
        status = payload.get("status") or {}
        logger.debug(
            f"[VECTOR] {event_name} for {workspace_id}: "
            f"indexing={status.get('indexing')} progress={status.get('progress')}"
        )


class CallbackNotifier:
    """Forwards events to a plain callable, e.g. a websocket broadcaster.

    A coroutine callback is scheduled on the running loop and not awaited.
    """

    def __init__(self, callback: Callable[[str, str, Dict[str, Any]], Any]):
        self.callback = callback
        self._pending: Set["asyncio.Future"] = set()

    def notify(self, workspace_id: str, event_name: str, payload: Dict[str, Any]) -> None:
        result = self.callback(workspace_id, event_name, payload)
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._pending.add(future)
            future.add_done_callback(self._finished)

    def _finished(self, future: "asyncio.Future") -> None:
        self._pending.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.warning(f"[VECTOR] Notification callback failed: {future.exception()}")
