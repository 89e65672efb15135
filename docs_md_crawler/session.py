"""
Session context shared by the discovery engine, export pipeline and UI layers.

One Session holds everything a scan/export run mutates: state, counters,
the discovered page list, the HTML cache and the failure ledger. Presentation
layers subscribe to SessionEvent notifications instead of polling globals.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .models import DiscoveredPage, ExportResult, FailedItem
from .utils.concurrency import PauseController
from .utils.log import get_logger


class SessionState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    EXPORTING = "exporting"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


ACTIVE_STATES = frozenset({SessionState.SCANNING, SessionState.EXPORTING, SessionState.PAUSED})


class SessionBusyError(RuntimeError):
    """A scan or export was started while another one is running."""


@dataclass
class SessionEvent:
    """Notification delivered to session subscribers."""

    kind: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Progress:
    found: int = 0
    queued: int = 0
    done: int = 0
    failed: int = 0
    current_url: str = ""
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "found": self.found,
            "queued": self.queued,
            "done": self.done,
            "failed": self.failed,
            "currentUrl": self.current_url,
            "message": self.message,
        }


class FailedLedger:
    """Ordered record of recoverable failures, addressable by sequence id."""

    def __init__(self):
        self._items: List[FailedItem] = []
        self._next_id = 1

    def add(self, url: str, reason: str, title: str = "") -> FailedItem:
        item = FailedItem(id=self._next_id, url=url, reason=reason, title=title)
        self._next_id += 1
        self._items.append(item)
        return item

    def remove(self, item_id: int) -> Optional[FailedItem]:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return self._items.pop(index)
        return None

    def get(self, item_id: int) -> Optional[FailedItem]:
        for item in self._items:
            if item.id == item_id:
                return item
        return None

    def clear(self) -> None:
        self._items.clear()

    @property
    def items(self) -> List[FailedItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(list(self._items))

    def manifest(self) -> str:
        """Plain-text "url | reason" listing, one failure per line."""
        return "".join(f"{item.url} | {item.reason}\n" for item in self._items)


class Session:
    """
    State of one crawl/export session.

    Scanning and exporting are mutually exclusive; begin() enforces it.
    """

    def __init__(self):
        self.logger = get_logger("session")
        self.state = SessionState.IDLE
        self._active = SessionState.IDLE
        self.progress = Progress()
        self.failed = FailedLedger()
        self.pages: List[DiscoveredPage] = []
        self.html_cache: Dict[str, str] = {}
        self.root_path: str = "/"
        self.start_url: str = ""
        self.site_name: str = ""
        self.last_export: Optional[ExportResult] = None
        self.control = PauseController(on_change=self._on_control_change)
        self._subscribers: List[Callable[[SessionEvent], None]] = []

    # Subscriptions

    def subscribe(self, callback: Callable[[SessionEvent], None]) -> Callable[[], None]:
        """
        Register a listener for session events.

        Returns:
            A function that removes the listener again
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, kind: str, **data: Any) -> None:
        event = SessionEvent(kind=kind, data=data)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                self.logger.error(f"Session subscriber failed on {kind!r}: {e}")

    # State machine

    @property
    def busy(self) -> bool:
        return self.state in ACTIVE_STATES

    def begin(self, activity: SessionState) -> None:
        """
        Enter the scanning or exporting state.

        Raises:
            SessionBusyError: If a scan or export is already running
        """
        if self.busy:
            raise SessionBusyError(f"session is {self.state.value}")
        self.control.reset()
        self._active = activity
        self.progress.current_url = ""
        self.progress.message = ""
        self._set_state(activity)

    def finish(self, state: SessionState, message: str = "") -> None:
        """Leave the active state with completed, stopped or failed."""
        self.progress.current_url = ""
        if message:
            self.progress.message = message
        self._active = SessionState.IDLE
        self._set_state(state)

    def _set_state(self, state: SessionState) -> None:
        if self.state == state:
            return
        self.state = state
        self.emit("state", state=state.value)

    def _on_control_change(self, what: str) -> None:
        if what == "paused" and self.state in (SessionState.SCANNING, SessionState.EXPORTING):
            self._set_state(SessionState.PAUSED)
        elif what in ("resumed", "stopping") and self.state == SessionState.PAUSED:
            self._set_state(self._active)

    def request_pause(self) -> None:
        if self.busy:
            self.control.request_pause()

    def resume(self) -> None:
        self.control.resume()

    def request_stop(self) -> None:
        if self.busy:
            self.control.request_stop()

    # Progress and failures

    def update_progress(self, **changes: Any) -> None:
        for key, value in changes.items():
            setattr(self.progress, key, value)
        self.progress.failed = len(self.failed)
        self.emit("progress", **self.progress.to_dict())

    def note(self, message: str) -> None:
        """Log a user-facing status line and publish it as a "log" event."""
        self.logger.info(message)
        self.progress.message = message
        self.emit("log", message=message)

    def record_failure(self, url: str, reason: str, title: str = "") -> FailedItem:
        item = self.failed.add(url, reason, title)
        self.logger.warning(f"{reason} ({url})")
        self.progress.failed = len(self.failed)
        self.emit("failure", **item.to_dict())
        return item

    def reset_for_scan(self, start_url: str) -> None:
        self.start_url = start_url
        self.pages = []
        self.html_cache.clear()
        self.failed.clear()
        self.last_export = None
        self.progress = Progress()

    def snapshot(self) -> Dict[str, Any]:
        """JSON-friendly view of the session for status endpoints."""
        return {
            "state": self.state.value,
            "startUrl": self.start_url,
            "rootPath": self.root_path,
            "progress": self.progress.to_dict(),
            "pages": len(self.pages),
            "failed": len(self.failed),
            "archive": self.last_export.filename if self.last_export else None,
        }
