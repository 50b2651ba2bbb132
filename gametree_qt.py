"""PySide6 driver that advances a search in time slices on the Qt event loop."""

from __future__ import annotations

from typing import Optional

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from gametree_stepper import SearchState, outcome, run_for_ms

SLICE_MS = 15
TICK_INTERVAL_MS = 0


class SteppedSearchDriver(QObject):
    result_ready = Signal(int, object)
    progress = Signal(int, int)
    search_failed = Signal(int, str)

    def __init__(self, slice_ms: int = SLICE_MS, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._slice_ms = max(1, int(slice_ms))
        self._state: Optional[SearchState] = None
        self._request_id = 0
        self._timer = QTimer(self)
        self._timer.setInterval(TICK_INTERVAL_MS)
        self._timer.timeout.connect(self._tick)

    @property
    def active(self) -> bool:
        return self._state is not None

    @property
    def request_id(self) -> int:
        return self._request_id

    def start(self, request_id: int, state: SearchState) -> None:
        """Replace any running search with ``state``; results carry ``request_id``."""
        self._request_id = int(request_id)
        self._state = state
        self._timer.start()

    def cancel(self) -> None:
        self._timer.stop()
        self._state = None

    @Slot()
    def _tick(self) -> None:
        state = self._state
        if state is None:
            self._timer.stop()
            return
        request_id = self._request_id
        try:
            run_for_ms(state, self._slice_ms)
        except Exception as exc:
            self.cancel()
            self.search_failed.emit(request_id, f"{type(exc).__name__}: {exc}")
            return
        self.progress.emit(request_id, state.steps)
        if not state.done:
            return
        self.cancel()
        ok, payload = outcome(state)
        if ok:
            self.result_ready.emit(request_id, payload)
        else:
            self.search_failed.emit(request_id, str(payload))
