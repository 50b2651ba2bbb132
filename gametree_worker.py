"""Background search worker speaking a request/response message protocol.

Requests cross into the worker thread through a queue and responses come
back through another; no search state is shared with the caller. A search
runs as a ``SearchState`` advanced in slices of ``slice_steps`` transitions.
Between slices the worker checks whether a newer request has been
submitted, and a superseded search is dropped by discarding its state.
"""

from __future__ import annotations

from dataclasses import dataclass
from queue import Empty, Queue
from typing import Any, Dict, List, Optional, Union
import logging
import os
import threading
import time

from gametree_solver import Heuristic, MoveApplier, MoveGenerator
from gametree_stepper import new_search, outcome, run_steps
from gametree_telemetry import TelemetrySink
from gametree_values import DEFAULT_DOMAIN, ExtendedValue, ValueDomain

DEFAULT_SLICE_STEPS = 256
SLICE_STEPS_ENV = "GAMETREE_SLICE_STEPS"
COMMAND_POLL_S = 0.1

ERROR_SEARCH = "SearchError"
ERROR_INVARIANT = "InvariantViolation"
ERROR_COMMUNICATION = "WorkerCommunicationError"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchRequest:
    request_id: int
    board: Any
    max_depth: int
    maximizing: bool = True


@dataclass(frozen=True)
class MoveFound:
    request_id: int
    move: Any
    score: Optional[ExtendedValue]
    steps: int


@dataclass(frozen=True)
class SearchFailed:
    request_id: int
    message: str
    error_type: str
    recoverable: bool


WorkerEvent = Union[MoveFound, SearchFailed]


def slice_steps_from_env() -> int:
    raw = os.environ.get(SLICE_STEPS_ENV, "").strip()
    if not raw:
        return DEFAULT_SLICE_STEPS
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_SLICE_STEPS
    return max(1, value)


class SearchWorker:
    def __init__(
        self,
        heuristic: Heuristic,
        get_moves: MoveGenerator,
        apply_move: MoveApplier,
        domain: ValueDomain = DEFAULT_DOMAIN,
        slice_steps: Optional[int] = None,
        telemetry_sink: Optional[TelemetrySink] = None,
        owns_sink: bool = False,
    ) -> None:
        self._heuristic = heuristic
        self._get_moves = get_moves
        self._apply_move = apply_move
        self._domain = domain
        self._slice_steps = max(1, slice_steps) if slice_steps is not None else slice_steps_from_env()
        self._telemetry_sink = telemetry_sink
        self._owns_sink = owns_sink
        self._commands: Queue[Optional[SearchRequest]] = Queue()
        self._events: Queue[WorkerEvent] = Queue()
        self._pending: Dict[int, WorkerEvent] = {}
        self._lock = threading.Lock()
        self._latest_request_id = 0
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="gametree-search", daemon=True)
        self._thread.start()
        logger.debug("search worker started (slice_steps=%d)", self._slice_steps)

    @property
    def latest_request_id(self) -> int:
        with self._lock:
            return self._latest_request_id

    def submit(self, request: SearchRequest) -> bool:
        """Queue ``request``; False when stopped or when its id is older than the latest."""
        if self._stop.is_set():
            return False
        with self._lock:
            if request.request_id < self._latest_request_id:
                logger.info(
                    "rejecting stale request %d (latest is %d)", request.request_id, self._latest_request_id
                )
                return False
            self._latest_request_id = request.request_id
        self._commands.put(request)
        return True

    def send_raw(self, payload: Any) -> None:
        """Enqueue an arbitrary payload; non-requests are answered with an error."""
        self._commands.put(payload)

    def poll(self) -> List[WorkerEvent]:
        events = list(self._pending.values())
        self._pending.clear()
        while True:
            try:
                events.append(self._events.get_nowait())
            except Empty:
                break
        return events

    def wait_for(self, request_id: int, timeout_s: float) -> Optional[WorkerEvent]:
        deadline = time.perf_counter() + max(0.0, timeout_s)
        while True:
            event = self._pending.pop(request_id, None)
            if event is not None:
                return event
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                return None
            try:
                event = self._events.get(timeout=min(remaining, COMMAND_POLL_S))
            except Empty:
                continue
            self._pending[event.request_id] = event

    def shutdown(self, timeout_s: float = 1.0) -> bool:
        self._stop.set()
        self._commands.put(None)
        self._thread.join(timeout=max(0.0, timeout_s))
        stopped = not self._thread.is_alive()
        if self._owns_sink and self._telemetry_sink is not None:
            self._telemetry_sink.close()
        logger.debug("search worker shutdown (stopped=%s)", stopped)
        return stopped

    def _is_superseded(self, request_id: int) -> bool:
        with self._lock:
            return request_id != self._latest_request_id

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                cmd = self._commands.get(timeout=COMMAND_POLL_S)
            except Empty:
                continue
            if cmd is None:
                break
            if not isinstance(cmd, SearchRequest):
                logger.warning("ignoring invalid search payload of type %s", type(cmd).__name__)
                self._events.put(
                    SearchFailed(
                        request_id=-1,
                        message="Invalid search request payload",
                        error_type=ERROR_COMMUNICATION,
                        recoverable=True,
                    )
                )
                continue
            self._handle(cmd)

    def _handle(self, request: SearchRequest) -> None:
        if self._is_superseded(request.request_id):
            logger.info("skipping superseded request %d", request.request_id)
            return
        try:
            state = new_search(
                request.max_depth,
                self._heuristic,
                self._get_moves,
                self._apply_move,
                request.board,
                maximizing=request.maximizing,
                domain=self._domain,
                telemetry_sink=self._telemetry_sink,
            )
            while not state.done:
                run_steps(state, self._slice_steps)
                if self._stop.is_set() or self._is_superseded(request.request_id):
                    logger.info("dropping request %d after %d steps", request.request_id, state.steps)
                    return
        except Exception as exc:
            logger.exception("search request %d failed", request.request_id)
            self._events.put(
                SearchFailed(
                    request_id=request.request_id,
                    message=f"{type(exc).__name__}: {exc}",
                    error_type=ERROR_SEARCH,
                    recoverable=True,
                )
            )
            return

        ok, payload = outcome(state)
        if not ok:
            logger.error("search request %d hit an internal invariant: %s", request.request_id, payload)
            self._events.put(
                SearchFailed(
                    request_id=request.request_id,
                    message=str(payload),
                    error_type=ERROR_INVARIANT,
                    recoverable=False,
                )
            )
            return
        self._events.put(
            MoveFound(
                request_id=request.request_id,
                move=payload,
                score=state.score,
                steps=state.steps,
            )
        )
