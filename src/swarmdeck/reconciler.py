"""
Reconciliation loop: turns tmux, metadata and task documents into one
immutable AgentSnapshot per cycle.

The Reconciler exclusively owns the mutable working set (known sessions,
their order, last status and metadata). Everything it hands out is a
frozen snapshot; readers never lock. Cycles and lifecycle-driven updates
serialize on one lock, and a snapshot is only published if its sequence
number is newer than the one already published.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .config import EngineConfig
from .exceptions import ManagerUnavailableError, SessionVanishedError, SwarmError
from .models import AgentSnapshot, NotificationEvent, SessionRecord
from .protocols import NotificationSink
from .session_adapter import Capture, SessionAdapter
from .session_store import SessionMetadata, SessionStore, normalize_task_path
from .settings import TASK_MARKER_FILE
from .status_classifier import Classification, classify_output
from .status_constants import NOTIFY_STATUSES, STATUS_KILLED, STATUS_STARTING
from .status_patterns import clean_line
from .task_registry import TaskRecord, TaskRegistry

logger = logging.getLogger(__name__)

# Sentinel result for a session whose capture raised something unexpected
_CAPTURE_FAILED = object()


def _task_key(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    return normalize_task_path(path)


def last_meaningful_line(lines: Tuple[str, ...]) -> str:
    for line in reversed(lines):
        cleaned = clean_line(line)
        if cleaned:
            return cleaned
    return ""


def derive_events(
    previous: Dict[str, str],
    current: Dict[str, str],
    titles: Optional[Dict[str, Optional[str]]] = None,
) -> List[NotificationEvent]:
    """Edge-triggered notification events between two status maps.

    An event fires only when a known session enters a notifying status;
    staying in it produces nothing. A session seen for the first time has
    no previous status and never fires, so restarting the dashboard does
    not replay every waiting prompt.

    Pure function - no side effects, fully testable.
    """
    titles = titles or {}
    events = []
    for session_id, status in current.items():
        if session_id not in previous:
            continue
        if status in NOTIFY_STATUSES and previous[session_id] != status:
            events.append(NotificationEvent(session_id, status, titles.get(session_id)))
    return events


class Reconciler:
    """Builds and publishes AgentSnapshots."""

    def __init__(
        self,
        adapter: SessionAdapter,
        store: SessionStore,
        registry: TaskRegistry,
        config: Optional[EngineConfig] = None,
        notifier: Optional[NotificationSink] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.adapter = adapter
        self.store = store
        self.registry = registry
        self.config = config or EngineConfig()
        self.notifier = notifier
        self._clock = clock

        # Working set, owned by this object and guarded by _cycle_lock
        self._order: List[str] = []
        self._records: Dict[str, SessionRecord] = {}
        self._metadata: Dict[str, Optional[SessionMetadata]] = {}
        self._tasks: Tuple[TaskRecord, ...] = ()
        self._sequence = 0
        self._manager_down = False

        self._cycle_lock = threading.RLock()
        self._publish_lock = threading.Lock()
        self._snapshot = AgentSnapshot()

        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread_lock = threading.Lock()  # protect start/stop

    # ------------------------------------------------------------------
    # Public read side
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> AgentSnapshot:
        """The latest published snapshot (never mutated)."""
        return self._snapshot

    def metadata_for(self, session_id: str) -> Optional[SessionMetadata]:
        with self._cycle_lock:
            return self._metadata.get(session_id)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def refresh(self) -> AgentSnapshot:
        """Run one reconciliation cycle and publish its snapshot."""
        with self._cycle_lock:
            sequence = self._next_sequence()
            now = self._clock()

            try:
                live = self.adapter.list_sessions()
            except ManagerUnavailableError as e:
                return self._publish_unavailable(sequence, now, str(e))

            if self._manager_down:
                logger.info("tmux reachable again")
                self._manager_down = False

            self._splice_removed(live)
            for session_id in sorted(live - set(self._order)):
                self._admit(session_id)

            observations = self._observe(list(self._order))

            previous_status = {sid: r.status for sid, r in self._records.items()}
            for session_id, observation in observations:
                if observation is None:
                    logger.debug("Session %s vanished during capture", session_id)
                    self._drop(session_id)
                    continue
                self._records[session_id] = self._reconcile_record(session_id, observation, now)

            self._refresh_tasks()

            current_status = {sid: self._records[sid].status for sid in self._order}
            events = derive_events(
                previous_status, current_status,
                {sid: self._records[sid].task_title for sid in self._order},
            )

            return self._publish(self._build_snapshot(sequence, now, events))

    def _publish_unavailable(self, sequence: int, now: datetime, reason: str) -> AgentSnapshot:
        if not self._manager_down:
            logger.warning("tmux unavailable (%s); keeping last known sessions", reason)
            self._manager_down = True
        previous = self._snapshot
        snapshot = AgentSnapshot(
            sessions=previous.sessions,
            pending_tasks=previous.pending_tasks,
            tasks=previous.tasks,
            sequence=sequence,
            created_at=now,
            manager_available=False,
            warning=f"tmux unavailable: {reason}",
        )
        return self._publish(snapshot)

    def _splice_removed(self, live: set) -> None:
        for session_id in [sid for sid in self._order if sid not in live]:
            self._drop(session_id)

    def _drop(self, session_id: str) -> None:
        if session_id in self._order:
            self._order.remove(session_id)
        self._records.pop(session_id, None)
        self._metadata.pop(session_id, None)
        self.adapter.forget(session_id)

    def _admit(self, session_id: str) -> None:
        """First sighting of a session: load its metadata once."""
        metadata = self.store.load(session_id)
        if metadata is None or not metadata.linked_task_path:
            marker_task = self._task_from_marker(session_id)
            if marker_task:
                metadata = metadata or SessionMetadata(session_id=session_id)
                metadata.linked_task_path = marker_task
        self._metadata[session_id] = metadata
        self._order.append(session_id)

    def _task_from_marker(self, session_id: str) -> Optional[str]:
        cwd = self.adapter.current_path(session_id)
        if not cwd:
            return None
        marker = Path(cwd) / TASK_MARKER_FILE
        try:
            value = marker.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return None
        if not value:
            return None
        return str((Path(cwd) / Path(value).expanduser()).resolve())

    def _observe(self, session_ids: List[str]) -> List[tuple]:
        """Capture output and activity for every session concurrently."""
        if not session_ids:
            return []

        def fetch(session_id: str):
            try:
                capture = self.adapter.capture_output(session_id, self.config.capture_lines)
                activity_at = self.adapter.last_activity(session_id)
            except SessionVanishedError:
                return session_id, None
            except SwarmError as e:
                logger.warning("Capture of %s failed: %s", session_id, e)
                return session_id, _CAPTURE_FAILED
            except Exception:
                logger.exception("Unexpected error capturing %s", session_id)
                return session_id, _CAPTURE_FAILED
            return session_id, (capture, activity_at)

        workers = max(1, min(self.config.max_workers, len(session_ids)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="swarm-observe") as executor:
            return list(executor.map(fetch, session_ids))

    def _reconcile_record(self, session_id: str, observation, now: datetime) -> SessionRecord:
        previous = self._records.get(session_id)
        metadata = self._metadata.get(session_id)

        if observation is _CAPTURE_FAILED:
            if previous is not None:
                return previous.evolve(stale=True)
            capture, activity_at = Capture(lines=(), stale=True), None
        else:
            capture, activity_at = observation

        previous_status = previous.status if previous else None
        if previous_status == STATUS_KILLED:
            status, activity = STATUS_KILLED, previous.activity
        elif capture.stale and previous is not None:
            status, activity = previous_status, previous.activity
        else:
            idle_seconds = (now - activity_at).total_seconds() if activity_at else None
            result = classify_output(
                capture.lines, previous_status,
                idle_seconds=idle_seconds,
                idle_threshold=self.config.idle_threshold,
                tail_lines=self.config.tail_lines,
            )
            status, activity = result.status, self._describe(result, capture)

        if previous is not None and previous.status == status:
            status_since = previous.status_since
        else:
            status_since = now

        linked = metadata.linked_task_path if metadata else None
        return SessionRecord(
            id=session_id,
            status=status,
            captured_output=capture.lines,
            last_activity_at=activity_at,
            status_since=status_since,
            activity=activity,
            stale=capture.stale,
            agent_kind=metadata.agent_kind if metadata else "claude",
            is_isolated=bool(metadata and metadata.isolation_path),
            isolation_path=metadata.isolation_path if metadata else None,
            is_privileged_mode=bool(metadata and metadata.privileged),
            linked_task_id=linked,
            task_title=previous.task_title if previous and previous.linked_task_id == linked else None,
        )

    @staticmethod
    def _describe(result: Classification, capture: Capture) -> str:
        if result.line:
            return clean_line(result.line)
        return last_meaningful_line(capture.lines)

    def _refresh_tasks(self) -> None:
        """Reload task documents and attach titles to linked sessions."""
        try:
            tasks = self.registry.load()
        except OSError as e:
            logger.warning("Could not load tasks from %s: %s", self.registry.tasks_dir, e)
            tasks = [t.with_active_session(False) for t in self._tasks]

        by_key = {_task_key(t.id): t for t in tasks}
        linked_keys = set()
        for session_id in self._order:
            record = self._records.get(session_id)
            if record is None or not record.linked_task_id:
                continue
            key = _task_key(record.linked_task_id)
            linked_keys.add(key)
            task = by_key.get(key)
            if task is not None:
                title = task.label
            elif record.task_title:
                title = record.task_title
            else:
                title = self.registry.describe(record.linked_task_id).label
            if title != record.task_title:
                self._records[session_id] = record.evolve(task_title=title)

        self._tasks = tuple(
            t.with_active_session(_task_key(t.id) in linked_keys) for t in tasks
        )

    def _build_snapshot(
        self, sequence: int, now: datetime, events: List[NotificationEvent] = (),
    ) -> AgentSnapshot:
        return AgentSnapshot(
            sessions=tuple(self._records[sid] for sid in self._order if sid in self._records),
            pending_tasks=tuple(t for t in self._tasks if not t.has_active_session),
            tasks=self._tasks,
            sequence=sequence,
            created_at=now,
            manager_available=True,
            events=tuple(events),
        )

    def _publish(self, snapshot: AgentSnapshot) -> AgentSnapshot:
        """Swap in a snapshot unless a newer one is already published."""
        with self._publish_lock:
            if snapshot.sequence <= self._snapshot.sequence:
                logger.debug(
                    "Discarding snapshot %d (already at %d)",
                    snapshot.sequence, self._snapshot.sequence,
                )
                return self._snapshot
            self._snapshot = snapshot

        if self.notifier is not None:
            if snapshot.events:
                self.notifier.notify(list(snapshot.events))
            else:
                # Releases events held back by the coalesce window
                self.notifier.flush()
        return snapshot

    # ------------------------------------------------------------------
    # Lifecycle hooks (called by LifecycleManager)
    # ------------------------------------------------------------------

    def insert_starting(self, metadata: SessionMetadata) -> AgentSnapshot:
        """Show a just-created session before the next poll sees it."""
        with self._cycle_lock:
            session_id = metadata.session_id
            now = self._clock()
            self._metadata[session_id] = metadata
            if session_id not in self._order:
                self._order.append(session_id)
            self._records[session_id] = SessionRecord(
                id=session_id,
                status=STATUS_STARTING,
                status_since=now,
                activity="starting",
                agent_kind=metadata.agent_kind,
                is_isolated=bool(metadata.isolation_path),
                isolation_path=metadata.isolation_path,
                is_privileged_mode=metadata.privileged,
                linked_task_id=metadata.linked_task_path,
            )
            if metadata.linked_task_path:
                linked = _task_key(metadata.linked_task_path)
                self._tasks = tuple(
                    t.with_active_session(True) if _task_key(t.id) == linked else t
                    for t in self._tasks
                )
                self._records[session_id] = self._records[session_id].evolve(
                    task_title=self.registry.describe(metadata.linked_task_path).label
                )
            return self._publish(self._build_snapshot(self._next_sequence(), now))

    def mark_killed(self, session_id: str) -> AgentSnapshot:
        """Flag an ended session; the next cycle removes it."""
        with self._cycle_lock:
            record = self._records.get(session_id)
            if record is None:
                return self._snapshot
            now = self._clock()
            self._records[session_id] = record.evolve(
                status=STATUS_KILLED, status_since=now, activity="ended"
            )
            return self._publish(self._build_snapshot(self._next_sequence(), now))

    def invalidate(self, session_id: str) -> None:
        """Forget cached output for a session and refresh soon."""
        self.adapter.forget(session_id)
        self.request_refresh()

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def request_refresh(self) -> None:
        """Wake the background loop for an immediate cycle."""
        self._wake_event.set()

    def start(self) -> None:
        """Start the background reconciliation thread (idempotent)."""
        with self._thread_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run, name="ReconcilerThread", daemon=True
            )
            self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Ask the background thread to exit and wait for it."""
        with self._thread_lock:
            if self._thread is None:
                return
            self._stop_event.set()
            self._wake_event.set()
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.refresh()
            except Exception:
                logger.exception("Reconciliation cycle failed")
            self._wake_event.wait(self.config.poll_interval)
            self._wake_event.clear()
