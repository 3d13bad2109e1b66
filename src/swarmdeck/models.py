"""
Immutable records published by the reconciler.

A snapshot is built once per cycle and never mutated afterwards, so the
dashboard (and any other reader) can hold on to it without locking.
"""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .settings import to_display_name
from .status_constants import STATUS_NEEDS_INPUT
from .task_registry import TaskRecord

EVENT_NEEDS_INPUT = "needs_input"
EVENT_DONE = "done"


@dataclass(frozen=True)
class SessionRecord:
    """Everything known about one live agent session in one cycle."""

    id: str
    status: str
    captured_output: Tuple[str, ...] = ()
    last_activity_at: Optional[datetime] = None
    status_since: Optional[datetime] = None
    activity: str = ""
    stale: bool = False
    agent_kind: str = "claude"
    is_isolated: bool = False
    isolation_path: Optional[str] = None
    is_privileged_mode: bool = False
    linked_task_id: Optional[str] = None
    task_title: Optional[str] = None

    @property
    def display_name(self) -> str:
        return to_display_name(self.id)

    @property
    def needs_input(self) -> bool:
        return self.status == STATUS_NEEDS_INPUT

    def evolve(self, **changes: Any) -> "SessionRecord":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["display_name"] = self.display_name
        data["captured_output"] = list(self.captured_output)
        for key in ("last_activity_at", "status_since"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


@dataclass(frozen=True)
class NotificationEvent:
    """A status transition worth telling the operator about."""

    session_id: str
    kind: str
    task_title: Optional[str] = None

    @property
    def display_name(self) -> str:
        return to_display_name(self.session_id)


@dataclass(frozen=True)
class AgentSnapshot:
    """The consistent view of all agents at the end of one cycle."""

    sessions: Tuple[SessionRecord, ...] = ()
    pending_tasks: Tuple[TaskRecord, ...] = ()
    tasks: Tuple[TaskRecord, ...] = ()
    sequence: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    manager_available: bool = True
    warning: Optional[str] = None
    events: Tuple[NotificationEvent, ...] = ()

    def get(self, session_id: str) -> Optional[SessionRecord]:
        for record in self.sessions:
            if record.id == session_id:
                return record
        return None

    @property
    def session_ids(self) -> Tuple[str, ...]:
        return tuple(record.id for record in self.sessions)

    def count_by_status(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for record in self.sessions:
            counts[record.status] = counts.get(record.status, 0) + 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "created_at": self.created_at.isoformat(),
            "manager_available": self.manager_available,
            "warning": self.warning,
            "sessions": [record.to_dict() for record in self.sessions],
            "pending_tasks": [
                {
                    "id": task.id,
                    "title": task.title,
                    "summary": task.summary,
                    "status": task.status,
                    "due_date": task.due_date.isoformat() if task.due_date else None,
                }
                for task in self.pending_tasks
            ],
        }
