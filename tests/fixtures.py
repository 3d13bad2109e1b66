"""
Test fixtures and factories for swarmdeck unit tests.

Factories build records, task documents and fully wired engines on top of
MockTmux/MockSubprocess so no test needs tmux or git.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, Optional

from swarmdeck.config import EngineConfig
from swarmdeck.engine import Engine, build_engine
from swarmdeck.mocks import MockSubprocess, MockTmux
from swarmdeck.models import SessionRecord
from swarmdeck.status_constants import STATUS_RUNNING


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 3, 14, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now

    def ago(self, seconds: float) -> float:
        """Epoch timestamp `seconds` before now (for MockTmux activity)."""
        return (self.now - timedelta(seconds=seconds)).timestamp()


def make_record(session_id: str = "swarm-test", status: str = STATUS_RUNNING,
                **kwargs) -> SessionRecord:
    return SessionRecord(id=session_id, status=status, **kwargs)


def write_task(
    tasks_dir: Path,
    name: str,
    title: Optional[str] = None,
    status: Optional[str] = "todo",
    due: Optional[str] = None,
    summary: Optional[str] = None,
    notify: Iterable[str] = (),
    front_matter: bool = True,
) -> Path:
    """Write a task document and return its path."""
    tasks_dir.mkdir(parents=True, exist_ok=True)
    lines = []
    if front_matter:
        lines.append("---")
        if status is not None:
            lines.append(f"status: {status}")
        if due is not None:
            lines.append(f"due: {due}")
        if summary is not None:
            lines.append(f"summary: {summary}")
        lines.append("---")
        lines.append("")
    lines.append(f"# {title or name}")
    lines.append("")
    lines.append("Some details.")
    notify = list(notify)
    if notify:
        lines.append("")
        lines.append("## When done")
        lines.extend(f"- {item}" for item in notify)
    path = tasks_dir / f"{name}.md"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def make_config(tmp_path: Path, **overrides) -> EngineConfig:
    """EngineConfig with every directory inside tmp_path."""
    values = dict(
        tasks_dir=tmp_path / "tasks",
        worktree_dir=tmp_path / "worktrees",
        branch_prefix="tester/",
        capture_timeout=1.0,
        max_workers=4,
    )
    values.update(overrides)
    return EngineConfig(**values)


def make_engine(
    tmp_path: Path,
    tmux: Optional[MockTmux] = None,
    subprocess: Optional[MockSubprocess] = None,
    clock: Optional[FakeClock] = None,
    **config_overrides,
) -> Engine:
    """A fully wired Engine over mocks. Call engine.close() when done."""
    return build_engine(
        config=make_config(tmp_path, **config_overrides),
        tmux=tmux or MockTmux(),
        subprocess=subprocess or MockSubprocess(),
        clock=clock or datetime.now,
    )
