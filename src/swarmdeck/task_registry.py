"""
Task documents: human-edited markdown files describing work for agents.

A task document looks like:

    ---
    status: todo
    due: 2025-03-14
    tags: [work]
    summary: Fix the login redirect loop
    ---

    # Fix the login redirect loop

    ## When done
    - ping @alex

    ## Process Log
    (Claude logs progress here)

Only the front matter fields, the first "# " heading and the "When done"
section are interpreted. Documents under archive/ and README.md are
ignored, as are documents whose status is done or completed.
"""

import logging
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

ARCHIVE_DIR = "archive"
EXCLUDED_FILES = ("README.md",)
COMPLETED_STATUSES = ("done", "completed")
MISSING_TITLE = "Missing task file"
MAX_SLUG_LENGTH = 50

_NOTIFY_HEADING = re.compile(r'^##\s+when done\s*$', re.IGNORECASE)


@dataclass(frozen=True)
class TaskRecord:
    """One task document as seen at load time."""

    id: str
    title: str
    status: Optional[str] = None
    due_date: Optional[date] = None
    summary: Optional[str] = None
    notify: Tuple[str, ...] = ()
    has_active_session: bool = False

    @property
    def path(self) -> Path:
        return Path(self.id)

    @property
    def label(self) -> str:
        """Summary if present, otherwise the heading."""
        return self.summary or self.title

    @property
    def is_completed(self) -> bool:
        return self.status in COMPLETED_STATUSES

    def with_active_session(self, active: bool) -> "TaskRecord":
        return replace(self, has_active_session=active)


# =============================================================================
# Parsing
# =============================================================================


def split_front_matter(text: str) -> Tuple[Optional[str], str]:
    """Split a document into (front matter block, body).

    Front matter must open on the very first line with "---".
    """
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return None, text
    for index in range(1, len(lines)):
        if lines[index].strip() == "---":
            return "\n".join(lines[1:index]), "\n".join(lines[index + 1:])
    return None, text


def parse_front_matter(block: str) -> Dict[str, object]:
    """Parse front matter as YAML, falling back to a key: value line scan.

    Hand-edited files often contain YAML that does not parse (an unquoted
    colon in a summary, say); the line scan still recovers simple fields.
    """
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError:
        data = None
    if isinstance(data, dict):
        return data

    fields: Dict[str, object] = {}
    for line in block.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip():
            fields[key.strip()] = value.strip().strip('"').strip("'")
    return fields


def _parse_date(value: object) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip().strip('"'), "%Y-%m-%d").date()
        except ValueError:
            return None
    return None


def _text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def extract_title(body: str) -> Optional[str]:
    for line in body.splitlines():
        if line.startswith("# "):
            return line[2:].strip() or None
    return None


def extract_notify(body: str) -> Tuple[str, ...]:
    """Lines of the "## When done" section (list markers stripped)."""
    collected: List[str] = []
    in_section = False
    for line in body.splitlines():
        if _NOTIFY_HEADING.match(line.strip()):
            in_section = True
            continue
        if in_section:
            if line.startswith("#"):
                break
            item = line.strip().lstrip("-*").strip()
            if item:
                collected.append(item)
    return tuple(collected)


def parse_task(path: Path, text: str) -> TaskRecord:
    """Build a TaskRecord from document text."""
    block, body = split_front_matter(text)
    fields = parse_front_matter(block) if block is not None else {}

    status = _text(fields.get("status"))
    return TaskRecord(
        id=str(path),
        title=extract_title(body) or path.stem,
        status=status.lower() if status else None,
        due_date=_parse_date(fields.get("due")),
        summary=_text(fields.get("summary")),
        notify=extract_notify(body),
    )


def slugify(text: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """Lowercase, dash-separated, filesystem and tmux safe."""
    slug = re.sub(r'[^a-z0-9]+', '-', text.lower()).strip('-')
    slug = slug[:max_length].rstrip('-')
    return slug or "task"


def parse_due_input(value: Optional[str], today: Optional[date] = None) -> date:
    """Resolve a due date typed by the operator.

    Accepts MM-DD (this year, or next year if already past) or
    YYYY-MM-DD. Anything else, including nothing, means tomorrow.
    """
    today = today or date.today()
    tomorrow = today + timedelta(days=1)
    if not value:
        return tomorrow

    value = value.strip()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        pass

    parts = value.split("-")
    if len(parts) != 2:
        return tomorrow
    try:
        month, day = int(parts[0]), int(parts[1])
        candidate = date(today.year, month, day)
    except ValueError:
        return tomorrow
    if candidate < today:
        try:
            candidate = date(today.year + 1, month, day)
        except ValueError:
            return tomorrow
    return candidate


TASK_TEMPLATE = """---
status: todo
due: {due}
tags: [work]
summary: {summary}
---

# {title}

{description}

## When done
{notify}

## Process Log
(Claude logs progress here)
"""


# =============================================================================
# Registry
# =============================================================================


class TaskRegistry:
    """Loads and manages task documents in one directory."""

    def __init__(self, tasks_dir: Path):
        self.tasks_dir = Path(tasks_dir).expanduser()

    @property
    def archive_dir(self) -> Path:
        return self.tasks_dir / ARCHIVE_DIR

    def read_task(self, path: Path) -> Optional[TaskRecord]:
        """Parse one document. Returns None if it cannot be read."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Skipping unreadable task %s: %s", path, e)
            return None
        return parse_task(Path(path), text)

    def describe(self, path: str) -> TaskRecord:
        """Record for a linked task path, even if the document is gone."""
        record = self.read_task(Path(path).expanduser())
        if record is None:
            return TaskRecord(id=str(path), title=MISSING_TITLE)
        return record

    def load(self) -> List[TaskRecord]:
        """Active (not completed) tasks, ordered by due date then title.

        Undated tasks sort after dated ones.
        """
        if not self.tasks_dir.is_dir():
            return []

        tasks = []
        for path in self.tasks_dir.iterdir():
            if not path.is_file() or path.suffix != ".md" or path.name in EXCLUDED_FILES:
                continue
            record = self.read_task(path)
            if record is None or record.is_completed:
                continue
            tasks.append(record)

        tasks.sort(key=lambda t: (
            t.due_date is None,
            t.due_date or date.max,
            t.label.lower(),
        ))
        return tasks

    def create_task(
        self,
        description: str,
        notify: Optional[str] = None,
        due: Optional[str] = None,
        today: Optional[date] = None,
    ) -> TaskRecord:
        """Write a new task document from the standard template.

        The file name is a slug of the description; an existing document
        with the same name is never overwritten.
        """
        description = description.strip()
        due_date = parse_due_input(due, today)
        self.tasks_dir.mkdir(parents=True, exist_ok=True)

        slug = slugify(description)
        path = self.tasks_dir / f"{slug}.md"
        counter = 1
        while path.exists():
            counter += 1
            path = self.tasks_dir / f"{slug}-{counter}.md"

        content = TASK_TEMPLATE.format(
            due=due_date.isoformat(),
            summary=description,
            title=description,
            description=description,
            notify=f"- {notify}" if notify else "- (fill in who to notify)",
        )
        path.write_text(content, encoding="utf-8")
        logger.info("Created task %s", path)
        return parse_task(path, content)

    def mark_done(self, task: TaskRecord) -> Path:
        """Set status: done in the front matter and move the file to archive/.

        Returns:
            The document's new path
        """
        path = task.path
        text = path.read_text(encoding="utf-8")
        if text.startswith("---"):
            path.write_text(_set_status(text, "done"), encoding="utf-8")

        self.archive_dir.mkdir(parents=True, exist_ok=True)
        dest = self.archive_dir / path.name
        path.rename(dest)
        logger.info("Archived task %s", dest)
        return dest

    def delete_task(self, task: TaskRecord) -> None:
        task.path.unlink()
        logger.info("Deleted task %s", task.path)


def _set_status(text: str, status: str) -> str:
    """Replace (or insert) the status field inside the front matter."""
    lines = text.split("\n")
    closing = None
    for index in range(1, len(lines)):
        if lines[index].strip() == "---":
            closing = index
            break
    if closing is None:
        return text

    for index in range(1, closing):
        if lines[index].lstrip().startswith("status:"):
            lines[index] = f"status: {status}"
            return "\n".join(lines)

    lines.insert(1, f"status: {status}")
    return "\n".join(lines)
