"""
Lifecycle commands: create, reply to, steer and end agent sessions.

Commands act through the session adapter and then update the reconciler
directly (a "starting" record, a "killed" mark, or a refresh request) so
the dashboard reflects them without waiting for the next poll. Failures
are raised once to the caller and never retried.
"""

import shlex
from pathlib import Path
from typing import List, Optional, Union

from .config import EngineConfig
from .exceptions import (
    ConfirmationRequiredError,
    CreateConflictError,
    InvalidSessionNameError,
    WorkspaceError,
)
from .logging_config import get_structured_logger
from .reconciler import Reconciler
from .session_adapter import SessionAdapter
from .session_store import SessionMetadata, SessionStore, normalize_task_path
from .settings import SESSION_NAME_PATTERN, to_display_name, to_session_id
from .task_registry import TaskRecord, TaskRegistry, slugify
from .workspace import WorkspaceProvisioner

log = get_structured_logger("lifecycle")

TASK_PROMPT = (
    "Starting task. Read {path} for context (include any Process Log). "
    "Summarize the task file before acting."
)


def validate_name(name: str) -> str:
    """Return the display name (prefix stripped) or raise.

    Raises:
        InvalidSessionNameError: empty, too long, or unsafe characters
    """
    display = to_display_name(name.strip())
    if not SESSION_NAME_PATTERN.match(display):
        raise InvalidSessionNameError(
            name, "use 1-64 letters, digits, dashes or underscores"
        )
    if len(to_session_id(display)) > 64:
        raise InvalidSessionNameError(name, "too long once prefixed")
    return display


def build_agent_command(
    agent_kind: str,
    prompt: Optional[str] = None,
    privileged: bool = False,
    allowed_tools: Optional[List[str]] = None,
) -> str:
    """Shell command line that launches an agent.

    Claude runs either with permission prompts disabled (privileged) or in
    accept-edits mode with a list of pre-approved read-only tools. Other
    agents are launched bare. The prompt is passed as the final argument.

    Pure function - no side effects, fully testable.
    """
    argv = [agent_kind]
    if agent_kind == "claude":
        if privileged:
            argv.append("--dangerously-skip-permissions")
        else:
            argv += ["--permission-mode", "acceptEdits"]
            for tool in allowed_tools or []:
                argv += ["--allowedTools", tool]
    if prompt:
        argv.append(prompt)
    return shlex.join(argv)


class LifecycleManager:
    """Issues lifecycle commands and keeps the reconciler in step."""

    def __init__(
        self,
        adapter: SessionAdapter,
        store: SessionStore,
        registry: TaskRegistry,
        reconciler: Reconciler,
        config: Optional[EngineConfig] = None,
        workspace: Optional[WorkspaceProvisioner] = None,
    ):
        self.adapter = adapter
        self.store = store
        self.registry = registry
        self.reconciler = reconciler
        self.config = config or reconciler.config
        self.workspace = workspace or WorkspaceProvisioner(self.config)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _taken_ids(self) -> set:
        return set(self.adapter.list_sessions()) | set(self.reconciler.snapshot.session_ids)

    def unique_name(self, base: str) -> str:
        """base, or base-2, base-3, ... whichever is not a live session."""
        taken = self._taken_ids()
        name = base
        counter = 1
        while to_session_id(name) in taken:
            counter += 1
            name = f"{base}-{counter}"
        return name

    def start_agent(
        self,
        name: str,
        repo: Union[str, Path] = ".",
        agent_kind: Optional[str] = None,
        task_path: Optional[str] = None,
        prompt: Optional[str] = None,
        isolated: bool = False,
        privileged: bool = False,
    ) -> str:
        """Start an agent in a new session and show it as starting.

        Returns:
            The new session id

        Raises:
            InvalidSessionNameError, CreateConflictError, CommandFailedError,
            WorkspaceError
        """
        display = validate_name(name)
        session_id = to_session_id(display)
        agent_kind = agent_kind or self.config.default_agent
        slog = log.with_context(session=session_id)

        repo_path = Path(repo).expanduser().resolve()
        if not repo_path.is_dir():
            raise WorkspaceError(f"repo path does not exist: {repo_path}")
        if task_path:
            task_path = normalize_task_path(task_path)

        if session_id in self._taken_ids():
            raise CreateConflictError(session_id)

        isolation_path = None
        working_dir = repo_path
        if isolated:
            isolation_path = self.workspace.provision(repo_path, display)
            working_dir = isolation_path

        if task_path and not prompt:
            prompt = TASK_PROMPT.format(path=task_path)
        command = build_agent_command(
            agent_kind, prompt, privileged=privileged,
            allowed_tools=self.config.allowed_tools,
        )

        try:
            self.adapter.create_session(session_id, str(working_dir), command)
        except Exception:
            slog.error("Could not create session", cwd=working_dir)
            if isolation_path is not None:
                self._cleanup_workspace(session_id, str(isolation_path))
            raise

        metadata = SessionMetadata(
            session_id=session_id,
            linked_task_path=task_path,
            agent_kind=agent_kind,
            privileged=privileged,
            isolation_path=str(isolation_path) if isolation_path else None,
        )
        try:
            self.store.save(metadata)
        except OSError as e:
            slog.warning("Could not write session metadata", error=e)

        self.reconciler.insert_starting(metadata)
        slog.info("Started agent", agent=agent_kind, cwd=working_dir, privileged=privileged)
        return session_id

    def find_sessions_for_task(self, task: Union[TaskRecord, str]) -> List[str]:
        """Live session ids linked to a task (metadata or marker file)."""
        task_id = task.id if isinstance(task, TaskRecord) else str(task)
        live = self.adapter.list_sessions()
        found = self.store.find_by_task(task_id, among=live)
        target = normalize_task_path(task_id)
        for record in self.reconciler.snapshot.sessions:
            if (record.id in live and record.id not in found and record.linked_task_id
                    and normalize_task_path(record.linked_task_id) == target):
                found.append(record.id)
        return found

    def start_from_task(
        self,
        task: TaskRecord,
        force_new: bool = False,
        privileged: bool = False,
        repo: Union[str, Path] = ".",
        isolated: bool = False,
    ) -> str:
        """Resume the task's live session, or start a new one.

        With force_new a second, parallel session is started even if one
        already works on the task.
        """
        if not force_new:
            existing = self.find_sessions_for_task(task)
            if existing:
                log.info("Resuming existing session", session=existing[0], task=task.id)
                return existing[0]

        name = self.unique_name(slugify(task.label))
        return self.start_agent(
            name, repo=repo, task_path=task.id,
            isolated=isolated, privileged=privileged,
        )

    def create_agent(
        self,
        description: str,
        notify: Optional[str] = None,
        due: Optional[str] = None,
        repo: Union[str, Path] = ".",
        privileged: bool = False,
        isolated: bool = False,
    ) -> str:
        """Write a new task document and start an agent on it."""
        task = self.registry.create_task(description, notify=notify, due=due)
        return self.start_from_task(
            task, force_new=True, privileged=privileged, repo=repo, isolated=isolated,
        )

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    def quick_reply(self, session_id: str, message: str) -> None:
        """Type message into the session and press Enter.

        Does not wait for the agent to react; the next cycle will see it.
        """
        try:
            self.adapter.send_text(session_id, message, submit=True)
        except Exception:
            log.error("Reply failed", session=session_id)
            raise
        self.reconciler.request_refresh()

    def cycle_mode(self, session_id: str) -> None:
        """Send the mode-cycle key (Shift+Tab for Claude)."""
        self.adapter.send_raw_key(session_id, self.config.mode_cycle_key)
        self.reconciler.request_refresh()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def end_session(self, session_id: str, confirmed: bool = False) -> None:
        """Kill a session, clean up its workspace, then forget its metadata.

        Raises:
            ConfirmationRequiredError: confirmed was not True
            CommandFailedError: the session could not be killed (metadata kept)
        """
        if confirmed is not True:
            raise ConfirmationRequiredError(f"Ending {session_id} requires confirmation")

        metadata = self.reconciler.metadata_for(session_id) or self.store.load(session_id)
        try:
            self.adapter.kill_session(session_id)
        except Exception:
            log.error("Kill failed; metadata kept", session=session_id)
            raise

        if metadata is not None and metadata.isolation_path:
            self._cleanup_workspace(session_id, metadata.isolation_path)

        self.store.delete(session_id)
        self.reconciler.mark_killed(session_id)
        self.reconciler.request_refresh()
        log.info("Ended session", session=session_id)

    def _cleanup_workspace(self, session_id: str, path: str) -> None:
        try:
            self.workspace.cleanup(path)
        except WorkspaceError as e:
            log.error("Workspace cleanup failed", session=session_id, path=path, error=e)

    def prune(self) -> List[str]:
        """Delete metadata of sessions that are no longer alive."""
        return self.store.prune(self.adapter.list_sessions())

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def complete_task(self, task: TaskRecord) -> Path:
        dest = self.registry.mark_done(task)
        self.reconciler.request_refresh()
        return dest

    def delete_task(self, task: TaskRecord) -> None:
        self.registry.delete_task(task)
        self.reconciler.request_refresh()
