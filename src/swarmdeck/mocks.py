"""
Mock implementations of protocol interfaces for testing.

These mocks allow the reconciler, adapter and lifecycle logic to be
tested without a real tmux server or git checkout.
"""

import time
from typing import Any, Dict, List, Optional, Tuple


class MockTmux:
    """Mock implementation of TmuxInterface.

    Sessions are kept in a dict of name -> state. Tests script pane
    content with set_pane_content() and inspect sent_keys afterwards.
    """

    def __init__(self):
        self.sessions: Dict[str, Dict[str, Any]] = {}
        self.sent_keys: List[Tuple[str, str, bool]] = []
        self.raw_keys: List[Tuple[str, str]] = []
        self.available = True
        self.fail_capture: set = set()
        self.fail_send: set = set()
        self.fail_kill: set = set()
        self.capture_delay = 0.0
        self.capture_calls = 0

    def set_pane_content(self, session: str, content: str,
                         activity: Optional[float] = None) -> None:
        """Set pane content (creating the session if needed)."""
        if session not in self.sessions:
            self.new_session(session)
        self.sessions[session]["content"] = content
        self.sessions[session]["activity"] = time.time() if activity is None else activity

    def list_sessions(self) -> Optional[List[str]]:
        if not self.available:
            return None
        return list(self.sessions)

    def capture_pane(self, session: str, lines: int = 100) -> Optional[str]:
        self.capture_calls += 1
        if self.capture_delay:
            time.sleep(self.capture_delay)
        if session not in self.sessions or session in self.fail_capture:
            return None
        content_lines = self.sessions[session]["content"].split("\n")
        return "\n".join(content_lines[-lines:])

    def pane_activity(self, session: str) -> Optional[float]:
        if session not in self.sessions:
            return None
        return self.sessions[session]["activity"]

    def send_keys(self, session: str, keys: str, enter: bool = True) -> bool:
        if session not in self.sessions or session in self.fail_send:
            return False
        self.sent_keys.append((session, keys, enter))
        return True

    def send_key(self, session: str, key: str) -> bool:
        if session not in self.sessions or session in self.fail_send:
            return False
        self.raw_keys.append((session, key))
        return True

    def has_session(self, session: str) -> bool:
        return session in self.sessions

    def new_session(self, session: str, cwd: Optional[str] = None,
                    command: Optional[str] = None) -> bool:
        if session in self.sessions:
            return False
        self.sessions[session] = {
            "content": "",
            "activity": time.time(),
            "cwd": cwd,
            "command": command,
        }
        return True

    def kill_session(self, session: str) -> bool:
        if session not in self.sessions or session in self.fail_kill:
            return False
        del self.sessions[session]
        return True

    def current_path(self, session: str) -> Optional[str]:
        if session not in self.sessions:
            return None
        return self.sessions[session].get("cwd")


class MockSubprocess:
    """Mock implementation of SubprocessInterface.

    Responses are keyed by command prefix ("git worktree add"); the
    longest matching prefix wins. Unmatched commands succeed silently.
    """

    def __init__(self):
        self.commands: List[List[str]] = []
        self.responses: Dict[str, Optional[Dict[str, Any]]] = {}

    def set_response(self, cmd_prefix: str, returncode: int = 0,
                     stdout: str = "", stderr: str = "") -> None:
        self.responses[cmd_prefix] = {
            'returncode': returncode,
            'stdout': stdout,
            'stderr': stderr,
        }

    def set_failure(self, cmd_prefix: str) -> None:
        """Make matching commands fail to launch (run() returns None)."""
        self.responses[cmd_prefix] = None

    def _lookup(self, cmd: List[str]) -> Optional[Dict[str, Any]]:
        joined = " ".join(cmd)
        best = None
        for prefix in self.responses:
            if joined.startswith(prefix) and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return {'returncode': 0, 'stdout': '', 'stderr': ''}
        return self.responses[best]

    def run(self, cmd: List[str], timeout: Optional[int] = None,
            capture_output: bool = True) -> Optional[Dict[str, Any]]:
        self.commands.append(list(cmd))
        response = self._lookup(cmd)
        return dict(response) if response is not None else None
