"""
Desktop notifications for agents that need input or have finished.

Receives the reconciler's edge-triggered events, so each transition
notifies once; repeated polls in the same state never re-notify.
"""

import shutil
import subprocess
import sys
import time
from typing import Dict, Iterable, List, Optional, Tuple

from .config import NotificationConfig
from .models import EVENT_DONE, EVENT_NEEDS_INPUT, NotificationEvent

SUPPORTED_PLATFORMS = ("darwin", "linux")

# Phrase used after the agent name(s), singular and plural
_KIND_PHRASES = {
    EVENT_NEEDS_INPUT: ("needs input", "need input"),
    EVENT_DONE: ("is done", "are done"),
}


class DesktopNotifier:
    """Coalescing desktop notifier.

    Queues events during a reconciliation cycle, then flushes one
    notification per event kind. On macOS uses terminal-notifier when
    available (supports grouping/replacement), falling back to osascript;
    on Linux uses notify-send.
    """

    MODES = ("off", "sound", "banner", "both")

    def __init__(
        self,
        mode: str = "off",
        sounds: Optional[Dict[str, str]] = None,
        coalesce_seconds: float = 2.0,
    ):
        self.mode = mode if mode in self.MODES else "off"
        self.sounds = sounds or {EVENT_NEEDS_INPUT: "Ping", EVENT_DONE: "Glass"}
        self.coalesce_seconds = coalesce_seconds
        self._pending: List[Tuple[str, str, Optional[str]]] = []  # (kind, name, task)
        self._last_send: float = 0.0
        self._has_terminal_notifier: Optional[bool] = None  # lazy-detected

    @classmethod
    def from_config(cls, config: NotificationConfig) -> "DesktopNotifier":
        return cls(
            mode=config.mode,
            sounds={
                EVENT_NEEDS_INPUT: config.sound_needs_input,
                EVENT_DONE: config.sound_done,
            },
        )

    def _enabled(self) -> bool:
        return self.mode != "off" and sys.platform in SUPPORTED_PLATFORMS

    def notify(self, events: Iterable[NotificationEvent]) -> None:
        """NotificationSink entry point: queue a cycle's events and flush."""
        for event in events:
            self.queue(event.kind, event.display_name, event.task_title)
        self.flush()

    def queue(self, kind: str, agent_name: str, task: Optional[str] = None) -> None:
        """Queue one event for the current cycle.  No-ops when off or unsupported."""
        if not self._enabled():
            return
        self._pending.append((kind, agent_name, task))

    def flush(self) -> None:
        """Send coalesced notifications for everything queued, then clear."""
        if not self._pending or not self._enabled():
            self._pending.clear()
            return

        now = time.monotonic()
        if now - self._last_send < self.coalesce_seconds:
            # Too soon - hold until next cycle
            return

        by_kind: Dict[str, List[Tuple[str, Optional[str]]]] = {}
        for kind, name, task in self._pending:
            by_kind.setdefault(kind, []).append((name, task))

        # needs_input first: it is the one that blocks work
        for kind in sorted(by_kind, key=lambda k: k != EVENT_NEEDS_INPUT):
            entries = by_kind[kind]
            names = [name for name, _ in entries]
            task = entries[0][1] if len(entries) == 1 else None
            subtitle, message = self._format(names, task, kind)
            self._send(message, subtitle, self.sounds.get(kind))

        self._last_send = now
        self._pending.clear()

    # ------------------------------------------------------------------
    # Formatting
    # ------------------------------------------------------------------

    @staticmethod
    def _format(names: List[str], task: Optional[str],
                kind: str = EVENT_NEEDS_INPUT) -> Tuple[Optional[str], str]:
        """Return (subtitle, message) for the notification.

        subtitle is only set for single-agent + task.
        """
        singular, plural = _KIND_PHRASES.get(kind, ("needs attention", "need attention"))
        if len(names) == 1:
            msg = f"{names[0]} {singular}"
            if task:
                return msg, task
            return None, msg
        elif len(names) == 2:
            return None, f"{names[0]} and {names[1]} {plural}"
        elif len(names) == 3:
            return None, f"{names[0]}, {names[1]}, and {names[2]} {plural}"
        else:
            others = len(names) - 2
            return None, f"{names[0]}, {names[1]}, and {others} others {plural}"

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _send(self, message: str, subtitle: Optional[str] = None,
              sound: Optional[str] = None) -> None:
        """Fire-and-forget a notification via the best available backend."""
        want_sound = self.mode in ("sound", "both")
        want_banner = self.mode in ("banner", "both")

        if sys.platform == "linux":
            self._send_notify_send(message, subtitle, want_banner)
        elif self._use_terminal_notifier():
            self._send_terminal_notifier(message, subtitle, sound, want_sound, want_banner)
        else:
            self._send_osascript(message, subtitle, sound, want_sound, want_banner)

    def _use_terminal_notifier(self) -> bool:
        if self._has_terminal_notifier is None:
            self._has_terminal_notifier = shutil.which("terminal-notifier") is not None
        return self._has_terminal_notifier

    @staticmethod
    def _spawn(cmd: List[str]) -> None:
        try:
            subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError:
            pass

    def _send_terminal_notifier(
        self, message: str, subtitle: Optional[str], sound: Optional[str],
        want_sound: bool, want_banner: bool,
    ) -> None:
        if not want_banner and not want_sound:
            return
        cmd = ["terminal-notifier", "-title", "swarm", "-group", "swarm-agents"]
        if subtitle:
            cmd += ["-subtitle", subtitle]
        cmd += ["-message", message]
        if want_sound and sound:
            cmd += ["-sound", sound]
        self._spawn(cmd)

    def _send_osascript(
        self, message: str, subtitle: Optional[str], sound: Optional[str],
        want_sound: bool, want_banner: bool,
    ) -> None:
        if want_banner:
            display_text = f"{subtitle}\\n{message}" if subtitle else message
            display_text = display_text.replace('"', "'")
            script = f'display notification "{display_text}" with title "swarm"'
            if want_sound and sound:
                script += f' sound name "{sound}"'
            self._spawn(["osascript", "-e", script])
        elif want_sound and sound:
            # Sound-only via afplay (no banner)
            self._spawn(["afplay", f"/System/Library/Sounds/{sound}.aiff"])

    def _send_notify_send(self, message: str, subtitle: Optional[str], want_banner: bool) -> None:
        if not want_banner:
            return
        title = subtitle or "swarm"
        self._spawn(["notify-send", "--app-name=swarm", title, message])
