"""
Wiring: build the adapter, stores, reconciler and lifecycle manager from
config. Consumers (the CLI, a dashboard) create one Engine and close it
when done.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .config import EngineConfig, get_engine_config
from .implementations import RealSubprocess, RealTmux
from .lifecycle import LifecycleManager
from .notifier import DesktopNotifier
from .protocols import SubprocessInterface, TmuxInterface
from .reconciler import Reconciler
from .session_adapter import SessionAdapter
from .session_store import SessionStore
from .task_registry import TaskRegistry
from .workspace import WorkspaceProvisioner


@dataclass
class Engine:
    config: EngineConfig
    adapter: SessionAdapter
    store: SessionStore
    registry: TaskRegistry
    reconciler: Reconciler
    lifecycle: LifecycleManager
    notifier: Optional[DesktopNotifier] = None

    def close(self) -> None:
        self.reconciler.stop(timeout=5.0)
        self.adapter.close()


def build_engine(
    config: Optional[EngineConfig] = None,
    tmux: Optional[TmuxInterface] = None,
    subprocess: Optional[SubprocessInterface] = None,
    notifications: bool = False,
    clock: Callable[[], datetime] = datetime.now,
) -> Engine:
    """Assemble an Engine.

    Args:
        config: Engine settings (read from the config file by default)
        tmux: tmux implementation (RealTmux by default)
        subprocess: subprocess implementation for workspace commands
        notifications: Whether to attach the desktop notifier
        clock: Time source for the reconciler
    """
    config = config or get_engine_config()
    adapter = SessionAdapter(
        tmux or RealTmux(),
        capture_timeout=config.capture_timeout,
        max_workers=config.max_workers,
    )
    store = SessionStore()
    registry = TaskRegistry(config.tasks_dir)
    notifier = DesktopNotifier.from_config(config.notifications) if notifications else None
    reconciler = Reconciler(
        adapter, store, registry, config=config, notifier=notifier, clock=clock,
    )
    workspace = WorkspaceProvisioner(config, subprocess or RealSubprocess())
    lifecycle = LifecycleManager(
        adapter, store, registry, reconciler, config=config, workspace=workspace,
    )
    return Engine(
        config=config,
        adapter=adapter,
        store=store,
        registry=registry,
        reconciler=reconciler,
        lifecycle=lifecycle,
        notifier=notifier,
    )
