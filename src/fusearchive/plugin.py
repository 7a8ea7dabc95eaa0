"""
Plugin runtime — setup and the string-dispatched action surface.

``entry()`` is called from the host's fast tier: it only validates the
action name and hands the work to a worker thread (the slow tier), which
runs the coordinator and reports failures as notifications. ``run()`` is
the same work done synchronously, for one-shot hosts like the CLI.

Usage:
    plugin = FuseArchivePlugin(host, load_options())
    plugin.setup()
    plugin.entry("mount")        # returns a Future
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from .config import FuseArchiveOptions, resolve_mount_dir, resolve_registry_path
from .coordinator import MountCoordinator
from .errors import FuseArchiveError
from .host import Host
from .models import GlobalConfig
from .process import ProcessExecutor
from .registry import RegistryPersister
from .state import StateStore

logger = logging.getLogger("fusearchive.plugin")

ACTIONS = ("mount", "unmount", "list", "cleanup")


class FuseArchivePlugin:
    """Owns the State Store and the slow-tier worker pool.

    Args:
        host: UI collaborator.
        options: User options (defaults when omitted).
        store: State Store; a fresh one when omitted.
        executor: Process executor for the external tools.
        persister: Registry persister; built from ``options`` when omitted.
    """

    def __init__(
        self,
        host: Host,
        options: Optional[FuseArchiveOptions] = None,
        store: Optional[StateStore] = None,
        executor: Optional[ProcessExecutor] = None,
        persister: Optional[RegistryPersister] = None,
    ) -> None:
        self.host = host
        self.options = options or FuseArchiveOptions()
        self.store = store or StateStore()
        self.persister = persister or RegistryPersister(
            resolve_registry_path(self.options.registry_path)
        )
        self.coordinator = MountCoordinator(
            host,
            self.store,
            executor or ProcessExecutor(),
            persister=self.persister,
            mount_command=self.options.mount_command,
        )
        self._pool: Optional[ThreadPoolExecutor] = None
        self._handlers: dict[str, Callable[[], object]] = {
            "mount": self.coordinator.activate,
            "unmount": self.coordinator.unmount,
            "list": self.coordinator.list_mounts,
            "cleanup": self.coordinator.cleanup,
        }

    def setup(self) -> GlobalConfig:
        """Create the global configuration. Call once at startup.

        Returns:
            GlobalConfig: What was stored.
        """
        config = GlobalConfig(
            base_mount_dir=resolve_mount_dir(self.options.mount_dir),
            smart_enter_enabled=self.options.smart_enter,
        )
        self.store.set_global_config(config)
        logger.debug(
            "Setup: mount dir %s, smart enter %s",
            config.base_mount_dir, config.smart_enter_enabled,
        )
        if self.options.auto_cleanup:
            self.submit("cleanup")
        return config

    def entry(self, action: Optional[str]) -> Optional[Future]:
        """Dispatch an action by name without blocking the caller.

        Args:
            action: One of ``mount``, ``unmount``, ``list``, ``cleanup``.

        Returns:
            Future resolving to True on success, or None if the action
            was rejected.
        """
        if not action:
            self.host.warn("No action specified")
            return None
        if action not in self._handlers:
            self.host.warn("Unknown action: %s", action)
            return None
        return self.submit(action)

    def submit(self, action: str) -> Future:
        """Queue an action on the slow-tier pool."""
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self.options.workers, thread_name_prefix="fusearchive"
            )
        return self._pool.submit(self.run, action)

    def run(self, action: Optional[str]) -> bool:
        """Run an action to completion in the calling thread.

        Failures become error notifications; nothing propagates.

        Returns:
            True if the handler returned without raising.
        """
        handler = self._handlers.get(action or "")
        if handler is None:
            if action:
                self.host.warn("Unknown action: %s", action)
            else:
                self.host.warn("No action specified")
            return False
        try:
            handler()
        except FuseArchiveError as exc:
            self.host.error("Unable to %s: %s", action, exc)
            return False
        except Exception as exc:
            logger.exception("Action %s failed unexpectedly", action)
            self.host.error("Unexpected error during %s: %s", action, exc)
            return False
        return True

    def restore(self) -> list[str]:
        """Adopt still-live mounts recorded by a previous session."""
        return self.coordinator.restore()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool."""
        if self._pool is not None:
            self._pool.shutdown(wait=wait)
            self._pool = None

    def __enter__(self) -> "FuseArchivePlugin":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
