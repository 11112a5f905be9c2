"""
RestMock Hot Reload

Background watcher that re-reads the configuration file whenever it
changes and hands it to the engine for validate-then-swap.

The parent directory is watched rather than the file itself so editors
that save by writing a new file and renaming it are still noticed.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from watchfiles import Change, watch

logger = logging.getLogger("restmock.reload")


class ConfigWatcher:
    """
    Watches the engine's config file in a daemon thread.

    Example:
        watcher = ConfigWatcher(engine)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        engine,
        config_path: Optional[str] = None,
        debounce_ms: int = 200,
        force_polling: Optional[bool] = None
    ):
        """
        Initialize the watcher.

        Args:
            engine: Engine whose reload_from_file() is called on change
            config_path: File to watch (default: engine.config_path)
            debounce_ms: Window for grouping bursts of file events
            force_polling: Poll instead of using native notifications
        """
        path = config_path or engine.config_path
        if not path:
            raise ValueError("ConfigWatcher needs a config file path")

        self.engine = engine
        self.config_path = Path(path).resolve()
        self.debounce_ms = debounce_ms
        self.force_polling = force_polling
        self.reload_count = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start watching (no-op when already running)."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="restmock-config-watcher", daemon=True)
        self._thread.start()
        logger.info(f"Watching {self.config_path} for changes")

    def stop(self, timeout: float = 5.0):
        """Signal the watcher thread and wait for it to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _is_config_file(self, change: Change, path: str) -> bool:
        return Path(path).resolve() == self.config_path

    def _run(self):
        try:
            for changes in watch(
                self.config_path.parent,
                watch_filter=self._is_config_file,
                stop_event=self._stop_event,
                debounce=self.debounce_ms,
                recursive=False,
                force_polling=self.force_polling
            ):
                logger.info(f"Config change detected ({len(changes)} events): {self.config_path}")
                if self.engine.reload_from_file():
                    self.reload_count += 1
        except Exception:
            logger.exception("Config watcher stopped unexpectedly")
