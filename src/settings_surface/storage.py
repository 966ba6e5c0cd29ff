"""Key-value persistence for settings.

Settings are stored under composite keys ``<namespace>.<field id>`` and group
expansion under ``<namespace>.groupState.<group id>``. All values are stored as
strings; the adapter turns the literal strings "true"/"false" back into
booleans on read.

Backends:
    HostBackend: wraps a key-value API supplied by the embedding application
        (sync or async ``get_value``/``set_value``).
    YamlFileBackend: local flat key-value store in a YAML file.
    EnvFileBackend: local key-value store in a .env file.
    MemoryBackend: in-process dict, for tests and throwaway sessions.

The PersistenceAdapter binds to one backend, either injected or selected at
first use, and never rebinds. Backend failures are logged and treated as a
cache miss; they never reach the session.
"""

import asyncio
import concurrent.futures
import inspect
import logging
import re
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml
from dotenv import dotenv_values, set_key

from .errors import StorageError
from .kinds import to_text

logger = logging.getLogger(__name__)

GROUP_STATE_SEGMENT = "groupState"

DEFAULT_STORE_PATH = Path.home() / ".settings-surface" / "store.yaml"

# Seconds to wait for an async host call
HOST_CALL_TIMEOUT = 30.0


class KeyValueBackend(ABC):
    """A flat string key-value store."""

    name = "backend"

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value for ``key`` or None when missing.

        Raises:
            StorageError: If the store cannot be read.
        """

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``.

        Raises:
            StorageError: If the store cannot be written.
        """

    def close(self) -> None:
        """Release any resources held by the backend."""


class MemoryBackend(KeyValueBackend):
    """Dict-backed store living only as long as the object."""

    name = "memory"

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    @property
    def data(self) -> Dict[str, str]:
        """Snapshot of everything stored."""
        return dict(self._data)

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class YamlFileBackend(KeyValueBackend):
    """Flat key-value store persisted to a YAML file.

    The file is read once on first access and rewritten on every ``set``.

    Example file:
        my_script.enabled: 'true'
        my_script.name: abc
        my_script.groupState.advanced: 'false'
    """

    name = "yaml"

    def __init__(self, path: Path):
        """Initialize YAML storage.

        Args:
            path: Path to the YAML file. Created on first write.
        """
        self._path = Path(path)
        self._data: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self._path.exists():
            self._data = {}
            return self._data
        try:
            with open(self._path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise StorageError("read", str(self._path), e) from e
        if not isinstance(loaded, dict):
            raise StorageError(
                "read", str(self._path), ValueError("top level is not a mapping")
            )
        self._data = {str(k): v for k, v in loaded.items()}
        return self._data

    def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = dict(self._load())
        data[key] = value
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        except (OSError, yaml.YAMLError) as e:
            raise StorageError("write", key, e) from e
        self._data = data


class EnvFileBackend(KeyValueBackend):
    """Key-value store persisted to a .env file.

    Keys are converted to environment-variable names: dots become double
    underscores and everything is upper-cased, e.g. ``my_script.name`` is
    stored as ``MY_SCRIPT__NAME``. Existing comments and unrelated variables
    in the file are preserved.
    """

    name = "env"

    def __init__(self, path: Path):
        self._path = Path(path)

    @staticmethod
    def env_key(key: str) -> str:
        """Convert a composite storage key to an environment variable name."""
        return re.sub(r"[^A-Z0-9_]", "_", key.upper().replace(".", "__"))

    def get(self, key: str) -> Optional[Any]:
        if not self._path.exists():
            return None
        try:
            values = dotenv_values(self._path, interpolate=False, encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError("read", str(self._path), e) from e
        return values.get(self.env_key(key))

    def set(self, key: str, value: str) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.touch(exist_ok=True)
            set_key(str(self._path), self.env_key(key), value, encoding="utf-8")
        except OSError as e:
            raise StorageError("write", key, e) from e


class HostBackend(KeyValueBackend):
    """Adapter for a key-value API provided by the host application.

    The host exposes ``get_value(key, default)`` and ``set_value(key, value)``.
    Either may be a coroutine function. Awaitable results are scheduled on an
    event loop running in a daemon thread and waited for, so callers stay
    synchronous whether or not their own thread is running a loop.
    """

    name = "host"

    def __init__(self, host: Any, timeout: float = HOST_CALL_TIMEOUT):
        if not probe_host(host):
            raise TypeError("host must provide callable get_value() and set_value()")
        self._host = host
        self._timeout = timeout
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=loop.run_forever, name="settings-host-loop", daemon=True
                )
                thread.start()
                self._loop, self._thread = loop, thread
                logger.debug("Started event loop thread for async host API")
            return self._loop

    def _resolve(self, result: Any) -> Any:
        if not inspect.isawaitable(result):
            return result
        future = asyncio.run_coroutine_threadsafe(_await(result), self._ensure_loop())
        try:
            return future.result(timeout=self._timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise TimeoutError(f"Host call timed out after {self._timeout}s")

    def get(self, key: str) -> Optional[Any]:
        try:
            return self._resolve(self._host.get_value(key, None))
        except Exception as e:
            raise StorageError("read", key, e) from e

    def set(self, key: str, value: str) -> None:
        try:
            self._resolve(self._host.set_value(key, value))
        except Exception as e:
            raise StorageError("write", key, e) from e

    @property
    def loop_running(self) -> bool:
        """True while the background loop thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def close(self) -> None:
        """Stop the background loop thread, if one was started."""
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop, self._thread = None, None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=self._timeout)
        if thread.is_alive():
            logger.warning("Host event loop thread did not stop; leaving it to exit with the process")
            return
        loop.close()


async def _await(awaitable: Any) -> Any:
    return await awaitable


def probe_host(host: Any) -> bool:
    """Check whether ``host`` provides the host key-value API."""
    if host is None:
        return False
    return callable(getattr(host, "get_value", None)) and callable(
        getattr(host, "set_value", None)
    )


def select_backend(
    host: Any = None,
    fallback: Optional[Callable[[], KeyValueBackend]] = None,
) -> KeyValueBackend:
    """Pick the host API when available, otherwise the local store.

    Args:
        host: Object that may provide ``get_value``/``set_value``.
        fallback: Factory for the local store. Defaults to a YAML file at
            DEFAULT_STORE_PATH.

    Returns:
        The selected backend.
    """
    if probe_host(host):
        logger.debug("Using host key-value API for settings storage")
        return HostBackend(host)

    backend = fallback() if fallback is not None else YamlFileBackend(DEFAULT_STORE_PATH)
    logger.debug(f"Using local '{backend.name}' store for settings storage")
    return backend


def decode_value(raw: Any) -> Any:
    """Turn a stored value back into its in-memory form.

    Only "true"/"false" are coerced (to booleans); other strings are returned
    unchanged.
    """
    if isinstance(raw, bool):
        return raw
    if not isinstance(raw, str):
        return to_text(raw)
    if raw == "true":
        return True
    if raw == "false":
        return False
    return raw


class PersistenceAdapter:
    """Namespaced get/set over a single key-value backend.

    Example:
        adapter = PersistenceAdapter(backend=MemoryBackend())
        adapter.write("my_script", "enabled", True)
        adapter.read("my_script", "enabled", False)   # -> True
        adapter.read("my_script", "missing", "x")     # -> "x"
    """

    def __init__(
        self,
        backend: Optional[KeyValueBackend] = None,
        host: Any = None,
        fallback: Optional[Callable[[], KeyValueBackend]] = None,
    ):
        """Initialize the adapter.

        Args:
            backend: Backend to use. When omitted, one is selected at first
                use via ``select_backend(host, fallback)``.
            host: Host object probed for the host key-value API.
            fallback: Factory for the local store used when the probe fails.
        """
        self._backend = backend
        self._host = host
        self._fallback = fallback

    @property
    def is_bound(self) -> bool:
        return self._backend is not None

    @property
    def backend(self) -> KeyValueBackend:
        """The bound backend, selecting it on first access."""
        if self._backend is None:
            self._backend = select_backend(self._host, self._fallback)
        return self._backend

    @staticmethod
    def storage_key(namespace: str, key: str) -> str:
        return f"{namespace}.{key}"

    @staticmethod
    def group_state_key(namespace: str, group_id: str) -> str:
        return f"{namespace}.{GROUP_STATE_SEGMENT}.{group_id}"

    def read(self, namespace: str, key: str, fallback: Any = None) -> Any:
        """Read a value, returning ``fallback`` when missing or on failure."""
        return self._read(self.storage_key(namespace, key), fallback)

    def write(self, namespace: str, key: str, value: Any) -> None:
        """Write a value; failures are logged and otherwise ignored."""
        self._write(self.storage_key(namespace, key), value)

    def read_group_state(self, namespace: str, group_id: str, fallback: bool) -> Any:
        return self._read(self.group_state_key(namespace, group_id), fallback)

    def write_group_state(self, namespace: str, group_id: str, expanded: bool) -> None:
        self._write(self.group_state_key(namespace, group_id), expanded)

    def _read(self, storage_key: str, fallback: Any) -> Any:
        try:
            raw = self.backend.get(storage_key)
        except StorageError as e:
            logger.warning(f"Error reading '{storage_key}' from storage: {e}")
            return fallback
        except Exception as e:
            logger.warning(
                f"Error reading '{storage_key}' from storage: "
                f"{StorageError('read', storage_key, e)}"
            )
            return fallback

        if raw is None:
            return fallback
        return decode_value(raw)

    def _write(self, storage_key: str, value: Any) -> None:
        try:
            self.backend.set(storage_key, to_text(value))
        except StorageError as e:
            logger.warning(f"Error writing '{storage_key}' to storage: {e}")
        except Exception as e:
            logger.warning(
                f"Error writing '{storage_key}' to storage: "
                f"{StorageError('write', storage_key, e)}"
            )

    def close(self) -> None:
        if self._backend is not None:
            self._backend.close()


# Process-wide adapter (optional)
_global_adapter: Optional[PersistenceAdapter] = None


def get_persistence_adapter() -> PersistenceAdapter:
    """Get the process-wide adapter, creating an unbound default if needed."""
    global _global_adapter
    if _global_adapter is None:
        _global_adapter = PersistenceAdapter()
    return _global_adapter


def init_persistence_adapter(**kwargs) -> PersistenceAdapter:
    """Initialize the process-wide adapter.

    Args:
        **kwargs: Arguments for PersistenceAdapter.

    Returns:
        The new adapter.
    """
    global _global_adapter
    _global_adapter = PersistenceAdapter(**kwargs)
    return _global_adapter


def reset_persistence_adapter() -> None:
    """Drop the process-wide adapter (for testing)."""
    global _global_adapter
    if _global_adapter is not None:
        _global_adapter.close()
    _global_adapter = None
