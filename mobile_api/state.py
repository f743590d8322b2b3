"""
Managed state for the server

The OperationLock ensures that multiple device commands are not run at the
same time. DeviceState bundles the lock with the device identity and the
current device configuration.
"""

import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Optional, TypeVar

from .auth import AuthorizationGuard
from .configs import DeviceConfig, DeviceInfo
from .errors import AlreadyBusyError, PersistenceError
from .home import SifisHome
from .logger import Logger

T = TypeVar('T')


class BusyGuard:
    """
    Token for exclusive possession of an OperationLock.

    Releases the lock when leaving the `with` block, including when the
    block raises. Releasing more than once is a no-op.

    Example:
        try:
            with lock.try_acquire("Calculating the meaning of life"):
                answer = 42
        except AlreadyBusyError as busy:
            respond_busy(busy.reason)
    """

    def __init__(self, lock: 'OperationLock', reason: str) -> None:
        self._lock = lock
        self.reason = reason
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._lock._release()

    def __enter__(self) -> 'BusyGuard':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False


class OperationLock:
    """
    Single-flight lock with a busy reason.

    Two states: free, or busy with a reason string. Acquisition never
    waits: if the lock is taken, AlreadyBusyError is raised with the
    reason of the current holder.
    """

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._reason: Optional[str] = None

    def busy(self) -> Optional[str]:
        """Return the current busy reason, or None if free"""
        with self._mutex:
            return self._reason

    def is_busy(self) -> bool:
        return self.busy() is not None

    def try_acquire(self, reason: str) -> BusyGuard:
        """
        Mark the lock busy with reason.

        Returns:
            A BusyGuard that must be released (use it as a context manager)

        Raises:
            AlreadyBusyError: If already busy, carrying the existing reason
            ValueError: If reason is empty
        """
        if not reason:
            raise ValueError("Busy reason must not be empty")
        with self._mutex:
            if self._reason is not None:
                raise AlreadyBusyError(self._reason)
            self._reason = reason
        Logger.debug("BUSY", reason)
        return BusyGuard(self, reason)

    def run(self, reason: str, operation: Callable[[], T]) -> T:
        """Run operation while holding the lock"""
        with self.try_acquire(reason):
            return operation()

    def _release(self) -> None:
        with self._mutex:
            self._reason = None
        Logger.debug("BUSY", "released")


class ReadWriteLock:
    """
    Reader/writer lock.

    Any number of readers, or one writer. Waiting writers block new readers
    so a steady stream of reads cannot starve a write.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self):
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self):
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class DeviceState:
    """
    Managed state structure

    One instance per running service. Device information is read-only,
    the configuration is guarded by a reader/writer lock, and state
    changing commands go through the operation lock.
    """

    def __init__(
        self,
        home: SifisHome,
        device_info: DeviceInfo,
        device_config: Optional[DeviceConfig] = None,
        operation_lock: Optional[OperationLock] = None
    ) -> None:
        self.home = home
        self._device_info = device_info
        self._device_config = device_config
        self._config_lock = ReadWriteLock()
        self.operation_lock = operation_lock or OperationLock()
        self.authorization = AuthorizationGuard(device_info.authorization_key)

    @classmethod
    def load(cls, home: SifisHome) -> 'DeviceState':
        """
        Create the server state from the files in the home path.

        Raises:
            DeviceInfoError: If device.json is missing or invalid
        """
        device_info = home.load_info()
        Logger.info(f"Loaded device information for {device_info.product_name} ({device_info.uuid})")
        device_config = home.load_config()
        if device_config is None:
            Logger.info("Device is not configured yet")
        return cls(home, device_info, device_config)

    @property
    def device_info(self) -> DeviceInfo:
        return self._device_info

    # ========================================================================
    # Busy state
    # ========================================================================

    def busy(self) -> Optional[str]:
        """Return the busy reason, or None if the server is free"""
        return self.operation_lock.busy()

    def try_busy(self, reason: str) -> BusyGuard:
        """See OperationLock.try_acquire"""
        return self.operation_lock.try_acquire(reason)

    # ========================================================================
    # Configuration
    # ========================================================================

    def get_config(self) -> Optional[DeviceConfig]:
        """Return a copy of the current configuration, if available"""
        with self._config_lock.read():
            config = self._device_config
            return replace(config) if config is not None else None

    def set_config(self, config: Optional[DeviceConfig]) -> None:
        """
        Store a new configuration.

        The configuration is written to config.json before the in-memory copy
        is replaced. Passing None deletes config.json.

        Raises:
            PersistenceError: If writing or deleting fails. The in-memory
                configuration is left unchanged.
        """
        with self._config_lock.write():
            try:
                if config is None:
                    self.home.remove_config()
                else:
                    self.home.save_config(config)
            except OSError as e:
                raise PersistenceError(str(e)) from e
            self._device_config = config
        Logger.info("Configuration removed" if config is None else "Configuration saved")
