"""
Network Status Monitor

Tracks online/offline transitions and coarse connection quality.

- ``is_online`` comes only from the injected connectivity source (the
  platform's online/offline signal).
- ``is_slow_connection`` comes from a periodic latency probe. A failed
  probe marks the connection slow; it never marks it offline.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, List, Optional

from offline_pos.core.time_utils import utcnow
from offline_pos.schemas.sync import NetworkStatus

logger = logging.getLogger(__name__)

StatusListener = Callable[[NetworkStatus], None]
Probe = Callable[[], Awaitable[float]]


class ConnectivitySource(ABC):
    """Platform binding that reports online/offline events."""

    @abstractmethod
    def is_online(self) -> bool:
        """Current platform connectivity."""

    @abstractmethod
    def add_listener(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Register *callback* for connectivity changes; returns a remover."""

    def connection_type(self) -> Optional[str]:
        """Link type if the platform exposes it (e.g. "wifi", "4g")."""
        return None


class ManualConnectivitySource(ConnectivitySource):
    """Connectivity source driven by explicit calls.

    Hosts wire their OS/network hooks to ``set_online``; tests drive it
    directly.
    """

    def __init__(self, online: bool = True, connection_type: Optional[str] = None):
        self._online = online
        self._connection_type = connection_type
        self._callbacks: List[Callable[[bool], None]] = []

    def is_online(self) -> bool:
        return self._online

    def connection_type(self) -> Optional[str]:
        return self._connection_type

    def set_connection_type(self, connection_type: Optional[str]) -> None:
        self._connection_type = connection_type

    def add_listener(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        for callback in list(self._callbacks):
            callback(online)

    def go_online(self) -> None:
        self.set_online(True)

    def go_offline(self) -> None:
        self.set_online(False)


class NetworkStatusMonitor:
    """Exposes connectivity state and notifies subscribers on change."""

    def __init__(
        self,
        source: ConnectivitySource,
        probe: Optional[Probe] = None,
        probe_interval: float = 30.0,
        slow_threshold_ms: float = 3000.0,
    ):
        self._source = source
        self._probe = probe
        self.probe_interval = probe_interval
        self.slow_threshold_ms = slow_threshold_ms

        self._is_online = source.is_online()
        self._is_slow = False
        self._last_online_time = None
        self._last_offline_time = None

        self._listeners: List[StatusListener] = []
        self._remove_source_listener: Optional[Callable[[], None]] = None
        self._probe_task: Optional[asyncio.Task] = None

    # ==================== LIFECYCLE ====================

    def start(self) -> None:
        """Bind to the connectivity source and start the probe loop."""
        if self._remove_source_listener is None:
            self._remove_source_listener = self._source.add_listener(self._handle_connectivity)
            # Catch up on anything that changed before we were bound
            self._handle_connectivity(self._source.is_online())
        if self._probe is not None and self._probe_task is None:
            self._probe_task = asyncio.get_running_loop().create_task(self._probe_loop())

    async def stop(self) -> None:
        if self._remove_source_listener is not None:
            self._remove_source_listener()
            self._remove_source_listener = None
        if self._probe_task is not None:
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
            self._probe_task = None

    # ==================== STATUS ====================

    @property
    def is_online(self) -> bool:
        return self._is_online

    def get_status(self) -> NetworkStatus:
        """Current snapshot; no I/O."""
        return NetworkStatus(
            is_online=self._is_online,
            is_slow_connection=self._is_slow,
            connection_type=self._source.connection_type(),
            last_online_time=self._last_online_time,
            last_offline_time=self._last_offline_time,
        )

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Add *listener*; it is called at once with the current status."""
        self._listeners.append(listener)
        self._call(listener, self.get_status())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_for_online(self) -> NetworkStatus:
        """Resolve as soon as the monitor reports online."""
        if self._is_online:
            return self.get_status()
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def _listener(status: NetworkStatus) -> None:
            if status.is_online and not future.done():
                future.set_result(status)

        unsubscribe = self.subscribe(_listener)
        try:
            return await future
        finally:
            unsubscribe()

    def _handle_connectivity(self, online: bool) -> None:
        if online == self._is_online:
            return
        self._is_online = online
        if online:
            self._last_online_time = utcnow()
            logger.info("Connection restored")
        else:
            self._last_offline_time = utcnow()
            logger.warning("Connection lost")
        self._notify()

    def _notify(self) -> None:
        status = self.get_status()
        for listener in list(self._listeners):
            self._call(listener, status)

    def _call(self, listener: StatusListener, status: NetworkStatus) -> None:
        try:
            listener(status)
        except Exception as e:
            logger.error(f"Network status listener error: {e}", exc_info=True)

    # ==================== CONNECTION QUALITY ====================

    async def probe_once(self) -> Optional[bool]:
        """Run one latency probe; returns the slow flag, or None if skipped."""
        if self._probe is None or not self._is_online:
            return None
        try:
            elapsed_ms = await asyncio.wait_for(self._probe(), timeout=self.probe_interval)
            slow = elapsed_ms > self.slow_threshold_ms
        except Exception as e:
            logger.info(f"Connection probe failed: {e}")
            slow = True

        # The platform may have gone offline while the probe was in flight
        if not self._is_online:
            return None
        if slow != self._is_slow:
            self._is_slow = slow
            logger.info(f"Connection quality changed: slow={slow}")
            self._notify()
        return slow

    async def _probe_loop(self) -> None:
        while True:
            await self.probe_once()
            await asyncio.sleep(self.probe_interval)
