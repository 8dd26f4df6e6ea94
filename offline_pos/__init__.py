"""Offline sale queue and sync engine for POS terminals."""

from offline_pos.core.config import Settings, get_settings
from offline_pos.services.network_monitor import ConnectivitySource, ManualConnectivitySource
from offline_pos.services.offline_engine import OfflineSyncEngine

__version__ = "0.1.0"

__all__ = [
    "ConnectivitySource",
    "ManualConnectivitySource",
    "OfflineSyncEngine",
    "Settings",
    "get_settings",
]
