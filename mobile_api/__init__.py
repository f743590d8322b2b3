"""
SIFIS-Home Mobile API Package
Device identity, access control and command server for Smart Devices.
"""

__version__ = '0.1.0'

from .security import SecurityKey, SRNG, KeyEncoding, detect_encoding
from .configs import DeviceConfig, DeviceInfo
from .auth import AuthorizationGuard
from .state import BusyGuard, DeviceState, OperationLock

__all__ = [
    'SecurityKey',
    'SRNG',
    'KeyEncoding',
    'detect_encoding',
    'DeviceConfig',
    'DeviceInfo',
    'AuthorizationGuard',
    'BusyGuard',
    'DeviceState',
    'OperationLock',
]
