"""
CW Keyer Web - morse key / iambic paddle keyer that streams to browsers
"""

from .cw_broadcaster import EventBroadcaster
from .cw_debounce import Debouncer
from .cw_errors import CWKeyerError, ConfigError, PinConfigError
from .cw_iambic_keyer import IambicKeyer, KeyerState
from .cw_scheduler import AsyncioScheduler, ManualScheduler
from .cw_straight_key import StraightKeyMonitor
from .cw_timing import TimingConfig

__version__ = "0.1.0"

__all__ = [
    "EventBroadcaster",
    "Debouncer",
    "CWKeyerError",
    "ConfigError",
    "PinConfigError",
    "IambicKeyer",
    "KeyerState",
    "AsyncioScheduler",
    "ManualScheduler",
    "StraightKeyMonitor",
    "TimingConfig",
]
