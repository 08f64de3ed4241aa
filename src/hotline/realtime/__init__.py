"""实时广播模块"""

from .broadcaster import CLEAR_LOGS, NEW_LOG, Broadcaster

__all__ = ["Broadcaster", "NEW_LOG", "CLEAR_LOGS"]
