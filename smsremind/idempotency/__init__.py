from .lock import acquire_lock
from .lock import Lock
from .store import Store

__all__ = ["acquire_lock", "Lock", "Store"]
