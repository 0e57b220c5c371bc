from .result import Ok, Err, Result
from .cache import KeyedCache, is_stale
from .store import OfflineStore
from .sync import SyncQueue
from .content import ContentClient

__all__ = [
    "Ok",
    "Err",
    "Result",
    "KeyedCache",
    "is_stale",
    "OfflineStore",
    "SyncQueue",
    "ContentClient"
]
