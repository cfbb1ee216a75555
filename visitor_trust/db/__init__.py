"""
Signal store persistence: engine/session management and the store contract
"""

from .connection import close_db, create_engine, create_session_maker, init_db
from .signal_store import SignalStore, Stream
from .sql_store import SqlSignalStore

__all__ = [
    "SignalStore",
    "SqlSignalStore",
    "Stream",
    "close_db",
    "create_engine",
    "create_session_maker",
    "init_db",
]
