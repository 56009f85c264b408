"""Database package."""

from stockcoin.db.models import (
    AirdropTask,
    AirdropUserTask,
    Base,
    TaskStatus,
    UserTaskStatus,
)
from stockcoin.db.session import (
    close_db,
    get_session_factory,
    init_db,
)

__all__ = [
    "init_db",
    "close_db",
    "get_session_factory",
    "Base",
    "AirdropTask",
    "AirdropUserTask",
    "TaskStatus",
    "UserTaskStatus",
]
