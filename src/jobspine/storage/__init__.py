"""Job and recurring-schedule stores.

The scheduler talks to storage only through the :class:`JobStore` and
:class:`RecurringJobStore` protocols. Two implementations ship here:

memory      InMemoryJobStore / InMemoryRecurringJobStore -- dicts, tests
sqlite      SqliteJobStore / SqliteRecurringJobStore -- one sqlite3 file
"""

from jobspine.storage.memory import InMemoryJobStore, InMemoryRecurringJobStore
from jobspine.storage.protocols import (
    JobCreate,
    JobStore,
    RecurringJobCreate,
    RecurringJobStore,
    RecurringJobUpdate,
)
from jobspine.storage.sqlite import SqliteDatabase, SqliteJobStore, SqliteRecurringJobStore

__all__ = [
    "JobStore",
    "RecurringJobStore",
    "JobCreate",
    "RecurringJobCreate",
    "RecurringJobUpdate",
    "InMemoryJobStore",
    "InMemoryRecurringJobStore",
    "SqliteDatabase",
    "SqliteJobStore",
    "SqliteRecurringJobStore",
]
