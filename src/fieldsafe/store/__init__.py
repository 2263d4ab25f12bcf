"""Record store access for the compliance engine."""

from fieldsafe.store.accessor import EntityAccessor
from fieldsafe.store.memory import InMemoryEntityAccessor, InMemoryRecordStore
from fieldsafe.store.sql import SQLEntityAccessor

__all__ = [
    "EntityAccessor",
    "InMemoryEntityAccessor",
    "InMemoryRecordStore",
    "SQLEntityAccessor",
]
