"""Infrastructure adapters implementing the domain ports.

The PostgreSQL adapter is not imported here so that the in-memory
service and the test suite do not need asyncpg at import time.
"""

from .document_store import LocalDocumentStore
from .event_publisher import SinkEventPublisher
from .memory_store import InMemoryStore, InMemoryUnitOfWork
from .sheet_parser import OpenpyxlSheetParser
from .sinks import LoggingAuditSink, LoggingNotificationSink, StaticUserDirectory

__all__ = [
    "InMemoryStore",
    "InMemoryUnitOfWork",
    "OpenpyxlSheetParser",
    "SinkEventPublisher",
    "LoggingAuditSink",
    "LoggingNotificationSink",
    "StaticUserDirectory",
    "LocalDocumentStore",
]
