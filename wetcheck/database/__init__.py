"""
Database module for Wet Check inspections.
"""

from wetcheck.database.models import Base, DocumentRecord
from wetcheck.database.store import (
    DocumentStore,
    QueryFilter,
    Ordering,
    StoredDocument,
    SqlDocumentStore,
    InMemoryDocumentStore,
    init_database,
    health_check_database,
)
from wetcheck.database.repository import (
    COLLECTION,
    InspectionRepository,
    strip_binary_content,
    rebuild_record,
)

__all__ = [
    "Base",
    "DocumentRecord",
    "DocumentStore",
    "QueryFilter",
    "Ordering",
    "StoredDocument",
    "SqlDocumentStore",
    "InMemoryDocumentStore",
    "init_database",
    "health_check_database",
    "COLLECTION",
    "InspectionRepository",
    "strip_binary_content",
    "rebuild_record",
]
