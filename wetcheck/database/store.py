"""
Document store capability and its implementations.

Documents are schemaless JSON maps grouped in named collections. Schema
discipline belongs to the callers (see repository.py).
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from wetcheck.database.models import Base, DocumentRecord
from wetcheck.exceptions import DocumentStoreError, OrderingUnavailableError
from utils.logger import setup_logger
from utils.config import config

logger = setup_logger(__name__, level=config.log_level, log_file=config.get_log_file(), component="DATABASE")

# Create database engine
engine = create_engine(
    f"sqlite:///{config.database_path}",
    echo=config.database_echo,
    connect_args={"check_same_thread": False}
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@dataclass(frozen=True)
class QueryFilter:
    """Equality filter on a top-level document field."""
    field: str
    value: Any
    op: str = "=="

    def __post_init__(self):
        if self.op != "==":
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, document: Dict[str, Any]) -> bool:
        return document.get(self.field) == self.value


@dataclass(frozen=True)
class Ordering:
    field: str
    descending: bool = True


@dataclass
class StoredDocument:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)


class DocumentStore(Protocol):
    """Capability interface for a schemaless document database."""

    def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Return the document or None if it does not exist."""
        ...

    def put(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        """Create or fully replace a document."""
        ...

    def delete(self, collection: str, document_id: str) -> None:
        """Remove a document. Removing a missing document is not an error."""
        ...

    def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[Ordering] = None
    ) -> List[StoredDocument]:
        """
        Return matching documents.

        Raises:
            OrderingUnavailableError: If the store cannot order by the field
        """
        ...


def _sort_documents(documents: List[StoredDocument], ordering: Ordering) -> List[StoredDocument]:
    """Sort in memory; documents missing the field go last."""
    present = [d for d in documents if d.data.get(ordering.field) is not None]
    missing = [d for d in documents if d.data.get(ordering.field) is None]
    present.sort(key=lambda d: d.data[ordering.field], reverse=ordering.descending)
    return present + missing


class SqlDocumentStore:
    """Document store backed by a single SQLAlchemy table of JSON bodies."""

    def __init__(self, bind=None, orderable_fields: Optional[Iterable[str]] = None):
        self.logger = logger
        if bind is None:
            self.session_factory = SessionLocal
        else:
            self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=bind)
        self.orderable_fields = set(
            config.orderable_fields_list if orderable_fields is None else orderable_fields
        )

    def get_session(self) -> Session:
        """Get database session."""
        return self.session_factory()

    def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        session = self.get_session()

        try:
            row = session.get(DocumentRecord, (collection, document_id))
            return copy.deepcopy(row.body) if row else None

        except SQLAlchemyError as e:
            self.logger.error(f"Failed to read {collection}/{document_id}: {e}")
            raise DocumentStoreError(f"Read failed: {e}") from e

        finally:
            session.close()

    def put(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        session = self.get_session()

        try:
            row = session.get(DocumentRecord, (collection, document_id))
            if row is None:
                session.add(DocumentRecord(
                    collection=collection,
                    document_id=document_id,
                    body=copy.deepcopy(document)
                ))
            else:
                row.body = copy.deepcopy(document)

            session.commit()
            self.logger.debug(f"Wrote document {collection}/{document_id}")

        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Failed to write {collection}/{document_id}: {e}")
            raise DocumentStoreError(f"Write failed: {e}") from e

        finally:
            session.close()

    def delete(self, collection: str, document_id: str) -> None:
        session = self.get_session()

        try:
            row = session.get(DocumentRecord, (collection, document_id))
            if row:
                session.delete(row)
                session.commit()
                self.logger.debug(f"Deleted document {collection}/{document_id}")

        except SQLAlchemyError as e:
            session.rollback()
            self.logger.error(f"Failed to delete {collection}/{document_id}: {e}")
            raise DocumentStoreError(f"Delete failed: {e}") from e

        finally:
            session.close()

    def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[Ordering] = None
    ) -> List[StoredDocument]:
        if order_by is not None and order_by.field not in self.orderable_fields:
            raise OrderingUnavailableError(order_by.field)

        session = self.get_session()

        try:
            query = session.query(DocumentRecord).filter(
                DocumentRecord.collection == collection
            )

            # Text equality runs in SQL; other values are compared on the decoded body
            remaining = []
            for f in filters:
                if isinstance(f.value, str):
                    query = query.filter(DocumentRecord.body[f.field].as_string() == f.value)
                else:
                    remaining.append(f)

            if order_by is not None:
                key = DocumentRecord.body[order_by.field].as_string()
                # NULLs (missing field) sort last when descending
                query = query.order_by(key.desc() if order_by.descending else key.asc())

            documents = [
                StoredDocument(id=row.document_id, data=copy.deepcopy(row.body))
                for row in query.all()
                if all(f.matches(row.body) for f in remaining)
            ]

            if order_by is not None and not order_by.descending:
                # Ascending order also puts missing values last
                documents = _sort_documents(documents, order_by)

            return documents

        except SQLAlchemyError as e:
            self.logger.error(f"Query on {collection} failed: {e}")
            raise DocumentStoreError(f"Query failed: {e}") from e

        finally:
            session.close()


class InMemoryDocumentStore:
    """Dict-backed document store with the same semantics as SqlDocumentStore."""

    def __init__(self, orderable_fields: Optional[Iterable[str]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.orderable_fields = None if orderable_fields is None else set(orderable_fields)

    def get(self, collection: str, document_id: str) -> Optional[Dict[str, Any]]:
        document = self._collections.get(collection, {}).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    def put(self, collection: str, document_id: str, document: Dict[str, Any]) -> None:
        self._collections.setdefault(collection, {})[document_id] = copy.deepcopy(document)

    def delete(self, collection: str, document_id: str) -> None:
        self._collections.get(collection, {}).pop(document_id, None)

    def query(
        self,
        collection: str,
        filters: Sequence[QueryFilter] = (),
        order_by: Optional[Ordering] = None
    ) -> List[StoredDocument]:
        if (
            order_by is not None
            and self.orderable_fields is not None
            and order_by.field not in self.orderable_fields
        ):
            raise OrderingUnavailableError(order_by.field)

        documents = [
            StoredDocument(id=doc_id, data=copy.deepcopy(body))
            for doc_id, body in self._collections.get(collection, {}).items()
            if all(f.matches(body) for f in filters)
        ]

        if order_by is not None:
            documents = _sort_documents(documents, order_by)

        return documents


def init_database(bind=None) -> bool:
    """Initialize database schema."""
    try:
        Base.metadata.create_all(bind=bind or engine)
        logger.info("Database initialized successfully")
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")
        return False


def health_check_database(bind=None) -> bool:
    """Check database health."""
    session_factory = sessionmaker(bind=bind) if bind is not None else SessionLocal
    session = session_factory()
    try:
        # Simple query to test connection
        session.query(DocumentRecord).first()
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False
    finally:
        session.close()


# Note: init_database() should be called explicitly at app startup
