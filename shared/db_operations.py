"""Database operations for the local key-value store."""

from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

from shared.db_models import Base, KeyValueItem
from shared.config import get_database_url
from shared.encryption import EncryptionService


class DatabaseOperations:
    """Handles all key-value persistence for the device-local state.

    Errors from the database driver propagate; callers that treat
    persistence as best-effort catch them at their own boundary.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        encryption_service: Optional[EncryptionService] = None
    ):
        """Initialize database connection."""
        self.database_url = database_url or get_database_url()
        self.engine = create_engine(self.database_url, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.encryption_service = encryption_service

    def create_tables(self):
        """Create all tables in the database."""
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    def get_item(self, key: str) -> Optional[str]:
        """
        Get the stored value for a key.

        Args:
            key: Storage key

        Returns:
            The stored string, or None if the key is absent
        """
        with self.get_session() as session:
            item = session.get(KeyValueItem, key)
            if item is None:
                return None
            if self.encryption_service:
                return self.encryption_service.decrypt(item.value)
            return item.value

    def set_item(self, key: str, value: str) -> None:
        """
        Insert or replace the value stored under a key.

        Args:
            key: Storage key
            value: Serialized value (encrypted before storage if configured)
        """
        if self.encryption_service:
            value = self.encryption_service.encrypt(value)

        with self.get_session() as session:
            item = session.get(KeyValueItem, key)
            if item:
                item.value = value
                item.updated_at = datetime.now(timezone.utc)
            else:
                session.add(KeyValueItem(key=key, value=value))
            session.commit()

    def remove_item(self, key: str) -> bool:
        """
        Delete a key.

        Args:
            key: Storage key

        Returns:
            True if a row was deleted, False if the key was absent
        """
        with self.get_session() as session:
            deleted = session.query(KeyValueItem).filter(
                KeyValueItem.key == key
            ).delete()
            session.commit()
            return deleted > 0

    def list_keys(self) -> List[str]:
        """Return all stored keys in sorted order."""
        with self.get_session() as session:
            stmt = select(KeyValueItem.key).order_by(KeyValueItem.key)
            return list(session.execute(stmt).scalars().all())
