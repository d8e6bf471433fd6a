"""SQLAlchemy database models for local device persistence."""

from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func


Base = declarative_base()


class KeyValueItem(Base):
    """Model for kv_store table.

    Each row holds one serialized collection (for example a whole mutation
    queue) under a single key.
    """
    __tablename__ = 'kv_store'

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)  # Encrypted when a storage key is configured
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
