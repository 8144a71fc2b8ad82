from sqlalchemy import (
    Column, String, DateTime, JSON, Index,
)
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()


class Document(Base):
    """One JSON document in a named collection.

    Records, change requests, the request log and taxonomy entries all live
    here; the collection name separates them.
    """
    __tablename__ = "documents"

    id = Column(String, primary_key=True)
    collection = Column(String, primary_key=True)
    body = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_documents_collection_created", "collection", "created_at"),
    )
