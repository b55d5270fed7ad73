"""SQLAlchemy ORM models for the provision store.

The FTS5 term index is a virtual table and is created with raw DDL in
``codetrace.storage.store``; only the authoritative tables are mapped here.
"""

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class ProvisionRow(Base):
    """One provision of legal text. Ids come from AUTOINCREMENT and are never reused."""

    __tablename__ = "provisions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(50), nullable=False, index=True)
    chapter = Column(String(200), nullable=False, index=True)
    chapter_title = Column(String(500), nullable=False, default="")
    section = Column(String(200))
    reference = Column(String(500), nullable=False)
    section_title = Column(String(500))
    content = Column(Text, nullable=False)
    summary = Column(Text)
    keywords = Column(Text, nullable=False, default="")
    source_url = Column(String(1000))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class IngestionRecord(Base):
    """Marker that a (source, chapter) has been fully ingested. Insert-only."""

    __tablename__ = "ingestion_log"
    __table_args__ = (UniqueConstraint("source", "chapter", name="uq_ingestion_source_chapter"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(String(50), nullable=False)
    chapter = Column(String(200), nullable=False)
    status = Column(String(20), nullable=False, default="completed")
    provisions_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
