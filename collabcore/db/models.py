"""
collabcore Database Models — SQLAlchemy tables for documents and the audit log.

Tables:
1. collab_documents  — Current document state + version counter
2. collab_audit_log  — Append-only audit entries (one per accepted write)

JSON columns hold document fields and field_changes in the same record
format the audit entries serialize to.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)

from collabcore.db.base import Base


class DocumentRow(Base):
    __tablename__ = "collab_documents"

    id = Column(String(255), primary_key=True)
    version = Column(Integer, nullable=False, default=1)
    fields = Column(JSON, nullable=False, default=dict)
    is_deleted = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    updated_by = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("version >= 1", name="ck_collab_documents_version"),
    )

    def __repr__(self) -> str:
        return f"<DocumentRow(id='{self.id}', version={self.version})>"


class AuditLogRow(Base):
    __tablename__ = "collab_audit_log"

    change_id = Column(String(64), primary_key=True)
    document_id = Column(String(255), nullable=False, index=True)
    change_type = Column(String(50), nullable=False)
    field_changes = Column(JSON, nullable=False, default=list)
    edited_by = Column(String(255), nullable=False, index=True)
    edited_by_name = Column(String(255), nullable=True)
    edited_by_email = Column(String(255), nullable=True)
    edited_at = Column(DateTime(timezone=True), nullable=False)
    version = Column(Integer, nullable=False)
    summary = Column(Text, nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("document_id", "version", name="uq_collab_audit_log_document_version"),
        Index("idx_collab_audit_log_document_edited_at", "document_id", "edited_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLogRow(change_id='{self.change_id}', document_id='{self.document_id}', "
            f"version={self.version})>"
        )
