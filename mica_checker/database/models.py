"""SQLAlchemy models for all database tables."""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mica_checker.core.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Document(Base):
    """An acquired source: an uploaded PDF or a crawled website."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_path: Mapped[str] = mapped_column(
        String, nullable=False, comment="Storage path for PDFs, source URL for websites"
    )
    mime_type: Mapped[str] = mapped_column(String, nullable=False, default="application/pdf")
    doc_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    chunks: Mapped[list["DocumentChunk"]] = relationship(
        "DocumentChunk", back_populates="document", cascade="all, delete-orphan"
    )


class DocumentChunk(Base):
    """A contiguous slice of a document's extracted text."""

    __tablename__ = "document_chunks"
    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_document_chunk_index"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    page_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_offset: Mapped[int | None] = mapped_column(Integer, nullable=True)
    end_offset: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    document: Mapped["Document"] = relationship("Document", back_populates="chunks")


class CheckerTemplate(Base):
    """A named catalog of compliance requirements."""

    __tablename__ = "checker_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(
        String, nullable=False, default="whitepaper", comment="whitepaper | legal"
    )
    scoring_regime: Mapped[str | None] = mapped_column(
        String, nullable=True, comment="pass_rate | risk_points; derived from type when null"
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    items: Mapped[list["CheckerItem"]] = relationship(
        "CheckerItem",
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="CheckerItem.sort_order",
    )


class CheckerItem(Base):
    """One requirement inside a template."""

    __tablename__ = "checker_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("checker_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category: Mapped[str] = mapped_column(String, nullable=False)
    item_name: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    scoring_logic: Mapped[str | None] = mapped_column(Text, nullable=True)
    field_type: Mapped[str | None] = mapped_column(String, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    template: Mapped["CheckerTemplate"] = relationship("CheckerTemplate", back_populates="items")


class ComplianceCheck(Base):
    """One versioned analysis run of a template over a document."""

    __tablename__ = "compliance_checks"
    __table_args__ = (
        UniqueConstraint("document_id", "template_id", "version", name="uq_check_version"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("documents.id"), nullable=False, index=True
    )
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("checker_templates.id"), nullable=False, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(String, nullable=False, default="completed")
    scoring_regime: Mapped[str] = mapped_column(String, nullable=False, default="pass_rate")
    overall_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    found_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clarification_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    missing_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    not_applicable_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    risk_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    results: Mapped[list["ComplianceResult"]] = relationship(
        "ComplianceResult", back_populates="check", cascade="all, delete-orphan"
    )


class ComplianceResult(Base):
    """Per-requirement outcome of one analysis run."""

    __tablename__ = "compliance_results"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    check_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("compliance_checks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False, default="")
    item_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    status: Mapped[str] = mapped_column(String, nullable=False)
    coverage_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reasoning: Mapped[str] = mapped_column(Text, nullable=False, default="")
    evidence_snippets: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    selected_answer: Mapped[str | None] = mapped_column(String, nullable=True)
    manually_overridden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    check: Mapped["ComplianceCheck"] = relationship("ComplianceCheck", back_populates="results")
