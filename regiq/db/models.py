"""SQLAlchemy database models."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Alert(Base):
    """Normalized regulatory alert shared by every source."""

    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    external_id: Mapped[str] = mapped_column(String(512), nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)  # FDA, FSIS, CDC, EPA, NOAA, ...
    agency: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    full_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # Raw source payload (JSON)
    external_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    published_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    date_updated: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    date_is_placeholder: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    urgency: Mapped[str] = mapped_column(String(16), default="Low", nullable=False)  # Low, Medium, High, Critical
    urgency_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    jurisdiction: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    locations: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    product_types: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Managed by the dashboard, never written by the pipeline
    dismissed_by: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_alerts_source_external_id", "source", "external_id"),
        Index("idx_alerts_title_source_published", "title", "source", "published_date"),
        Index("idx_alerts_hash", "hash"),
    )


class Recall(Base):
    """Recall-specific details for FDA/FSIS recalls, keyed by recall number."""

    __tablename__ = "recalls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recall_number: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    product_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    classification: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)  # Class I/II/III
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    distribution_pattern: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    recall_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    publish_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    agency_source: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class SyncLog(Base):
    """One row per orchestrator invocation."""

    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    run_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    job_name: Mapped[str] = mapped_column(String(64), nullable=False)  # 'sync_all', 'sync_fda_enforcement', ...
    trigger: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)  # 'scheduled' | 'manual'
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)  # pending, running, success, partial_success, failed
    records_processed: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    records_synced: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sync_metadata: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    source_logs: Mapped[list["AlertSyncLog"]] = relationship(
        "AlertSyncLog", back_populates="sync_log", cascade="all, delete-orphan"
    )


class AlertSyncLog(Base):
    """One row per source per orchestrator invocation."""

    __tablename__ = "alert_sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sync_log_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("sync_logs.id"), nullable=True, index=True
    )
    source_name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # success, failed
    alerts_fetched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    alerts_inserted: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    alerts_updated: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    alerts_skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    errors: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    sync_log: Mapped[Optional["SyncLog"]] = relationship("SyncLog", back_populates="source_logs")


class DataFreshness(Base):
    """Latest fetch outcome per source."""

    __tablename__ = "data_freshness"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    source_name: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    last_attempt: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_successful_fetch: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    fetch_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # success, failed
    records_fetched: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
