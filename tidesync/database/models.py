"""
SQLAlchemy models for the tidesync database.

Three tables back the scheduling engine:
- job_configs: persisted per-job configuration overrides
- retry_states: per-job last failed backoff span
- global_state: small key/value table for install-wide values
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Create base class for all models
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobConfigOverride(Base):
    """
    Persisted configuration override for a job.
    
    Each column is nullable: a NULL field means "not overridden" and
    the registration default applies.
    """
    
    __tablename__ = "job_configs"
    
    name: Mapped[str] = mapped_column(String, primary_key=True)
    enabled: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    interval_ms: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    range_ms: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert override to dictionary representation."""
        return {
            "name": self.name,
            "enabled": self.enabled,
            "interval_ms": self.interval_ms,
            "range_ms": self.range_ms,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
    
    def __repr__(self) -> str:
        return (
            f"<JobConfigOverride(name={self.name!r}, enabled={self.enabled}, "
            f"interval_ms={self.interval_ms}, range_ms={self.range_ms})>"
        )


class RetryState(Base):
    """Last failed backoff span for a job (0 means no active backoff)."""
    
    __tablename__ = "retry_states"
    
    name: Mapped[str] = mapped_column(String, primary_key=True)
    last_failed_backoff_ms: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert retry state to dictionary representation."""
        return {
            "name": self.name,
            "last_failed_backoff_ms": self.last_failed_backoff_ms,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
    
    def __repr__(self) -> str:
        return f"<RetryState(name={self.name!r}, backoff={self.last_failed_backoff_ms})>"


class GlobalState(Base):
    """Install-wide key/value state (jitter seed, power state, boot flag)."""
    
    __tablename__ = "global_state"
    
    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )
    
    def __repr__(self) -> str:
        return f"<GlobalState(key={self.key!r}, value={self.value!r})>"
