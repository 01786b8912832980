"""Sync audit log model"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from leaderboard.config.database import Base


class SyncType(str, enum.Enum):
    """How a sync run was started"""
    FULL = "FULL"
    INCREMENTAL = "INCREMENTAL"
    MANUAL = "MANUAL"


class SyncStatus(str, enum.Enum):
    """Sync run status. STARTED moves to exactly one terminal status."""
    STARTED = "STARTED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"


class SyncLog(Base):
    """
    Audit record for one sync run

    Rows without a project describe a whole run; rows with a project describe
    that project's sync and provide the incremental watermark.
    """
    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)

    sync_type = Column(String(20), nullable=False, default=SyncType.INCREMENTAL.value)
    status = Column(String(20), nullable=False, default=SyncStatus.STARTED.value, index=True)

    records_processed = Column(Integer, nullable=False, default=0)
    records_created = Column(Integer, nullable=False, default=0)
    records_updated = Column(Integer, nullable=False, default=0)

    start_time = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    end_time = Column(DateTime)
    error_message = Column(Text)
    sync_details = Column(Text)  # JSON

    project = relationship("Project")

    __table_args__ = (
        Index("idx_sync_logs_project_status", "project_id", "status"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status != SyncStatus.STARTED.value

    def __repr__(self):
        return f"<SyncLog {self.id} {self.sync_type} {self.status}>"
