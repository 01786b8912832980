"""Issue model mirroring SonarQube issues"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from leaderboard.config.database import Base


class Severity(str, enum.Enum):
    """Issue severity"""
    BLOCKER = "BLOCKER"
    CRITICAL = "CRITICAL"
    MAJOR = "MAJOR"
    MINOR = "MINOR"
    INFO = "INFO"


class IssueType(str, enum.Enum):
    """Issue type"""
    BUG = "BUG"
    VULNERABILITY = "VULNERABILITY"
    CODE_SMELL = "CODE_SMELL"


class IssueStatus(str, enum.Enum):
    """Issue lifecycle status"""
    OPEN = "OPEN"
    CONFIRMED = "CONFIRMED"
    REOPENED = "REOPENED"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


class Issue(Base):
    """
    Issue synchronized from SonarQube

    Every sync overwrites the mutable fields in place (fetch-and-replace).
    The developer reference is optional: anonymous and system issues have none.
    """
    __tablename__ = "issues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    issue_key = Column(String(255), nullable=False, unique=True, index=True)

    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    developer_id = Column(Integer, ForeignKey("developers.id"), nullable=True)

    rule_key = Column(String(255))
    severity = Column(String(20), nullable=False, default=Severity.MAJOR.value)  # VARCHAR in DB, not enum
    issue_type = Column(String(20), nullable=False, default=IssueType.CODE_SMELL.value)
    status = Column(String(20), nullable=False, default=IssueStatus.OPEN.value)

    component_path = Column(String(500))
    line_number = Column(Integer)
    message = Column(Text)
    effort_minutes = Column(Integer, nullable=False, default=0)

    # Remote timestamps (naive UTC)
    created_date = Column(DateTime, index=True)
    updated_date = Column(DateTime)
    resolved_date = Column(DateTime, index=True)

    synced_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("Project", backref="issues")
    developer = relationship("Developer", backref="issues")

    __table_args__ = (
        Index("idx_issues_project_type", "project_id", "issue_type"),
        Index("idx_issues_developer_type", "developer_id", "issue_type"),
    )

    def __repr__(self):
        return f"<Issue {self.issue_key} ({self.issue_type})>"
