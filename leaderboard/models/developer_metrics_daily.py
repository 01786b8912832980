"""Developer daily metrics model."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from leaderboard.config.database import Base


class DeveloperMetricsDaily(Base):
    """Per developer, per project, per day issue counters mapped to `developer_metrics_daily`."""

    __tablename__ = "developer_metrics_daily"

    id = Column(Integer, primary_key=True, autoincrement=True)
    developer_id = Column(Integer, ForeignKey("developers.id"), nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    date_recorded = Column(Date, nullable=False, index=True)

    violations_introduced = Column(Integer, nullable=False, default=0)
    violations_resolved = Column(Integer, nullable=False, default=0)
    bugs_introduced = Column(Integer, nullable=False, default=0)
    vulnerabilities_introduced = Column(Integer, nullable=False, default=0)
    code_smells_introduced = Column(Integer, nullable=False, default=0)

    # Estimate only: SonarQube exposes no per-author line counts.
    lines_of_code_contributed = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    developer = relationship("Developer", backref="metrics_daily")
    project = relationship("Project")

    __table_args__ = (
        UniqueConstraint("developer_id", "project_id", "date_recorded", name="uk_developer_metrics_daily"),
    )

    def reset_counters(self) -> None:
        self.violations_introduced = 0
        self.violations_resolved = 0
        self.bugs_introduced = 0
        self.vulnerabilities_introduced = 0
        self.code_smells_introduced = 0
        self.lines_of_code_contributed = 0

    def __repr__(self):
        return f"<DeveloperMetricsDaily {self.developer_id}:{self.project_id}:{self.date_recorded}>"
