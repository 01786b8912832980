"""Project daily metrics model holding raw SonarQube measures."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from leaderboard.config.database import Base


class ProjectMetricsDaily(Base):
    """Daily project measure snapshots mapped to `project_metrics_daily` table."""

    __tablename__ = "project_metrics_daily"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    date_recorded = Column(Date, nullable=False, index=True)

    lines_of_code = Column(Integer, nullable=False, default=0)  # ncloc
    bugs_count = Column(Integer, nullable=False, default=0)
    vulnerabilities_count = Column(Integer, nullable=False, default=0)
    code_smells_count = Column(Integer, nullable=False, default=0)

    reliability_rating = Column(Numeric(3, 2), nullable=True)
    security_rating = Column(Numeric(3, 2), nullable=True)
    maintainability_rating = Column(Numeric(3, 2), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    project = relationship("Project", backref="metrics_daily")

    __table_args__ = (
        UniqueConstraint("project_id", "date_recorded", name="uk_project_metrics_daily"),
    )

    def __repr__(self):
        return f"<ProjectMetricsDaily {self.project_id}:{self.date_recorded}>"
