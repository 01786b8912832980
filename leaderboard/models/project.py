"""Project model for analysed SonarQube projects"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime

from leaderboard.config.database import Base


class Project(Base):
    """
    Project tracked by the leaderboard

    Identified by the stable SonarQube project key. Projects are never
    deleted, only deactivated.
    """
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)

    project_key = Column(String(255), nullable=False, unique=True, index=True)
    project_name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Project {self.project_key}>"
