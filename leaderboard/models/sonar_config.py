"""Database-stored SonarQube connection settings."""

from sqlalchemy import Column, DateTime, Integer, String
from datetime import datetime

from leaderboard.config.database import Base


class SonarConfig(Base):
    """Admin-managed SonarQube connection; the newest row wins over environment settings."""

    __tablename__ = "sonar_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    base_url = Column(String(1024), nullable=False)
    api_token = Column(String(512))

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<SonarConfig {self.base_url}>"
