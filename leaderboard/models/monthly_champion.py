"""Monthly champion model"""

from sqlalchemy import Column, Date, DateTime, Integer, Numeric, String, Text, UniqueConstraint
from datetime import datetime
import enum

from leaderboard.config.database import Base


class ChampionCategory(str, enum.Enum):
    """Award category"""
    DEFECT_TERMINATOR = "DEFECT_TERMINATOR"
    CODE_ROCK = "CODE_ROCK"
    CODE_SHIELD = "CODE_SHIELD"
    CRAFTSMAN = "CRAFTSMAN"
    CLIMBER = "CLIMBER"


class EntityType(str, enum.Enum):
    """Kind of entity a champion refers to"""
    INDIVIDUAL = "INDIVIDUAL"
    PROJECT = "PROJECT"


class MonthlyChampion(Base):
    """
    Winner of one category for one period

    A period's champions are deleted and rebuilt together; rows are never
    updated individually.
    """
    __tablename__ = "monthly_champions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    period = Column(Date, nullable=False, index=True)
    category = Column(String(30), nullable=False)
    entity_type = Column(String(20), nullable=False)

    entity_id = Column(Integer, nullable=False)
    entity_name = Column(String(255), nullable=False)
    score = Column(Numeric(10, 2), nullable=False)
    metric_details = Column(Text)  # JSON

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("period", "category", "entity_type", name="uk_monthly_champion"),
    )

    def __repr__(self):
        return f"<MonthlyChampion {self.period} {self.category}/{self.entity_type}: {self.entity_name}>"
