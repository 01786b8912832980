"""Monthly ranking snapshot models for developers and projects"""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal

from leaderboard.config.database import Base

# Rank given to entities that do not meet a category's qualification threshold
UNRANKED = 999


class IndividualRanking(Base):
    """
    Developer ranking for one month mapped to `individual_rankings`

    One row per developer per ranking period (first day of the month).
    """
    __tablename__ = "individual_rankings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    developer_id = Column(Integer, ForeignKey("developers.id"), nullable=False)
    ranking_period = Column(Date, nullable=False, index=True)

    # Defect Terminator
    violations_introduced = Column(Integer, nullable=False, default=0)
    violations_resolved = Column(Integer, nullable=False, default=0)
    defect_terminator_score = Column(Integer, nullable=False, default=0)
    defect_terminator_rank = Column(Integer, nullable=False, default=UNRANKED)

    # Code Rock
    bugs_introduced = Column(Integer, nullable=False, default=0)
    bugs_per_kloc = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    code_rock_score = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    code_rock_rank = Column(Integer, nullable=False, default=UNRANKED)

    # Code Shield
    vulnerabilities_introduced = Column(Integer, nullable=False, default=0)
    vulnerabilities_per_kloc = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    code_shield_score = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    code_shield_rank = Column(Integer, nullable=False, default=UNRANKED)

    # Craftsman
    code_smells_introduced = Column(Integer, nullable=False, default=0)
    code_smells_per_kloc = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    craftsman_score = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    craftsman_rank = Column(Integer, nullable=False, default=UNRANKED)

    # Climber
    climber_score = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    climber_rank = Column(Integer, nullable=False, default=UNRANKED)

    total_kloc = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    developer = relationship("Developer")

    __table_args__ = (
        UniqueConstraint("developer_id", "ranking_period", name="uk_individual_ranking_period"),
        Index("idx_individual_defect_terminator", "ranking_period", "defect_terminator_rank"),
    )

    def __repr__(self):
        return f"<IndividualRanking {self.developer_id}:{self.ranking_period}>"


class ProjectRanking(Base):
    """Project ranking for one month mapped to `project_rankings`."""

    __tablename__ = "project_rankings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    ranking_period = Column(Date, nullable=False, index=True)

    violations_introduced = Column(Integer, nullable=False, default=0)
    violations_resolved = Column(Integer, nullable=False, default=0)
    defect_terminator_score = Column(Integer, nullable=False, default=0)
    defect_terminator_rank = Column(Integer, nullable=False, default=UNRANKED)

    bugs_introduced = Column(Integer, nullable=False, default=0)
    bugs_per_kloc = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    code_rock_score = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    code_rock_rank = Column(Integer, nullable=False, default=UNRANKED)

    vulnerabilities_introduced = Column(Integer, nullable=False, default=0)
    vulnerabilities_per_kloc = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    code_shield_score = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    code_shield_rank = Column(Integer, nullable=False, default=UNRANKED)

    code_smells_introduced = Column(Integer, nullable=False, default=0)
    code_smells_per_kloc = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    craftsman_score = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    craftsman_rank = Column(Integer, nullable=False, default=UNRANKED)

    total_kloc = Column(Numeric(10, 2), nullable=False, default=Decimal("0"))

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = relationship("Project")

    __table_args__ = (
        UniqueConstraint("project_id", "ranking_period", name="uk_project_ranking_period"),
        Index("idx_project_defect_terminator", "ranking_period", "defect_terminator_rank"),
    )

    def __repr__(self):
        return f"<ProjectRanking {self.project_id}:{self.ranking_period}>"
