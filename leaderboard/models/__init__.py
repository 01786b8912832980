"""Database models"""

from leaderboard.models.project import Project
from leaderboard.models.developer import Developer
from leaderboard.models.issue import Issue, IssueStatus, IssueType, Severity
from leaderboard.models.developer_metrics_daily import DeveloperMetricsDaily
from leaderboard.models.project_metrics_daily import ProjectMetricsDaily
from leaderboard.models.ranking import UNRANKED, IndividualRanking, ProjectRanking
from leaderboard.models.monthly_champion import ChampionCategory, EntityType, MonthlyChampion
from leaderboard.models.sync_log import SyncLog, SyncStatus, SyncType
from leaderboard.models.sonar_config import SonarConfig

__all__ = [
    "Project",
    "Developer",
    "Issue",
    "IssueStatus",
    "IssueType",
    "Severity",
    "DeveloperMetricsDaily",
    "ProjectMetricsDaily",
    "UNRANKED",
    "IndividualRanking",
    "ProjectRanking",
    "ChampionCategory",
    "EntityType",
    "MonthlyChampion",
    "SyncLog",
    "SyncStatus",
    "SyncType",
    "SonarConfig",
]
