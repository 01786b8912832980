"""SonarQube crawler primitives."""

from leaderboard.crawlers.sonar.client import SonarQubeClient, sanitize_for_log
from leaderboard.crawlers.sonar.contracts import (
    FetchResult,
    FetchState,
    MeasuresContract,
    Page,
    PageContract,
    SonarConfigurationError,
    SonarConnectionError,
    SonarError,
    SonarUser,
)

__all__ = [
    "SonarQubeClient",
    "sanitize_for_log",
    "FetchResult",
    "FetchState",
    "MeasuresContract",
    "Page",
    "PageContract",
    "SonarConfigurationError",
    "SonarConnectionError",
    "SonarError",
    "SonarUser",
]
