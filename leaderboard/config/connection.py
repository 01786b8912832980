"""Per-run SonarQube connection configuration."""

from __future__ import annotations

from dataclasses import dataclass, replace
import logging
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from leaderboard.config.settings import Settings
from leaderboard.models.sonar_config import SonarConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SonarConnectionConfig:
    """
    Immutable connection settings handed to the SonarQube client

    Built once per run so every request in that run talks to the same server
    with the same credentials.
    """

    base_url: Optional[str]
    token: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    page_size: int = 500
    max_pages: int = 100
    timeout_seconds: float = 30.0
    max_retries: int = 3

    @property
    def has_credentials(self) -> bool:
        return bool(self.token) or bool(self.username)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SonarConnectionConfig":
        return cls(
            base_url=(settings.SONAR_BASE_URL or "").strip() or None,
            token=settings.SONAR_TOKEN or None,
            username=settings.SONAR_USERNAME or None,
            password=settings.SONAR_PASSWORD or None,
            page_size=settings.SONAR_PAGE_SIZE,
            max_pages=settings.SONAR_MAX_PAGES,
            timeout_seconds=settings.SONAR_TIMEOUT_SECONDS,
            max_retries=settings.SONAR_MAX_RETRIES,
        )

    @classmethod
    def resolve(cls, settings: Settings, session: Any | None = None) -> "SonarConnectionConfig":
        """Static settings, overridden by the newest `sonar_config` row when present."""
        config = cls.from_settings(settings)
        if session is None:
            return config

        try:
            row = (
                session.query(SonarConfig)
                .order_by(SonarConfig.updated_at.desc(), SonarConfig.id.desc())
                .first()
            )
        except SQLAlchemyError as exc:
            session.rollback()
            logger.debug("No database SonarQube config available", extra={"error": str(exc)})
            return config

        if row is None:
            return config

        overrides: dict[str, Any] = {}
        if row.base_url and row.base_url.strip():
            overrides["base_url"] = row.base_url.strip()
        if row.api_token and row.api_token.strip():
            overrides["token"] = row.api_token.strip()
        return replace(config, **overrides) if overrides else config
