from datetime import datetime

from leaderboard.config.connection import SonarConnectionConfig
from leaderboard.config.settings import Settings
from leaderboard.models import SonarConfig


def _settings(**overrides) -> Settings:
    values = {
        "SONAR_BASE_URL": " https://sonar.example.com ",
        "SONAR_TOKEN": "env-token",
        "SONAR_PAGE_SIZE": 100,
    }
    values.update(overrides)
    return Settings(**values)


def test_settings_are_used_without_a_database_row(db_session) -> None:
    config = SonarConnectionConfig.resolve(_settings(), db_session)

    assert config.base_url == "https://sonar.example.com"
    assert config.token == "env-token"
    assert config.page_size == 100
    assert config.has_credentials is True


def test_newest_database_row_overrides_url_and_token(db_session) -> None:
    db_session.add_all(
        [
            SonarConfig(base_url="https://old.example.com", api_token="old", updated_at=datetime(2024, 1, 1)),
            SonarConfig(base_url="https://new.example.com/", api_token=" db-token ", updated_at=datetime(2024, 2, 1)),
        ]
    )
    db_session.commit()

    config = SonarConnectionConfig.resolve(_settings(), db_session)

    assert config.base_url == "https://new.example.com/"
    assert config.token == "db-token"
    assert config.page_size == 100


def test_blank_database_token_keeps_environment_token(db_session) -> None:
    db_session.add(SonarConfig(base_url="https://db.example.com", api_token="  "))
    db_session.commit()

    config = SonarConnectionConfig.resolve(_settings(), db_session)

    assert config.base_url == "https://db.example.com"
    assert config.token == "env-token"


def test_missing_credentials() -> None:
    config = SonarConnectionConfig.resolve(_settings(SONAR_BASE_URL=None, SONAR_TOKEN=None))

    assert config.base_url is None
    assert config.has_credentials is False
