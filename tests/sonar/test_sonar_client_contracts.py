import base64
from datetime import datetime

import httpx
import pytest

from leaderboard.config.connection import SonarConnectionConfig
from leaderboard.crawlers.sonar.client import REDACTED, SonarQubeClient, sanitize_for_log
from leaderboard.crawlers.sonar.contracts import FetchState, SonarConfigurationError


def _config(**overrides) -> SonarConnectionConfig:
    values = {"base_url": "https://sonar.example.com", "token": "squ_secret", "page_size": 500, "max_retries": 2}
    values.update(overrides)
    return SonarConnectionConfig(**values)


def _client(handler, **overrides) -> SonarQubeClient:
    return SonarQubeClient(
        _config(**overrides),
        transport=httpx.MockTransport(handler),
        backoff_base_seconds=0.0,
    )


def _transport_from_sequence(responses: list[httpx.Response]):
    queue = responses.copy()
    requests: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if not queue:
            raise AssertionError("No more mock responses available")
        return queue.pop(0)

    return handler, requests


def _components(count: int) -> list[dict]:
    return [{"key": f"proj-{i}", "name": f"Project {i}"} for i in range(count)]


@pytest.mark.asyncio
async def test_short_project_page_ends_pagination() -> None:
    handler, requests = _transport_from_sequence(
        [httpx.Response(200, json={"paging": {"total": 9999}, "components": _components(137)})]
    )
    client = _client(handler)

    result = await client.list_projects(3)
    await client.aclose()

    assert result.state == FetchState.OK
    assert len(result.data.items) == 137
    assert result.data.has_more is False
    assert result.data.total == 9999
    assert requests[0].url.params["qualifiers"] == "TRK"
    assert requests[0].url.params["p"] == "3"
    assert requests[0].url.params["ps"] == "500"


@pytest.mark.asyncio
async def test_full_project_page_reports_more() -> None:
    handler, _ = _transport_from_sequence([httpx.Response(200, json={"components": _components(500)})])
    client = _client(handler)

    result = await client.list_projects(1)
    await client.aclose()

    assert result.is_ok
    assert result.data.has_more is True


@pytest.mark.asyncio
async def test_empty_issue_page_is_empty_contract() -> None:
    handler, requests = _transport_from_sequence([httpx.Response(200, json={"issues": []})])
    client = _client(handler)

    result = await client.list_issues("proj-1", created_after=datetime(2024, 1, 15, 10, 30), page=2)
    await client.aclose()

    assert result.state == FetchState.EMPTY
    assert result.data.items == []
    params = requests[0].url.params
    assert params["componentKeys"] == "proj-1"
    assert params["createdAfter"] == "2024-01-15T10:30:00+0000"
    assert "createdBefore" not in params


@pytest.mark.asyncio
async def test_server_error_is_retried_then_succeeds() -> None:
    handler, requests = _transport_from_sequence(
        [
            httpx.Response(503, headers={"retry-after": "0"}, text="maintenance"),
            httpx.Response(200, json={"status": "UP"}),
        ]
    )
    client = _client(handler)

    connected = await client.check_connection()
    await client.aclose()

    assert connected is True
    assert len(requests) == 2


@pytest.mark.asyncio
async def test_client_error_fails_without_retry() -> None:
    handler, requests = _transport_from_sequence([httpx.Response(404, text="not found")])
    client = _client(handler, max_retries=3)

    result = await client.list_issues("missing")
    await client.aclose()

    assert result.state == FetchState.FAILED
    assert result.status_code == 404
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_network_errors_exhaust_retries() -> None:
    attempts: list[int] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler, max_retries=3)

    connected = await client.check_connection()
    await client.aclose()

    assert connected is False
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_malformed_json_is_failed_contract() -> None:
    handler, _ = _transport_from_sequence(
        [httpx.Response(200, content=b"<html>oops</html>", headers={"content-type": "text/html"})]
    )
    client = _client(handler)

    result = await client.list_projects(1)
    await client.aclose()

    assert result.is_failed
    assert "Malformed JSON" in result.error


@pytest.mark.asyncio
async def test_measures_are_flattened_by_metric_key() -> None:
    handler, requests = _transport_from_sequence(
        [
            httpx.Response(
                200,
                json={
                    "component": {
                        "key": "proj-1",
                        "measures": [
                            {"metric": "ncloc", "value": "12500"},
                            {"metric": "bugs", "value": "4"},
                            {"metric": "sqale_rating", "value": "1.0"},
                        ],
                    }
                },
            )
        ]
    )
    client = _client(handler)

    result = await client.get_project_measures("proj-1")
    await client.aclose()

    assert result.is_ok
    assert result.data == {"ncloc": "12500", "bugs": "4", "sqale_rating": "1.0"}
    assert "ncloc" in requests[0].url.params["metricKeys"].split(",")


@pytest.mark.asyncio
async def test_resolve_user_requires_exact_case_insensitive_login() -> None:
    handler, _ = _transport_from_sequence(
        [
            httpx.Response(
                200,
                json={
                    "users": [
                        {"login": "john.doe2", "name": "Other John"},
                        {"login": "John.Doe", "name": "John D.", "email": "john@example.com"},
                    ]
                },
            ),
            httpx.Response(200, json={"users": [{"login": "jane.doe.admin", "name": "Jane Admin"}]}),
        ]
    )
    client = _client(handler)

    exact = await client.resolve_user("john.doe")
    partial = await client.resolve_user("jane.doe")
    await client.aclose()

    assert exact is not None
    assert exact.display_name == "John D."
    assert exact.email == "john@example.com"
    assert partial is None


@pytest.mark.asyncio
async def test_token_is_sent_as_basic_auth_username() -> None:
    handler, requests = _transport_from_sequence([httpx.Response(200, json={"status": "UP"})])
    client = _client(handler)

    await client.check_connection()
    await client.aclose()

    header = requests[0].headers["authorization"]
    assert header.startswith("Basic ")
    assert base64.b64decode(header.split(" ", 1)[1]).decode() == "squ_secret:"


def test_missing_credentials_is_configuration_error() -> None:
    with pytest.raises(SonarConfigurationError):
        SonarQubeClient(_config(token=None, username=None))

    with pytest.raises(SonarConfigurationError):
        SonarQubeClient(_config(base_url=None))


@pytest.mark.asyncio
async def test_failed_request_error_is_redacted() -> None:
    handler, _ = _transport_from_sequence([httpx.Response(401, text="rejected token=squ_secret for user")])
    client = _client(handler)

    result = await client.list_projects(1)
    await client.aclose()

    assert result.is_failed
    assert "squ_secret" not in result.error
    assert REDACTED in result.error


def test_sanitize_for_log_masks_nested_credentials() -> None:
    payload = {
        "url": "https://sonar.example.com/api?token=abc123&p=1",
        "headers": {"Authorization": "Basic c3F1Og=="},
        "nested": [{"password": "hunter2"}, "Bearer abc.def"],
    }

    sanitized = sanitize_for_log(payload)

    assert sanitized["url"] == f"https://sonar.example.com/api?token={REDACTED}&p=1"
    assert sanitized["headers"]["Authorization"] == REDACTED
    assert sanitized["nested"][0]["password"] == REDACTED
    assert sanitized["nested"][1] == f"Bearer {REDACTED}"
