"""Async SonarQube Web API client with retry and log redaction."""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging
import random
import re
from typing import Any, Optional

import httpx

from leaderboard.config.connection import SonarConnectionConfig
from leaderboard.crawlers.sonar.contracts import (
    FetchResult,
    FetchState,
    MeasuresContract,
    Page,
    PageContract,
    SonarConfigurationError,
    SonarUser,
)
from leaderboard.utils.helpers import format_sonar_datetime

logger = logging.getLogger(__name__)

MEASURE_KEYS = (
    "ncloc",
    "bugs",
    "vulnerabilities",
    "code_smells",
    "reliability_rating",
    "security_rating",
    "sqale_rating",
)

REDACTED = "***REDACTED***"
_SENSITIVE_KEYS = re.compile(r"(token|password|passwd|secret|authorization|api[_-]?key|credential|session)", re.I)
_SENSITIVE_INLINE = re.compile(
    r"((?:access_)?token|password|api[_-]?key|secret)=([^&\s]+)|((?:Bearer|Basic)\s+)([A-Za-z0-9._~+/=-]+)",
    re.I,
)
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


def sanitize_for_log(value: Any, key: str | None = None) -> Any:
    """Mask credentials in strings, mappings and sequences before they reach a log record."""
    if key is not None and _SENSITIVE_KEYS.search(key):
        return REDACTED
    if isinstance(value, dict):
        return {k: sanitize_for_log(v, key=str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_for_log(item) for item in value]
    if isinstance(value, str):
        return _SENSITIVE_INLINE.sub(_mask_inline, value)
    return value


def sanitize_log_extra(**fields: Any) -> dict[str, Any]:
    return {k: sanitize_for_log(v, key=k) for k, v in fields.items()}


def _mask_inline(match: re.Match[str]) -> str:
    if match.group(1):
        return f"{match.group(1)}={REDACTED}"
    return f"{match.group(3)}{REDACTED}"


class SonarQubeClient:
    """
    Thin async wrapper over the SonarQube Web API

    Every call returns a FetchResult instead of raising, so callers decide
    whether a failure ends a pagination loop or the whole run.
    """

    def __init__(
        self,
        config: SonarConnectionConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        backoff_base_seconds: float = 0.5,
        backoff_max_seconds: float = 10.0,
    ) -> None:
        if not config.base_url:
            raise SonarConfigurationError("SonarQube base URL is not configured")
        if not config.has_credentials:
            raise SonarConfigurationError(
                "SonarQube credentials not configured. Set SONAR_TOKEN or SONAR_USERNAME/SONAR_PASSWORD."
            )

        self.config = config
        self._max_retries = max(int(config.max_retries), 1)
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds

        if config.token:
            auth = httpx.BasicAuth(config.token, "")
        else:
            auth = httpx.BasicAuth(config.username or "", config.password or "")

        self._client = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            auth=auth,
            headers={"Accept": "application/json"},
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "SonarQubeClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def check_connection(self) -> bool:
        result = await self._request("/api/system/status")
        connected = result.is_ok
        logger.info("SonarQube connection test", extra={"connected": connected})
        return connected

    async def list_projects(self, page: int, page_size: int | None = None) -> PageContract:
        size = page_size or self.config.page_size
        result = await self._request(
            "/api/components/search",
            params={"qualifiers": "TRK", "p": page, "ps": size},
        )
        return self._to_page(result, "components", size)

    async def list_issues(
        self,
        project_key: str,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> PageContract:
        size = page_size or self.config.page_size
        params: dict[str, Any] = {"componentKeys": project_key, "p": page, "ps": size}
        if created_after is not None:
            params["createdAfter"] = format_sonar_datetime(created_after)
        if created_before is not None:
            params["createdBefore"] = format_sonar_datetime(created_before)

        result = await self._request("/api/issues/search", params=params)
        return self._to_page(result, "issues", size)

    async def get_project_measures(self, project_key: str) -> MeasuresContract:
        result = await self._request(
            "/api/measures/component",
            params={"component": project_key, "metricKeys": ",".join(MEASURE_KEYS)},
        )
        if not result.is_ok:
            return FetchResult(state=result.state, status_code=result.status_code, error=result.error)

        component = (result.data or {}).get("component") or {}
        measures = {
            str(measure.get("metric")): str(measure.get("value"))
            for measure in component.get("measures") or []
            if measure.get("metric") and measure.get("value") is not None
        }
        state = FetchState.OK if measures else FetchState.EMPTY
        return FetchResult(state=state, data=measures, status_code=result.status_code)

    async def resolve_user(self, login: str) -> Optional[SonarUser]:
        """Find a user by exact, case-insensitive login; partial matches are ignored."""
        if not login or not login.strip():
            return None

        result = await self._request("/api/users/search", params={"q": login})
        if not result.is_ok:
            return None

        for user in (result.data or {}).get("users") or []:
            user_login = user.get("login")
            if user_login and user_login.lower() == login.lower():
                name = (user.get("name") or "").strip() or None
                return SonarUser(login=user_login, display_name=name, email=user.get("email") or None)
        return None

    @staticmethod
    def _to_page(result: FetchResult[Any], items_key: str, page_size: int) -> PageContract:
        if not result.is_ok:
            return FetchResult(state=result.state, status_code=result.status_code, error=result.error)

        payload = result.data or {}
        items = [item for item in payload.get(items_key) or [] if isinstance(item, dict)]
        paging = payload.get("paging") or {}
        total = paging.get("total")
        page = Page(
            items=items,
            # A short page ends pagination; paging.total is informational only
            has_more=len(items) >= page_size,
            total=int(total) if isinstance(total, int) else None,
        )
        state = FetchState.OK if items else FetchState.EMPTY
        return FetchResult(state=state, data=page, status_code=result.status_code)

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> FetchResult[Any]:
        last_status: int | None = None
        last_error: str | None = None

        for attempt in range(1, self._max_retries + 1):
            retry_response: httpx.Response | None = None
            try:
                response = await self._client.get(path, params=params)
            except httpx.HTTPError as exc:
                last_status = None
                last_error = f"{type(exc).__name__}: {exc}"
            else:
                if response.status_code < 400:
                    try:
                        data = response.json() if response.content else {}
                    except ValueError as exc:
                        last_error = f"Malformed JSON: {exc}"
                        last_status = response.status_code
                        break
                    return FetchResult(state=FetchState.OK, data=data, status_code=response.status_code)

                retry_response = response
                last_status = response.status_code
                last_error = f"HTTP {response.status_code}: {response.text[:200]}"
                if response.status_code not in _RETRYABLE_STATUS:
                    break

            if attempt < self._max_retries:
                await asyncio.sleep(self._retry_delay_seconds(attempt, retry_response))

        logger.warning(
            "SonarQube request failed",
            extra=sanitize_log_extra(path=path, params=params or {}, status_code=last_status, error=last_error),
        )
        return FetchResult(
            state=FetchState.FAILED,
            status_code=last_status,
            error=sanitize_for_log(last_error or "unknown error"),
        )

    def _retry_delay_seconds(self, attempt: int, response: httpx.Response | None) -> float:
        """Honour Retry-After, otherwise exponential backoff with +/-25% jitter."""
        if response is not None:
            retry_after = response.headers.get("retry-after")
            if retry_after is not None:
                try:
                    return min(max(float(retry_after), 0.0), self._backoff_max)
                except ValueError:
                    pass
        base = min(self._backoff_base * (2 ** max(attempt - 1, 0)), self._backoff_max)
        return base * random.uniform(0.75, 1.25)
