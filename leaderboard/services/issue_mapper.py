"""Map SonarQube issue payloads onto Issue rows."""

from __future__ import annotations

from enum import Enum
import logging
from typing import Any, Optional, TypeVar

from leaderboard.models import Developer, Issue, IssueStatus, IssueType, Project, Severity
from leaderboard.utils.helpers import parse_effort, parse_int, parse_sonar_datetime

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


class IssuePayloadError(ValueError):
    """Payload cannot be stored at all (e.g. no issue key)."""


def _parse_enum(enum_cls: type[E], raw: Any, fallback: E, field_name: str) -> E:
    if raw is None or str(raw).strip() == "":
        return fallback
    try:
        return enum_cls(str(raw).strip().upper())
    except ValueError:
        logger.warning(
            "Unknown issue field value, using fallback",
            extra={"field": field_name, "value": raw, "fallback": fallback.value},
        )
        return fallback


def parse_severity(raw: Any) -> Severity:
    return _parse_enum(Severity, raw, Severity.MAJOR, "severity")


def parse_issue_type(raw: Any) -> IssueType:
    return _parse_enum(IssueType, raw, IssueType.CODE_SMELL, "type")


def parse_status(raw: Any) -> IssueStatus:
    return _parse_enum(IssueStatus, raw, IssueStatus.OPEN, "status")


def issue_key_of(payload: dict[str, Any]) -> str:
    key = str(payload.get("key") or "").strip()
    if not key:
        raise IssuePayloadError("Issue payload has no key")
    return key


def author_key_of(payload: dict[str, Any]) -> Optional[str]:
    author = str(payload.get("author") or "").strip()
    return author or None


def apply_issue_payload(
    issue: Issue,
    payload: dict[str, Any],
    *,
    project: Project,
    developer: Optional[Developer],
) -> Issue:
    """
    Overwrite every mutable field of an issue from a remote payload

    Fields missing from the payload are cleared rather than kept, so the local
    row always matches the latest fetch.

    Args:
        issue: New or existing row
        payload: One element of `/api/issues/search` `issues`
        project: Owning project
        developer: Author, None for anonymous or system issues

    Returns:
        The same issue instance
    """
    issue.issue_key = issue_key_of(payload)
    issue.project = project
    issue.project_id = project.id
    issue.developer = developer
    issue.developer_id = developer.id if developer is not None else None

    issue.rule_key = payload.get("rule")
    issue.severity = parse_severity(payload.get("severity")).value
    issue.issue_type = parse_issue_type(payload.get("type")).value
    issue.status = parse_status(payload.get("status")).value

    issue.component_path = payload.get("component")
    line = payload.get("line")
    issue.line_number = parse_int(line, default=0) if line is not None else None
    issue.message = payload.get("message")
    issue.effort_minutes = parse_effort(payload.get("effort") or payload.get("debt"))

    issue.created_date = parse_sonar_datetime(payload.get("creationDate"))
    issue.updated_date = parse_sonar_datetime(payload.get("updateDate"))
    issue.resolved_date = parse_sonar_datetime(payload.get("closeDate"))
    return issue
