"""Typed contracts for SonarQube client responses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar


T = TypeVar("T")


class SonarError(Exception):
    """Base class for SonarQube integration errors."""


class SonarConnectionError(SonarError):
    """SonarQube cannot be reached at all; fatal for a sync run."""


class SonarConfigurationError(SonarError):
    """Base URL or credentials are missing; fatal for a sync run."""


class FetchState(str, Enum):
    """Normalized response state for downstream sync stages."""

    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(slots=True)
class FetchResult(Generic[T]):
    """Container that separates payload from fetch semantics."""

    state: FetchState
    data: Optional[T] = None
    status_code: Optional[int] = None
    error: Optional[str] = None

    @property
    def is_ok(self) -> bool:
        return self.state == FetchState.OK

    @property
    def is_empty(self) -> bool:
        return self.state == FetchState.EMPTY

    @property
    def is_failed(self) -> bool:
        return self.state == FetchState.FAILED


@dataclass(slots=True)
class Page:
    """One page of a paginated search endpoint."""

    items: list[dict[str, Any]] = field(default_factory=list)
    has_more: bool = False
    total: Optional[int] = None


@dataclass(slots=True)
class SonarUser:
    """User resolved from `/api/users/search`."""

    login: str
    display_name: Optional[str] = None
    email: Optional[str] = None


PageContract = FetchResult[Page]
MeasuresContract = FetchResult[dict[str, str]]
