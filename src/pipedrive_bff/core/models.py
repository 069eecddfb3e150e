"""Pydantic data models shared by the dispatcher and the core helpers.

Upstream records are kept as plain dicts while they flow through the
dispatcher; these models give them a typed shape where logic depends on
specific fields (scoring, stage lookup, pagination requests).
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DealStatus(str, Enum):
    """Deal status filter values accepted by the Pipedrive deals endpoint."""

    OPEN = "open"
    WON = "won"
    LOST = "lost"
    DELETED = "deleted"
    ALL_NOT_DELETED = "all_not_deleted"


COUNTED_STATUSES = (DealStatus.OPEN, DealStatus.WON, DealStatus.LOST)


def parse_pipedrive_datetime(value: Any) -> Optional[datetime]:
    """Parse a Pipedrive timestamp ('2024-03-01 14:05:00', UTC) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Deal(BaseModel):
    """A CRM sales opportunity as returned by Pipedrive."""

    model_config = ConfigDict(extra="allow")

    id: int
    title: str = ""
    value: float = 0.0
    currency: Optional[str] = None
    status: Optional[str] = None
    pipeline_id: Optional[int] = None
    stage_id: Optional[int] = None
    user_id: Any = None
    add_time: Optional[datetime] = None
    next_activity_date: Optional[date] = None
    next_activity_time: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> float:
        if v in (None, ""):
            return 0.0
        try:
            return float(v)
        except (TypeError, ValueError):
            return 0.0

    @field_validator("add_time", mode="before")
    @classmethod
    def parse_add_time(cls, v: Any) -> Optional[datetime]:
        return parse_pipedrive_datetime(v)

    @field_validator("next_activity_date", mode="before")
    @classmethod
    def parse_next_activity_date(cls, v: Any) -> Optional[date]:
        if not v:
            return None
        if isinstance(v, date):
            return v
        try:
            return date.fromisoformat(str(v)[:10])
        except ValueError:
            return None

    @property
    def has_upcoming_activity(self) -> bool:
        return self.next_activity_date is not None or bool(self.next_activity_time)


class Stage(BaseModel):
    """A step within a sales pipeline."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    pipeline_id: Optional[int] = None
    order_nr: Optional[int] = None
    active_flag: bool = True
    pipeline_name: Optional[str] = None


class StageInfo(BaseModel):
    """Lookup value used to enrich deals with readable stage data."""

    name: str
    pipeline_name: Optional[str] = None


class Pipeline(BaseModel):
    """A named sequence of stages."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    url_title: Optional[str] = None
    active: bool = True
    order_nr: Optional[int] = None


class PageFetchRequest(BaseModel):
    """Parameters of a single upstream deals page request."""

    status: str
    pipeline_id: Optional[int] = None
    start: int = Field(ge=0)
    limit: int = Field(gt=0)

    def query(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "status": self.status,
            "start": self.start,
            "limit": self.limit,
        }
        if self.pipeline_id is not None:
            params["pipeline_id"] = self.pipeline_id
        return params


class CrmResponse(BaseModel):
    """Normalized result of one upstream call."""

    status: Literal["success", "error"]
    data: Any = None
    message: Optional[str] = None
    additional_data: Optional[dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def items(self) -> list[dict[str, Any]]:
        """Return `data` as a list; Pipedrive sends null for empty collections."""
        if self.data is None:
            return []
        if isinstance(self.data, list):
            return self.data
        return [self.data]
