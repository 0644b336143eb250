"""
Canonical data model shared by every provider adapter.

Only these shapes cross the adapter boundary. Raw upstream payloads are
translated by the adapters and never leave them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# SESSION
# =============================================================================

class User(BaseModel):
    """Profile of the logged-in user."""
    model_config = ConfigDict(frozen=True)

    id: str = ""
    provider: str
    display_name: str = ""

    @classmethod
    def from_backend(cls, payload: dict, provider: Optional[str] = None) -> "User":
        """Build a User from the backend's user JSON (open_id/userid/name/provider)."""
        return cls(
            id=str(payload.get("userid") or payload.get("open_id") or payload.get("id") or ""),
            provider=str(payload.get("provider") or provider or ""),
            display_name=str(payload.get("name") or payload.get("display_name") or ""),
        )


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: int = 0
    user: User


# =============================================================================
# TEMPLATES
# =============================================================================

class FieldType(str, Enum):
    TEXT_RICH = "text-rich"
    NUMBER = "number"
    DROPDOWN = "dropdown"
    MULTI_SELECT = "multi-select"
    IMAGE = "image"
    ATTACHMENT = "attachment"
    ADDRESS = "address"
    DATETIME = "datetime"
    USER_PICKER = "user-picker"


class FieldOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    text: str


class CanonicalField(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    type: FieldType = FieldType.TEXT_RICH
    placeholder: str = ""
    options: Optional[list[FieldOption]] = None
    max_count: Optional[int] = None
    max_size_bytes: Optional[int] = None


class CanonicalTemplate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    fields: list[CanonicalField] = Field(default_factory=list)


# =============================================================================
# REPORTS
# =============================================================================

class ReportField(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: str = ""
    type: FieldType = FieldType.TEXT_RICH


class CanonicalReport(BaseModel):
    """Read-only snapshot of a submitted report."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    fields: list[ReportField] = Field(default_factory=list)


class ReportFilter(BaseModel):
    """
    Query for report listings.

    Every attribute is optional: an absent value means "no filter" for
    that dimension. Adapters pick the identifier their upstream is keyed by
    (DingTalk: template name, Feishu: rule id).
    """
    template_id: Optional[str] = None
    template_name: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    cursor: int = 0
    size: int = 20


class ReportSubmission(BaseModel):
    template_id: str
    template_name: str
    contents: list[ReportField] = Field(default_factory=list)


class SubmissionResult(BaseModel):
    report_id: str
    raw_status: Optional[str] = None


# =============================================================================
# HELPERS
# =============================================================================

def format_timestamp(seconds: Any) -> str:
    """Render a unix timestamp the way report titles show it (local time)."""
    try:
        return datetime.fromtimestamp(float(seconds)).strftime("%Y/%m/%d %H:%M:%S")
    except (TypeError, ValueError, OverflowError, OSError):
        return ""
