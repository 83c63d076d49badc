import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, Field, StringConstraints, field_validator

from workhive.db.models.dispute import Dispute

RequiredText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
OptionalText = Annotated[str, StringConstraints(strip_whitespace=True)]
ReasonText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=500)]
OptionalReasonText = Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]
# Matches the Numeric(14, 2) column
Amount = Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2, allow_inf_nan=False)]

# Form clients send these literals for "no value"
_BLANK_LITERALS = {"", "null", "undefined"}


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip() in _BLANK_LITERALS:
        return None
    return value


def _attachment_ref(item: Any) -> Any:
    # Clients may send {key, url} pairs from the upload step; keep only the reference
    if isinstance(item, dict):
        return item.get("url") or item.get("key")
    return item


class DisputeFields(BaseModel):
    project_id: uuid.UUID
    milestone_id: uuid.UUID | None = None
    payment_id: uuid.UUID | None = None
    reason: ReasonText
    description: RequiredText
    contested_amount: Amount | None = None
    suggested_resolution: OptionalText | None = None
    attachments: list[str] = Field(default_factory=list)

    @field_validator(
        "milestone_id", "payment_id", "contested_amount", "suggested_resolution", mode="before"
    )
    @classmethod
    def _coerce_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("attachments", mode="before")
    @classmethod
    def _coerce_attachments(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [ref for ref in (_attachment_ref(item) for item in value) if ref]
        return value


class DisputeInput(DisputeFields):
    """A raise-or-update submission as accepted by the lifecycle service."""

    raised_by_id: uuid.UUID


class DisputeUpdate(BaseModel):
    project_id: uuid.UUID | None = None
    milestone_id: uuid.UUID | None = None
    payment_id: uuid.UUID | None = None
    reason: OptionalReasonText | None = None
    description: OptionalText | None = None
    contested_amount: Amount | None = None
    suggested_resolution: OptionalText | None = None
    additional_notes: OptionalText | None = None
    attachments: list[str] | None = None

    @field_validator(
        "project_id",
        "milestone_id",
        "payment_id",
        "reason",
        "description",
        "contested_amount",
        "suggested_resolution",
        "additional_notes",
        mode="before",
    )
    @classmethod
    def _coerce_blank(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("attachments", mode="before")
    @classmethod
    def _coerce_attachments(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [ref for ref in (_attachment_ref(item) for item in value) if ref]
        return value


@dataclass
class UpsertResult:
    dispute: Dispute
    created: bool
    previous_milestone_id: uuid.UUID | None = None
    reopened: bool = False

    @property
    def milestone_changed(self) -> bool:
        return (
            self.dispute.milestone_id is not None
            and self.dispute.milestone_id != self.previous_milestone_id
        )


def format_timestamp(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d %H:%M UTC")


def annotate_attachments(description: str, refs: list[str], author: str, at: datetime) -> str:
    """Append one ``[Attachment: ...]`` line per reference to a description."""
    if not refs:
        return description
    lines = []
    for ref in refs:
        filename = ref.replace("\\", "/").rstrip("/").split("/")[-1] or "attachment"
        lines.append(f"[Attachment: {filename} uploaded by {author} on {format_timestamp(at)}]")
    return f"{description}\n\n" + "\n".join(lines)


def append_note(description: str, notes: str, author: str, at: datetime) -> str:
    return f"{description}\n\n---\n[Update by {author} on {format_timestamp(at)}]:\n{notes}"
