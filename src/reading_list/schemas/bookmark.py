"""Pydantic schemas for bookmark records, user input and change events."""
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from reading_list.schemas.validators import (
    validate_notes_length,
    validate_tags,
    validate_title,
    validate_url,
)

BookmarkStatus = Literal["unread", "reading", "completed"]
ChangeKind = Literal["insert", "update", "delete"]

# Order used by the status button: unread -> reading -> completed -> unread
STATUS_CYCLE: tuple[BookmarkStatus, ...] = ("unread", "reading", "completed")


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def next_status(status: BookmarkStatus) -> BookmarkStatus:
    """Return the status that follows `status` in the reading cycle."""
    index = STATUS_CYCLE.index(status)
    return STATUS_CYCLE[(index + 1) % len(STATUS_CYCLE)]


def _coerce_id(value: Any) -> Any:
    """Server ids may arrive as ints or UUIDs; records always carry strings."""
    if value is None or isinstance(value, str):
        return value
    return str(value)


class Bookmark(BaseModel):
    """
    A bookmark record as held in the local snapshot.

    Records are immutable; every store mutation produces a new instance. The
    `completed_at` timestamp is kept consistent with `status` on construction:
    a completed record without a timestamp is stamped with the current time and
    any other status clears it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    owner: str = Field(validation_alias=AliasChoices("owner", "user_id"))
    url: str = Field(min_length=1)
    title: str
    favicon_url: str | None = None
    notes: str | None = None
    status: BookmarkStatus = "unread"
    priority: int = 0
    tags: tuple[str, ...] = ()
    created_at: datetime
    completed_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def sync_completed_at(cls, data: Any) -> Any:
        """Keep completed_at present exactly when status is completed."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("status") is None:
            data["status"] = "unread"
        if data["status"] == "completed":
            if data.get("completed_at") is None:
                data["completed_at"] = utc_now()
        else:
            data["completed_at"] = None
        if not data.get("title"):
            data["title"] = data.get("url")
        return data

    @field_validator("id", "owner", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        """Coerce numeric or UUID identifiers to strings."""
        return _coerce_id(v)

    @field_validator("tags", mode="before")
    @classmethod
    def dedupe_tags(cls, v: Any) -> Any:
        """Drop exact duplicate tags, keeping first occurrence order."""
        if v is None:
            return ()
        return tuple(dict.fromkeys(v))

    @property
    def is_pinned(self) -> bool:
        """Pinned records always sort first."""
        return self.priority == 1


class BookmarkCreate(BaseModel):
    """Schema for user input when adding a bookmark."""

    model_config = ConfigDict(extra="forbid")

    url: str
    title: str | None = None
    notes: str | None = None
    tags: list[str] = []

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        """Only http(s) URLs are accepted."""
        return validate_url(v)

    @field_validator("title", mode="before")
    @classmethod
    def blank_title_to_none(cls, v: Any) -> Any:
        """A blank title means "derive one from the page"."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str | None) -> str | None:
        """Validate title length."""
        return validate_title(v)

    @field_validator("notes")
    @classmethod
    def check_notes(cls, v: str | None) -> str | None:
        """Empty notes are stored as absent."""
        if v is not None and not v.strip():
            return None
        return validate_notes_length(v)

    @field_validator("tags", mode="before")
    @classmethod
    def check_tags(cls, v: list[str] | None) -> list[str]:
        """Validate tags and drop duplicates."""
        if v is None:
            return []
        return validate_tags(v)


class BookmarkUpdate(BaseModel):
    """
    Schema for a partial update to an existing bookmark.

    Only fields explicitly provided are applied. Unknown fields are rejected
    rather than merged into the record. Identity and timestamps (`id`, `owner`,
    `created_at`, `completed_at`) are not user-editable; `completed_at` follows
    `status`.
    """

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    title: str | None = None
    favicon_url: str | None = None
    notes: str | None = None
    status: BookmarkStatus | None = None
    priority: Literal[0, 1] | None = None
    tags: list[str] | None = None

    @field_validator("url", "title", "status", "priority", "tags", mode="before")
    @classmethod
    def reject_null(cls, v: Any, info: ValidationInfo) -> Any:
        """Required record fields can be changed but not cleared."""
        if v is None:
            raise ValueError(f"{info.field_name} cannot be cleared")
        return v

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        """Only http(s) URLs are accepted."""
        return validate_url(v)

    @field_validator("title")
    @classmethod
    def check_title(cls, v: str) -> str:
        """Validate title is non-blank and within length."""
        return validate_title(v)

    @field_validator("notes")
    @classmethod
    def check_notes(cls, v: str | None) -> str | None:
        """Validate notes length."""
        return validate_notes_length(v)

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v: list[str]) -> list[str]:
        """Validate tags and drop duplicates."""
        return validate_tags(v)

    def changes(self) -> dict[str, Any]:
        """Return only the fields the caller explicitly set."""
        return self.model_dump(exclude_unset=True)


class ChangeEvent(BaseModel):
    """
    A push notification from the change feed.

    Insert and update events carry the full record. Delete events may carry
    either the deleted record or only its id in `deleted_id`.
    """

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    record: Bookmark | None = None
    deleted_id: str | None = None

    @field_validator("deleted_id", mode="before")
    @classmethod
    def coerce_deleted_id(cls, v: Any) -> Any:
        """Coerce numeric or UUID identifiers to strings."""
        return _coerce_id(v)

    @model_validator(mode="after")
    def check_payload(self) -> "ChangeEvent":
        """Every event must identify the record it concerns."""
        if self.kind in ("insert", "update") and self.record is None:
            raise ValueError(f"{self.kind} event requires a record")
        if self.kind == "delete" and self.record is None and self.deleted_id is None:
            raise ValueError("delete event requires a record or deleted_id")
        return self

    @property
    def record_id(self) -> str:
        """Id of the record the event concerns."""
        if self.record is not None:
            return self.record.id
        return self.deleted_id

