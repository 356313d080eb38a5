"""Typed write operations for the offline queue."""

import time
import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel


OperationKind = Literal["create", "update", "delete"]

USERS_COLLECTION = "users"
EVENTS_COLLECTION = "events"
NOTIFICATIONS_COLLECTION = "notifications"


class Payload(BaseModel):
    """Base for queued document payloads. ``id`` is the target document."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    id: str = Field(min_length=1)

    def to_document(self) -> dict[str, Any]:
        """Document fields to write, only those explicitly set."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


class DocumentRef(Payload):
    """Identity of a document to delete."""


# ============== USERS ==============

class UserAddress(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    street: str
    city: str
    postal_code: str


class UserProfileChange(Payload):
    uid: str | None = None
    display_name: str | None = None
    email: str | None = None
    phone_number: str | None = None
    whatsapp_number: str | None = None
    bio: str | None = None
    interests: list[str] | None = None
    dietary_preferences: list[str] | None = None
    profile_image: str | None = None
    address: UserAddress | None = None
    privacy: dict[str, bool] | None = None
    default_availability: dict[str, bool] | None = None
    role: Literal["admin", "member"] | None = None
    status: Literal["pending", "approved", "suspended"] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ============== EVENTS ==============

class EventLocation(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    address: str
    coordinates: dict[str, float] | None = None


class EventChange(Payload):
    title: str | None = None
    description: str | None = None
    type: Literal["birthday", "potluck", "farewell", "celebration", "other"] | None = None
    visibility: Literal["public", "private"] | None = None
    organizer: str | None = None
    date_time: datetime | None = None
    duration: int | None = Field(default=None, ge=0)
    location: EventLocation | None = None
    capacity: int | None = Field(default=None, ge=0)
    cover_image: str | None = None
    images: list[str] | None = None
    bring_list: dict[str, Any] | None = None
    attendees: dict[str, dict[str, Any]] | None = None
    waitlist: list[str] | None = None
    status: Literal["draft", "published", "cancelled", "completed"] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ============== NOTIFICATIONS ==============

class NotificationChange(Payload):
    recipient_id: str | None = None
    type: str | None = None
    title: str | None = None
    message: str | None = None
    event_id: str | None = None
    read: bool | None = None
    created_at: datetime | None = None


PAYLOAD_MODELS: dict[str, type[Payload]] = {
    USERS_COLLECTION: UserProfileChange,
    EVENTS_COLLECTION: EventChange,
    NOTIFICATIONS_COLLECTION: NotificationChange,
}


def payload_model(kind: str, collection: str) -> type[Payload]:
    """Payload class for an operation; raises ValueError for unknown collections."""
    if collection not in PAYLOAD_MODELS:
        raise ValueError(f"No payload shape for collection {collection!r}")
    if kind == "delete":
        return DocumentRef
    return PAYLOAD_MODELS[collection]


def generate_operation_id() -> str:
    """Millisecond timestamp plus a random suffix. Unique enough for one process."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


class QueuedOperation(BaseModel):
    """
    A pending write. Serialized with the keys
    ``id, type, collection, data, timestamp, retryCount``.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=generate_operation_id)
    kind: OperationKind = Field(alias="type")
    collection: str
    payload: Payload = Field(alias="data")
    enqueued_at: int = Field(default_factory=lambda: int(time.time() * 1000), alias="timestamp")
    retry_count: int = Field(default=0, ge=0, alias="retryCount")

    @field_validator("payload", mode="before")
    @classmethod
    def _parse_payload(cls, value: Any, info: ValidationInfo) -> Payload:
        kind = info.data.get("kind")
        collection = info.data.get("collection")
        if kind is None or collection is None:
            raise ValueError("payload requires a valid type and collection")

        model = payload_model(kind, collection)
        if isinstance(value, model):
            return value
        if isinstance(value, Payload):
            value = value.to_document()
        if not isinstance(value, dict):
            raise ValueError("payload must be a mapping")
        if kind == "delete":
            value = {"id": value.get("id")}
        return model.model_validate(value)

    @property
    def doc_id(self) -> str:
        return self.payload.id

    def to_storage(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "collection": self.collection,
            "data": self.payload.to_document(),
            "timestamp": self.enqueued_at,
            "retryCount": self.retry_count,
        }
