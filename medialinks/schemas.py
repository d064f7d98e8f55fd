"""
Pydantic schemas for request validation, stored records and responses.

This module contains:
- Request models for incoming payload validation
- Record models for the JSON documents kept in the store
- Response models for API responses
"""

import logging
from typing import Any, ClassVar, Optional, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    StrictBool,
    StrictStr,
    ValidationError as PydanticValidationError,
    computed_field,
    field_validator,
)

from medialinks.errors import ValidationError
from medialinks.storage import StorageError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


# =============================================================================
# Input Helpers
# =============================================================================

def parse_payload(model: type[M], payload: Any, message: str) -> M:
    """
    Validate a decoded JSON payload against a request model.

    Raises:
        ValidationError: with the given message if the payload does not fit
    """
    try:
        return model.model_validate(payload if isinstance(payload, dict) else {})
    except PydanticValidationError as e:
        logger.debug(f"{model.__name__} rejected: {e.error_count()} error(s)")
        raise ValidationError(message) from e


def load_record(model: type[M], record: Any) -> M:
    """
    Build a record model from a stored document.

    Raises:
        StorageError: if the stored document does not fit the model
    """
    try:
        return model.model_validate(record)
    except PydanticValidationError as e:
        logger.error(f"Stored {model.__name__} document is malformed: {e.error_count()} error(s)")
        raise StorageError(f"Malformed {model.__name__} record") from e


def clean_phone(value: Any) -> Optional[str]:
    """Return the trimmed phone number if it is a 10-character string."""
    if isinstance(value, str) and len(value.strip()) == 10:
        return value.strip()
    return None


def clean_record_id(value: Any, length: int) -> Optional[str]:
    """Return the trimmed id if it is a string of the expected length."""
    if isinstance(value, str) and len(value.strip()) == length:
        return value.strip()
    return None


def _blank_to_none(v: Any) -> Optional[str]:
    # Optional update fields that are not non-empty strings count as absent
    if isinstance(v, str) and v.strip():
        return v.strip()
    return None


# =============================================================================
# Pydantic Request Models
# =============================================================================

class AccountCreateRequest(BaseModel):
    """
    Payload for POST /users.

    Validates:
    - firstName/lastName/password: non-empty strings after trimming
    - phone: exactly 10 characters after trimming
    - tosAgreement: strict boolean that must be true
    """
    first_name: StrictStr = Field(..., min_length=1, validation_alias=AliasChoices("firstName", "first_name"))
    last_name: StrictStr = Field(..., min_length=1, validation_alias=AliasChoices("lastName", "last_name"))
    phone: StrictStr = Field(..., min_length=10, max_length=10)
    password: StrictStr = Field(..., min_length=1, validation_alias=AliasChoices("password", "secret"))
    tos_agreement: StrictBool = Field(..., validation_alias=AliasChoices("tosAgreement", "tos"))

    model_config = {"str_strip_whitespace": True}

    @field_validator("tos_agreement")
    @classmethod
    def validate_tos_accepted(cls, v: bool) -> bool:
        if not v:
            raise ValueError("terms of service must be accepted")
        return v


class AccountUpdateRequest(BaseModel):
    """Payload for PUT /users: phone plus at least one field to change."""
    phone: StrictStr = Field(..., min_length=10, max_length=10)
    first_name: Optional[str] = Field(None, validation_alias=AliasChoices("firstName", "first_name"))
    last_name: Optional[str] = Field(None, validation_alias=AliasChoices("lastName", "last_name"))
    password: Optional[str] = Field(None, validation_alias=AliasChoices("password", "secret"))

    model_config = {"str_strip_whitespace": True}

    @field_validator("first_name", "last_name", "password", mode="before")
    @classmethod
    def clean_optional(cls, v: Any) -> Optional[str]:
        return _blank_to_none(v)

    @property
    def has_changes(self) -> bool:
        return bool(self.first_name or self.last_name or self.password)


class TokenCreateRequest(BaseModel):
    """Payload for POST /tokens."""
    phone: StrictStr = Field(..., min_length=10, max_length=10)
    password: StrictStr = Field(..., min_length=1, validation_alias=AliasChoices("password", "secret"))

    model_config = {"str_strip_whitespace": True}


class TokenExtendRequest(BaseModel):
    """Payload for PUT /tokens."""
    id: StrictStr
    extend: StrictBool

    model_config = {"str_strip_whitespace": True}


class MediaCreateRequest(BaseModel):
    """Payload for POST /media. `dis` is accepted as a legacy alias of description."""
    url: StrictStr = Field(..., min_length=1)
    description: StrictStr = Field(..., min_length=1, validation_alias=AliasChoices("description", "dis"))

    model_config = {"str_strip_whitespace": True}


class MediaUpdateRequest(BaseModel):
    """Payload for PUT /media: id plus at least one field to change."""
    id: StrictStr
    url: Optional[str] = None
    description: Optional[str] = Field(None, validation_alias=AliasChoices("description", "dis"))

    model_config = {"str_strip_whitespace": True}

    @field_validator("url", "description", mode="before")
    @classmethod
    def clean_optional(cls, v: Any) -> Optional[str]:
        return _blank_to_none(v)

    @property
    def has_changes(self) -> bool:
        return bool(self.url or self.description)


# =============================================================================
# Stored Record Models
# =============================================================================

class Account(BaseModel):
    """An account document in the `users` collection, keyed by phone."""
    COLLECTION: ClassVar[str] = "users"

    phone: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    hashed_password: str = Field(..., alias="hashedPassword")
    tos_agreement: bool = Field(True, alias="tosAgreement")
    media_links: list[str] = Field(default_factory=list, alias="mediaLinks")

    model_config = {"populate_by_name": True}

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class Token(BaseModel):
    """
    A session token document; `expires` is epoch milliseconds.

    Responses also carry the expiry as `expiresAt`. Only `expires` is stored.
    """
    COLLECTION: ClassVar[str] = "tokens"

    id: str
    phone: str
    expires: int
    first_name: str = Field("", alias="firstName")

    model_config = {"populate_by_name": True}

    @computed_field(alias="expiresAt")
    @property
    def expires_at(self) -> int:
        return self.expires

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"expires_at"})


class Media(BaseModel):
    """A media link document owned by the account `phone`."""
    COLLECTION: ClassVar[str] = "media"

    id: str
    phone: str
    url: str
    description: str
    first_name: str = Field("", alias="firstName")

    model_config = {"populate_by_name": True}

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# =============================================================================
# Pydantic Response Models
# =============================================================================

class AccountResponse(BaseModel):
    """Account view returned to its owner; never includes the password hash."""
    phone: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    tos_agreement: bool = Field(True, alias="tosAgreement")
    media_links: list[str] = Field(default_factory=list, alias="mediaLinks")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls.model_validate(account.model_dump(exclude={"hashed_password"}))


class StatusResponse(BaseModel):
    """Response model for successful operations without a resource body."""
    status: str = Field(default="ok", description="Operation status")


class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")
    succeeded: Optional[int] = Field(None, description="Cascade deletions that succeeded")
    failed: Optional[int] = Field(None, description="Cascade deletions that failed")


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
