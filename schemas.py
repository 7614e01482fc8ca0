"""
Database Schemas

Define your MongoDB collection schemas here using Pydantic models.
These schemas are used for data validation in your application.

Each Pydantic model represents a collection in your database.
Model name is converted to lowercase for the collection name:
- Wine -> "wine" collection
- User -> "user" collection
- Secret -> "secret" collection
"""

import re
from datetime import datetime, timezone
from typing import Annotated, List, Optional

from pydantic import BaseModel, Field, StringConstraints, TypeAdapter, ValidationError

Description = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=300)]
Username = Annotated[str, StringConstraints(min_length=2, max_length=20)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# -----------------
# Collections
# -----------------

class Wine(BaseModel):
    """
    Wines collection schema
    Collection name: "wine"
    """
    name: str = Field(..., min_length=1, description="Unique wine name")
    description: Description
    price: float = Field(..., ge=1, le=1000, description="Price in dollars")
    variety: str = Field(..., min_length=1, description="Grape variety, free form")
    country: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    username: Username
    password_hash: str = Field(..., description="salt$hash (PBKDF2)")
    access_token: str = Field(..., description="Hex token issued at registration")
    created_at: datetime = Field(default_factory=_utcnow)


class Secret(BaseModel):
    """
    Secret messages collection schema
    Collection name: "secret"
    """
    message: Optional[str] = None
    user: str = Field(..., description="Owner user _id (string)")
    created_at: datetime = Field(default_factory=_utcnow)


# -----------------
# Request models
# -----------------

class WineCreateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    variety: Optional[str] = None
    country: Optional[str] = None


class WineUpdateRequest(BaseModel):
    newDescription: Optional[str] = None


class CredentialsRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class SecretCreateRequest(BaseModel):
    message: Optional[str] = None


class WineFilter(BaseModel):
    variety: Optional[str] = None
    price: Optional[float] = None


# -----------------
# Validation
# -----------------

class FieldError(BaseModel):
    field: str
    message: str


class Credentials(BaseModel):
    """Plaintext credentials as accepted at registration."""
    username: Username
    password: str = Field(..., min_length=5)


def _field_errors(exc: ValidationError, field: str = "__root__") -> List[FieldError]:
    errors = []
    for err in exc.errors():
        name = ".".join(str(loc) for loc in err.get("loc", ())) or field
        errors.append(FieldError(field=name, message=err.get("msg", "invalid value")))
    return errors


def _present(data: dict) -> dict:
    return {k: v for k, v in data.items() if v is not None}


def validate_wine(payload: WineCreateRequest) -> List[FieldError]:
    """Check a create payload against the Wine constraints.

    Returns an empty list when the payload is valid. Uniqueness of the
    name is enforced by the store, not here.
    """
    try:
        Wine(**_present(payload.model_dump()))
    except ValidationError as exc:
        return _field_errors(exc)
    return []


_description_adapter = TypeAdapter(Description)


def validate_description(description: Optional[str]) -> List[FieldError]:
    try:
        _description_adapter.validate_python(description)
    except ValidationError as exc:
        return _field_errors(exc, "description")
    return []


def validate_user(username: Optional[str], password: Optional[str]) -> List[FieldError]:
    try:
        Credentials(**_present({"username": username, "password": password}))
    except ValidationError as exc:
        return _field_errors(exc)
    return []


def build_wine_query(filters: WineFilter) -> dict:
    """Turn list filters into a MongoDB predicate.

    variety is a case-sensitive pattern match, price means "strictly
    greater than" and defaults to 0. Raises ValueError for a pattern
    that does not compile.
    """
    query = {}
    if filters.variety:
        try:
            re.compile(filters.variety)
        except re.error as exc:
            raise ValueError(f"Invalid variety pattern: {exc}") from exc
        query["variety"] = {"$regex": filters.variety}
    query["price"] = {"$gt": filters.price if filters.price is not None else 0}
    return query
