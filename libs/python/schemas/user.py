"""Public user representation shared across services."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AddressView(BaseModel):
    """Address as exposed over HTTP; ``type`` is 1 (work), 2 (home) or 3 (billing)."""

    type: int = Field(..., ge=1, le=3)
    street: str
    city: str
    state: str
    postal_code: str
    country: str


class UserView(BaseModel):
    """User as exposed over HTTP. Never carries the password hash."""

    id: str
    email: str
    first_name: str
    last_name: str
    phone_number: str
    addresses: list[AddressView] = Field(default_factory=list)
