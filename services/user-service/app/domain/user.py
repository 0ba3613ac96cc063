from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from .errors import ValidationError
from .identifiers import UserId


class AddressType(IntEnum):
    """Address kinds; the stored value is zero-based, the HTTP one is 1-indexed."""

    WORK = 0
    HOME = 1
    BILLING = 2

    @classmethod
    def from_external(cls, value: int) -> "AddressType":
        """Map the 1-indexed wire value onto the internal enumeration."""
        try:
            return cls(value - 1)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"unknown address type: {value!r}") from exc

    @property
    def external(self) -> int:
        return self.value + 1


@dataclass(slots=True)
class Address:
    """Postal address owned by a single user, keyed by its type."""

    type: AddressType
    street: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""


@dataclass(slots=True)
class User:
    """Aggregate root for a managed user record.

    ``password`` holds a hash when writing and is always empty when read back.
    """

    id: UserId
    email: str
    first_name: str
    last_name: str
    phone_number: str
    password: str = ""
    addresses: list[Address] = field(default_factory=list)

    def address(self, address_type: AddressType) -> Address | None:
        for address in self.addresses:
            if address.type == address_type:
                return address
        return None
