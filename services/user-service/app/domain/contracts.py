"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Final, TypeVar, Union

from .identifiers import UserId
from .user import Address, AddressType

T = TypeVar("T")


class Unset(Enum):
    """Marker for a field the caller did not ask to change."""

    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Final = Unset.UNSET

# Either an explicit new value or UNSET; "" is a real value, not an absence.
FieldUpdate = Union[T, Unset]


def is_set(value: object) -> bool:
    return value is not UNSET


class _Changeset:
    """Helpers shared by the typed changesets below."""

    __slots__ = ()

    def set_fields(self) -> dict[str, str]:
        """Return only the explicitly provided fields, in declaration order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if is_set(getattr(self, f.name))
        }

    def is_empty(self) -> bool:
        return not self.set_fields()


@dataclass(frozen=True, slots=True)
class UserChanges(_Changeset):
    """Sparse update of the basic profile columns.

    ``password`` must already be hashed when set.
    """

    password: FieldUpdate[str] = UNSET
    first_name: FieldUpdate[str] = UNSET
    last_name: FieldUpdate[str] = UNSET
    phone_number: FieldUpdate[str] = UNSET


@dataclass(frozen=True, slots=True)
class AddressChanges(_Changeset):
    """Sparse update of one address row."""

    street: FieldUpdate[str] = UNSET
    city: FieldUpdate[str] = UNSET
    state: FieldUpdate[str] = UNSET
    postal_code: FieldUpdate[str] = UNSET
    country: FieldUpdate[str] = UNSET

    def to_address(self, address_type: AddressType) -> Address:
        """Build a new address from the supplied fields, leaving the rest empty."""
        return Address(type=address_type, **self.set_fields())


@dataclass(frozen=True, slots=True)
class AddressPatch:
    type: AddressType
    changes: AddressChanges = field(default_factory=AddressChanges)


@dataclass(slots=True)
class UpdateUserInput:
    """Validated partial update for a user and any of its addresses."""

    user: UserChanges = field(default_factory=UserChanges)
    addresses: list[AddressPatch] = field(default_factory=list)


@dataclass(slots=True)
class CreateUserInput:
    """Validated inputs required to create a user.

    The identifier is chosen by the caller so it can be returned before the
    write completes; ``password`` is already hashed.
    """

    id: UserId
    email: str
    password: str
    first_name: str
    last_name: str
    phone_number: str
    addresses: list[Address] = field(default_factory=list)
