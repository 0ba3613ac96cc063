"""Persistence contract consumed by :class:`~app.domain.service.UserService`."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from .contracts import AddressChanges, UserChanges
    from .identifiers import UserId
    from .user import Address, AddressType, User


@runtime_checkable
class UserRepositoryPort(Protocol):
    """Store operations for users and their addresses.

    Implementations translate store-specific failures into the taxonomy in
    :mod:`app.domain.errors`: unique violations become ``ConflictError``
    subclasses and a missing live user becomes ``UserNotFoundError``.
    ``update_address`` raises ``AddressNotFoundError`` when the user exists but
    has no live address of the requested type.
    """

    def create(self, user: User, created_at: datetime) -> None: ...

    def update_basic_fields(
        self, user_id: UserId, changes: UserChanges, updated_at: datetime
    ) -> None: ...

    def update_address(
        self,
        user_id: UserId,
        address_type: AddressType,
        changes: AddressChanges,
        updated_at: datetime,
    ) -> None: ...

    def insert_address(self, user_id: UserId, address: Address, created_at: datetime) -> None: ...

    def delete(self, user_id: UserId, deleted_at: datetime) -> None: ...

    def get_by_id(self, user_id: UserId) -> User: ...

    def list_users(self, page: int, page_size: int) -> list[User]: ...
