"""User service reconciling partial updates into repository calls."""

from __future__ import annotations

import logging
from typing import Iterable, TypeVar

from .clock import TimeProvider
from .contracts import AddressPatch, CreateUserInput, UpdateUserInput
from .errors import (
    AddressNotFoundError,
    InternalError,
    InvalidIdentifierError,
    UserError,
    ValidationError,
)
from .identifiers import UserId
from .ports import UserRepositoryPort
from .user import Address, User

logger = logging.getLogger(__name__)

_Typed = TypeVar("_Typed", Address, AddressPatch)


def unique_by_type(items: Iterable[_Typed]) -> list[_Typed]:
    """Keep the first item of each address type, preserving input order."""
    seen = set()
    result = []
    for item in items:
        if item.type in seen:
            continue
        seen.add(item.type)
        result.append(item)
    return result


def _wrap(context: str, exc: Exception) -> InternalError:
    error = InternalError(f"{context}: {exc}")
    logger.debug("%s", error, exc_info=exc)
    return error


class UserService:
    """User workflows backed by a :class:`UserRepositoryPort`."""

    def __init__(self, repository: UserRepositoryPort, clock: TimeProvider) -> None:
        """Store the repository and the time source used to stamp writes."""
        self._repository = repository
        self._clock = clock

    def create(self, payload: CreateUserInput) -> None:
        """Persist a new user and its addresses in one write transaction.

        Duplicate address types are dropped, keeping the first occurrence.
        Conflicts propagate as-is; other store failures become ``InternalError``.
        """
        user = User(
            id=payload.id,
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone_number=payload.phone_number,
            addresses=unique_by_type(payload.addresses),
        )
        try:
            self._repository.create(user, self._clock.utc_now())
        except UserError:
            raise
        except Exception as exc:
            raise _wrap("failed creating user", exc) from exc

    def update(self, user_id: str, payload: UpdateUserInput) -> None:
        """Apply a sparse update to the basic fields and to each address type.

        The basic-field patch and every address patch commit independently, so
        a failure part way through leaves the earlier writes in place.
        Address types the user does not have yet are inserted from the fields
        supplied in the patch.
        """
        target = self._parse_id(user_id)

        if not payload.user.is_empty():
            try:
                self._repository.update_basic_fields(
                    target, payload.user, self._clock.utc_now()
                )
            except UserError:
                raise
            except Exception as exc:
                raise _wrap("failed updating user personal data", exc) from exc

        for patch in unique_by_type(payload.addresses):
            if patch.changes.is_empty():
                continue
            self._apply_address_patch(target, patch)

    def _apply_address_patch(self, target: UserId, patch: AddressPatch) -> None:
        try:
            self._repository.update_address(
                target, patch.type, patch.changes, self._clock.utc_now()
            )
            return
        except AddressNotFoundError:
            logger.debug("address type %s missing for user %s, inserting", patch.type.name, target)
        except UserError:
            raise
        except Exception as exc:
            raise _wrap("failed updating user address data", exc) from exc

        try:
            self._repository.insert_address(
                target, patch.changes.to_address(patch.type), self._clock.utc_now()
            )
        except UserError:
            raise
        except Exception as exc:
            raise _wrap("failed inserting additional address", exc) from exc

    def delete(self, user_id: str) -> None:
        """Soft-delete a user and all of its addresses with one timestamp."""
        target = self._parse_id(user_id)
        try:
            self._repository.delete(target, self._clock.utc_now())
        except UserError:
            raise
        except Exception as exc:
            raise _wrap("failed deleting user", exc) from exc

    def get(self, user_id: str) -> User:
        """Return the live user for ``user_id`` or raise ``UserNotFoundError``."""
        target = self._parse_id(user_id)
        try:
            return self._repository.get_by_id(target)
        except UserError:
            raise
        except Exception as exc:
            raise _wrap("failed fetching user", exc) from exc

    def list_users(self, page: int, page_size: int) -> list[User]:
        """Return one page of live users using offset pagination."""
        if page < 1:
            raise ValidationError("page must be a positive integer")
        if page_size < 1:
            raise ValidationError("size must be a positive integer")
        try:
            return self._repository.list_users(page, page_size)
        except UserError:
            raise
        except Exception as exc:
            raise _wrap("failed listing users", exc) from exc

    def _parse_id(self, user_id: str) -> UserId:
        parsed = UserId.parse(user_id)
        if parsed.is_empty:
            raise InvalidIdentifierError("empty identifier")
        return parsed
