"""Database repository for users and their addresses."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

from psycopg import errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.contracts import AddressChanges, UserChanges, is_set
from .domain.errors import (
    AddressAlreadyExistsError,
    AddressNotFoundError,
    EmailAlreadyExistsError,
    UserNotFoundError,
)
from .domain.identifiers import UserId
from .domain.user import Address, AddressType, User

EMAIL_CONSTRAINT = "users_email_key"
ADDRESS_TYPE_CONSTRAINT = "addresses_user_id_type_key"

# Changeset attribute -> column. Only these names ever reach a SET clause.
_USER_COLUMNS: tuple[tuple[str, str], ...] = (
    ("password", "password"),
    ("first_name", "first_name"),
    ("last_name", "last_name"),
    ("phone_number", "phone_number"),
)
_ADDRESS_COLUMNS: tuple[tuple[str, str], ...] = (
    ("street", "street"),
    ("city", "city"),
    ("state", "state"),
    ("postal_code", "postal_code"),
    ("country", "country"),
)

_SELECT_USER = """
    SELECT id, uuid, email, first_name, last_name, phone_number
    FROM users
"""


@dataclass(slots=True)
class UserRecord:
    """Row projection of ``users`` including the internal primary key."""

    row_id: int
    uuid: str
    email: str
    first_name: str | None
    last_name: str | None
    phone_number: str | None


def _assignments(
    columns: Sequence[tuple[str, str]], changes: UserChanges | AddressChanges
) -> tuple[list[str], list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    for attribute, column in columns:
        value = getattr(changes, attribute)
        if is_set(value):
            clauses.append(f"{column} = %s")
            params.append(value)
    return clauses, params


def _conflict_for(exc: errors.UniqueViolation) -> Exception | None:
    constraint = exc.diag.constraint_name or ""
    if constraint == EMAIL_CONSTRAINT:
        return EmailAlreadyExistsError()
    if constraint == ADDRESS_TYPE_CONSTRAINT:
        return AddressAlreadyExistsError()
    return None


class UserRepository:
    """Postgres-backed user persistence over separate read and write pools."""

    def __init__(self, read_pool: ConnectionPool, write_pool: ConnectionPool) -> None:
        """Store the pools used for queries and for writes respectively."""
        self._read = read_pool
        self._write = write_pool

    def create(self, user: User, created_at: datetime) -> None:
        """Insert the user row and every address row in a single transaction."""
        with self._write.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                try:
                    cur.execute(
                        """
                        INSERT INTO users (uuid, email, password, first_name, last_name, phone_number, created_at, updated_at)
                        VALUES (%s, %s, %s, %s, %s, %s, %s, NULL)
                        RETURNING id
                        """,
                        (
                            str(user.id),
                            user.email.lower(),
                            user.password,
                            user.first_name,
                            user.last_name,
                            user.phone_number,
                            created_at,
                        ),
                    )
                    row_id = cur.fetchone()[0]
                    for address in user.addresses:
                        cur.execute(
                            """
                            INSERT INTO addresses (user_id, type, street, city, state, postal_code, country, created_at, updated_at)
                            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, NULL)
                            """,
                            (
                                row_id,
                                int(address.type),
                                address.street,
                                address.city,
                                address.state,
                                address.postal_code,
                                address.country,
                                created_at,
                            ),
                        )
                except errors.UniqueViolation as exc:
                    conflict = _conflict_for(exc)
                    if conflict is None:
                        raise
                    raise conflict from exc
            conn.commit()

    def update_basic_fields(
        self, user_id: UserId, changes: UserChanges, updated_at: datetime
    ) -> None:
        """Update only the columns present in ``changes`` for a live user."""
        clauses, params = _assignments(_USER_COLUMNS, changes)
        if not clauses:
            return
        if self._find_row_id(user_id) is None:
            raise UserNotFoundError()

        set_sql = ", ".join(clauses)
        query = f"""
            UPDATE users
            SET {set_sql}, updated_at = %s
            WHERE uuid = %s AND deleted_at IS NULL
        """
        params.extend([updated_at, str(user_id)])
        with self._write.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
            conn.commit()

    def update_address(
        self,
        user_id: UserId,
        address_type: AddressType,
        changes: AddressChanges,
        updated_at: datetime,
    ) -> None:
        """Update the live address of ``address_type`` owned by the user.

        Raises ``AddressNotFoundError`` when the user is live but has no such
        address, so callers can decide to insert one instead.
        """
        clauses, params = _assignments(_ADDRESS_COLUMNS, changes)
        if not clauses:
            return

        with self._read.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    """
                    SELECT u.id, a.user_id
                    FROM users u
                    LEFT JOIN addresses a
                        ON a.user_id = u.id AND a.type = %s AND a.deleted_at IS NULL
                    WHERE u.uuid = %s AND u.deleted_at IS NULL
                    """,
                    (int(address_type), str(user_id)),
                )
                row = cur.fetchone()
        if row is None:
            raise UserNotFoundError()
        if row[1] is None:
            raise AddressNotFoundError()

        set_sql = ", ".join(clauses)
        query = f"""
            UPDATE addresses
            SET {set_sql}, updated_at = %s
            WHERE user_id = %s AND type = %s AND deleted_at IS NULL
        """
        params.extend([updated_at, row[0], int(address_type)])
        with self._write.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
            conn.commit()

    def insert_address(self, user_id: UserId, address: Address, created_at: datetime) -> None:
        """Attach a new address row to a live user."""
        with self._write.connection() as conn:
            with conn.cursor() as cur:
                try:
                    cur.execute(
                        """
                        INSERT INTO addresses (user_id, type, street, city, state, postal_code, country, created_at, updated_at)
                        SELECT id, %s, %s, %s, %s, %s, %s, %s, NULL
                        FROM users
                        WHERE uuid = %s AND deleted_at IS NULL
                        """,
                        (
                            int(address.type),
                            address.street,
                            address.city,
                            address.state,
                            address.postal_code,
                            address.country,
                            created_at,
                            str(user_id),
                        ),
                    )
                except errors.UniqueViolation as exc:
                    conflict = _conflict_for(exc)
                    if conflict is None:
                        raise
                    raise conflict from exc
                if cur.rowcount == 0:
                    raise UserNotFoundError()
            conn.commit()

    def delete(self, user_id: UserId, deleted_at: datetime) -> None:
        """Soft-delete the user row and all of its addresses atomically."""
        with self._write.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    "SELECT id FROM users WHERE uuid = %s AND deleted_at IS NULL FOR UPDATE",
                    (str(user_id),),
                )
                row = cur.fetchone()
                if row is None:
                    raise UserNotFoundError()
                cur.execute(
                    "UPDATE users SET deleted_at = %s WHERE id = %s",
                    (deleted_at, row[0]),
                )
                cur.execute(
                    "UPDATE addresses SET deleted_at = %s WHERE user_id = %s AND deleted_at IS NULL",
                    (deleted_at, row[0]),
                )
            conn.commit()

    def get_by_id(self, user_id: UserId) -> User:
        """Fetch a live user with its live addresses."""
        with self._read.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    _SELECT_USER + " WHERE uuid = %s AND deleted_at IS NULL",
                    (str(user_id),),
                )
                row = cur.fetchone()
                if row is None:
                    raise UserNotFoundError()
                record = UserRecord(*row)
                addresses = self._load_addresses(cur, [record.row_id])
        return self._map_user(record, addresses.get(record.row_id, []))

    def list_users(self, page: int, page_size: int) -> list[User]:
        """Return live users ordered by insertion, one page at a time."""
        offset = (page - 1) * page_size
        with self._read.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    _SELECT_USER + " WHERE deleted_at IS NULL ORDER BY id LIMIT %s OFFSET %s",
                    (page_size, offset),
                )
                records = [UserRecord(*row) for row in cur.fetchall()]
                if not records:
                    return []
                addresses = self._load_addresses(cur, [record.row_id for record in records])
        return [self._map_user(record, addresses.get(record.row_id, [])) for record in records]

    def _find_row_id(self, user_id: UserId) -> int | None:
        with self._read.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    "SELECT id FROM users WHERE uuid = %s AND deleted_at IS NULL",
                    (str(user_id),),
                )
                row = cur.fetchone()
        return row[0] if row else None

    def _load_addresses(self, cur: Any, row_ids: list[int]) -> dict[int, list[Address]]:
        cur.execute(
            """
            SELECT user_id, type, street, city, state, postal_code, country
            FROM addresses
            WHERE user_id = ANY(%s) AND deleted_at IS NULL
            ORDER BY user_id, type
            """,
            (row_ids,),
        )
        grouped: dict[int, list[Address]] = defaultdict(list)
        for row in cur.fetchall():
            grouped[row[0]].append(
                Address(
                    type=AddressType(row[1]),
                    street=row[2] or "",
                    city=row[3] or "",
                    state=row[4] or "",
                    postal_code=row[5] or "",
                    country=row[6] or "",
                )
            )
        return grouped

    def _map_user(self, record: UserRecord, addresses: list[Address]) -> User:
        """Convert a row projection into the domain ``User``; the password is never read."""
        return User(
            id=UserId.parse(str(record.uuid)),
            email=record.email,
            first_name=record.first_name or "",
            last_name=record.last_name or "",
            phone_number=record.phone_number or "",
            addresses=addresses,
        )
