from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.domain.contracts import AddressChanges, UserChanges
from app.domain.errors import (
    AddressAlreadyExistsError,
    AddressNotFoundError,
    EmailAlreadyExistsError,
    UserNotFoundError,
)
from app.domain.identifiers import UserId
from app.domain.service import UserService
from app.domain.user import Address, AddressType, User
from app.main import create_app
from app.security.rate_limiter import SlidingWindowRateLimiter

WRITE_OPERATIONS = {"create", "update_basic_fields", "update_address", "insert_address", "delete"}


class FixedClock:
    """Deterministic time source that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def utc_now(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@dataclass
class FakeUserRow:
    row_id: int
    uuid: UserId
    email: str
    password: str
    first_name: str
    last_name: str
    phone_number: str
    created_at: datetime
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


@dataclass
class FakeAddressRow:
    user_row_id: int
    address: Address
    created_at: datetime
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


class FakeRepository:
    """In-memory repository mimicking the Postgres-backed behaviours.

    Every call is recorded in ``calls``; an exception stored in ``failures``
    under an operation name is raised before that operation touches state.
    """

    def __init__(self) -> None:
        self.users: list[FakeUserRow] = []
        self.addresses: list[FakeAddressRow] = []
        self.calls: list[str] = []
        self.failures: dict[str, Exception] = {}

    @property
    def writes(self) -> list[str]:
        return [call for call in self.calls if call in WRITE_OPERATIONS]

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def _live_user(self, user_id: UserId) -> FakeUserRow | None:
        for row in self.users:
            if row.uuid == user_id and row.deleted_at is None:
                return row
        return None

    def _live_addresses(self, row_id: int) -> list[FakeAddressRow]:
        return [
            row
            for row in self.addresses
            if row.user_row_id == row_id and row.deleted_at is None
        ]

    def create(self, user: User, created_at: datetime) -> None:
        self._enter("create")
        email = user.email.lower()
        if any(row.email == email for row in self.users):
            raise EmailAlreadyExistsError()
        types = [address.type for address in user.addresses]
        if len(types) != len(set(types)):
            raise AddressAlreadyExistsError()
        row = FakeUserRow(
            row_id=len(self.users) + 1,
            uuid=user.id,
            email=email,
            password=user.password,
            first_name=user.first_name,
            last_name=user.last_name,
            phone_number=user.phone_number,
            created_at=created_at,
        )
        self.users.append(row)
        for address in user.addresses:
            self.addresses.append(
                FakeAddressRow(row.row_id, replace(address), created_at)
            )

    def update_basic_fields(
        self, user_id: UserId, changes: UserChanges, updated_at: datetime
    ) -> None:
        self._enter("update_basic_fields")
        row = self._live_user(user_id)
        if row is None:
            raise UserNotFoundError()
        for name, value in changes.set_fields().items():
            setattr(row, name, value)
        row.updated_at = updated_at

    def update_address(
        self,
        user_id: UserId,
        address_type: AddressType,
        changes: AddressChanges,
        updated_at: datetime,
    ) -> None:
        self._enter("update_address")
        row = self._live_user(user_id)
        if row is None:
            raise UserNotFoundError()
        for address_row in self._live_addresses(row.row_id):
            if address_row.address.type == address_type:
                for name, value in changes.set_fields().items():
                    setattr(address_row.address, name, value)
                address_row.updated_at = updated_at
                return
        raise AddressNotFoundError()

    def insert_address(self, user_id: UserId, address: Address, created_at: datetime) -> None:
        self._enter("insert_address")
        row = self._live_user(user_id)
        if row is None:
            raise UserNotFoundError()
        if any(a.address.type == address.type for a in self._live_addresses(row.row_id)):
            raise AddressAlreadyExistsError()
        self.addresses.append(FakeAddressRow(row.row_id, replace(address), created_at))

    def delete(self, user_id: UserId, deleted_at: datetime) -> None:
        self._enter("delete")
        row = self._live_user(user_id)
        if row is None:
            raise UserNotFoundError()
        row.deleted_at = deleted_at
        for address_row in self._live_addresses(row.row_id):
            address_row.deleted_at = deleted_at

    def get_by_id(self, user_id: UserId) -> User:
        self._enter("get_by_id")
        row = self._live_user(user_id)
        if row is None:
            raise UserNotFoundError()
        return self._to_user(row)

    def list_users(self, page: int, page_size: int) -> list[User]:
        self._enter("list_users")
        live = [row for row in self.users if row.deleted_at is None]
        offset = (page - 1) * page_size
        return [self._to_user(row) for row in live[offset : offset + page_size]]

    def address_rows(self, user_id: UserId) -> list[FakeAddressRow]:
        row = next(row for row in self.users if row.uuid == user_id)
        return [a for a in self.addresses if a.user_row_id == row.row_id]

    def _to_user(self, row: FakeUserRow) -> User:
        addresses = sorted(
            (replace(a.address) for a in self._live_addresses(row.row_id)),
            key=lambda address: address.type,
        )
        return User(
            id=row.uuid,
            email=row.email,
            first_name=row.first_name,
            last_name=row.last_name,
            phone_number=row.phone_number,
            addresses=addresses,
        )


class FakeCursor:
    def __init__(self, connection: "FakeConnection") -> None:
        self._connection = connection
        self._rows: list[tuple] = []
        self.rowcount = -1

    def __enter__(self) -> "FakeCursor":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def execute(self, query: str, params: Any = None) -> None:
        self._connection.pool.executed.append((" ".join(query.split()), list(params or ())))
        outcome = self._connection.pool.next_outcome()
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            self._rows, self.rowcount = [], outcome
        else:
            self._rows, self.rowcount = list(outcome), len(outcome)

    def fetchone(self) -> tuple | None:
        return self._rows.pop(0) if self._rows else None

    def fetchall(self) -> list[tuple]:
        rows, self._rows = self._rows, []
        return rows


class FakeConnection:
    def __init__(self, pool: "FakePool") -> None:
        self.pool = pool
        self.committed = False
        self.rolled_back = False

    def cursor(self, row_factory: Any = None) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.committed = True


class FakePool:
    """Stand-in for ``psycopg_pool.ConnectionPool`` replaying scripted results.

    Each ``execute`` consumes the next entry of ``script``: a list of row
    tuples, an ``int`` row count, or an exception to raise.
    """

    def __init__(self, *script: Any) -> None:
        self.script = list(script)
        self.executed: list[tuple[str, list[Any]]] = []
        self.connections: list[FakeConnection] = []

    def next_outcome(self) -> Any:
        return self.script.pop(0) if self.script else []

    @contextmanager
    def connection(self):
        conn = FakeConnection(self)
        self.connections.append(conn)
        try:
            yield conn
        except BaseException:
            conn.rolled_back = True
            raise

    @property
    def committed(self) -> bool:
        return any(conn.committed for conn in self.connections)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def service(repository: FakeRepository, clock: FixedClock) -> UserService:
    return UserService(repository, clock)


@pytest.fixture
def settings() -> Settings:
    return Settings(bcrypt_rounds=4, rate_limit_requests=100, rate_limit_window_seconds=60)


@pytest.fixture
def api_client(settings: Settings, service: UserService, clock: FixedClock):
    """Provide a FastAPI test client wired to the in-memory repository."""
    limiter = SlidingWindowRateLimiter(max_requests=100, window_seconds=60, clock=clock)
    app = create_app(settings, user_service=service, rate_limiter=limiter)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def make_pool():
    """Factory for scripted stand-ins of ``psycopg_pool.ConnectionPool``."""
    return FakePool
