"""HTTP route definitions for the user service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from prometheus_client import Counter
from pydantic import BaseModel, EmailStr, Field

from schemas import AddressView, UserView

from ..domain.contracts import (
    UNSET,
    AddressChanges,
    AddressPatch,
    CreateUserInput,
    UpdateUserInput,
    UserChanges,
)
from ..domain.errors import (
    ConflictError,
    InvalidIdentifierError,
    NotFoundError,
    UserError,
    ValidationError,
)
from ..domain.identifiers import UserId
from ..domain.service import UserService
from ..domain.user import Address, AddressType, User
from ..security.passwords import PasswordHasher
from ..security.rate_limiter import SlidingWindowRateLimiter
from ..security.redis_rate_limiter import RedisSlidingWindowRateLimiter

logger = logging.getLogger(__name__)

router = APIRouter()

REQUESTS = Counter(
    "user_requests_total",
    "User API requests by operation and outcome status code.",
    ["operation", "outcome"],
)

_PHONE = r"^[0-9]+$"
_ALPHANUMERIC = r"^[A-Za-z0-9]+$"
_LETTERS = r"^[A-Za-z ]*$"


class CreateAddressRequest(BaseModel):
    """Address supplied when creating a user."""

    type: int = Field(..., ge=1, le=3)
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(default="", max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20, pattern=_ALPHANUMERIC)
    country: str = Field(default="", max_length=100, pattern=_LETTERS)

    def to_domain(self) -> Address:
        return Address(
            type=AddressType.from_external(self.type),
            street=self.street,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
            country=self.country,
        )


class CreateUserRequest(BaseModel):
    """Payload accepted when creating a user; at least one address is required."""

    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    phone_number: str = Field(..., min_length=9, max_length=15, pattern=_PHONE)
    addresses: list[CreateAddressRequest] = Field(..., min_length=1)


class CreateUserResponse(BaseModel):
    uuid: str


class UpdateAddressRequest(BaseModel):
    """Partial address keyed by ``type``; omitted or null fields are left untouched."""

    type: int = Field(..., ge=1, le=3)
    street: str | None = Field(default=None, min_length=1, max_length=255)
    city: str | None = Field(default=None, min_length=1, max_length=100)
    state: str | None = Field(default=None, min_length=1, max_length=100)
    postal_code: str | None = Field(default=None, min_length=1, max_length=20, pattern=_ALPHANUMERIC)
    country: str | None = Field(default=None, min_length=1, max_length=100, pattern=_LETTERS)

    def to_patch(self) -> AddressPatch:
        return AddressPatch(
            type=AddressType.from_external(self.type),
            changes=AddressChanges(
                street=_present(self, "street"),
                city=_present(self, "city"),
                state=_present(self, "state"),
                postal_code=_present(self, "postal_code"),
                country=_present(self, "country"),
            ),
        )


class UpdateUserRequest(BaseModel):
    """Partial user update; omitted or null fields are left untouched."""

    password: str | None = Field(default=None, min_length=8)
    first_name: str | None = Field(default=None, min_length=1, max_length=50)
    last_name: str | None = Field(default=None, min_length=1, max_length=50)
    phone_number: str | None = Field(default=None, min_length=9, max_length=15, pattern=_PHONE)
    addresses: list[UpdateAddressRequest] | None = None


def _present(model: BaseModel, name: str):
    value = getattr(model, name)
    if name not in model.model_fields_set or value is None:
        return UNSET
    return value


def _to_view(user: User) -> UserView:
    return UserView(
        id=str(user.id),
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone_number=user.phone_number,
        addresses=[
            AddressView(
                type=address.type.external,
                street=address.street,
                city=address.city,
                state=address.state,
                postal_code=address.postal_code,
                country=address.country,
            )
            for address in user.addresses
        ],
    )


def get_service(request: Request) -> UserService:
    """Resolve the `UserService` stored on the FastAPI application state."""
    service: UserService = request.app.state.user_service
    return service


def get_password_hasher(request: Request) -> PasswordHasher:
    hasher: PasswordHasher = request.app.state.password_hasher
    return hasher


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter:
    return request.app.state.rate_limiter


def _enforce_rate_limit(
    limiter: SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter,
    operation: str,
    key: str,
) -> None:
    if not limiter.allow(f"{operation}:{key}"):
        REQUESTS.labels(operation, status.HTTP_429_TOO_MANY_REQUESTS).inc()
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")


@router.post("/users", response_model=CreateUserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    request: Request,
    payload: CreateUserRequest,
    service: UserService = Depends(get_service),
    hasher: PasswordHasher = Depends(get_password_hasher),
    limiter=Depends(get_rate_limiter),
) -> CreateUserResponse:
    """Create a user with a server-chosen identifier."""
    client_host = request.client.host if request.client else "unknown"
    _enforce_rate_limit(limiter, "create", client_host)

    user_id = UserId.new()
    try:
        service.create(
            CreateUserInput(
                id=user_id,
                email=payload.email,
                password=hasher.hash(payload.password),
                first_name=payload.first_name,
                last_name=payload.last_name,
                phone_number=payload.phone_number,
                addresses=[address.to_domain() for address in payload.addresses],
            )
        )
    except UserError as exc:
        raise _http_error("create", exc) from exc
    REQUESTS.labels("create", status.HTTP_201_CREATED).inc()
    return CreateUserResponse(uuid=str(user_id))


@router.put("/users/{user_id}")
def update_user(
    user_id: str,
    payload: UpdateUserRequest,
    service: UserService = Depends(get_service),
    hasher: PasswordHasher = Depends(get_password_hasher),
    limiter=Depends(get_rate_limiter),
) -> str:
    """Apply a partial update to a user's profile and addresses."""
    try:
        # reject malformed ids before hashing
        parsed_id = UserId.parse(user_id)
    except ValidationError as exc:
        raise _http_error("update", exc) from exc
    _enforce_rate_limit(limiter, "update", str(parsed_id))

    password = _present(payload, "password")
    changes = UpdateUserInput(
        user=UserChanges(
            password=UNSET if password is UNSET else hasher.hash(password),
            first_name=_present(payload, "first_name"),
            last_name=_present(payload, "last_name"),
            phone_number=_present(payload, "phone_number"),
        ),
        addresses=[address.to_patch() for address in payload.addresses or []],
    )
    try:
        service.update(user_id, changes)
    except UserError as exc:
        raise _http_error("update", exc) from exc
    REQUESTS.labels("update", status.HTTP_200_OK).inc()
    return "ok"


@router.delete("/users/{user_id}")
def delete_user(user_id: str, service: UserService = Depends(get_service)) -> str:
    """Soft-delete a user together with its addresses."""
    try:
        service.delete(user_id)
    except UserError as exc:
        raise _http_error("delete", exc) from exc
    REQUESTS.labels("delete", status.HTTP_200_OK).inc()
    return "ok"


@router.get("/users/{user_id}", response_model=UserView)
def get_user(user_id: str, service: UserService = Depends(get_service)) -> UserView:
    try:
        user = service.get(user_id)
    except UserError as exc:
        raise _http_error("get", exc) from exc
    REQUESTS.labels("get", status.HTTP_200_OK).inc()
    return _to_view(user)


@router.get("/users", response_model=list[UserView])
def list_users(
    page: int = Query(default=1, ge=1),
    size: int = Query(default=5, ge=1, le=100),
    service: UserService = Depends(get_service),
) -> list[UserView]:
    """Return one page of users using offset pagination."""
    try:
        users = service.list_users(page, size)
    except UserError as exc:
        raise _http_error("list", exc) from exc
    REQUESTS.labels("list", status.HTTP_200_OK).inc()
    return [_to_view(user) for user in users]


def _http_error(operation: str, exc: UserError) -> HTTPException:
    """Translate the error taxonomy into a status code without leaking internals."""
    if isinstance(exc, InvalidIdentifierError):
        status_code, detail = status.HTTP_400_BAD_REQUEST, "invalid user ID"
    elif isinstance(exc, ValidationError):
        status_code, detail = status.HTTP_400_BAD_REQUEST, str(exc)
    elif isinstance(exc, NotFoundError):
        status_code, detail = status.HTTP_404_NOT_FOUND, str(exc)
    elif isinstance(exc, ConflictError):
        status_code, detail = status.HTTP_409_CONFLICT, str(exc)
    else:
        logger.error("%s failed: %s", operation, exc, exc_info=exc)
        status_code, detail = status.HTTP_500_INTERNAL_SERVER_ERROR, "internal server error"
    REQUESTS.labels(operation, status_code).inc()
    return HTTPException(status_code=status_code, detail=detail)
