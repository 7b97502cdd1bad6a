"""HTTP route definitions for the user service."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator

from fastapi import APIRouter, Body, Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from ..config import get_settings
from ..domain.account import Account
from ..domain.contracts import violated_rules
from ..domain.errors import AccountError, ErrorKind
from ..domain.service import MAX_PAGE_SIZE, AccountService
from ..security.throttle import build_rate_limiter
from ..security.tokens import resolve_account_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1")


class AccountResponse(BaseModel):
    """Serialised representation of an `Account` without its profile."""

    account_id: str
    phone_number: str
    role: str
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        """Build a response model from the domain aggregate."""
        return cls(**account.public_fields())


class AccountPageResponse(BaseModel):
    """Envelope for one page of accounts."""

    docs: list[AccountResponse]
    total: int
    page: int
    per_page: int
    pages: int


class PasswordUpdateResponse(BaseModel):
    updated: bool


settings = get_settings()
rate_limiter = build_rate_limiter(settings)


def get_service(request: Request) -> AccountService:
    """Resolve the `AccountService` stored on the FastAPI application state."""
    service: AccountService = request.app.state.account_service
    return service


def get_current_account_id(authorization: str | None = Header(default=None)) -> str:
    """Resolve the calling account from its bearer token."""
    account_id = resolve_account_id(authorization)
    if account_id is None:
        raise AccountError(ErrorKind.AUTHENTICATION_ERROR, "a valid bearer token is required")
    return account_id


def _enforce_rate_limit(key: str) -> None:
    if not rate_limiter.allow(key):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: dict[str, Any] = Body(...),
    service: AccountService = Depends(get_service),
) -> JSONResponse:
    """Create an account together with the profile its role requires."""
    _enforce_rate_limit(f"create:{payload.get('phone_number')}")
    view = service.create_account(payload)
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=view.to_dict())


@router.get("/users")
def list_users(service: AccountService = Depends(get_service)) -> StreamingResponse:
    """Stream every account as a JSON array."""
    return StreamingResponse(_stream_accounts(service.iter_accounts()), media_type="application/json")


@router.get("/users/paginate", response_model=AccountPageResponse)
def paginate_users(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
    service: AccountService = Depends(get_service),
) -> AccountPageResponse:
    """Return one page of accounts, newest first."""
    result = service.paginate_accounts(page=page, per_page=per_page)
    return AccountPageResponse(
        docs=[AccountResponse.from_domain(account) for account in result.docs],
        total=result.total,
        page=result.page,
        per_page=result.per_page,
        pages=result.pages,
    )


@router.put("/users/password", response_model=PasswordUpdateResponse)
def update_password(
    payload: dict[str, Any] = Body(...),
    account_id: str = Depends(get_current_account_id),
    service: AccountService = Depends(get_service),
) -> PasswordUpdateResponse:
    """Rotate the caller's password after checking the current one."""
    _enforce_rate_limit(f"password:{account_id}")
    return PasswordUpdateResponse(**service.update_password(account_id, payload))


@router.get("/users/{account_id}")
def get_user(account_id: str, service: AccountService = Depends(get_service)) -> JSONResponse:
    return JSONResponse(content=service.get_account(account_id).to_dict())


@router.put("/users/{account_id}")
def update_user(
    account_id: str,
    payload: dict[str, Any] = Body(...),
    service: AccountService = Depends(get_service),
) -> JSONResponse:
    return JSONResponse(content=service.update_account(account_id, payload).to_dict())


@router.delete("/users/{account_id}")
def delete_user(account_id: str, service: AccountService = Depends(get_service)) -> JSONResponse:
    return JSONResponse(content=service.delete_account(account_id).to_dict())


def _stream_accounts(accounts: Iterator[Account]) -> Iterator[str]:
    yield "["
    try:
        for index, account in enumerate(accounts):
            yield ("," if index else "") + json.dumps(account.public_fields())
    except Exception:
        logger.exception("error retrieving account collection")
        raise
    yield "]"


def install_error_handlers(app: FastAPI) -> None:
    """Render workflow and request validation failures as ``{type, message}`` bodies."""

    @app.exception_handler(AccountError)
    async def _account_error(request: Request, exc: AccountError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = AccountError(
            ErrorKind.VALIDATION_ERROR,
            "request validation failed",
            errors=violated_rules(exc.errors()),
        )
        return JSONResponse(status_code=error.status_code, content=error.to_payload())
