"""HTTP API exposing the user collection under ``/api/users``."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import ConsoleSettings, load_settings
from .database import Database
from .errors import BadRequest, ConsoleError, NotFound, StoreUnavailable, ValidationError
from .listing import ListingService
from .models import DEFAULT_PAGE_SIZE, DEFAULT_SORT_KEY, UserRecord

logger = logging.getLogger("stagecontrol.api")

MAX_PAGE_LIMIT = 100


class UserCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: Optional[str] = None
    role: Optional[str] = None


class UserUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: Optional[str] = None
    role: Optional[str] = None

    def changed_fields(self) -> Dict[str, str]:
        fields = {"fullName": self.full_name, "email": self.email, "role": self.role}
        return {name: value for name, value in fields.items() if value is not None}


class UserDeleteRequest(BaseModel):
    id: Optional[str] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    full_name: str = Field(..., alias="fullName")
    email: str
    role: str


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int


class MessageResponse(BaseModel):
    message: str


def _user_to_response(user: UserRecord) -> UserResponse:
    return UserResponse.model_validate(user.to_dict())


def _status_for(exc: ConsoleError) -> int:
    if isinstance(exc, StoreUnavailable):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc, (BadRequest, ValidationError, NotFound)):
        return status.HTTP_400_BAD_REQUEST
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _format_validation_error(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        text = error.get("msg", "Invalid value")
        messages.append(f"{location}: {text}" if location else text)
    return "; ".join(messages) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:
    """Render domain and request-validation errors as ``{"error": ...}`` bodies."""

    @app.exception_handler(ConsoleError)
    async def handle_console_error(request: Request, exc: ConsoleError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": _format_validation_error(exc)},
        )


def register_user_routes(app: FastAPI, database: Database) -> None:
    """Expose the user collection endpoints on the provided FastAPI application."""

    listing = ListingService(database)

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/api/users", response_model=UserListResponse)
    async def list_users(
        page: int = Query(1, ge=1),
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_LIMIT),
        full_name: Optional[str] = Query(None, alias="fullName"),
        name: Optional[str] = Query(None),
        email: Optional[str] = Query(None),
        role: Optional[str] = Query(None),
        sort: str = Query(DEFAULT_SORT_KEY),
        direction: str = Query("asc"),
    ) -> UserListResponse:
        filters = {
            "fullName": full_name if full_name is not None else name,
            "email": email,
            "role": role,
        }
        result = listing.search(
            {field: text for field, text in filters.items() if text},
            sort_key=sort,
            sort_direction=direction,
            page_index=page - 1,
            page_size=limit,
        )
        return UserListResponse(
            users=[_user_to_response(user) for user in result.records],
            total=result.total_match_count,
        )

    @app.post(
        "/api/users",
        status_code=status.HTTP_201_CREATED,
        response_model=UserResponse,
    )
    async def create_user(request: UserCreateRequest) -> UserResponse:
        user = database.insert(request.full_name, request.email, request.role)
        logger.info("Created user %s <%s> with role %s", user.id, user.email, user.role)
        return _user_to_response(user)

    @app.put("/api/users", response_model=MessageResponse)
    async def update_user(request: UserUpdateRequest) -> MessageResponse:
        if not request.id:
            raise BadRequest("ID is required")
        database.update_by_id(request.id, request.changed_fields())
        return MessageResponse(message="User updated")

    @app.delete("/api/users", response_model=MessageResponse)
    async def delete_user(request: UserDeleteRequest) -> MessageResponse:
        if not request.id:
            raise BadRequest("ID is required")
        if not database.delete_by_id(request.id):
            logger.info("Delete requested for unknown user %s", request.id)
        return MessageResponse(message="User deleted")


def create_app(
    *,
    database: Database | None = None,
    settings: ConsoleSettings | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the user admin console.

    When no ``database`` is supplied the application opens one from
    ``settings`` on startup and closes it on shutdown. A supplied database is
    opened if necessary but left open for its owner to close.
    """

    owns_database = database is None
    if database is None:
        settings = settings or load_settings()
        database = Database(settings.database_path)
    db = database

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        db.initialize()
        logger.info("User store ready at %s", db.path)
        try:
            yield
        finally:
            if owns_database:
                db.close()

    app = FastAPI(
        title="StageControl User Admin API",
        version="0.1.0",
        description="Search, page and edit the user collection.",
        lifespan=lifespan,
    )
    app.state.database = db

    register_exception_handlers(app)
    register_user_routes(app, db)
    return app


__all__ = [
    "MessageResponse",
    "UserCreateRequest",
    "UserDeleteRequest",
    "UserListResponse",
    "UserResponse",
    "UserUpdateRequest",
    "create_app",
]
