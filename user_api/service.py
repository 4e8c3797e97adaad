"""HTTP API exposing the health check and the users listing."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional, Union

import anyio
from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .database import Database, DatabaseError, QueryError, ResultProcessingError
from .models import User

logger = logging.getLogger("userdirectory.service")

HEALTH_MESSAGE = "Server is running!"
QUERY_FAILED_MESSAGE = "Database query failed"
PROCESSING_FAILED_MESSAGE = "Failed to process query results"


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    full_name: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


def _user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        full_name=user.full_name,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def get_database(request: Request) -> Database:
    """Return the :class:`Database` attached to the running application."""

    return request.app.state.database


def register_api_routes(app: FastAPI) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    @app.get("/health", response_model=str)
    async def health_check() -> str:
        logger.info("Health check endpoint called")
        return HEALTH_MESSAGE

    @app.get(
        "/users",
        response_model=List[UserResponse],
        responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": str}},
    )
    async def list_users(
        database: Database = Depends(get_database),
    ) -> Union[List[UserResponse], JSONResponse]:
        logger.info("GET /users endpoint called")
        try:
            users = await anyio.to_thread.run_sync(database.list_users)
        except QueryError:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=QUERY_FAILED_MESSAGE,
            )
        except ResultProcessingError:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=PROCESSING_FAILED_MESSAGE,
            )
        except DatabaseError:
            logger.exception("Unexpected database failure while listing users")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=QUERY_FAILED_MESSAGE,
            )
        return [_user_to_response(user) for user in users]


def create_app(*, database: Database, owns_database: bool = False) -> FastAPI:
    """Instantiate the FastAPI application around an existing :class:`Database`.

    When ``owns_database`` is set the pooled connections are closed when the
    application shuts down.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            if owns_database:
                logger.info("Closing database connections")
                database.dispose()

    app = FastAPI(
        title="User Directory API",
        version="0.1.0",
        description="Read-only listing of the users table.",
        lifespan=lifespan,
    )
    app.state.database = database

    register_api_routes(app)

    return app


__all__ = ["UserResponse", "create_app", "get_database", "register_api_routes"]
