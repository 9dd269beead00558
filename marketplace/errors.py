import logging
import traceback
from typing import Callable

from fastapi.requests import Request
from fastapi.responses import JSONResponse
from fastapi import FastAPI, status
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class MarketplaceException(Exception):
    """Base class for all marketplace messaging exceptions."""

    def __init__(self, message: str = "An error occurred", error_code: str = "error"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class DatabaseError(MarketplaceException):
    """An error occurred while interacting with the database."""
    def __init__(self, message: str = "Database error occurred", error_code: str = "database_error"):
        super().__init__(message=message, error_code=error_code)


class DataValidationError(MarketplaceException):
    """Submitted data failed validation checks."""
    def __init__(self, message: str = "Data validation failed"):
        super().__init__(message=message, error_code="data_validation_error")


class ConversationNotFound(MarketplaceException):
    """The conversation does not exist."""
    def __init__(self, message: str = "Conversation not found"):
        super().__init__(message=message, error_code="conversation_not_found")


class UserNotFound(MarketplaceException):
    """User not found in the system."""
    def __init__(self, message: str = "User not found"):
        super().__init__(message=message, error_code="user_not_found")


class ProductNotFound(MarketplaceException):
    """Product listing not found."""
    def __init__(self, message: str = "Product not found"):
        super().__init__(message=message, error_code="product_not_found")


class UserAlreadyExists(MarketplaceException):
    """User is trying to register with a username that is taken."""
    def __init__(self, message: str = "Username already taken"):
        super().__init__(message=message, error_code="user_exists")


class InvalidCredentials(MarketplaceException):
    """User has provided incorrect login details."""
    def __init__(self, message: str = "Invalid username or password"):
        super().__init__(message=message, error_code="invalid_credentials")


class InvalidToken(MarketplaceException):
    """User has provided an invalid or expired token."""
    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message=message, error_code="invalid_token")


class UnAuthenticated(MarketplaceException):
    """User is not authenticated."""
    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message=message, error_code="unauthenticated")


class Forbidden(MarketplaceException):
    """The client does not have permission to access this resource."""
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message=message, error_code="forbidden")


def create_exception_handler(
    status_code: int,
    initial_detail: dict,
) -> Callable[[Request, MarketplaceException], JSONResponse]:

    async def exception_handler(request: Request, exc: MarketplaceException):
        return JSONResponse(
            status_code=status_code,
            content={
                "message": exc.message or initial_detail["message"],
                "error_code": exc.error_code or initial_detail["error_code"],
                "resolution": initial_detail.get("resolution") or "Please try again later",
            }
        )

    return exception_handler


def register_all_errors(app: FastAPI):
    """Registers all exception handlers in the FastAPI app."""

    app.add_exception_handler(
        DatabaseError,
        create_exception_handler(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            initial_detail={
                "message": "Database error occurred",
                "resolution": "Please try again later",
                "error_code": "database_error",
            },
        ),
    )

    app.add_exception_handler(
        DataValidationError,
        create_exception_handler(
            status_code=status.HTTP_400_BAD_REQUEST,
            initial_detail={
                "message": "Data validation failed",
                "resolution": "Please check the data you provided",
                "error_code": "data_validation_error",
            },
        ),
    )

    app.add_exception_handler(
        ConversationNotFound,
        create_exception_handler(
            status_code=status.HTTP_404_NOT_FOUND,
            initial_detail={
                "message": "Conversation not found",
                "resolution": "Please check the conversation id",
                "error_code": "conversation_not_found",
            },
        ),
    )

    app.add_exception_handler(
        UserNotFound,
        create_exception_handler(
            status_code=status.HTTP_404_NOT_FOUND,
            initial_detail={
                "message": "User not found",
                "resolution": "Please check the user id",
                "error_code": "user_not_found",
            },
        ),
    )

    app.add_exception_handler(
        ProductNotFound,
        create_exception_handler(
            status_code=status.HTTP_404_NOT_FOUND,
            initial_detail={
                "message": "Product not found",
                "resolution": "Please check the product id",
                "error_code": "product_not_found",
            },
        ),
    )

    app.add_exception_handler(
        UserAlreadyExists,
        create_exception_handler(
            status_code=status.HTTP_400_BAD_REQUEST,
            initial_detail={
                "message": "Username already taken",
                "resolution": "Please choose a different username",
                "error_code": "user_exists",
            },
        ),
    )

    app.add_exception_handler(
        InvalidCredentials,
        create_exception_handler(
            status_code=status.HTTP_401_UNAUTHORIZED,
            initial_detail={
                "message": "Invalid username or password",
                "resolution": "Please check your credentials and try again",
                "error_code": "invalid_credentials",
            },
        ),
    )

    app.add_exception_handler(
        InvalidToken,
        create_exception_handler(
            status_code=status.HTTP_401_UNAUTHORIZED,
            initial_detail={
                "message": "Token is invalid or expired",
                "resolution": "Please sign in again",
                "error_code": "invalid_token",
            },
        ),
    )

    app.add_exception_handler(
        UnAuthenticated,
        create_exception_handler(
            status_code=status.HTTP_401_UNAUTHORIZED,
            initial_detail={
                "message": "User not authenticated.",
                "resolution": "Please request a new token or signin.",
                "error_code": "unauthenticated",
            },
        ),
    )

    app.add_exception_handler(
        Forbidden,
        create_exception_handler(
            status_code=status.HTTP_403_FORBIDDEN,
            initial_detail={
                "message": "Forbidden",
                "resolution": "You do not have permission to access this resource",
                "error_code": "forbidden",
            },
        ),
    )

    @app.exception_handler(SQLAlchemyError)
    async def database_error(request: Request, exc: SQLAlchemyError):
        logger.error(f"Database error at {request.method} {request.url.path}: {exc}")
        logger.error(traceback.format_exc())
        return JSONResponse(
            content={
                "message": "Database error occurred",
                "resolution": "Please try again later",
                "error_code": "database_error",
            },
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
