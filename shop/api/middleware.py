"""
Error handling for API responses.
"""
import logging

from ariadne import format_error
from django.db import DatabaseError
from django.http import JsonResponse
from graphql import GraphQLError

from shop.domain.exceptions import ShopError

logger = logging.getLogger(__name__)


class ErrorHandler:
    """Maps storefront errors to HTTP statuses and GraphQL error extensions."""

    ERROR_CODES = {
        "VALIDATION_ERROR": 400,
        "NOT_FOUND": 404,
        "FORBIDDEN": 403,
        "UNAUTHENTICATED": 401,
        "CONFLICT": 409,
        "INSUFFICIENT_STOCK": 409,
        "PRODUCT_UNAVAILABLE": 409,
        "INSUFFICIENT_BALANCE": 409,
        "INVALID_STATE": 409,
        "CANCELLATION_LIMIT": 429,
        "DUPLICATE_REQUEST": 409,
        "INTEGRITY_ERROR": 503,
        "INTERNAL_ERROR": 500,
    }

    @classmethod
    def describe(cls, error: Exception) -> dict:
        """Return ``{"code", "message", "retryable", **details}`` for an exception."""
        if isinstance(error, ShopError):
            return {
                "code": error.code,
                "message": error.message,
                "retryable": error.retryable,
                **error.details,
            }

        if isinstance(error, DatabaseError):
            logger.error(
                "storage_error",
                extra={"error_type": type(error).__name__, "error_message": str(error)},
                exc_info=error,
            )
            return {
                "code": "INTEGRITY_ERROR",
                "message": "The operation was rolled back because storage failed. Please retry.",
                "retryable": True,
            }

        logger.error(
            "unexpected_error",
            extra={"error_type": type(error).__name__, "error_message": str(error)},
            exc_info=error,
        )
        return {
            "code": "INTERNAL_ERROR",
            "message": "An internal error occurred",
            "retryable": False,
        }

    @classmethod
    def handle_error(cls, error: Exception) -> JsonResponse:
        """Handle a transport-level error and return a JSON response."""
        described = cls.describe(error)
        status_code = cls.ERROR_CODES.get(described["code"], 500)
        return JsonResponse({"error": described}, status=status_code)

    @classmethod
    def format_graphql_error(cls, error: GraphQLError, debug: bool = False) -> dict:
        """Ariadne error formatter adding ``extensions.code`` and ``retryable``."""
        formatted = format_error(error, debug)
        original = unwrap(error)
        if original is None:
            return formatted

        described = cls.describe(original)
        formatted["message"] = described.pop("message")
        extensions = formatted.setdefault("extensions", {})
        extensions.update(described)
        return formatted


def unwrap(error: GraphQLError) -> Exception | None:
    """Return the exception a resolver raised, if any."""
    original = error.original_error
    while isinstance(original, GraphQLError) and original.original_error is not None:
        original = original.original_error
    if isinstance(original, GraphQLError):
        return None
    return original
