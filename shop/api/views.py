"""
GraphQL view with authentication, idempotency and logging support.
"""
import hashlib
import json
import logging
from uuid import UUID, uuid4

from ariadne import graphql_sync
from django.conf import settings
from django.db import IntegrityError, transaction
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from graphql import GraphQLSyntaxError, OperationDefinitionNode, OperationType, parse

from shop.api.middleware import ErrorHandler
from shop.api.schema import schema
from shop.config import ShopConfig
from shop.infra.models import IdempotencyKey
from shop.infra.pii_masker import mask_pii_in_dict, mask_uuid
from shop.infra.repositories import CustomerRepository
from shop.services.auth import AuthContext

logger = logging.getLogger(__name__)

# Mutation root fields whose responses are cached under an Idempotency-Key.
IDEMPOTENT_OPERATIONS = {
    "placeOrder": "PLACE_ORDER",
    "placeDirectOrder": "PLACE_DIRECT_ORDER",
    "cancelOrder": "CANCEL_ORDER",
    "adminCancelOrder": "ADMIN_CANCEL_ORDER",
    "payOrder": "PAY_ORDER",
}


class AuthenticationFailed(Exception):
    pass


class StorefrontGraphQLView:
    """GraphQL view with idempotency and structured logging."""

    def __init__(self, customer_repo: CustomerRepository | None = None):
        self.customer_repo = customer_repo or CustomerRepository()

    def dispatch(self, request, *args, **kwargs):
        """Handle GraphQL request with idempotency."""
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        idempotency_key = request.headers.get("Idempotency-Key")
        user_id = request.headers.get("X-User-ID")

        log_data = {
            "request_id": request_id,
            "user_id": mask_uuid(user_id) if user_id else None,
            "idempotency_key": idempotency_key[:8] + "..." if idempotency_key else None,
            "operation": "graphql",
        }
        logger.info("graphql_request", extra=mask_pii_in_dict(log_data))

        if request.method == "GET":
            return JsonResponse({"message": "GraphQL endpoint. Use POST for queries."})

        try:
            data = json.loads(request.body)
        except json.JSONDecodeError:
            return JsonResponse(
                {"error": {"code": "VALIDATION_ERROR", "message": "Invalid JSON"}},
                status=400,
            )
        if not isinstance(data, dict):
            return JsonResponse(
                {"error": {"code": "VALIDATION_ERROR", "message": "Request body must be a JSON object"}},
                status=400,
            )

        try:
            auth = self._authenticate(user_id)
        except AuthenticationFailed as e:
            logger.warning(
                "authentication_failed",
                extra={"request_id": request_id, "user_id": mask_uuid(user_id), "error": str(e)},
            )
            return JsonResponse(
                {"error": {"code": "UNAUTHENTICATED", "message": str(e)}},
                status=ErrorHandler.ERROR_CODES["UNAUTHENTICATED"],
            )

        operation = self._extract_operation(data.get("query") or "", data.get("operationName"))
        try:
            if idempotency_key and auth is not None and operation is not None:
                response = self._dispatch_idempotent(request_id, idempotency_key, auth, operation, data)
            else:
                response = self._execute(request_id, auth, data)
        except Exception as e:
            response = ErrorHandler.handle_error(e)

        logger.info(
            "graphql_response",
            extra={
                "request_id": request_id,
                "user_id": mask_uuid(user_id) if user_id else None,
                "status": response.status_code,
            },
        )
        return response

    def _dispatch_idempotent(self, request_id, idempotency_key, auth, operation, data):
        request_hash = self._create_request_hash(data.get("query", ""), data.get("variables") or {})
        existing = IdempotencyKey.objects.filter(
            key=idempotency_key,
            user_id=auth.user_id,
            operation=operation,
        ).first()

        if existing:
            if existing.request_hash == request_hash:
                logger.info(
                    "idempotent_request_cached",
                    extra={
                        "request_id": request_id,
                        "user_id": mask_uuid(str(auth.user_id)),
                        "idempotency_key": idempotency_key,
                        "operation": operation,
                    },
                )
                return JsonResponse(existing.response_payload, safe=False)

            logger.warning(
                "idempotency_key_conflict",
                extra={
                    "request_id": request_id,
                    "user_id": mask_uuid(str(auth.user_id)),
                    "idempotency_key": idempotency_key,
                    "operation": operation,
                },
            )
            return JsonResponse(
                {
                    "error": {
                        "code": "DUPLICATE_REQUEST",
                        "message": "Idempotency key already used with different request",
                    }
                },
                status=ErrorHandler.ERROR_CODES["DUPLICATE_REQUEST"],
            )

        response = self._execute(request_id, auth, data)
        payload = json.loads(response.content)

        # Failed attempts are not cached so the client may retry with the same key.
        if response.status_code == 200 and not payload.get("errors"):
            try:
                with transaction.atomic():
                    IdempotencyKey.objects.create(
                        key=idempotency_key,
                        user_id=auth.user_id,
                        operation=operation,
                        request_hash=request_hash,
                        response_payload=payload,
                    )
            except IntegrityError:
                logger.warning(
                    "idempotency_key_race",
                    extra={"request_id": request_id, "idempotency_key": idempotency_key},
                )
        return response

    def _execute(self, request_id, auth, data):
        """Execute GraphQL operation."""
        success, result = graphql_sync(
            schema,
            data,
            context_value={
                "request_id": request_id,
                "auth": auth,
                "config": ShopConfig.from_settings(),
            },
            error_formatter=ErrorHandler.format_graphql_error,
            debug=settings.DEBUG,
        )
        for error in result.get("errors") or []:
            logger.info(
                "graphql_error",
                extra={
                    "request_id": request_id,
                    "user_id": mask_uuid(str(auth.user_id)) if auth else None,
                    "error": (error.get("extensions") or {}).get("code", error.get("message")),
                },
            )

        status_code = 200 if success else 400
        return JsonResponse(result, status=status_code)

    def _authenticate(self, user_id: str | None) -> AuthContext | None:
        """Build the caller's auth context from the X-User-ID header."""
        if not user_id:
            return None
        try:
            customer_uuid = UUID(user_id)
        except (ValueError, TypeError):
            raise AuthenticationFailed("Invalid user id")

        customer = self.customer_repo.get_by_id(customer_uuid)
        if customer is None or not customer.is_active:
            raise AuthenticationFailed("Unknown or inactive user")
        return AuthContext(user_id=customer.id, role=customer.role)

    def _create_request_hash(self, query: str, variables: dict) -> str:
        """Create hash of request for deduplication."""
        content = json.dumps({"query": query, "variables": variables}, sort_keys=True, default=str)
        return hashlib.sha256(content.encode()).hexdigest()

    def _extract_operation(self, query: str, operation_name: str | None) -> str | None:
        """Map the selected mutation's first root field to an idempotent operation type."""
        try:
            document = parse(query)
        except GraphQLSyntaxError:
            return None

        for definition in document.definitions:
            if not isinstance(definition, OperationDefinitionNode):
                continue
            if operation_name and (definition.name is None or definition.name.value != operation_name):
                continue
            if definition.operation != OperationType.MUTATION:
                return None
            for selection in definition.selection_set.selections:
                field_name = getattr(selection, "name", None)
                if field_name is not None and field_name.value in IDEMPOTENT_OPERATIONS:
                    return IDEMPOTENT_OPERATIONS[field_name.value]
            return None
        return None


@csrf_exempt
@require_http_methods(["GET", "POST"])
def graphql_view(request):
    """GraphQL endpoint."""
    view = StorefrontGraphQLView()
    return view.dispatch(request)
