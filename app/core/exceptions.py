"""
RFC 9457 Problem Details pour HTTP APIs - taxonomie d'erreurs medblock-records.

Chaque exception porte un ``status_code`` et un ``ProblemDetail`` sérialisé en
``application/problem+json`` par les handlers enregistrés via
``setup_problem_handlers``. Les membres d'extension (``reason``, ``parameter``,
``allowed``...) sont ajoutés au document RFC 9457.

Correspondance avec la taxonomie du pipeline d'exposition:
- UnauthenticatedError      → 401
- ForbiddenError            → 403 (sous-raison journalisée)
- ServerMisconfiguredError  → 500 (erreur de câblage, CRITICAL)
- InvalidQueryError         → 400 (paramètre fautif + valeurs permises)
- MalformedIdentifierError  → 400
- NotFoundError             → 404
- ConflictError             → 400 (message non révélateur)
"""

import logging
from enum import Enum
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from opentelemetry import trace
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

PROBLEM_JSON = "application/problem+json"
ERROR_TYPE_BASE = "https://medblock.app/errors"


class ProblemDetail(BaseModel):
    """Document RFC 9457. Les extensions sont acceptées comme champs libres."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(default="about:blank", description="URI identifiant le type d'erreur")
    title: str = Field(..., description="Résumé court du type d'erreur")
    status: int = Field(..., description="Code HTTP")
    detail: str | None = Field(None, description="Explication spécifique à l'occurrence")
    instance: str | None = Field(None, description="URI de l'occurrence")


class RFC9457Exception(HTTPException):
    """Exception de base sérialisée en Problem Details."""

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: str | None = None,
        type: str | None = None,
        instance: str | None = None,
        headers: dict[str, str] | None = None,
        **extensions: Any,
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.problem_detail = ProblemDetail(
            type=type or "about:blank",
            title=title,
            status=status_code,
            detail=detail,
            instance=instance,
            **{key: value for key, value in extensions.items() if value is not None},
        )


class ForbiddenReason(str, Enum):
    """Sous-raisons d'un refus d'accès (journalisées, distinctes pour l'appelant)."""

    ROLE_NOT_PERMITTED = "role_not_permitted"
    VERIFICATION_REQUIRED = "verification_required"
    NOT_OWNER = "not_owner"
    RELATIONSHIP_MISMATCH = "relationship_mismatch"
    SELF_TARGET_FORBIDDEN = "self_target_forbidden"


class UnauthenticatedError(RFC9457Exception):
    """Credential absent, invalide ou expiré."""

    def __init__(self, detail: str = "Authentication required", instance: str | None = None):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            title="Unauthorized",
            detail=detail,
            type=f"{ERROR_TYPE_BASE}/unauthenticated",
            instance=instance,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(RFC9457Exception):
    """Refus d'accès. ``reason`` distingue rôle, vérification, relation et auto-ciblage."""

    def __init__(
        self,
        reason: ForbiddenReason = ForbiddenReason.ROLE_NOT_PERMITTED,
        detail: str | None = None,
        instance: str | None = None,
    ):
        self.reason = reason
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            title="Forbidden",
            detail=detail or "You do not have permission to perform this action.",
            type=f"{ERROR_TYPE_BASE}/forbidden",
            instance=instance,
            reason=reason.value,
        )


class ServerMisconfiguredError(RFC9457Exception):
    """
    Autorisation invoquée sans identité résolue.

    Erreur de programmation (pipeline mal câblé), jamais un refus ordinaire.
    """

    def __init__(self, detail: str = "Server configuration error. Unable to verify user role."):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            title="Server Misconfigured",
            detail=detail,
            type=f"{ERROR_TYPE_BASE}/server-misconfigured",
        )


class InvalidQueryError(RFC9457Exception):
    """Paramètre de tri, filtre ou pagination refusé."""

    def __init__(self, parameter: str, detail: str, allowed: list[str] | None = None):
        self.parameter = parameter
        self.allowed = allowed
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            title="Invalid Query",
            detail=detail,
            type=f"{ERROR_TYPE_BASE}/invalid-query",
            parameter=parameter,
            allowed=allowed,
        )


class MalformedIdentifierError(RFC9457Exception):
    """Identifiant de ressource syntaxiquement invalide."""

    def __init__(self, resource_type: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            title="Malformed Identifier",
            detail=f"Invalid {resource_type} ID format.",
            type=f"{ERROR_TYPE_BASE}/malformed-identifier",
            resource_type=resource_type,
        )


class NotFoundError(RFC9457Exception):
    """Ressource absente."""

    def __init__(
        self,
        detail: str = "Resource not found",
        resource_type: str | None = None,
        resource_id: str | None = None,
        instance: str | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            title="Not Found",
            detail=detail,
            type=f"{ERROR_TYPE_BASE}/not-found",
            instance=instance,
            resource_type=resource_type,
            resource_id=resource_id,
        )


class ConflictError(RFC9457Exception):
    """
    Violation d'unicité à l'enregistrement.

    Le message ne révèle pas quel champ est entré en collision.
    """

    def __init__(self, detail: str = "A record with these details already exists", instance: str | None = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            title="Conflict",
            detail=detail,
            type=f"{ERROR_TYPE_BASE}/conflict",
            instance=instance,
        )


class VerificationTransitionError(RFC9457Exception):
    """Transition de statut de vérification professionnelle non permise."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            title="Invalid Verification Transition",
            detail=detail,
            type=f"{ERROR_TYPE_BASE}/verification-transition",
        )


def _current_trace_id() -> str | None:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x")


def _problem_response(problem: ProblemDetail, request: Request, headers=None) -> JSONResponse:
    if problem.instance is None:
        problem.instance = request.url.path
    body = problem.model_dump(exclude_none=True)
    trace_id = _current_trace_id()
    if trace_id:
        body["trace_id"] = trace_id
    return JSONResponse(
        status_code=problem.status,
        content=body,
        headers=headers,
        media_type=PROBLEM_JSON,
    )


def setup_problem_handlers(app: FastAPI, expose_internal_errors: bool = False) -> None:
    """
    Enregistre les exception handlers RFC 9457 sur l'application.

    Args:
        app: Application FastAPI
        expose_internal_errors: Inclure le message des erreurs 500 inattendues (dev)
    """

    @app.exception_handler(RFC9457Exception)
    async def handle_problem(request: Request, exc: RFC9457Exception) -> JSONResponse:
        problem = exc.problem_detail.model_copy()
        return _problem_response(problem, request, headers=exc.headers)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        problem = ProblemDetail(
            title=_status_title(exc.status_code),
            status=exc.status_code,
            detail=str(exc.detail) if exc.detail is not None else None,
        )
        return _problem_response(problem, request, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problem = ProblemDetail(
            type=f"{ERROR_TYPE_BASE}/validation",
            title="Validation Failed",
            status=status.HTTP_400_BAD_REQUEST,
            detail="Validation failed",
            errors=[
                {"loc": list(error.get("loc", [])), "msg": error.get("msg"), "type": error.get("type")}
                for error in exc.errors()
            ],
        )
        return _problem_response(problem, request)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        problem = ProblemDetail(
            title="Internal Server Error",
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc) if expose_internal_errors else "An unexpected error occurred",
        )
        return _problem_response(problem, request)


def _status_title(status_code: int) -> str:
    titles = {
        400: "Bad Request",
        401: "Unauthorized",
        403: "Forbidden",
        404: "Not Found",
        405: "Method Not Allowed",
        409: "Conflict",
        422: "Unprocessable Entity",
        500: "Internal Server Error",
        503: "Service Unavailable",
    }
    return titles.get(status_code, "Error")


__all__ = [
    "ConflictError",
    "ForbiddenError",
    "ForbiddenReason",
    "InvalidQueryError",
    "MalformedIdentifierError",
    "NotFoundError",
    "ProblemDetail",
    "RFC9457Exception",
    "ServerMisconfiguredError",
    "UnauthenticatedError",
    "VerificationTransitionError",
    "setup_problem_handlers",
]
