"""
Schémas de réponses OpenAPI pour RFC 9457 Problem Details.

Documentent les réponses d'erreur ``application/problem+json`` produites
par les handlers de app/core/exceptions.py.
"""

from typing import Any

from pydantic import BaseModel, Field

from app.core.exceptions import PROBLEM_JSON


class ProblemDetailResponse(BaseModel):
    """Document d'erreur RFC 9457."""

    type: str = Field("about:blank", examples=["https://medblock.app/errors/forbidden"])
    title: str = Field(..., examples=["Forbidden"])
    status: int = Field(..., examples=[403])
    detail: str | None = Field(None, examples=["You do not have permission to perform this action."])
    instance: str | None = Field(None, examples=["/api/v1/patients/42"])
    trace_id: str | None = Field(None, description="Identifiant de trace OpenTelemetry")


class ForbiddenResponse(ProblemDetailResponse):
    reason: str = Field(
        ...,
        description="Sous-raison du refus",
        examples=["role_not_permitted", "verification_required", "not_owner"],
    )


class InvalidQueryResponse(ProblemDetailResponse):
    parameter: str = Field(..., description="Paramètre rejeté", examples=["sortBy"])
    allowed: list[str] | None = Field(None, description="Valeurs permises")


class ValidationErrorResponse(ProblemDetailResponse):
    errors: list[dict[str, Any]] = Field(default_factory=list)


def _problem(description: str, model: type[BaseModel] = ProblemDetailResponse) -> dict[str, Any]:
    return {
        "description": description,
        "model": model,
        "content": {PROBLEM_JSON: {}},
    }


COMMON_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: _problem("Requête invalide (paramètre de requête, identifiant, validation)", InvalidQueryResponse),
    401: _problem("Authentification requise ou token invalide"),
    403: _problem("Accès refusé", ForbiddenResponse),
    500: _problem("Erreur interne ou configuration serveur"),
}


def build_responses(*status_codes: int) -> dict[int | str, dict[str, Any]]:
    """Sous-ensemble additionnel de réponses documentées (ex: 404)."""
    extra = {
        404: _problem("Ressource introuvable"),
        422: _problem("Validation du corps de requête", ValidationErrorResponse),
    }
    return {code: extra[code] for code in status_codes if code in extra}


__all__ = [
    "COMMON_RESPONSES",
    "ForbiddenResponse",
    "InvalidQueryResponse",
    "ProblemDetailResponse",
    "ValidationErrorResponse",
    "build_responses",
]
