"""Schémas Pydantic pour la validation des données."""

from app.schemas.responses import (
    COMMON_RESPONSES,
    ForbiddenResponse,
    InvalidQueryResponse,
    ProblemDetailResponse,
    ValidationErrorResponse,
    build_responses,
)

__all__ = [
    "COMMON_RESPONSES",
    "ForbiddenResponse",
    "InvalidQueryResponse",
    "ProblemDetailResponse",
    "ValidationErrorResponse",
    "build_responses",
]
