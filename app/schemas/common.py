"""Schémas partagés : pagination et enveloppes de réponse."""

from typing import Any

from pydantic import BaseModel, Field

from app.schemas.utils import CAMEL_CONFIG


class Pagination(BaseModel):
    page: int = Field(..., ge=1, description="Page courante")
    limit: int = Field(..., ge=1, description="Taille de page")
    total: int = Field(..., ge=0, description="Nombre total d'enregistrements")
    pages: int = Field(..., ge=0, description="Nombre total de pages")


class RecordListResponse(BaseModel):
    """
    Liste paginée d'enregistrements masqués.

    ``debug`` n'est présent que lorsque EXPOSE_QUERY_DEBUG est activé.
    """

    data: list[dict[str, Any]]
    pagination: Pagination
    debug: dict[str, Any] | None = None


class MessageResponse(BaseModel):
    message: str


class IdList(BaseModel):
    model_config = CAMEL_CONFIG

    ids: list[int | str] = Field(..., min_length=1, description="Identifiants à traiter")
