"""Dépendances FastAPI pour l'injection de services."""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session
from app.core.security import Identity, IdentityResolver
from app.services.orchestrator import RequestOrchestrator, orchestrator
from app.services.record_store import RecordStore, SqlAlchemyRecordStore

identity_resolver = IdentityResolver()


async def get_record_store(session: Annotated[AsyncSession, Depends(get_session)]) -> RecordStore:
    """Record Store lié à la session de la requête."""
    return SqlAlchemyRecordStore(session)


def get_identity_resolver() -> IdentityResolver:
    return identity_resolver


def get_orchestrator() -> RequestOrchestrator:
    return orchestrator


async def get_current_identity(
    request: Request,
    store: Annotated[RecordStore, Depends(get_record_store)],
    resolver: Annotated[IdentityResolver, Depends(get_identity_resolver)],
) -> Identity:
    """
    Résout l'identité de l'appelant à chaque requête (jamais mise en cache).

    Raises:
        UnauthenticatedError: En-tête absent ou invalide, compte inconnu ou inactif (401)
    """
    return await resolver.resolve(
        request.headers.get("Authorization"),
        store,
        request_path=request.url.path,
    )


StoreDep = Annotated[RecordStore, Depends(get_record_store)]
IdentityDep = Annotated[Identity, Depends(get_current_identity)]
OrchestratorDep = Annotated[RequestOrchestrator, Depends(get_orchestrator)]
