"""
Request Orchestrator : composition du pipeline par requête.

identité (dépendance FastAPI) → autorisation → mise en forme de la requête
(listes) → Record Store → masquage → réponse.

Sans état : chaque appel ne manipule que des valeurs propres à la requête.
Toute erreur interrompt la suite du pipeline et remonte telle quelle vers
les handlers RFC 9457.
"""

import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from opentelemetry import trace

from app.access.capabilities import Action
from app.access.controller import AccessController, access_controller, scope_predicates
from app.core.audit import AuditSink, audit_sink
from app.core.config import settings
from app.core.exceptions import MalformedIdentifierError, NotFoundError, RFC9457Exception
from app.core.security import Identity
from app.masking.masker import hidden_paths, mask
from app.query.shaper import shape
from app.query.specification import Operator, Predicate
from app.services.record_store import RecordStore
from app.services.resources import ResourceType, get_resource

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

Mutation = Callable[[Any], Awaitable[Any] | Any]


def parse_record_id(raw_id: Any, resource: ResourceType) -> int:
    """
    Identifiant numérique strictement positif.

    Raises:
        MalformedIdentifierError: Identifiant non entier ou non positif (400)
    """
    if isinstance(raw_id, bool):
        raise MalformedIdentifierError(resource.label)
    if isinstance(raw_id, int):
        value = raw_id
    elif isinstance(raw_id, str) and raw_id.isascii() and raw_id.isdigit():
        value = int(raw_id)
    else:
        raise MalformedIdentifierError(resource.label)
    if value < 1:
        raise MalformedIdentifierError(resource.label)
    return value


class RequestOrchestrator:
    def __init__(
        self,
        access: AccessController | None = None,
        audit: AuditSink | None = None,
        expose_debug: bool | None = None,
    ):
        self.access = access or access_controller
        self.audit = audit or audit_sink
        self.expose_debug = settings.EXPOSE_QUERY_DEBUG if expose_debug is None else expose_debug

    def present(self, resource: ResourceType, record: Any, identity: Identity) -> dict[str, Any]:
        """Sérialise puis masque un enregistrement pour l'appelant."""
        return mask(resource.serialize(record), identity, resource.masking)

    async def fetch(self, resource: ResourceType, record_id: int, store: RecordStore) -> Any:
        record = await store.find_one(resource.name, (Predicate("id", Operator.EQ, record_id),))
        if record is None:
            raise NotFoundError(
                detail=f"{resource.label.capitalize()} not found",
                resource_type=resource.name,
                resource_id=str(record_id),
            )
        return record

    async def list_records(
        self,
        identity: Identity,
        action: Action,
        raw_params: Mapping[str, str],
        store: RecordStore,
        base_predicates: tuple[Predicate, ...] = (),
    ) -> dict[str, Any]:
        """
        Liste paginée, filtrée et triée, restreinte au périmètre de l'appelant.

        Returns:
            {"data": [...], "pagination": {...}, "debug"?: {...}}
        """
        resource = get_resource(action.resource_type)
        with tracer.start_as_current_span("orchestrator.list_records") as span:
            span.set_attribute("orchestrator.action", action.value)
            await self.access.authorize(identity, action)

            specification = shape(
                resource.name, raw_params, hidden_paths=hidden_paths(resource.masking, identity)
            ).with_predicates(*base_predicates, *scope_predicates(identity, resource.name))
            records = await store.find(
                resource.name,
                specification.predicates,
                specification.sort,
                skip=specification.offset,
                limit=specification.limit,
            )
            total = await store.count(resource.name, specification.predicates)

            response: dict[str, Any] = {
                "data": [self.present(resource, record, identity) for record in records],
                "pagination": {
                    "page": specification.page,
                    "limit": specification.limit,
                    "total": total,
                    "pages": math.ceil(total / specification.limit) if total else 0,
                },
            }
            if self.expose_debug:
                response["debug"] = {
                    "filters": list(specification.debug.get("filters", ())),
                    "sort": list(specification.debug.get("sort", ())),
                    "pagination": specification.debug.get("pagination"),
                }

            span.set_attribute("orchestrator.results", len(records))
            await self.audit.record(
                f"{resource.name}.listed",
                actor_id=identity.account_id,
                resource_ref=resource.name,
                details={"count": len(records), "page": specification.page, "limit": specification.limit},
            )
            return response

    async def get_record(
        self, identity: Identity, action: Action, raw_id: Any, store: RecordStore
    ) -> dict[str, Any]:
        """Lecture d'un enregistrement : descripteur → autorisation → vue masquée."""
        resource = get_resource(action.resource_type)
        with tracer.start_as_current_span("orchestrator.get_record") as span:
            span.set_attribute("orchestrator.action", action.value)
            record = await self.load_authorized(identity, action, raw_id, store)
            return self.present(resource, record, identity)

    async def load_authorized(
        self, identity: Identity, action: Action, raw_id: Any, store: RecordStore
    ) -> Any:
        """
        Contrôles de rôle et de vérification, chargement, puis autorisation
        complète sur le descripteur.
        """
        resource = get_resource(action.resource_type)
        await self.access.precheck(identity, action)
        record_id = parse_record_id(raw_id, resource)
        record = await self.fetch(resource, record_id, store)
        await self.access.authorize(identity, action, resource.describe(record))
        return record

    async def create_record(
        self,
        identity: Identity,
        action: Action,
        build: Callable[[], Awaitable[Any]],
        store: RecordStore,
    ) -> dict[str, Any]:
        """
        Création : autorisation → construction → enregistrement → vue masquée.

        ``build`` construit l'instance du modèle (non enregistrée).
        """
        resource = get_resource(action.resource_type)
        with tracer.start_as_current_span("orchestrator.create_record") as span:
            span.set_attribute("orchestrator.action", action.value)
            await self.access.authorize(identity, action)
            try:
                record = await store.save(await build())
            except RFC9457Exception as e:
                await self._audit_failure(identity, action, resource.name, e)
                raise
            await self.audit.record(
                f"{resource.name}.created",
                actor_id=identity.account_id,
                resource_ref=f"{resource.name}:{record.id}",
            )
            return self.present(resource, record, identity)

    async def mutate_record(
        self,
        identity: Identity,
        action: Action,
        raw_id: Any,
        mutation: Mutation,
        store: RecordStore,
        extra_actions: tuple[Action, ...] = (),
    ) -> dict[str, Any]:
        """
        Mutation d'un enregistrement existant.

        Les contrôles de rôle et de vérification de chaque action précèdent
        le chargement. Le descripteur est ensuite lu une fois et réutilisé pour
        toutes les autorisations (``action`` puis ``extra_actions``).
        Concurrence : dernier écrivain gagnant au niveau du store.
        """
        resource = get_resource(action.resource_type)
        required_actions = (action, *extra_actions)
        with tracer.start_as_current_span("orchestrator.mutate_record") as span:
            span.set_attribute("orchestrator.action", action.value)
            for required in required_actions:
                await self.access.precheck(identity, required)
            record_id = parse_record_id(raw_id, resource)
            record = await self.fetch(resource, record_id, store)
            descriptor = resource.describe(record)
            for required in required_actions:
                await self.access.authorize(identity, required, descriptor)

            try:
                result = mutation(record)
                if hasattr(result, "__await__"):
                    await result
                record = await store.save(record)
            except RFC9457Exception as e:
                await self._audit_failure(identity, action, descriptor.ref, e)
                raise

            await self.audit.record(
                action.value,
                actor_id=identity.account_id,
                resource_ref=descriptor.ref,
            )
            return self.present(resource, record, identity)

    async def _audit_failure(
        self, identity: Identity, action: Action, resource_ref: str, error: RFC9457Exception
    ) -> None:
        logger.info(
            f"Mutation refusée: action={action.value} resource={resource_ref} status={error.status_code}"
        )
        await self.audit.record(
            "mutation.failed",
            actor_id=identity.account_id,
            resource_ref=resource_ref,
            details={"action": action.value, "status": error.status_code, "detail": error.detail},
        )


orchestrator = RequestOrchestrator()
