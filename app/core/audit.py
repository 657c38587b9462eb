"""
Audit Sink : trace des décisions d'accès et des mutations de dossiers.

Chaque enregistrement produit :
- une ligne sur le logger ``app.audit``
- un événement ``audit.<event_name>`` publié sur le bus Redis

L'audit ne fait jamais échouer la requête : une erreur de publication est
journalisée puis ignorée.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from app.core import events
from app.core.config import settings

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("app.audit")

Publisher = Callable[..., Awaitable[None]]


class AuditSink:
    """Émetteur d'événements d'audit (fire-and-forget)."""

    def __init__(self, publisher: Publisher | None = None, enabled: bool | None = None):
        self._publisher = publisher
        self.enabled = settings.AUDIT_EVENTS_ENABLED if enabled is None else enabled

    async def _publish(self, subject: str, payload: dict) -> None:
        publisher = self._publisher or events.publish
        # Une seule tentative : l'audit ne doit pas retarder la réponse
        await publisher(subject, payload, max_retries=1)

    async def record(
        self,
        event_name: str,
        actor_id: int | None,
        resource_ref: str | None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Enregistre un événement d'audit.

        Args:
            event_name: Nom de l'événement (ex: "access.denied", "patient.updated")
            actor_id: ID du compte appelant (None si non authentifié)
            resource_ref: Référence de la ressource ciblée (ex: "patient:42")
            details: Contexte additionnel, sans donnée d'authentification brute
        """
        payload = {
            "event": event_name,
            "actor_id": actor_id,
            "resource": resource_ref,
            "details": details or {},
            "timestamp": datetime.now(UTC).isoformat(),
        }
        audit_logger.info(
            f"AUDIT {event_name} actor={actor_id} resource={resource_ref} details={payload['details']}"
        )
        if not self.enabled:
            return
        try:
            await self._publish(f"audit.{event_name}", payload)
        except Exception as e:
            logger.warning(f"Publication de l'événement d'audit '{event_name}' impossible: {e}")


audit_sink = AuditSink()
