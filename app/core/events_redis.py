"""
Publication d'événements via Redis Pub/Sub - medblock-records.

Architecture :
- Redis Pub/Sub pour les événements d'audit et de cycle de vie des dossiers
- Pas de persistence garantie (les consommateurs doivent être abonnés)

Usage:
    from app.core.events import publish

    await publish("records.patient.created", {"patient_id": 42})
"""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import redis.asyncio as redis
from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel

from app.core.config import settings

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Client Redis global (créé au démarrage, réutilisé)
redis_client: redis.Redis | None = None


async def init_redis():
    """Initialise le client Redis au démarrage."""
    global redis_client
    redis_client = redis.from_url(
        settings.REDIS_URL,
        db=settings.REDIS_DB,
        decode_responses=True,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
    )
    await redis_client.ping()
    logger.info(f"Redis client initialisé: {settings.REDIS_URL}")


async def close_redis():
    """Ferme le client Redis proprement."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis client fermé")


async def publish(subject: str, payload: dict | BaseModel, max_retries: int = 3):
    """
    Publie un événement via Redis Pub/Sub.

    Args:
        subject: Sujet de l'événement (ex: "audit.access.denied")
        payload: Données de l'événement (dict ou Pydantic model)
        max_retries: Nombre maximum de tentatives (défaut: 3)

    Raises:
        RuntimeError: Si le client Redis n'est pas initialisé
        Exception: Si toutes les tentatives échouent
    """
    if redis_client is None:
        raise RuntimeError("Redis client non initialisé")

    if isinstance(payload, BaseModel):
        payload_dict = payload.model_dump(mode="json")
    else:
        payload_dict = payload

    message_id = str(uuid.uuid4())

    event_data = {
        "id": message_id,
        "subject": subject,
        "timestamp": datetime.now(UTC).isoformat(),
        "data": payload_dict,
    }

    span_attributes = {
        "messaging.system": "redis",
        "messaging.destination": subject,
        "messaging.message.id": message_id,
    }

    with tracer.start_as_current_span(
        f"publish.{subject}", kind=trace.SpanKind.PRODUCER, attributes=span_attributes
    ) as span:
        # Retry avec backoff exponentiel
        for attempt in range(max_retries):
            try:
                await redis_client.publish(subject, json.dumps(event_data, default=str))

                logger.debug(f"Événement '{subject}' publié avec ID: {message_id}")
                span.add_event("Événement publié avec succès", {"attempt": attempt + 1})
                return

            except Exception as e:
                wait_time = 2**attempt  # Backoff: 1s, 2s, 4s

                if attempt < max_retries - 1:
                    logger.warning(
                        f"Échec publication '{subject}' (tentative {attempt + 1}/{max_retries}): {e}. "
                        f"Retry dans {wait_time}s"
                    )
                    span.add_event(
                        f"Retry après échec (tentative {attempt + 1})",
                        {"error": str(e), "wait_time": wait_time},
                    )
                    await asyncio.sleep(wait_time)
                else:
                    error_msg = f"Échec définitif publication '{subject}' après {max_retries} tentatives: {e}"
                    logger.error(error_msg)
                    span.set_status(Status(StatusCode.ERROR, error_msg))
                    span.record_exception(e)
                    raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestionnaire de cycle de vie FastAPI pour Redis."""
    await init_redis()
    logger.info(f"Redis messaging initialisé (URL: {settings.REDIS_URL})")

    yield

    await close_redis()
    logger.info("Redis messaging arrêté proprement")


__all__ = ["close_redis", "init_redis", "lifespan", "publish"]
