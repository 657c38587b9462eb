"""
Façade du système d'événements - medblock-records.

Le reste du service importe ``publish`` et ``lifespan`` depuis ce module,
indépendamment du backend. Backend configuré : Redis Pub/Sub
(implémentation dans app/core/events_redis.py).

Usage:
    from app.core.events import lifespan, publish

    await publish("records.patient.created", {"patient_id": 42})

    app = FastAPI(lifespan=lifespan)
"""

from app.core.events_redis import lifespan, publish

_BACKEND = "redis"


def get_backend_info() -> dict:
    """Informations sur le backend messaging actif (exposées par /health)."""
    return {
        "backend": _BACKEND,
        "module": "app.core.events_redis",
    }


__all__ = [
    "get_backend_info",
    "lifespan",
    "publish",
]
