"""
Record Store : accès aux enregistrements par prédicats typés.

Le reste du service ne construit jamais de requête SQL lui-même : il passe
des ``Predicate`` / ``SortKey`` issus du Query Shaper ou du contrôle d'accès,
traduits ici en expressions SQLAlchemy paramétrées.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from opentelemetry import trace
from sqlalchemy import Select, and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError
from app.models.account import Account
from app.models.patient import Patient
from app.query.specification import Operator, Predicate, SortDirection, SortKey

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MODELS: Mapping[str, type] = {
    "patient": Patient,
    "account": Account,
}


class RecordStore(Protocol):
    async def find(
        self,
        resource_type: str,
        predicates: Sequence[Predicate] = (),
        sort: Sequence[SortKey] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Any]: ...

    async def count(self, resource_type: str, predicates: Sequence[Predicate] = ()) -> int: ...

    async def count_by(
        self, resource_type: str, field: str, predicates: Sequence[Predicate] = ()
    ) -> dict[Any, int]: ...

    async def find_one(self, resource_type: str, predicates: Sequence[Predicate]) -> Any | None: ...

    async def save(self, record: Any) -> Any: ...

    async def update_many(
        self, resource_type: str, predicates: Sequence[Predicate], values: dict[str, Any]
    ) -> int: ...

    async def delete(self, record: Any) -> None: ...


def model_for(resource_type: str) -> type:
    try:
        return MODELS[resource_type]
    except KeyError:
        raise ValueError(f"Type de ressource inconnu: {resource_type}") from None


def _column(model: type, field: str):
    column = model.__table__.columns.get(field)
    if column is None:
        raise ValueError(f"Champ inconnu '{field}' pour {model.__name__}")
    return getattr(model, field)


def build_condition(model: type, predicate: Predicate):
    """Traduit un prédicat en expression SQLAlchemy (valeurs toujours liées)."""
    operator = predicate.operator

    if operator is Operator.CONTAINS_ANY_CI:
        fields = predicate.field if isinstance(predicate.field, tuple) else (predicate.field,)
        return or_(
            *(_column(model, field).icontains(predicate.value, autoescape=True) for field in fields)
        )

    column = _column(model, predicate.field)
    if operator is Operator.EQ:
        return column == predicate.value
    if operator is Operator.IN:
        return column.in_(tuple(predicate.value))
    if operator is Operator.CONTAINS_CI:
        return column.icontains(predicate.value, autoescape=True)
    if operator is Operator.HAS:
        return column.contains([predicate.value])
    if operator is Operator.GT:
        return column > predicate.value
    if operator is Operator.GTE:
        return column >= predicate.value
    if operator is Operator.LT:
        return column < predicate.value
    if operator is Operator.LTE:
        return column <= predicate.value
    raise ValueError(f"Opérateur non supporté: {operator}")


def build_where(model: type, predicates: Sequence[Predicate]):
    return and_(*(build_condition(model, predicate) for predicate in predicates))


def build_select(
    resource_type: str,
    predicates: Sequence[Predicate] = (),
    sort: Sequence[SortKey] = (),
    skip: int = 0,
    limit: int | None = None,
) -> Select:
    model = model_for(resource_type)
    statement = select(model)
    if predicates:
        statement = statement.where(build_where(model, predicates))
    for key in sort:
        column = _column(model, key.field)
        statement = statement.order_by(
            column.desc() if key.direction is SortDirection.DESC else column.asc()
        )
    if skip:
        statement = statement.offset(skip)
    if limit is not None:
        statement = statement.limit(limit)
    return statement


def build_count(resource_type: str, predicates: Sequence[Predicate] = ()) -> Select:
    model = model_for(resource_type)
    statement = select(func.count()).select_from(model)
    if predicates:
        statement = statement.where(build_where(model, predicates))
    return statement


def build_count_by(
    resource_type: str, field: str, predicates: Sequence[Predicate] = ()
) -> Select:
    model = model_for(resource_type)
    column = _column(model, field)
    statement = select(column, func.count()).select_from(model)
    if predicates:
        statement = statement.where(build_where(model, predicates))
    return statement.group_by(column)


class SqlAlchemyRecordStore:
    """Implémentation PostgreSQL (SQLAlchemy 2.0 async) du Record Store."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(
        self,
        resource_type: str,
        predicates: Sequence[Predicate] = (),
        sort: Sequence[SortKey] = (),
        skip: int = 0,
        limit: int | None = None,
    ) -> list[Any]:
        with tracer.start_as_current_span("record_store.find") as span:
            span.set_attribute("store.resource_type", resource_type)
            result = await self.session.execute(
                build_select(resource_type, predicates, sort, skip, limit)
            )
            records = list(result.scalars().all())
            span.set_attribute("store.results", len(records))
            return records

    async def count(self, resource_type: str, predicates: Sequence[Predicate] = ()) -> int:
        with tracer.start_as_current_span("record_store.count") as span:
            span.set_attribute("store.resource_type", resource_type)
            result = await self.session.execute(build_count(resource_type, predicates))
            return result.scalar_one()

    async def count_by(
        self, resource_type: str, field: str, predicates: Sequence[Predicate] = ()
    ) -> dict[Any, int]:
        """Nombre d'enregistrements par valeur de ``field``."""
        with tracer.start_as_current_span("record_store.count_by") as span:
            span.set_attribute("store.resource_type", resource_type)
            span.set_attribute("store.group_by", field)
            result = await self.session.execute(build_count_by(resource_type, field, predicates))
            return {value: total for value, total in result.all()}

    async def find_one(self, resource_type: str, predicates: Sequence[Predicate]) -> Any | None:
        result = await self.session.execute(build_select(resource_type, predicates, limit=1))
        return result.scalars().first()

    async def save(self, record: Any) -> Any:
        """
        Enregistre (création ou mise à jour) et recharge l'enregistrement.

        Raises:
            ConflictError: Violation d'unicité, sans révéler la contrainte en cause
        """
        with tracer.start_as_current_span("record_store.save") as span:
            span.set_attribute("store.model", type(record).__name__)
            self.session.add(record)
            try:
                await self.session.commit()
            except IntegrityError as e:
                await self.session.rollback()
                logger.warning(f"Violation d'unicité sur {type(record).__name__}: {e.orig}")
                span.set_attribute("store.conflict", True)
                raise ConflictError() from e
            await self.session.refresh(record)
            return record

    async def update_many(
        self, resource_type: str, predicates: Sequence[Predicate], values: dict[str, Any]
    ) -> int:
        model = model_for(resource_type)
        statement = update(model).where(build_where(model, predicates)).values(**values)
        result = await self.session.execute(statement.execution_options(synchronize_session=False))
        await self.session.commit()
        return result.rowcount

    async def delete(self, record: Any) -> None:
        await self.session.delete(record)
        await self.session.commit()
