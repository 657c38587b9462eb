"""Spécification de requête validée (prédicats + tri + pagination).

Objet éphémère, construit une seule fois par requête par le Query Shaper
puis transmis par valeur au Record Store. Les champs référencés sont des
champs de stockage, jamais des noms exposés aux clients.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any


class Operator(str, Enum):
    """Opérateurs autorisés dans un prédicat."""

    EQ = "eq"
    IN = "in"
    CONTAINS_CI = "contains_ci"
    CONTAINS_ANY_CI = "contains_any_ci"
    HAS = "has"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    def inverted(self) -> "SortDirection":
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


@dataclass(frozen=True)
class Predicate:
    """
    Condition élémentaire ``(champ, opérateur, valeur)``.

    Pour ``CONTAINS_ANY_CI``, ``field`` est un tuple de champs combinés en OU.
    Pour ``IN``, ``value`` est un tuple.
    """

    field: str | tuple[str, ...]
    operator: Operator
    value: Any


@dataclass(frozen=True)
class SortKey:
    field: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class QuerySpecification:
    """
    Prédicats (combinés en ET), clés de tri et fenêtre de pagination.

    ``debug`` contient la trace de construction (prédicats et tri appliqués,
    pagination brute vs interprétée), sans aucune valeur sensible en clair.
    """

    resource_type: str
    predicates: tuple[Predicate, ...] = ()
    sort: tuple[SortKey, ...] = ()
    page: int = 1
    limit: int = 20
    debug: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}), compare=False)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def with_predicates(self, *predicates: Predicate) -> "QuerySpecification":
        """Retourne une nouvelle spécification avec des prédicats additionnels."""
        if not predicates:
            return self
        return replace(self, predicates=self.predicates + tuple(predicates))
