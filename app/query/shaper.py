"""
Query Shaper : paramètres bruts de requête → QuerySpecification validée.

Construction fermée et typée : chaque clé doit figurer dans la table de
champs de la ressource, chaque type de champ n'admet qu'un jeu
d'opérateurs connu. Toute entrée inconnue ou mal formée est rejetée avec
``InvalidQueryError`` (paramètre fautif + valeurs permises), jamais
assainie ni ignorée.

Paramètres réservés :
- ``page``, ``limit`` : pagination (entiers positifs, limit ≤ QUERY_MAX_LIMIT,
  offset résultant ≤ MAX_OFFSET)
- ``sortBy`` + ``sortOrder`` : tri explicite
- ``sort`` : tri historique (``-champ`` = décroissant, virgules acceptées)
- ``filterBy`` + ``filterValue`` : filtre sous forme de paire

Toute autre clé est un filtre ``champ=valeur``.
"""

import logging
import re
from collections.abc import Collection, Iterable, Mapping
from datetime import date
from types import MappingProxyType
from typing import Any

from opentelemetry import trace

from app.core.config import settings
from app.core.exceptions import InvalidQueryError
from app.query.specification import Operator, Predicate, QuerySpecification, SortDirection, SortKey
from app.query.virtual import birth_date_bounds, next_day
from app.query.whitelist import FieldSpec, FieldType, ResourceWhitelist, VirtualKind, get_whitelist

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

RESERVED_PARAMS = frozenset({"page", "limit", "sortBy", "sortOrder", "sort", "filterBy", "filterValue"})
SENSITIVE_PLACEHOLDER = "***"
MAX_OFFSET = 2**63 - 1

_POSITIVE_INT = re.compile(r"[0-9]+")
_NUMBER = re.compile(r"-?[0-9]+(\.[0-9]+)?")
_AGE = re.compile(r"([0-9]{1,3})(?:-([0-9]{1,3}))?")
# Caractères génériques SQL et échappement : refusés dans les recherches textuelles
_FORBIDDEN_SEARCH_CHARS = ("%", "_", "\\")
_BOOLEAN_TOKENS = {"true": True, "false": False}


def _items(raw_params: Mapping[str, str] | Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    if hasattr(raw_params, "multi_items"):
        return list(raw_params.multi_items())
    if isinstance(raw_params, Mapping):
        return list(raw_params.items())
    return list(raw_params)


def _single(items: list[tuple[str, str]], name: str) -> str | None:
    values = [value for key, value in items if key == name]
    if len(values) > 1:
        raise InvalidQueryError(name, f"Parameter '{name}' must be specified at most once")
    return values[0] if values else None


def _parse_positive_int(name: str, raw: str, maximum: int | None = None) -> int:
    allowed = [f"1..{maximum}"] if maximum else ["integer >= 1"]
    if not _POSITIVE_INT.fullmatch(raw):
        raise InvalidQueryError(name, f"'{name}' must be a positive integer, got '{raw}'", allowed)
    digits = raw.lstrip("0") or "0"
    if maximum is not None and len(digits) > len(str(maximum)):
        raise InvalidQueryError(name, f"'{name}' must not exceed {maximum}", allowed)
    value = int(digits)
    if value < 1:
        raise InvalidQueryError(name, f"'{name}' must be at least 1, got {value}", allowed)
    if maximum is not None and value > maximum:
        raise InvalidQueryError(name, f"'{name}' must not exceed {maximum}, got {value}", allowed)
    return value


def _parse_day(name: str, raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise InvalidQueryError(
            name,
            f"'{name}' must be an ISO-8601 date, got '{raw}'",
            ["YYYY-MM-DD", "YYYY-MM-DD..YYYY-MM-DD"],
        ) from None


def _string_predicates(name: str, spec: FieldSpec, raw: str) -> list[Predicate]:
    value = raw.strip()
    if not value:
        raise InvalidQueryError(name, f"Filter '{name}' must not be empty")
    if any(char in value for char in _FORBIDDEN_SEARCH_CHARS):
        raise InvalidQueryError(
            name, f"Filter '{name}' contains forbidden characters", ["text without % _ \\"]
        )
    if spec.virtual is VirtualKind.COMPOSED_TEXT:
        return [Predicate(spec.components, Operator.CONTAINS_ANY_CI, value)]
    if spec.multi_valued:
        return [Predicate(spec.storage, Operator.HAS, value)]
    if spec.exact:
        return [Predicate(spec.storage, Operator.EQ, value)]
    return [Predicate(spec.storage, Operator.CONTAINS_CI, value)]


def _enum_predicates(name: str, spec: FieldSpec, raw: str) -> list[Predicate]:
    values = tuple(part.strip() for part in raw.split(","))
    allowed = sorted(spec.allowed_values or ())
    for value in values:
        if value not in (spec.allowed_values or ()):
            raise InvalidQueryError(name, f"Invalid value '{value}' for filter '{name}'", allowed)
    if len(values) == 1:
        return [Predicate(spec.storage, Operator.EQ, values[0])]
    return [Predicate(spec.storage, Operator.IN, values)]


def _boolean_predicates(name: str, spec: FieldSpec, raw: str) -> list[Predicate]:
    if raw not in _BOOLEAN_TOKENS:
        raise InvalidQueryError(name, f"Filter '{name}' must be 'true' or 'false'", ["true", "false"])
    return [Predicate(spec.storage, Operator.EQ, _BOOLEAN_TOKENS[raw])]


def _number_predicates(name: str, spec: FieldSpec, raw: str) -> list[Predicate]:
    if not _NUMBER.fullmatch(raw):
        raise InvalidQueryError(name, f"Filter '{name}' must be a number, got '{raw}'", ["number"])
    value: int | float = float(raw) if "." in raw else int(raw)
    return [Predicate(spec.storage, Operator.EQ, value)]


def _date_predicates(name: str, spec: FieldSpec, raw: str) -> list[Predicate]:
    if ".." in raw:
        start_raw, _, end_raw = raw.partition("..")
        start, end = _parse_day(name, start_raw), _parse_day(name, end_raw)
        if end < start:
            raise InvalidQueryError(
                name, f"Date range for '{name}' ends before it starts", ["YYYY-MM-DD..YYYY-MM-DD"]
            )
    else:
        start = end = _parse_day(name, raw)
    return [
        Predicate(spec.storage, Operator.GTE, start),
        Predicate(spec.storage, Operator.LT, next_day(end)),
    ]


def _age_predicates(name: str, spec: FieldSpec, raw: str, today: date) -> list[Predicate]:
    match = _AGE.fullmatch(raw)
    if not match:
        raise InvalidQueryError(name, f"Filter '{name}' must be 'N' or 'min-max'", ["N", "min-max"])
    min_age = int(match.group(1))
    max_age = int(match.group(2)) if match.group(2) is not None else min_age
    if max_age < min_age:
        raise InvalidQueryError(name, f"Age range for '{name}' is inverted", ["N", "min-max"])
    low, high = birth_date_bounds(min_age, max_age, today)
    return [
        Predicate(spec.storage, Operator.GT, low),
        Predicate(spec.storage, Operator.LTE, high),
    ]


def _filter_predicates(
    whitelist: ResourceWhitelist,
    name: str,
    raw: str,
    today: date,
    restricted: Collection[str] = (),
) -> list[Predicate]:
    spec = whitelist.fields.get(name)
    if spec is None or not spec.filterable or name in restricted:
        raise InvalidQueryError(
            name,
            f"Unknown or non-filterable field '{name}' for {whitelist.resource_type}",
            whitelist.filterable_names(restricted),
        )
    if spec.virtual is VirtualKind.AGE:
        return _age_predicates(name, spec, raw, today)
    if spec.type is FieldType.STRING:
        return _string_predicates(name, spec, raw)
    if spec.type is FieldType.ENUM:
        return _enum_predicates(name, spec, raw)
    if spec.type is FieldType.BOOLEAN:
        return _boolean_predicates(name, spec, raw)
    if spec.type is FieldType.NUMBER:
        return _number_predicates(name, spec, raw)
    return _date_predicates(name, spec, raw)


def _sort_spec(whitelist: ResourceWhitelist, parameter: str, name: str) -> FieldSpec:
    spec = whitelist.fields.get(name)
    if spec is None or not spec.sortable:
        raise InvalidQueryError(
            parameter,
            f"Unknown or non-sortable field '{name}' for {whitelist.resource_type}",
            whitelist.sortable_names(),
        )
    return spec


def _requested_sort(
    sort_by: str | None,
    sort_order: str | None,
    legacy: str | None,
) -> list[tuple[str, SortDirection]]:
    if legacy is not None and (sort_by is not None or sort_order is not None):
        raise InvalidQueryError(
            "sort", "Use either 'sort' or 'sortBy'/'sortOrder', not both", ["sort", "sortBy"]
        )
    if sort_order is not None and sort_by is None:
        raise InvalidQueryError("sortOrder", "'sortOrder' requires 'sortBy'", ["sortBy"])

    if sort_by is not None:
        direction_raw = (sort_order or "asc").lower()
        if direction_raw not in ("asc", "desc"):
            raise InvalidQueryError(
                "sortOrder", f"Invalid sort order '{sort_order}'", ["asc", "desc"]
            )
        return [(sort_by, SortDirection(direction_raw))]

    if legacy is not None:
        requested = []
        for token in legacy.split(","):
            token = token.strip()
            if token.startswith("-"):
                requested.append((token[1:], SortDirection.DESC))
            else:
                requested.append((token, SortDirection.ASC))
        return requested

    return []


def _resolve_sort(
    whitelist: ResourceWhitelist,
    requested: list[tuple[str, SortDirection]],
    parameter: str,
) -> tuple[SortKey, ...]:
    keys: list[SortKey] = []
    for name, direction in requested:
        spec = _sort_spec(whitelist, parameter, name)
        for key in spec.sort_keys(direction):
            if all(existing.field != key.field for existing in keys):
                keys.append(key)
    if not keys:
        keys = list(whitelist.default_sort)
    if all(key.field != whitelist.tie_breaker for key in keys):
        keys.append(SortKey(whitelist.tie_breaker, SortDirection.ASC))
    return tuple(keys)


def _debug_value(spec: FieldSpec, value: Any) -> Any:
    if spec.sensitive:
        return SENSITIVE_PLACEHOLDER
    if isinstance(value, tuple):
        return [str(item) for item in value]
    if isinstance(value, bool | int | float):
        return value
    return str(value)


def shape(
    resource_type: str,
    raw_params: Mapping[str, str] | Iterable[tuple[str, str]],
    today: date | None = None,
    max_limit: int | None = None,
    default_limit: int | None = None,
    hidden_paths: Collection[str] = (),
) -> QuerySpecification:
    """
    Valide les paramètres bruts et construit la spécification de requête.

    Args:
        resource_type: Type de ressource ("patient", "account")
        raw_params: Paramètres de requête (QueryParams, dict ou paires)
        today: Date de référence pour les filtres d'âge (aujourd'hui par défaut)
        max_limit: Limite maximale (settings.QUERY_MAX_LIMIT par défaut)
        default_limit: Limite par défaut (settings.QUERY_DEFAULT_LIMIT par défaut)
        hidden_paths: Chemins masqués pour l'appelant ; les filtres qui
            permettraient de deviner leur valeur sont refusés

    Returns:
        QuerySpecification immuable avec trace de débogage

    Raises:
        InvalidQueryError: Paramètre inconnu, non autorisé ou mal formé
    """
    whitelist = get_whitelist(resource_type)
    restricted = whitelist.restricted_names(hidden_paths)
    today = today or date.today()
    max_limit = max_limit or settings.QUERY_MAX_LIMIT
    default_limit = default_limit or settings.QUERY_DEFAULT_LIMIT

    with tracer.start_as_current_span("shape_query") as span:
        span.set_attribute("query.resource_type", resource_type)
        items = _items(raw_params)

        # Pagination
        raw_page = _single(items, "page")
        raw_limit = _single(items, "limit")
        limit = (
            _parse_positive_int("limit", raw_limit, max_limit)
            if raw_limit is not None
            else default_limit
        )
        # L'offset (page - 1) * limit doit tenir dans un BIGINT
        max_page = MAX_OFFSET // limit + 1
        page = _parse_positive_int("page", raw_page, max_page) if raw_page is not None else 1

        # Filtres (combinés en ET)
        predicates: list[Predicate] = []
        applied_filters: list[dict[str, Any]] = []

        def add_filter(name: str, raw: str) -> None:
            for predicate in _filter_predicates(whitelist, name, raw, today, restricted):
                predicates.append(predicate)
                applied_filters.append(
                    {
                        "field": name,
                        "operator": predicate.operator.value,
                        "value": _debug_value(whitelist.fields[name], predicate.value),
                    }
                )

        filter_by = _single(items, "filterBy")
        filter_value = _single(items, "filterValue")
        if (filter_by is None) != (filter_value is None):
            missing = "filterValue" if filter_value is None else "filterBy"
            raise InvalidQueryError(
                missing, "'filterBy' and 'filterValue' must be provided together", ["filterBy", "filterValue"]
            )
        if filter_by is not None:
            add_filter(filter_by, filter_value)

        for key, value in items:
            if key not in RESERVED_PARAMS:
                add_filter(key, value)

        # Tri
        legacy_sort = _single(items, "sort")
        requested = _requested_sort(_single(items, "sortBy"), _single(items, "sortOrder"), legacy_sort)
        sort = _resolve_sort(whitelist, requested, "sort" if legacy_sort is not None else "sortBy")

        debug = MappingProxyType(
            {
                "filters": tuple(applied_filters),
                "sort": tuple({"field": key.field, "direction": key.direction.value} for key in sort),
                "pagination": {
                    "raw": {"page": raw_page, "limit": raw_limit},
                    "parsed": {"page": page, "limit": limit, "offset": (page - 1) * limit},
                },
            }
        )

        span.set_attribute("query.predicates", len(predicates))
        span.set_attribute("query.page", page)
        span.set_attribute("query.limit", limit)
        logger.debug(
            f"Requête {resource_type} validée: {len(predicates)} prédicat(s), "
            f"tri={[(key.field, key.direction.value) for key in sort]}, page={page}, limit={limit}"
        )

        return QuerySpecification(
            resource_type=resource_type,
            predicates=tuple(predicates),
            sort=sort,
            page=page,
            limit=limit,
            debug=debug,
        )
