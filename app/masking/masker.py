"""
Field Visibility Masker : vue expurgée d'un enregistrement selon l'identité.

Le masquage ne fait jamais échouer la requête : une erreur interne sur un
champ dégrade ce champ en ``[REDACTED]`` et est journalisée.
"""

import logging
from typing import Any

from app.core.security import Identity
from app.masking.rules import REDACTED, MaskingRule, MaskingTable

logger = logging.getLogger(__name__)


def _apply_rule(rule: MaskingRule, value: Any, identity: Identity, is_owner: bool) -> Any:
    if value is None:
        return None
    if identity.role in rule.visible_to_roles or (rule.visible_to_owner and is_owner):
        return value
    if isinstance(value, list):
        return [None if item is None else rule.mask_fn(item) for item in value]
    return rule.mask_fn(value)


def _mask_mapping(
    record: dict[str, Any],
    identity: Identity,
    table: MaskingTable,
    is_owner: bool,
    prefix: str = "",
) -> dict[str, Any]:
    view: dict[str, Any] = {}
    for key, value in record.items():
        path = f"{prefix}{key}"
        try:
            rule = table.rules.get(path)
            if rule is not None:
                view[key] = _apply_rule(rule, value, identity, is_owner)
            elif path in table.public_paths:
                view[key] = value
            elif isinstance(value, dict):
                view[key] = _mask_mapping(value, identity, table, is_owner, prefix=f"{path}.")
            elif value is None:
                view[key] = None
            else:
                view[key] = REDACTED
        except Exception as e:
            logger.error(f"Erreur de masquage du champ '{path}' ({table.resource_type}): {e}")
            view[key] = REDACTED
    return view


def mask(record: dict[str, Any], identity: Identity, table: MaskingTable) -> dict[str, Any]:
    """
    Produit la vue expurgée d'un enregistrement sérialisé.

    Args:
        record: Enregistrement sérialisé (clés externes camelCase)
        identity: Identité résolue de l'appelant
        table: Table de règles de la ressource

    Returns:
        Nouveau dictionnaire ; ``record`` n'est pas modifié.
    """
    is_owner = False
    if table.owner_path is not None:
        is_owner = record.get(table.owner_path) == identity.account_id
    return _mask_mapping(record, identity, table, is_owner)



def hidden_paths(table: MaskingTable, identity: Identity) -> frozenset[str]:
    """
    Chemins dont la valeur brute n'est pas visible par le rôle de l'appelant.

    La visibilité du titulaire n'est pas prise en compte : une liste couvre
    des enregistrements de plusieurs titulaires.
    """
    return frozenset(
        path for path, rule in table.rules.items() if identity.role not in rule.visible_to_roles
    )
