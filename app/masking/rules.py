"""
Fonctions de masquage et tables de règles par type de ressource.

Posture par défaut : un champ sans règle n'est renvoyé en clair que s'il est
explicitement déclaré public ; tout le reste est remplacé par ``[REDACTED]``.

Les fonctions de masquage sont idempotentes : appliquées à leur propre sortie,
elles la renvoient inchangée. Une valeur brute contenant ``*`` est masquée
comme n'importe quelle autre.
"""

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from app.core.security import Role

REDACTED = "[REDACTED]"
MASK_MARK = "*"

# Partie locale courte déjà masquée : "j***"
_MASKED_SHORT_LOCAL = re.compile(r"[^@*]{1,2}\*{3}")


def redact_fully(value: Any) -> str:
    return REDACTED


def mask_phone(value: Any) -> str:
    """
    Garde l'indicatif (+254) ou le préfixe local (07) et les 2 derniers chiffres.

    >>> mask_phone("+254712345678")
    '+254***78'
    >>> mask_phone("0712345678")
    '07***78'
    """
    if not isinstance(value, str):
        return REDACTED
    if value == REDACTED:
        return value
    digits = value.strip()
    prefix_length = 4 if digits.startswith("+") else 2
    if len(digits) < prefix_length + 4:
        return MASK_MARK * 3
    return f"{digits[:prefix_length]}***{digits[-2:]}"


def mask_email(value: Any) -> str:
    """
    Garde les 2 premiers caractères de la partie locale (1 si elle en compte 2 ou moins).

    >>> mask_email("john.doe@example.com")
    'jo***@example.com'
    """
    if not isinstance(value, str):
        return REDACTED
    if value == REDACTED:
        return value
    local, separator, domain = value.partition("@")
    if not separator or not local:
        return MASK_MARK * 3
    if _MASKED_SHORT_LOCAL.fullmatch(local):
        return value
    kept = local[:1] if len(local) <= 2 else local[:2]
    return f"{kept}***@{domain}"


def mask_identifier(value: Any) -> str:
    """
    Garde les 2 premiers et 2 derniers caractères (carte d'identité, licence).

    >>> mask_identifier("12345678")
    '12****78'
    """
    if not isinstance(value, str):
        return REDACTED
    if value == REDACTED:
        return value
    if len(value) <= 4:
        return MASK_MARK * max(len(value), 1)
    return f"{value[:2]}{MASK_MARK * (len(value) - 4)}{value[-2:]}"


@dataclass(frozen=True)
class MaskingRule:
    """
    Règle de visibilité d'un champ.

    Attributes:
        visible_to_roles: Rôles qui voient la valeur brute
        mask_fn: Transformation appliquée pour les autres rôles
        visible_to_owner: Le titulaire de l'enregistrement voit la valeur brute
    """

    visible_to_roles: frozenset[Role]
    mask_fn: Callable[[Any], Any] = redact_fully
    visible_to_owner: bool = False


@dataclass(frozen=True)
class MaskingTable:
    """
    Règles d'une ressource, indexées par chemin pointé (``address.street``).

    ``public_paths`` liste les champs renvoyés tels quels ; un chemin public
    désignant un objet ou une liste couvre tout son contenu.
    ``owner_path`` désigne le champ comparé à l'identifiant du compte appelant.
    """

    resource_type: str
    rules: Mapping[str, MaskingRule]
    public_paths: frozenset[str]
    owner_path: str | None = None


_CLINICAL = frozenset({Role.ADMIN, Role.DOCTOR})
_ADMIN = frozenset({Role.ADMIN})


PATIENT_MASKING = MaskingTable(
    resource_type="patient",
    rules=MappingProxyType(
        {
            "nationalId": MaskingRule(_CLINICAL, mask_identifier),
            "phoneNumber": MaskingRule(_CLINICAL, mask_phone),
            "email": MaskingRule(_CLINICAL, mask_email),
            "address.street": MaskingRule(_CLINICAL),
            "address.ward": MaskingRule(_CLINICAL),
            "address.subCounty": MaskingRule(_CLINICAL),
            "address.postalCode": MaskingRule(_CLINICAL),
            "emergencyContact.name": MaskingRule(frozenset({Role.ADMIN, Role.DOCTOR, Role.NURSE})),
            "emergencyContact.phoneNumber": MaskingRule(_CLINICAL, mask_phone),
            "emergencyContact.email": MaskingRule(_CLINICAL, mask_email),
            "notes": MaskingRule(_CLINICAL),
        }
    ),
    public_paths=frozenset(
        {
            "id",
            "patientId",
            "firstName",
            "lastName",
            "middleName",
            "fullName",
            "dateOfBirth",
            "age",
            "gender",
            "bloodType",
            "address.city",
            "address.county",
            "address.country",
            "emergencyContact.relationship",
            "allergies",
            "activeAllergies",
            "medicalHistory",
            "vitalSigns",
            "latestVitalSigns",
            "bmi",
            "departmentId",
            "facilityId",
            "isActive",
            "isVerified",
            "createdAt",
            "updatedAt",
            "createdBy",
            "updatedBy",
        }
    ),
)


ACCOUNT_MASKING = MaskingTable(
    resource_type="account",
    rules=MappingProxyType(
        {
            "email": MaskingRule(_ADMIN, mask_email, visible_to_owner=True),
            "phone": MaskingRule(_ADMIN, mask_phone, visible_to_owner=True),
            "licenseNumber": MaskingRule(_CLINICAL, mask_identifier, visible_to_owner=True),
            "address.street": MaskingRule(_ADMIN, visible_to_owner=True),
            "address.subCounty": MaskingRule(_ADMIN, visible_to_owner=True),
            "verification.submittedLicenseNumber": MaskingRule(
                _ADMIN, mask_identifier, visible_to_owner=True
            ),
            "verification.rejectionReason": MaskingRule(_ADMIN, visible_to_owner=True),
            "verification.notes": MaskingRule(_ADMIN),
        }
    ),
    public_paths=frozenset(
        {
            "id",
            "fullName",
            "title",
            "role",
            "specialization",
            "bio",
            "departmentId",
            "facilityIds",
            "address.county",
            "verification.status",
            "verification.licensingBody",
            "verification.submittedAt",
            "verification.verifiedBy",
            "verification.verifiedAt",
            "isActive",
            "createdAt",
            "updatedAt",
        }
    ),
    owner_path="id",
)
