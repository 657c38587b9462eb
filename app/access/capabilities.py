"""
Table des capacités : action → rôles autorisés et contraintes.

Chargée une fois à l'import et immuable. C'est l'unique source des
permissions du service ; les endpoints ne testent jamais un rôle eux-mêmes.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from app.core.security import Role


class Action(str, Enum):
    """Actions protégées, préfixées par le type de ressource visé."""

    PATIENT_LIST = "patient.list"
    PATIENT_READ = "patient.read"
    PATIENT_CREATE = "patient.create"
    PATIENT_UPDATE = "patient.update"
    PATIENT_DELETE = "patient.delete"
    PATIENT_BULK_DEACTIVATE = "patient.bulk_deactivate"
    PATIENT_RECORD_VITALS = "patient.record_vitals"
    PATIENT_READ_VITALS = "patient.read_vitals"
    PATIENT_ADD_ALLERGY = "patient.add_allergy"
    PATIENT_STATISTICS = "patient.statistics"

    ACCOUNT_LIST = "account.list"
    ACCOUNT_LIST_ADMINS = "account.list_admins"
    ACCOUNT_LIST_BY_ROLE = "account.list_by_role"
    ACCOUNT_LIST_BY_FACILITY = "account.list_by_facility"
    ACCOUNT_CREATE = "account.create"
    ACCOUNT_READ = "account.read"
    ACCOUNT_UPDATE = "account.update"
    ACCOUNT_CHANGE_PRIVILEGED = "account.change_privileged"
    ACCOUNT_DEACTIVATE = "account.deactivate"
    ACCOUNT_DELETE = "account.delete"
    ACCOUNT_SUBMIT_VERIFICATION = "account.submit_verification"
    ACCOUNT_REVIEW_VERIFICATION = "account.review_verification"
    ACCOUNT_STATISTICS = "account.statistics"

    @property
    def resource_type(self) -> str:
        return self.value.split(".", 1)[0]


class Relationship(str, Enum):
    """Lien exigé entre l'appelant et la ressource ciblée."""

    NONE = "none"
    # Ressource de type profil : le titulaire ou un admin
    SELF = "self"
    # Dossier patient : admin/doctor, infirmier du département, accueil créateur
    PATIENT = "patient"


@dataclass(frozen=True)
class CapabilityRule:
    roles: frozenset[Role]
    relationship: Relationship = Relationship.NONE
    requires_verified: bool = False
    no_self_target: bool = False


ALL_ROLES = frozenset(Role)
CLINICAL_ROLES = frozenset({Role.ADMIN, Role.DOCTOR, Role.NURSE})
_ADMIN = frozenset({Role.ADMIN})


CAPABILITIES: Mapping[Action, CapabilityRule] = MappingProxyType(
    {
        # Patients
        Action.PATIENT_LIST: CapabilityRule(CLINICAL_ROLES, requires_verified=True),
        Action.PATIENT_READ: CapabilityRule(
            ALL_ROLES, Relationship.PATIENT, requires_verified=True
        ),
        Action.PATIENT_CREATE: CapabilityRule(ALL_ROLES, requires_verified=True),
        Action.PATIENT_UPDATE: CapabilityRule(
            ALL_ROLES, Relationship.PATIENT, requires_verified=True
        ),
        Action.PATIENT_DELETE: CapabilityRule(_ADMIN),
        Action.PATIENT_BULK_DEACTIVATE: CapabilityRule(_ADMIN),
        Action.PATIENT_RECORD_VITALS: CapabilityRule(
            CLINICAL_ROLES, Relationship.PATIENT, requires_verified=True
        ),
        Action.PATIENT_READ_VITALS: CapabilityRule(
            CLINICAL_ROLES, Relationship.PATIENT, requires_verified=True
        ),
        Action.PATIENT_ADD_ALLERGY: CapabilityRule(
            CLINICAL_ROLES, Relationship.PATIENT, requires_verified=True
        ),
        Action.PATIENT_STATISTICS: CapabilityRule(frozenset({Role.ADMIN, Role.DOCTOR})),
        # Comptes
        Action.ACCOUNT_LIST: CapabilityRule(_ADMIN),
        Action.ACCOUNT_LIST_ADMINS: CapabilityRule(_ADMIN),
        Action.ACCOUNT_LIST_BY_ROLE: CapabilityRule(frozenset({Role.ADMIN, Role.DOCTOR})),
        Action.ACCOUNT_LIST_BY_FACILITY: CapabilityRule(frozenset({Role.ADMIN, Role.DOCTOR})),
        Action.ACCOUNT_CREATE: CapabilityRule(_ADMIN),
        Action.ACCOUNT_READ: CapabilityRule(ALL_ROLES, Relationship.SELF),
        Action.ACCOUNT_UPDATE: CapabilityRule(ALL_ROLES, Relationship.SELF),
        Action.ACCOUNT_CHANGE_PRIVILEGED: CapabilityRule(_ADMIN, no_self_target=True),
        Action.ACCOUNT_DEACTIVATE: CapabilityRule(_ADMIN, no_self_target=True),
        Action.ACCOUNT_DELETE: CapabilityRule(_ADMIN, no_self_target=True),
        Action.ACCOUNT_SUBMIT_VERIFICATION: CapabilityRule(
            frozenset({Role.DOCTOR, Role.NURSE}), Relationship.SELF
        ),
        Action.ACCOUNT_REVIEW_VERIFICATION: CapabilityRule(_ADMIN, no_self_target=True),
        Action.ACCOUNT_STATISTICS: CapabilityRule(_ADMIN),
    }
)
