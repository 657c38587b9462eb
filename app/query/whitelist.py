"""Tables de champs autorisés pour le tri et le filtrage dynamiques.

Chaque type de ressource expose une table fermée : nom externe (camelCase)
→ ``FieldSpec``. Un paramètre absent de la table est rejeté, jamais ignoré.
"""

from collections.abc import Collection, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from app.query.specification import SortDirection, SortKey
from app.schemas.utils import BLOOD_TYPES, GENDERS, KENYAN_COUNTIES, TITLES


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ENUM = "enum"


class VirtualKind(str, Enum):
    """Résolution des champs calculés vers les champs stockés."""

    # Texte composé : tri par les composants dans l'ordre, recherche sur chacun
    COMPOSED_TEXT = "composed_text"
    # Âge dérivé de la date de naissance : tri inversé, filtre converti en dates
    AGE = "age"


@dataclass(frozen=True)
class FieldSpec:
    """
    Description d'un champ filtrable et/ou triable.

    Attributes:
        type: Type logique, détermine l'opérateur et l'analyse de la valeur
        storage: Champ de stockage (colonne) pour les champs non calculés et l'âge
        virtual: Nature du champ calculé, None pour un champ stocké
        components: Champs stockés composant un texte calculé
        exact: Égalité stricte au lieu de la recherche par sous-chaîne
        multi_valued: Le champ stocké est une liste (test d'appartenance)
        allowed_values: Valeurs permises pour un ENUM
        sensitive: Valeur masquée (``***``) dans la trace de débogage
        masked_paths: Chemins de la vue masquée que ce filtre permettrait de
            deviner ; le filtre est refusé si l'un d'eux est masqué pour l'appelant
    """

    type: FieldType
    storage: str | None = None
    virtual: VirtualKind | None = None
    components: tuple[str, ...] = ()
    sortable: bool = True
    filterable: bool = True
    exact: bool = False
    multi_valued: bool = False
    allowed_values: frozenset[str] | None = None
    sensitive: bool = False
    masked_paths: tuple[str, ...] = ()

    def sort_keys(self, direction: SortDirection) -> tuple[SortKey, ...]:
        """Clés de tri sur les champs stockés pour une direction demandée."""
        if self.virtual is VirtualKind.COMPOSED_TEXT:
            return tuple(SortKey(component, direction) for component in self.components)
        if self.virtual is VirtualKind.AGE:
            # Date de naissance plus ancienne = âge plus élevé
            return (SortKey(self.storage, direction.inverted()),)
        return (SortKey(self.storage, direction),)


@dataclass(frozen=True)
class ResourceWhitelist:
    resource_type: str
    fields: Mapping[str, FieldSpec]
    default_sort: tuple[SortKey, ...]
    tie_breaker: str = "id"

    def filterable_names(self, restricted: Collection[str] = ()) -> list[str]:
        return sorted(
            name for name, spec in self.fields.items() if spec.filterable and name not in restricted
        )

    def sortable_names(self) -> list[str]:
        return sorted(name for name, spec in self.fields.items() if spec.sortable)

    def restricted_names(self, hidden_paths: Collection[str]) -> frozenset[str]:
        """Champs dont un filtre révélerait une valeur masquée pour l'appelant."""
        return frozenset(
            name
            for name, spec in self.fields.items()
            if any(path in hidden_paths for path in spec.masked_paths)
        )


def _enum(values) -> frozenset[str]:
    return frozenset(values)


PATIENT_WHITELIST = ResourceWhitelist(
    resource_type="patient",
    fields=MappingProxyType(
        {
            "id": FieldSpec(FieldType.NUMBER, storage="id"),
            "patientId": FieldSpec(FieldType.STRING, storage="patient_number"),
            "firstName": FieldSpec(FieldType.STRING, storage="first_name"),
            "lastName": FieldSpec(FieldType.STRING, storage="last_name"),
            "fullName": FieldSpec(
                FieldType.STRING,
                virtual=VirtualKind.COMPOSED_TEXT,
                components=("first_name", "last_name"),
            ),
            "search": FieldSpec(
                FieldType.STRING,
                virtual=VirtualKind.COMPOSED_TEXT,
                components=("first_name", "last_name", "patient_number", "national_id", "phone_number"),
                sortable=False,
                sensitive=True,
                masked_paths=("nationalId", "phoneNumber"),
            ),
            "nationalId": FieldSpec(
                FieldType.STRING, storage="national_id", sortable=False, exact=True, sensitive=True,
                masked_paths=("nationalId",),
            ),
            "phoneNumber": FieldSpec(
                FieldType.STRING, storage="phone_number", sortable=False, sensitive=True,
                masked_paths=("phoneNumber",),
            ),
            "email": FieldSpec(
                FieldType.STRING, storage="email", sortable=False, sensitive=True, masked_paths=("email",)
            ),
            "gender": FieldSpec(FieldType.ENUM, storage="gender", allowed_values=_enum(GENDERS)),
            "bloodType": FieldSpec(
                FieldType.ENUM, storage="blood_type", allowed_values=_enum(BLOOD_TYPES)
            ),
            "county": FieldSpec(
                FieldType.ENUM, storage="address_county", allowed_values=_enum(KENYAN_COUNTIES)
            ),
            "subCounty": FieldSpec(
                FieldType.STRING, storage="address_sub_county", sortable=False, sensitive=True,
                masked_paths=("address.subCounty",),
            ),
            "city": FieldSpec(FieldType.STRING, storage="address_city"),
            "dateOfBirth": FieldSpec(FieldType.DATE, storage="date_of_birth"),
            "age": FieldSpec(FieldType.NUMBER, storage="date_of_birth", virtual=VirtualKind.AGE),
            "departmentId": FieldSpec(FieldType.STRING, storage="department_id", exact=True),
            "facilityId": FieldSpec(FieldType.STRING, storage="facility_id", exact=True),
            "isActive": FieldSpec(FieldType.BOOLEAN, storage="is_active"),
            "isVerified": FieldSpec(FieldType.BOOLEAN, storage="is_verified"),
            "createdAt": FieldSpec(FieldType.DATE, storage="created_at"),
            "updatedAt": FieldSpec(FieldType.DATE, storage="updated_at"),
        }
    ),
    default_sort=(SortKey("created_at", SortDirection.DESC),),
)


ACCOUNT_WHITELIST = ResourceWhitelist(
    resource_type="account",
    fields=MappingProxyType(
        {
            "id": FieldSpec(FieldType.NUMBER, storage="id"),
            "fullName": FieldSpec(FieldType.STRING, storage="full_name"),
            "search": FieldSpec(
                FieldType.STRING,
                virtual=VirtualKind.COMPOSED_TEXT,
                components=("full_name", "email", "license_number"),
                sortable=False,
                sensitive=True,
                masked_paths=("email", "licenseNumber"),
            ),
            "email": FieldSpec(
                FieldType.STRING, storage="email", sortable=False, sensitive=True, masked_paths=("email",)
            ),
            "role": FieldSpec(
                FieldType.ENUM,
                storage="role",
                allowed_values=_enum(("admin", "doctor", "nurse", "front-desk")),
            ),
            "title": FieldSpec(FieldType.ENUM, storage="title", allowed_values=_enum(TITLES)),
            "specialization": FieldSpec(FieldType.STRING, storage="specialization"),
            "departmentId": FieldSpec(FieldType.STRING, storage="department_id", exact=True),
            "facilityId": FieldSpec(
                FieldType.STRING,
                storage="facility_ids",
                sortable=False,
                exact=True,
                multi_valued=True,
            ),
            "county": FieldSpec(
                FieldType.ENUM, storage="address_county", allowed_values=_enum(KENYAN_COUNTIES)
            ),
            "verificationStatus": FieldSpec(
                FieldType.ENUM,
                storage="verification_status",
                allowed_values=_enum(("unsubmitted", "pending", "verified", "rejected")),
            ),
            "licenseNumber": FieldSpec(
                FieldType.STRING, storage="license_number", sortable=False, exact=True, sensitive=True,
                masked_paths=("licenseNumber",),
            ),
            "isActive": FieldSpec(FieldType.BOOLEAN, storage="is_active"),
            "createdAt": FieldSpec(FieldType.DATE, storage="created_at"),
            "updatedAt": FieldSpec(FieldType.DATE, storage="updated_at"),
        }
    ),
    default_sort=(SortKey("full_name", SortDirection.ASC),),
)


WHITELISTS: Mapping[str, ResourceWhitelist] = MappingProxyType(
    {
        PATIENT_WHITELIST.resource_type: PATIENT_WHITELIST,
        ACCOUNT_WHITELIST.resource_type: ACCOUNT_WHITELIST,
    }
)


def get_whitelist(resource_type: str) -> ResourceWhitelist:
    try:
        return WHITELISTS[resource_type]
    except KeyError:
        raise ValueError(f"Aucune table de champs pour la ressource '{resource_type}'") from None
