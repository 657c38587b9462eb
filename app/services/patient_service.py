"""Service métier pour la gestion des dossiers patients.

Ce module porte la logique des mutations (création, mises à jour, constantes,
allergies, désactivations) ; l'autorisation, le masquage et l'audit sont
assurés par le Request Orchestrator qui l'appelle.
"""

import logging
from typing import Any

from opentelemetry import trace

from app.access.capabilities import Action
from app.core.security import Identity
from app.models.patient import Patient
from app.query.specification import Operator, Predicate
from app.schemas.patient import (
    AllergyCreate,
    BulkDeactivateResult,
    CountyStatistics,
    PatientCreate,
    PatientPatch,
    PatientStatistics,
    VitalSignsCreate,
)
from app.services.orchestrator import RequestOrchestrator
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Champs d'adresse : clé du schéma → colonne
_ADDRESS_COLUMNS = {
    "street": "address_street",
    "city": "address_city",
    "county": "address_county",
    "sub_county": "address_sub_county",
    "ward": "address_ward",
    "postal_code": "address_postal_code",
    "country": "address_country",
}

_SCALAR_FIELDS = (
    "first_name",
    "last_name",
    "middle_name",
    "date_of_birth",
    "gender",
    "blood_type",
    "national_id",
    "phone_number",
    "email",
    "department_id",
    "facility_id",
    "notes",
)

# Colonnes nullables : un null explicite en PATCH les efface
_NULLABLE_FIELDS = frozenset(
    {"middle_name", "national_id", "email", "emergency_contact", "department_id", "facility_id", "notes"}
)


def format_patient_number(sequence: int) -> str:
    return f"P{sequence:07d}"


def _apply_fields(patient: Patient, data: PatientCreate | PatientPatch, fields: set[str]) -> None:
    for field in _SCALAR_FIELDS:
        if field in fields:
            setattr(patient, field, getattr(data, field))

    if "address" in fields and data.address is not None:
        for key, column in _ADDRESS_COLUMNS.items():
            setattr(patient, column, getattr(data.address, key))

    if "emergency_contact" in fields:
        contact = data.emergency_contact
        patient.emergency_contact = (
            contact.model_dump(by_alias=True, mode="json") if contact is not None else None
        )


async def build_patient(data: PatientCreate, identity: Identity, store: RecordStore) -> Patient:
    """
    Construit un nouveau dossier patient (non enregistré).

    Le numéro patient suit le nombre de dossiers existants ; deux créations
    simultanées se heurtent à la contrainte d'unicité (ConflictError).
    """
    sequence = await store.count("patient") + 1
    patient = Patient(
        patient_number=format_patient_number(sequence),
        allergies=[allergy.model_dump(by_alias=True, mode="json") for allergy in data.allergies],
        medical_history=[
            condition.model_dump(by_alias=True, mode="json") for condition in data.medical_history
        ],
        vital_signs=[],
        is_active=True,
        is_verified=False,
        created_by=identity.account_id,
        updated_by=identity.account_id,
    )
    _apply_fields(patient, data, set(PatientCreate.model_fields))
    return patient


async def create_patient(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    data: PatientCreate,
    store: RecordStore,
) -> dict[str, Any]:
    with tracer.start_as_current_span("create_patient"):

        async def build() -> Patient:
            return await build_patient(data, identity, store)

        view = await orchestrator.create_record(identity, Action.PATIENT_CREATE, build, store)
        logger.info(f"Patient créé: {view.get('patientId')} par account={identity.account_id}")
        return view


async def replace_patient(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    data: PatientCreate,
    store: RecordStore,
) -> dict[str, Any]:
    """Remplacement complet des données démographiques (PUT)."""

    def mutation(patient: Patient) -> None:
        _apply_fields(patient, data, set(PatientCreate.model_fields) - {"allergies", "medical_history"})
        patient.allergies = [a.model_dump(by_alias=True, mode="json") for a in data.allergies]
        patient.medical_history = [
            c.model_dump(by_alias=True, mode="json") for c in data.medical_history
        ]
        patient.updated_by = identity.account_id

    return await orchestrator.mutate_record(
        identity, Action.PATIENT_UPDATE, raw_id, mutation, store
    )


async def patch_patient(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    data: PatientPatch,
    store: RecordStore,
) -> dict[str, Any]:
    """Mise à jour partielle : seuls les champs explicitement fournis."""
    fields = {
        field
        for field in data.model_fields_set
        if getattr(data, field) is not None or field in _NULLABLE_FIELDS
    }

    def mutation(patient: Patient) -> None:
        _apply_fields(patient, data, fields)
        if "is_verified" in fields and data.is_verified is not None:
            patient.is_verified = data.is_verified
        patient.updated_by = identity.account_id

    return await orchestrator.mutate_record(
        identity, Action.PATIENT_UPDATE, raw_id, mutation, store
    )


async def deactivate_patient(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    store: RecordStore,
) -> dict[str, Any]:
    """Suppression logique (isActive=false)."""

    def mutation(patient: Patient) -> None:
        patient.is_active = False
        patient.updated_by = identity.account_id

    return await orchestrator.mutate_record(
        identity, Action.PATIENT_DELETE, raw_id, mutation, store
    )


def _valid_id(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw > 0 else None
    if isinstance(raw, str) and raw.isascii() and raw.isdigit() and int(raw) > 0:
        return int(raw)
    return None


async def bulk_deactivate(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    ids: list[int | str],
    store: RecordStore,
) -> BulkDeactivateResult:
    """
    Désactivation groupée.

    Les identifiants mal formés sont comptés et renvoyés, les autres sont
    désactivés en une seule requête. Un dossier déjà inactif compte comme
    introuvable.
    """
    await orchestrator.access.authorize(identity, Action.PATIENT_BULK_DEACTIVATE)

    valid_ids: set[int] = set()
    invalid_ids: list[str] = []
    for raw in ids:
        parsed = _valid_id(raw)
        if parsed is None:
            invalid_ids.append(str(raw))
        else:
            valid_ids.add(parsed)

    with tracer.start_as_current_span("bulk_deactivate_patients") as span:
        span.set_attribute("patients.requested", len(ids))
        deactivated = 0
        if valid_ids:
            deactivated = await store.update_many(
                "patient",
                (
                    Predicate("id", Operator.IN, tuple(sorted(valid_ids))),
                    Predicate("is_active", Operator.EQ, True),
                ),
                {"is_active": False, "updated_by": identity.account_id},
            )
        span.set_attribute("patients.deactivated", deactivated)

    result = BulkDeactivateResult(
        deactivated_count=deactivated,
        not_found_count=len(valid_ids) - deactivated,
        invalid_id_count=len(invalid_ids),
        invalid_ids=invalid_ids,
    )
    await orchestrator.audit.record(
        "patient.bulk_deactivated",
        actor_id=identity.account_id,
        resource_ref=f"count:{deactivated}",
        details=result.model_dump(by_alias=True),
    )
    return result


async def add_vital_signs(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    vitals: VitalSignsCreate,
    store: RecordStore,
) -> dict[str, Any]:
    entry = vitals.to_entry(recorded_by=identity.account_id)

    def mutation(patient: Patient) -> None:
        # Nouvelle liste pour que SQLAlchemy détecte la modification du JSON
        patient.vital_signs = [*(patient.vital_signs or []), entry]
        patient.updated_by = identity.account_id

    return await orchestrator.mutate_record(
        identity, Action.PATIENT_RECORD_VITALS, raw_id, mutation, store
    )


async def add_allergy(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    allergy: AllergyCreate,
    store: RecordStore,
) -> dict[str, Any]:
    entry = allergy.model_dump(by_alias=True, mode="json")

    def mutation(patient: Patient) -> None:
        patient.allergies = [*(patient.allergies or []), entry]
        patient.updated_by = identity.account_id

    return await orchestrator.mutate_record(
        identity, Action.PATIENT_ADD_ALLERGY, raw_id, mutation, store
    )


async def get_vital_signs(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    store: RecordStore,
) -> dict[str, Any]:
    view = await orchestrator.get_record(identity, Action.PATIENT_READ_VITALS, raw_id, store)
    return {
        "patientId": view.get("patientId"),
        "vitalSigns": view.get("vitalSigns", []),
        "latestVitalSigns": view.get("latestVitalSigns"),
        "bmi": view.get("bmi"),
    }


async def county_statistics(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    store: RecordStore,
) -> PatientStatistics:
    """Répartition des patients par comté, triée par effectif décroissant."""
    await orchestrator.access.authorize(identity, Action.PATIENT_STATISTICS)

    with tracer.start_as_current_span("patient_county_statistics"):
        totals = await store.count_by("patient", "address_county")
        active = await store.count_by(
            "patient", "address_county", (Predicate("is_active", Operator.EQ, True),)
        )

    by_county = sorted(
        (
            CountyStatistics(county=county or "unknown", total=total, active=active.get(county, 0))
            for county, total in totals.items()
        ),
        key=lambda item: (-item.total, item.county),
    )
    return PatientStatistics(
        total_patients=sum(totals.values()),
        active_patients=sum(active.values()),
        by_county=by_county,
    )
