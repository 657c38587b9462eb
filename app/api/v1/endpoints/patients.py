"""Endpoints API pour la gestion des dossiers patients.

Ce module définit les endpoints REST du dossier patient : liste filtrée et
paginée, lecture, création, mises à jour, désactivations, constantes,
allergies et statistiques. Les permissions sont décidées par l'Access
Controller ; les champs sensibles sont masqués selon le rôle de l'appelant.
"""

from fastapi import APIRouter, Request, status

from app.access.capabilities import Action
from app.core.dependencies import IdentityDep, OrchestratorDep, StoreDep
from app.schemas import build_responses
from app.schemas.common import IdList, RecordListResponse
from app.schemas.patient import (
    AllergyCreate,
    BulkDeactivateResult,
    PatientCreate,
    PatientPatch,
    PatientStatistics,
    PatientView,
    PatientVitalSigns,
    VitalSignsCreate,
)
from app.services import patient_service

router = APIRouter()


@router.get(
    "/",
    response_model=RecordListResponse,
    response_model_exclude_unset=True,
    summary="Lister les patients",
    description=(
        "Liste paginée. Filtres sur les champs autorisés (ex: `county=Nairobi`, "
        "`age=30-40`), tri par `sortBy`/`sortOrder` ou `sort=-field`."
    ),
)
async def list_patients(
    request: Request,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """
    Liste les patients visibles par l'appelant.

    Permissions requises : admin, doctor ou nurse (vérifiés) ; un infirmier
    ne voit que les patients de ses départements.
    """
    return await orchestrator.list_records(
        identity, Action.PATIENT_LIST, request.query_params, store
    )


@router.get(
    "/statistics/county",
    response_model=PatientStatistics,
    summary="Statistiques par comté",
)
async def get_county_statistics(
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """Permissions requises : admin ou doctor."""
    return await patient_service.county_statistics(orchestrator, identity, store)


@router.delete(
    "/bulk",
    response_model=BulkDeactivateResult,
    summary="Désactiver plusieurs patients",
    description="Suppression logique groupée ; les identifiants invalides sont signalés.",
)
async def bulk_deactivate_patients(
    payload: IdList,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """Permissions requises : admin."""
    return await patient_service.bulk_deactivate(orchestrator, identity, payload.ids, store)


@router.post(
    "/",
    response_model=PatientView,
    status_code=status.HTTP_201_CREATED,
    summary="Créer un nouveau patient",
    description="Crée un dossier patient ; le numéro patient (P0000001) est attribué automatiquement.",
)
async def create_patient(
    patient: PatientCreate,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await patient_service.create_patient(orchestrator, identity, patient, store)


@router.get(
    "/{patient_id}",
    response_model=PatientView,
    responses=build_responses(404),
    summary="Récupérer un patient",
)
async def get_patient(
    patient_id: str,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await orchestrator.get_record(identity, Action.PATIENT_READ, patient_id, store)


@router.put(
    "/{patient_id}",
    response_model=PatientView,
    responses=build_responses(404),
    summary="Remplacer un dossier patient",
)
async def replace_patient(
    patient_id: str,
    patient: PatientCreate,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await patient_service.replace_patient(orchestrator, identity, patient_id, patient, store)


@router.patch(
    "/{patient_id}",
    response_model=PatientView,
    responses=build_responses(404),
    summary="Mettre à jour un patient",
)
async def patch_patient(
    patient_id: str,
    patient: PatientPatch,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await patient_service.patch_patient(orchestrator, identity, patient_id, patient, store)


@router.delete(
    "/{patient_id}",
    response_model=PatientView,
    responses=build_responses(404),
    summary="Désactiver un patient",
    description="Suppression logique : le dossier est conservé avec isActive=false.",
)
async def delete_patient(
    patient_id: str,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """Permissions requises : admin."""
    return await patient_service.deactivate_patient(orchestrator, identity, patient_id, store)


@router.get(
    "/{patient_id}/vital-signs",
    response_model=PatientVitalSigns,
    responses=build_responses(404),
    summary="Historique des constantes",
)
async def get_vital_signs(
    patient_id: str,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await patient_service.get_vital_signs(orchestrator, identity, patient_id, store)


@router.post(
    "/{patient_id}/vital-signs",
    response_model=PatientView,
    status_code=status.HTTP_201_CREATED,
    responses=build_responses(404),
    summary="Enregistrer des constantes",
)
async def add_vital_signs(
    patient_id: str,
    vitals: VitalSignsCreate,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await patient_service.add_vital_signs(orchestrator, identity, patient_id, vitals, store)


@router.post(
    "/{patient_id}/allergies",
    response_model=PatientView,
    status_code=status.HTTP_201_CREATED,
    responses=build_responses(404),
    summary="Ajouter une allergie",
)
async def add_allergy(
    patient_id: str,
    allergy: AllergyCreate,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await patient_service.add_allergy(orchestrator, identity, patient_id, allergy, store)
