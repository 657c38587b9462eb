"""Endpoints API pour les comptes du personnel."""

from fastapi import APIRouter, Request

from app.access.capabilities import Action
from app.core.dependencies import IdentityDep, OrchestratorDep, StoreDep
from app.schemas import build_responses
from app.schemas.account import AccountUpdate, AccountView, UserStatistics, VerificationSubmission
from app.schemas.common import RecordListResponse
from app.services import account_service

router = APIRouter()


@router.get(
    "/",
    response_model=RecordListResponse,
    response_model_exclude_unset=True,
    summary="Lister les comptes",
)
async def list_users(
    request: Request,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """Permissions requises : admin."""
    return await account_service.list_accounts(orchestrator, identity, request.query_params, store)


@router.get(
    "/role/{role}",
    response_model=RecordListResponse,
    response_model_exclude_unset=True,
    summary="Lister les comptes par rôle",
)
async def list_users_by_role(
    role: str,
    request: Request,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """Permissions requises : admin ou doctor."""
    return await account_service.list_by_role(
        orchestrator, identity, role, request.query_params, store
    )


@router.get(
    "/facility/{facility_id}",
    response_model=RecordListResponse,
    response_model_exclude_unset=True,
    summary="Lister les comptes d'un établissement",
)
async def list_users_by_facility(
    facility_id: str,
    request: Request,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """Permissions requises : admin ou doctor."""
    return await account_service.list_by_facility(
        orchestrator, identity, facility_id, request.query_params, store
    )


@router.get(
    "/statistics/overview",
    response_model=UserStatistics,
    summary="Statistiques des comptes",
)
async def get_user_statistics(
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """Permissions requises : admin."""
    return await account_service.user_statistics(orchestrator, identity, store)


@router.get(
    "/me",
    response_model=AccountView,
    summary="Récupérer son propre profil",
)
async def get_current_user(
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await orchestrator.get_record(identity, Action.ACCOUNT_READ, identity.account_id, store)


@router.put(
    "/me",
    response_model=AccountView,
    summary="Mettre à jour son propre profil",
    description="Champs de profil uniquement ; les champs privilégiés sont refusés (403).",
)
async def update_current_user(
    update: AccountUpdate,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await account_service.update_account(
        orchestrator, identity, identity.account_id, update, store
    )


@router.get(
    "/{user_id}",
    response_model=AccountView,
    responses=build_responses(404),
    summary="Récupérer un compte",
)
async def get_user(
    user_id: str,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """Le titulaire du compte ou un admin."""
    return await orchestrator.get_record(identity, Action.ACCOUNT_READ, user_id, store)


@router.put(
    "/{user_id}",
    response_model=AccountView,
    responses=build_responses(404),
    summary="Mettre à jour un compte",
    description=(
        "Champs de profil : titulaire ou admin. Rôle, licence, statut actif et "
        "rattachements : admin uniquement, jamais sur son propre compte."
    ),
)
async def update_user(
    user_id: str,
    update: AccountUpdate,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await account_service.update_account(orchestrator, identity, user_id, update, store)


@router.delete(
    "/{user_id}",
    response_model=AccountView,
    responses=build_responses(404),
    summary="Désactiver un compte",
)
async def delete_user(
    user_id: str,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """Suppression logique. Permissions requises : admin, sur un autre compte."""
    return await account_service.deactivate_account(orchestrator, identity, user_id, store)


@router.post(
    "/{user_id}/verification",
    response_model=AccountView,
    responses=build_responses(404),
    summary="Soumettre ses justificatifs professionnels",
)
async def submit_verification(
    user_id: str,
    submission: VerificationSubmission,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    """Doctor ou nurse, sur son propre compte."""
    return await account_service.submit_verification(
        orchestrator, identity, user_id, submission, store
    )
