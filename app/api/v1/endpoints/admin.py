"""Endpoints d'administration des comptes (admin uniquement)."""

from fastapi import APIRouter, Request, status

from app.core.dependencies import IdentityDep, OrchestratorDep, StoreDep
from app.schemas import build_responses
from app.schemas.account import AccountCreate, AccountView, VerificationReview
from app.schemas.common import MessageResponse, RecordListResponse
from app.services import account_service

router = APIRouter()


@router.post(
    "/users",
    response_model=AccountView,
    status_code=status.HTTP_201_CREATED,
    summary="Rattacher un utilisateur Keycloak",
)
async def create_user(
    account: AccountCreate,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await account_service.create_account(orchestrator, identity, account, store)


@router.get(
    "/admins",
    response_model=RecordListResponse,
    response_model_exclude_unset=True,
    summary="Lister les administrateurs",
)
async def list_admins(
    request: Request,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await account_service.list_admins(orchestrator, identity, request.query_params, store)


@router.patch(
    "/users/{user_id}/verify-professional",
    response_model=AccountView,
    responses=build_responses(404),
    summary="Statuer sur une vérification professionnelle",
    description="pending → verified | rejected (motif obligatoire), ou remise à unsubmitted / pending.",
)
async def verify_professional(
    user_id: str,
    review: VerificationReview,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    return await account_service.review_verification(orchestrator, identity, user_id, review, store)


@router.delete(
    "/users/{user_id}",
    response_model=MessageResponse,
    responses=build_responses(404),
    summary="Supprimer définitivement un compte",
)
async def delete_user(
    user_id: str,
    identity: IdentityDep,
    store: StoreDep,
    orchestrator: OrchestratorDep,
):
    deleted_id = await account_service.delete_account(orchestrator, identity, user_id, store)
    return MessageResponse(message=f"User with ID {deleted_id} has been successfully deleted.")
