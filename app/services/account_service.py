"""Service métier pour les comptes du personnel (admin, doctor, nurse, front-desk)."""

import logging
from typing import Any

from opentelemetry import trace

from app.access.capabilities import Action
from app.core.exceptions import InvalidQueryError
from app.core.security import PROFESSIONAL_ROLES, Identity, Role, VerificationStatus
from app.models.account import Account
from app.query.specification import Operator, Predicate
from app.schemas.account import (
    AccountCreate,
    AccountUpdate,
    UserStatistics,
    VerificationReview,
    VerificationSubmission,
)
from app.services import verification
from app.services.orchestrator import RequestOrchestrator
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

_PROFILE_FIELDS = ("full_name", "email", "phone", "title", "specialization", "bio")
_PRIVILEGED_SCALARS = ("role", "license_number", "is_active", "department_id")
# Colonnes non nullables : un null explicite est ignoré
_REQUIRED_COLUMNS = frozenset({"role", "is_active"})
_ADDRESS_COLUMNS = {
    "county": "address_county",
    "sub_county": "address_sub_county",
    "street": "address_street",
}


def build_account(data: AccountCreate, identity: Identity) -> Account:
    return Account(
        keycloak_user_id=data.keycloak_user_id,
        full_name=data.full_name,
        email=data.email,
        phone=data.phone,
        title=data.title,
        role=data.role,
        specialization=data.specialization,
        department_id=data.department_id,
        facility_ids=list(data.facility_ids),
        license_number=data.license_number,
        address_county=data.county,
        address_sub_county=data.sub_county,
        address_street=data.street,
        verification_status=VerificationStatus.UNSUBMITTED.value,
        is_active=True,
        created_by=identity.account_id,
        updated_by=identity.account_id,
    )


async def create_account(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    data: AccountCreate,
    store: RecordStore,
) -> dict[str, Any]:
    """Rattache un utilisateur Keycloak existant (admin uniquement)."""

    async def build() -> Account:
        return build_account(data, identity)

    with tracer.start_as_current_span("create_account") as span:
        span.set_attribute("account.role", data.role)
        return await orchestrator.create_record(identity, Action.ACCOUNT_CREATE, build, store)


def apply_update(account: Account, data: AccountUpdate, actor_id: int) -> Account:
    fields = data.model_fields_set
    for field in _PROFILE_FIELDS:
        if field in fields and getattr(data, field) is not None:
            setattr(account, field, getattr(data, field))
    for key, column in _ADDRESS_COLUMNS.items():
        if key in fields:
            setattr(account, column, getattr(data, key))

    for field in _PRIVILEGED_SCALARS:
        value = getattr(data, field)
        if field in fields and (value is not None or field not in _REQUIRED_COLUMNS):
            setattr(account, field, value)
    if "facility_ids" in fields:
        account.facility_ids = list(data.facility_ids or [])

    account.updated_by = actor_id
    return account


async def update_account(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    data: AccountUpdate,
    store: RecordStore,
) -> dict[str, Any]:
    """
    Mise à jour d'un compte.

    Toute modification de champ privilégié exige en plus
    ``account.change_privileged`` sur le même compte.
    """
    privileged = data.privileged_changes()
    extra = (Action.ACCOUNT_CHANGE_PRIVILEGED,) if privileged else ()
    if privileged:
        logger.info(
            f"Modification privilégiée demandée: account={raw_id} by={identity.account_id} "
            f"fields={sorted(privileged)}"
        )

    return await orchestrator.mutate_record(
        identity,
        Action.ACCOUNT_UPDATE,
        raw_id,
        lambda account: apply_update(account, data, identity.account_id),
        store,
        extra_actions=extra,
    )


async def deactivate_account(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    store: RecordStore,
) -> dict[str, Any]:
    """Suppression logique d'un autre compte."""

    def mutation(account: Account) -> None:
        account.is_active = False
        account.updated_by = identity.account_id

    return await orchestrator.mutate_record(
        identity, Action.ACCOUNT_DEACTIVATE, raw_id, mutation, store
    )


async def delete_account(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    store: RecordStore,
) -> int:
    """Suppression définitive d'un autre compte (admin)."""
    with tracer.start_as_current_span("delete_account") as span:
        account = await orchestrator.load_authorized(identity, Action.ACCOUNT_DELETE, raw_id, store)
        account_id = account.id
        span.set_attribute("account.id", account_id)
        await store.delete(account)

    logger.warning(f"Compte supprimé définitivement: account={account_id} by={identity.account_id}")
    await orchestrator.audit.record(
        Action.ACCOUNT_DELETE.value,
        actor_id=identity.account_id,
        resource_ref=f"account:{account_id}",
    )
    return account_id


async def submit_verification(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    submission: VerificationSubmission,
    store: RecordStore,
) -> dict[str, Any]:
    return await orchestrator.mutate_record(
        identity,
        Action.ACCOUNT_SUBMIT_VERIFICATION,
        raw_id,
        lambda account: verification.submit_credentials(account, submission),
        store,
    )


async def review_verification(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    raw_id: str,
    review: VerificationReview,
    store: RecordStore,
) -> dict[str, Any]:
    return await orchestrator.mutate_record(
        identity,
        Action.ACCOUNT_REVIEW_VERIFICATION,
        raw_id,
        lambda account: verification.review_verification(account, review, identity.account_id),
        store,
    )


async def list_accounts(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    params: Any,
    store: RecordStore,
) -> dict[str, Any]:
    return await orchestrator.list_records(identity, Action.ACCOUNT_LIST, params, store)


async def list_admins(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    params: Any,
    store: RecordStore,
) -> dict[str, Any]:
    return await orchestrator.list_records(
        identity,
        Action.ACCOUNT_LIST_ADMINS,
        params,
        store,
        base_predicates=(Predicate("role", Operator.EQ, Role.ADMIN.value),),
    )


async def list_by_role(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    role: str,
    params: Any,
    store: RecordStore,
) -> dict[str, Any]:
    await orchestrator.access.authorize(identity, Action.ACCOUNT_LIST_BY_ROLE)
    allowed = [r.value for r in Role]
    if role not in allowed:
        raise InvalidQueryError(
            parameter="role", detail=f"Unknown role '{role}'", allowed=allowed
        )
    return await orchestrator.list_records(
        identity,
        Action.ACCOUNT_LIST_BY_ROLE,
        params,
        store,
        base_predicates=(Predicate("role", Operator.EQ, role),),
    )


async def user_statistics(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    store: RecordStore,
) -> UserStatistics:
    """Effectifs par rôle et par statut de vérification (admin)."""
    await orchestrator.access.authorize(identity, Action.ACCOUNT_STATISTICS)

    with tracer.start_as_current_span("user_statistics"):
        by_role = await store.count_by("account", "role")
        active = await store.count("account", (Predicate("is_active", Operator.EQ, True),))
        professionals = tuple(sorted(role.value for role in PROFESSIONAL_ROLES))
        by_status = await store.count_by(
            "account", "verification_status", (Predicate("role", Operator.IN, professionals),)
        )

    total = sum(by_role.values())
    return UserStatistics(
        total_users=total,
        active_users=active,
        inactive_users=total - active,
        by_role={role.value: by_role.get(role.value, 0) for role in Role},
        by_verification_status={
            status.value: by_status.get(status.value, 0) for status in VerificationStatus
        },
    )


async def list_by_facility(
    orchestrator: RequestOrchestrator,
    identity: Identity,
    facility_id: str,
    params: Any,
    store: RecordStore,
) -> dict[str, Any]:
    return await orchestrator.list_records(
        identity,
        Action.ACCOUNT_LIST_BY_FACILITY,
        params,
        store,
        base_predicates=(Predicate("facility_ids", Operator.HAS, facility_id),),
    )
