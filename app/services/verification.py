"""
Vérification professionnelle des comptes doctor / nurse.

Transitions :
- titulaire : unsubmitted → pending, rejected → pending (nouvelle soumission)
- admin : pending → verified | rejected, et remise à unsubmitted / pending

Le statut de vérification ne change que par ces deux chemins.
"""

import logging
from datetime import UTC, datetime

from app.core.exceptions import VerificationTransitionError
from app.core.security import PROFESSIONAL_ROLES, Role, VerificationStatus
from app.models.account import Account
from app.schemas.account import VerificationReview, VerificationSubmission

logger = logging.getLogger(__name__)

SUBMISSION_SOURCES = frozenset({VerificationStatus.UNSUBMITTED, VerificationStatus.REJECTED})

# Décisions admin : cible → statuts de départ acceptés
REVIEW_SOURCES = {
    VerificationStatus.VERIFIED: frozenset({VerificationStatus.PENDING}),
    VerificationStatus.REJECTED: frozenset({VerificationStatus.PENDING}),
    VerificationStatus.PENDING: frozenset(VerificationStatus),
    VerificationStatus.UNSUBMITTED: frozenset(VerificationStatus),
}


def _current_status(account: Account) -> VerificationStatus:
    return VerificationStatus(account.verification_status or VerificationStatus.UNSUBMITTED.value)


def _ensure_professional(account: Account) -> None:
    if Role(account.role) not in PROFESSIONAL_ROLES:
        raise VerificationTransitionError(
            f"User with role '{account.role}' cannot have professional verification status."
        )


def submit_credentials(
    account: Account, submission: VerificationSubmission, now: datetime | None = None
) -> Account:
    """
    Soumission (ou nouvelle soumission après rejet) par le titulaire.

    Raises:
        VerificationTransitionError: Rôle non concerné ou statut courant incompatible
    """
    _ensure_professional(account)
    current = _current_status(account)
    if current not in SUBMISSION_SOURCES:
        raise VerificationTransitionError(
            f"Credentials cannot be submitted while verification is '{current.value}'."
        )

    account.submitted_license_number = submission.license_number
    account.licensing_body = submission.licensing_body
    account.verification_submitted_at = now or datetime.now(UTC)
    account.verification_status = VerificationStatus.PENDING.value
    account.rejection_reason = None
    account.verified_by = None
    account.verified_at = None
    account.updated_by = account.id

    logger.info(f"Vérification soumise: account={account.id} ({current.value} → pending)")
    return account


def review_verification(
    account: Account,
    review: VerificationReview,
    reviewer_id: int,
    now: datetime | None = None,
) -> Account:
    """
    Décision administrateur.

    ``verified`` horodate et enregistre le vérificateur, et reporte le numéro
    de licence soumis sur le compte (unicité contrôlée à l'enregistrement).
    Toute autre cible efface ces marques.

    Raises:
        VerificationTransitionError: Rôle non concerné, transition interdite
            ou rejet sans motif
    """
    _ensure_professional(account)
    current = _current_status(account)
    target = VerificationStatus(review.verification_status)

    if current not in REVIEW_SOURCES[target]:
        raise VerificationTransitionError(
            f"Cannot change verification from '{current.value}' to '{target.value}'."
        )
    reason = (review.rejection_reason or "").strip()
    if target is VerificationStatus.REJECTED and not reason:
        raise VerificationTransitionError("Rejection reason is required when rejecting verification")

    if review.submitted_license_number:
        account.submitted_license_number = review.submitted_license_number
    if review.licensing_body:
        account.licensing_body = review.licensing_body

    account.verification_status = target.value
    account.rejection_reason = reason if target is VerificationStatus.REJECTED else None
    account.verification_notes = review.notes

    if target is VerificationStatus.VERIFIED:
        account.verified_by = reviewer_id
        account.verified_at = now or datetime.now(UTC)
        if account.submitted_license_number:
            account.license_number = account.submitted_license_number
    else:
        account.verified_by = None
        account.verified_at = None

    account.updated_by = reviewer_id
    logger.info(
        f"Vérification revue: account={account.id} by={reviewer_id} "
        f"({current.value} → {target.value})"
    )
    return account
