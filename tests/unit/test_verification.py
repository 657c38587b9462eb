"""Tests unitaires de la machine à états de vérification professionnelle."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from app.core.exceptions import VerificationTransitionError
from app.schemas.account import VerificationReview, VerificationSubmission
from app.services.verification import review_verification, submit_credentials
from conftest import make_account

NOW = datetime(2025, 6, 15, 9, 30, tzinfo=UTC)


@pytest.fixture
def submission():
    return VerificationSubmission(licenseNumber="KMPDC-12345", licensingBody="KMPDC")


def review(status: str, **kwargs) -> VerificationReview:
    return VerificationReview(verificationStatus=status, **kwargs)


class TestSubmitCredentials:
    def test_first_submission_moves_to_pending(self, submission):
        doctor = make_account(id=2, role="doctor", verification_status="unsubmitted")

        submit_credentials(doctor, submission, now=NOW)

        assert doctor.verification_status == "pending"
        assert doctor.submitted_license_number == "KMPDC-12345"
        assert doctor.licensing_body == "KMPDC"
        assert doctor.verification_submitted_at == NOW
        assert doctor.updated_by == 2

    def test_resubmission_after_rejection_clears_reason(self, submission):
        nurse = make_account(
            id=3, role="nurse", verification_status="rejected", rejection_reason="Illisible"
        )

        submit_credentials(nurse, submission, now=NOW)

        assert nurse.verification_status == "pending"
        assert nurse.rejection_reason is None

    @pytest.mark.parametrize("status", ["pending", "verified"])
    def test_submission_refused_from_pending_or_verified(self, submission, status):
        doctor = make_account(id=2, role="doctor", verification_status=status)

        with pytest.raises(VerificationTransitionError):
            submit_credentials(doctor, submission)

        assert doctor.verification_status == status

    @pytest.mark.parametrize("role", ["admin", "front-desk"])
    def test_non_professional_roles_refused(self, submission, role):
        account = make_account(id=5, role=role)

        with pytest.raises(VerificationTransitionError) as exc_info:
            submit_credentials(account, submission)

        assert exc_info.value.detail == (
            f"User with role '{role}' cannot have professional verification status."
        )


class TestReviewVerification:
    def test_approval_stamps_reviewer_and_copies_license(self):
        doctor = make_account(
            id=2,
            role="doctor",
            verification_status="pending",
            submitted_license_number="KMPDC-777",
            license_number=None,
        )

        review_verification(doctor, review("verified", notes="Conforme"), reviewer_id=1, now=NOW)

        assert doctor.verification_status == "verified"
        assert doctor.verified_by == 1
        assert doctor.verified_at == NOW
        assert doctor.license_number == "KMPDC-777"
        assert doctor.verification_notes == "Conforme"
        assert doctor.updated_by == 1

    def test_review_can_override_submitted_license(self):
        nurse = make_account(
            id=3, role="nurse", verification_status="pending", submitted_license_number="NCK-1"
        )

        review_verification(
            nurse,
            review("verified", submittedLicenseNumber="NCK-2", licensingBody="NCK"),
            reviewer_id=1,
        )

        assert nurse.license_number == "NCK-2"
        assert nurse.licensing_body == "NCK"

    def test_rejection_records_reason(self):
        doctor = make_account(id=2, role="doctor", verification_status="pending")

        review_verification(doctor, review("rejected", rejectionReason="  Licence expirée "), reviewer_id=1)

        assert doctor.verification_status == "rejected"
        assert doctor.rejection_reason == "Licence expirée"
        assert doctor.verified_by is None

    def test_rejection_without_reason_refused_by_schema(self):
        with pytest.raises(ValidationError):
            review("rejected")

    def test_rejection_without_reason_refused_by_service(self):
        doctor = make_account(id=2, role="doctor", verification_status="pending")
        blank = VerificationReview.model_construct(
            verification_status="rejected",
            rejection_reason="   ",
            notes=None,
            submitted_license_number=None,
            licensing_body=None,
        )

        with pytest.raises(VerificationTransitionError):
            review_verification(doctor, blank, reviewer_id=1)

        assert doctor.verification_status == "pending"

    @pytest.mark.parametrize("current", ["unsubmitted", "rejected", "verified"])
    def test_approval_requires_pending(self, current):
        doctor = make_account(id=2, role="doctor", verification_status=current)

        with pytest.raises(VerificationTransitionError):
            review_verification(doctor, review("verified"), reviewer_id=1)

    def test_revocation_clears_verification_stamps(self):
        doctor = make_account(
            id=2, role="doctor", verification_status="verified", verified_by=1, verified_at=NOW
        )

        review_verification(doctor, review("unsubmitted"), reviewer_id=1)

        assert doctor.verification_status == "unsubmitted"
        assert doctor.verified_by is None
        assert doctor.verified_at is None

    def test_admin_account_cannot_be_reviewed(self):
        admin = make_account(id=5, role="admin")

        with pytest.raises(VerificationTransitionError):
            review_verification(admin, review("verified"), reviewer_id=1)
