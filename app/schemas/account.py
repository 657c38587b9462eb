"""Schémas Pydantic pour les comptes du personnel.

Les champs privilégiés (rôle, licence, statut actif, rattachements) sont
séparés des champs de profil : leur modification exige une autorisation
administrateur distincte et n'est jamais permise sur son propre compte.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.account import Account
from app.schemas.utils import CAMEL_CONFIG, KENYAN_COUNTIES, Email, KenyanPhone, NonEmptyStr

RoleName = Literal["admin", "doctor", "nurse", "front-desk"]
TitleName = Literal["Dr.", "Prof.", "Mr.", "Mrs.", "Ms.", "Nurse", "Pharm.", "Tech."]
LicensingBody = Literal["KMPDC", "NCK", "PPB", "other"]
VerificationStatusName = Literal["unsubmitted", "pending", "verified", "rejected"]

# Champs dont la modification exige account.change_privileged
PRIVILEGED_FIELDS = frozenset(
    {"role", "license_number", "is_active", "department_id", "facility_ids"}
)


def _check_county(v: str | None) -> str | None:
    if v is not None and v not in KENYAN_COUNTIES:
        raise ValueError("Comté kényan inconnu")
    return v


class AccountCreate(BaseModel):
    """Rattache un utilisateur Keycloak existant à un compte du service."""

    model_config = CAMEL_CONFIG

    keycloak_user_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="UUID de l'utilisateur dans Keycloak",
        examples=["a1b2c3d4-e5f6-7890-abcd-ef1234567890"],
    )
    full_name: NonEmptyStr = Field(..., min_length=2, max_length=100)
    email: Email
    phone: KenyanPhone
    title: TitleName
    role: RoleName
    specialization: str | None = Field(None, max_length=100)
    department_id: str | None = Field(None, max_length=64)
    facility_ids: list[str] = Field(default_factory=list)
    license_number: str | None = Field(None, max_length=50)
    county: str | None = None
    sub_county: str | None = Field(None, max_length=100)
    street: str | None = Field(None, max_length=255)

    @field_validator("county")
    @classmethod
    def validate_county(cls, v: str | None) -> str | None:
        return _check_county(v)


class AccountUpdate(BaseModel):
    """
    Mise à jour d'un compte.

    Champs de profil : modifiables par le titulaire ou un admin.
    Champs privilégiés (voir PRIVILEGED_FIELDS) : admin uniquement, jamais sur soi.
    """

    model_config = CAMEL_CONFIG

    full_name: NonEmptyStr | None = Field(None, min_length=2, max_length=100)
    email: Email | None = None
    phone: KenyanPhone | None = None
    title: TitleName | None = None
    specialization: str | None = Field(None, max_length=100)
    bio: str | None = Field(None, max_length=2000)
    county: str | None = None
    sub_county: str | None = Field(None, max_length=100)
    street: str | None = Field(None, max_length=255)

    role: RoleName | None = None
    license_number: str | None = Field(None, max_length=50)
    is_active: bool | None = None
    department_id: str | None = Field(None, max_length=64)
    facility_ids: list[str] | None = None

    @field_validator("county")
    @classmethod
    def validate_county(cls, v: str | None) -> str | None:
        return _check_county(v)

    def privileged_changes(self) -> set[str]:
        return set(self.model_fields_set) & PRIVILEGED_FIELDS


class VerificationSubmission(BaseModel):
    """Soumission des justificatifs professionnels par le titulaire."""

    model_config = CAMEL_CONFIG

    license_number: NonEmptyStr = Field(..., max_length=50, examples=["KMPDC-12345"])
    licensing_body: LicensingBody


class VerificationReview(BaseModel):
    """Décision administrateur sur une vérification professionnelle."""

    model_config = CAMEL_CONFIG

    verification_status: VerificationStatusName
    rejection_reason: str | None = Field(None, max_length=1000)
    notes: str | None = Field(None, max_length=2000)
    submitted_license_number: str | None = Field(None, max_length=50)
    licensing_body: LicensingBody | None = None

    @model_validator(mode="after")
    def require_reason_on_rejection(self) -> "VerificationReview":
        if self.verification_status == "rejected" and not (self.rejection_reason or "").strip():
            raise ValueError("Rejection reason is required when rejecting verification")
        return self


class AccountAddressView(BaseModel):
    model_config = CAMEL_CONFIG

    county: str | None = None
    sub_county: str | None = None
    street: str | None = None


class VerificationView(BaseModel):
    model_config = CAMEL_CONFIG

    status: str
    submitted_license_number: str | None = None
    licensing_body: str | None = None
    submitted_at: datetime | None = None
    rejection_reason: str | None = None
    notes: str | None = None
    verified_by: int | None = None
    verified_at: datetime | None = None


class AccountView(BaseModel):
    """Vue complète d'un compte, avant masquage. Jamais d'identifiant Keycloak."""

    model_config = CAMEL_CONFIG

    id: int
    full_name: str
    email: str
    phone: str
    title: str
    role: str
    specialization: str | None = None
    bio: str | None = None
    department_id: str | None = None
    facility_ids: list[str] = Field(default_factory=list)
    license_number: str | None = None
    address: AccountAddressView
    verification: VerificationView | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, account: Account) -> "AccountView":
        verification = None
        if account.role in ("doctor", "nurse"):
            verification = VerificationView(
                status=account.verification_status or "unsubmitted",
                submitted_license_number=account.submitted_license_number,
                licensing_body=account.licensing_body,
                submitted_at=account.verification_submitted_at,
                rejection_reason=account.rejection_reason,
                notes=account.verification_notes,
                verified_by=account.verified_by,
                verified_at=account.verified_at,
            )
        return cls(
            id=account.id,
            full_name=account.full_name,
            email=account.email,
            phone=account.phone,
            title=account.title,
            role=account.role,
            specialization=account.specialization,
            bio=account.bio,
            department_id=account.department_id,
            facility_ids=list(account.facility_ids or []),
            license_number=account.license_number,
            address=AccountAddressView(
                county=account.address_county,
                sub_county=account.address_sub_county,
                street=account.address_street,
            ),
            verification=verification,
            is_active=bool(account.is_active),
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


def serialize_account(account: Account) -> dict[str, Any]:
    return AccountView.from_model(account).model_dump(by_alias=True, mode="json", exclude_none=False)


class UserStatistics(BaseModel):
    """Répartition des comptes ; le statut de vérification ne concerne que doctor et nurse."""

    model_config = CAMEL_CONFIG

    total_users: int
    active_users: int
    inactive_users: int
    by_role: dict[str, int]
    by_verification_status: dict[str, int]
