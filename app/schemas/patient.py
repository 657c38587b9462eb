"""Schémas Pydantic pour Patient.

Ce module définit les schémas de validation des opérations sur les
dossiers patients (contexte kényan : comtés, téléphones, carte d'identité)
et la vue sérialisée, avant masquage, renvoyée par l'API.

Les champs JSON sont en camelCase ; les noms Python sont acceptés en entrée.
"""

from datetime import UTC, date, datetime
from typing import Annotated, Any, Literal

from pydantic import AfterValidator, BaseModel, Field, field_validator

from app.models.patient import Patient
from app.query import virtual
from app.schemas.utils import (
    CAMEL_CONFIG,
    KENYAN_COUNTIES,
    Email,
    KenyanPhone,
    NationalId,
    NonEmptyStr,
)

Gender = Literal["male", "female", "other", "prefer_not_to_say"]
BloodType = Literal["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-", "unknown"]


def _validate_birth_date(v: date | None) -> date | None:
    if v is None:
        return v
    if v > date.today():
        raise ValueError("La date de naissance ne peut pas être dans le futur")
    if v.year < 1900:
        raise ValueError("La date de naissance doit être après 1900")
    return v


BirthDate = Annotated[date, AfterValidator(_validate_birth_date)]


class Address(BaseModel):
    model_config = CAMEL_CONFIG

    street: NonEmptyStr = Field(..., max_length=255)
    city: NonEmptyStr = Field(..., max_length=100)
    county: str = Field(..., description="Comté kényan", examples=["Nairobi"])
    sub_county: NonEmptyStr = Field(..., max_length=100)
    ward: NonEmptyStr = Field(..., max_length=100)
    postal_code: str | None = Field(None, max_length=20)
    country: str = Field(default="Kenya", max_length=100)

    @field_validator("county")
    @classmethod
    def validate_county(cls, v: str) -> str:
        if v not in KENYAN_COUNTIES:
            raise ValueError("Comté kényan inconnu")
        return v


class EmergencyContact(BaseModel):
    model_config = CAMEL_CONFIG

    name: NonEmptyStr = Field(..., max_length=200)
    relationship: Literal["spouse", "parent", "child", "sibling", "friend", "other"]
    phone_number: KenyanPhone
    email: Email | None = None


class AllergyCreate(BaseModel):
    model_config = CAMEL_CONFIG

    allergen: NonEmptyStr = Field(..., max_length=200)
    severity: Literal["mild", "moderate", "severe"]
    reaction: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=2000)
    diagnosed_date: date | None = None


class MedicalCondition(BaseModel):
    model_config = CAMEL_CONFIG

    condition: NonEmptyStr = Field(..., max_length=200)
    icd10_code: str | None = Field(None, max_length=16)
    diagnosed_date: date | None = None
    status: Literal["active", "inactive", "resolved"] = "active"
    notes: str | None = Field(None, max_length=2000)


class BloodPressure(BaseModel):
    systolic: int | None = Field(None, ge=70, le=200)
    diastolic: int | None = Field(None, ge=40, le=130)


class VitalSignsCreate(BaseModel):
    """Prise de constantes. ``weight`` en kg, ``height`` en cm."""

    model_config = CAMEL_CONFIG

    timestamp: datetime | None = None
    blood_pressure: BloodPressure | None = None
    temperature: float | None = Field(None, ge=35, le=42)
    pulse: int | None = Field(None, ge=40, le=200)
    respiratory_rate: int | None = Field(None, ge=8, le=40)
    oxygen_saturation: float | None = Field(None, ge=70, le=100)
    weight: float | None = Field(None, ge=1, le=300)
    height: float | None = Field(None, ge=50, le=250)

    def to_entry(self, recorded_by: int) -> dict[str, Any]:
        entry = self.model_dump(by_alias=True, mode="json", exclude_none=True)
        entry["timestamp"] = (self.timestamp or datetime.now(UTC)).isoformat()
        entry["recordedBy"] = recorded_by
        return entry


class PatientCreate(BaseModel):
    """Schéma pour créer un nouveau patient (et pour le remplacement complet PUT)."""

    model_config = CAMEL_CONFIG

    first_name: NonEmptyStr = Field(..., max_length=50, examples=["Wanjiku"])
    last_name: NonEmptyStr = Field(..., max_length=50, examples=["Kamau"])
    middle_name: str | None = Field(None, max_length=50)
    date_of_birth: BirthDate = Field(..., examples=["1990-05-15"])
    gender: Gender
    blood_type: BloodType = "unknown"
    national_id: NationalId | None = None
    phone_number: KenyanPhone
    email: Email | None = None
    address: Address
    emergency_contact: EmergencyContact | None = None
    allergies: list[AllergyCreate] = Field(default_factory=list)
    medical_history: list[MedicalCondition] = Field(default_factory=list)
    department_id: str | None = Field(None, max_length=64)
    facility_id: str | None = Field(None, max_length=64)
    notes: str | None = Field(None, max_length=5000)


class PatientPatch(BaseModel):
    """Mise à jour partielle : seuls les champs fournis sont modifiés."""

    model_config = CAMEL_CONFIG

    first_name: NonEmptyStr | None = Field(None, max_length=50)
    last_name: NonEmptyStr | None = Field(None, max_length=50)
    middle_name: str | None = Field(None, max_length=50)
    date_of_birth: BirthDate | None = None
    gender: Gender | None = None
    blood_type: BloodType | None = None
    national_id: NationalId | None = None
    phone_number: KenyanPhone | None = None
    email: Email | None = None
    address: Address | None = None
    emergency_contact: EmergencyContact | None = None
    department_id: str | None = Field(None, max_length=64)
    facility_id: str | None = Field(None, max_length=64)
    notes: str | None = Field(None, max_length=5000)
    is_verified: bool | None = None


class AddressView(BaseModel):
    model_config = CAMEL_CONFIG

    street: str | None = None
    city: str | None = None
    county: str | None = None
    sub_county: str | None = None
    ward: str | None = None
    postal_code: str | None = None
    country: str | None = None


class PatientView(BaseModel):
    """Vue complète d'un dossier patient, avant masquage."""

    model_config = CAMEL_CONFIG

    id: int
    patient_id: str
    first_name: str
    last_name: str
    middle_name: str | None = None
    full_name: str
    date_of_birth: date
    age: int | None = None
    gender: str
    blood_type: str
    national_id: str | None = None
    phone_number: str
    email: str | None = None
    address: AddressView
    emergency_contact: dict[str, Any] | None = None
    allergies: list[dict[str, Any]] = Field(default_factory=list)
    active_allergies: list[dict[str, Any]] = Field(default_factory=list)
    medical_history: list[dict[str, Any]] = Field(default_factory=list)
    vital_signs: list[dict[str, Any]] = Field(default_factory=list)
    latest_vital_signs: dict[str, Any] | None = None
    bmi: float | None = None
    department_id: str | None = None
    facility_id: str | None = None
    notes: str | None = None
    is_active: bool
    is_verified: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
    created_by: int | None = None
    updated_by: int | None = None

    @classmethod
    def from_model(cls, patient: Patient, today: date | None = None) -> "PatientView":
        return cls(
            id=patient.id,
            patient_id=patient.patient_number,
            first_name=patient.first_name,
            last_name=patient.last_name,
            middle_name=patient.middle_name,
            full_name=virtual.full_name(patient.first_name, patient.last_name, patient.middle_name),
            date_of_birth=patient.date_of_birth,
            age=virtual.age_on(patient.date_of_birth, today),
            gender=patient.gender,
            blood_type=patient.blood_type or "unknown",
            national_id=patient.national_id,
            phone_number=patient.phone_number,
            email=patient.email,
            address=AddressView(
                street=patient.address_street,
                city=patient.address_city,
                county=patient.address_county,
                sub_county=patient.address_sub_county,
                ward=patient.address_ward,
                postal_code=patient.address_postal_code,
                country=patient.address_country,
            ),
            emergency_contact=patient.emergency_contact,
            allergies=patient.allergies or [],
            active_allergies=virtual.active_allergies(patient.allergies),
            medical_history=patient.medical_history or [],
            vital_signs=patient.vital_signs or [],
            latest_vital_signs=virtual.latest_vital_signs(patient.vital_signs),
            bmi=virtual.bmi(patient.vital_signs),
            department_id=patient.department_id,
            facility_id=patient.facility_id,
            notes=patient.notes,
            is_active=bool(patient.is_active),
            is_verified=bool(patient.is_verified),
            created_at=patient.created_at,
            updated_at=patient.updated_at,
            created_by=patient.created_by,
            updated_by=patient.updated_by,
        )


def serialize_patient(patient: Patient) -> dict[str, Any]:
    return PatientView.from_model(patient).model_dump(by_alias=True, mode="json")


class BulkDeactivateResult(BaseModel):
    model_config = CAMEL_CONFIG

    deactivated_count: int
    not_found_count: int
    invalid_id_count: int
    invalid_ids: list[str] = Field(default_factory=list)


class CountyStatistics(BaseModel):
    model_config = CAMEL_CONFIG

    county: str
    total: int
    active: int


class PatientStatistics(BaseModel):
    model_config = CAMEL_CONFIG

    total_patients: int
    active_patients: int
    by_county: list[CountyStatistics]


class PatientVitalSigns(BaseModel):
    model_config = CAMEL_CONFIG

    patient_id: str
    vital_signs: list[dict[str, Any]] = Field(default_factory=list)
    latest_vital_signs: dict[str, Any] | None = None
    bmi: float | None = None
