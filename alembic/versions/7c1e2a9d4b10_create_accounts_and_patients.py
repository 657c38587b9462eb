"""Create accounts and patients tables

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-19 09:12:03.118204

- accounts: comptes du personnel rattachés à Keycloak, avec vérification
  professionnelle (doctor / nurse)
- patients: dossiers patients (adresse kényane, données cliniques en JSON)
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7c1e2a9d4b10"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "keycloak_user_id",
            sa.String(255),
            nullable=False,
            comment="UUID de l'utilisateur dans Keycloak (claim sub)",
        ),
        sa.Column("full_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(16), nullable=False),
        sa.Column("title", sa.String(16), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("specialization", sa.String(100), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column("department_id", sa.String(64), nullable=True),
        sa.Column(
            "facility_ids",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("address_county", sa.String(50), nullable=True),
        sa.Column("address_sub_county", sa.String(100), nullable=True),
        sa.Column("address_street", sa.String(255), nullable=True),
        sa.Column("license_number", sa.String(50), nullable=True),
        sa.Column(
            "verification_status", sa.String(20), nullable=False, server_default="unsubmitted"
        ),
        sa.Column("submitted_license_number", sa.String(50), nullable=True),
        sa.Column("licensing_body", sa.String(16), nullable=True),
        sa.Column("verification_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("verified_by", sa.Integer(), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_accounts")),
        sa.UniqueConstraint("phone", name=op.f("uq_accounts_phone")),
        sa.UniqueConstraint("license_number", name=op.f("uq_accounts_license_number")),
    )
    op.create_index(op.f("ix_accounts_id"), "accounts", ["id"], unique=False)
    op.create_index(
        op.f("ix_accounts_keycloak_user_id"), "accounts", ["keycloak_user_id"], unique=True
    )
    op.create_index(op.f("ix_accounts_email"), "accounts", ["email"], unique=True)
    op.create_index(op.f("ix_accounts_full_name"), "accounts", ["full_name"], unique=False)
    op.create_index(op.f("ix_accounts_role"), "accounts", ["role"], unique=False)
    op.create_index(op.f("ix_accounts_department_id"), "accounts", ["department_id"], unique=False)
    op.create_index(
        op.f("ix_accounts_address_county"), "accounts", ["address_county"], unique=False
    )
    op.create_index(
        op.f("ix_accounts_verification_status"), "accounts", ["verification_status"], unique=False
    )
    op.create_index(op.f("ix_accounts_is_active"), "accounts", ["is_active"], unique=False)
    op.create_index(op.f("ix_accounts_created_at"), "accounts", ["created_at"], unique=False)
    # Recherche par établissement (opérateur @>)
    op.create_index(
        "ix_accounts_facility_ids_gin",
        "accounts",
        ["facility_ids"],
        unique=False,
        postgresql_using="gin",
    )

    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "patient_number",
            sa.String(16),
            nullable=False,
            comment="Identifiant métier généré (P0000001)",
        ),
        sa.Column(
            "national_id",
            sa.String(8),
            nullable=True,
            comment="Numéro de carte d'identité nationale (8 chiffres)",
        ),
        sa.Column("first_name", sa.String(50), nullable=False, comment="Prénom"),
        sa.Column("last_name", sa.String(50), nullable=False, comment="Nom de famille"),
        sa.Column("middle_name", sa.String(50), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=False, comment="Date de naissance"),
        sa.Column("gender", sa.String(20), nullable=False),
        sa.Column("blood_type", sa.String(8), nullable=False, server_default="unknown"),
        sa.Column(
            "phone_number",
            sa.String(16),
            nullable=False,
            comment="Téléphone (+2547XXXXXXXX ou 07XXXXXXXX)",
        ),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("address_street", sa.String(255), nullable=False),
        sa.Column("address_city", sa.String(100), nullable=False),
        sa.Column("address_county", sa.String(50), nullable=False),
        sa.Column("address_sub_county", sa.String(100), nullable=False),
        sa.Column("address_ward", sa.String(100), nullable=False),
        sa.Column("address_postal_code", sa.String(20), nullable=True),
        sa.Column("address_country", sa.String(100), nullable=False, server_default="Kenya"),
        sa.Column("allergies", sa.JSON(), nullable=False),
        sa.Column("medical_history", sa.JSON(), nullable=False),
        sa.Column("vital_signs", sa.JSON(), nullable=False),
        sa.Column("emergency_contact", sa.JSON(), nullable=True),
        sa.Column("department_id", sa.String(64), nullable=True),
        sa.Column("facility_id", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("created_by", sa.Integer(), nullable=False, comment="ID du compte créateur"),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_patients")),
        sa.UniqueConstraint("phone_number", name=op.f("uq_patients_phone_number")),
    )
    op.create_index(op.f("ix_patients_id"), "patients", ["id"], unique=False)
    op.create_index(
        op.f("ix_patients_patient_number"), "patients", ["patient_number"], unique=True
    )
    op.create_index(op.f("ix_patients_national_id"), "patients", ["national_id"], unique=True)
    op.create_index(op.f("ix_patients_email"), "patients", ["email"], unique=True)
    op.create_index(
        op.f("ix_patients_date_of_birth"), "patients", ["date_of_birth"], unique=False
    )
    op.create_index(op.f("ix_patients_gender"), "patients", ["gender"], unique=False)
    op.create_index(op.f("ix_patients_blood_type"), "patients", ["blood_type"], unique=False)
    op.create_index(
        op.f("ix_patients_address_county"), "patients", ["address_county"], unique=False
    )
    op.create_index(
        op.f("ix_patients_address_sub_county"), "patients", ["address_sub_county"], unique=False
    )
    op.create_index(op.f("ix_patients_department_id"), "patients", ["department_id"], unique=False)
    op.create_index(op.f("ix_patients_facility_id"), "patients", ["facility_id"], unique=False)
    op.create_index(op.f("ix_patients_is_active"), "patients", ["is_active"], unique=False)
    op.create_index(op.f("ix_patients_created_at"), "patients", ["created_at"], unique=False)
    op.create_index(op.f("ix_patients_created_by"), "patients", ["created_by"], unique=False)


def downgrade() -> None:
    op.drop_table("patients")
    op.drop_index("ix_accounts_facility_ids_gin", table_name="accounts")
    op.drop_table("accounts")
