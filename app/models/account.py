"""Modèle de données Account (personnel soignant et administratif).

Un compte est lié à un utilisateur Keycloak via ``keycloak_user_id``. Le
rôle, le statut de vérification professionnelle et les rattachements ne
sont lus qu'ici, jamais depuis le token ni depuis le corps de requête.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Account(Base):
    """
    Compte du personnel : admin, doctor, nurse, front-desk.

    Vérification professionnelle (doctor / nurse uniquement) :
    unsubmitted → pending → verified | rejected, rejected → pending.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        # Recherche par établissement (opérateur @>)
        Index("ix_accounts_facility_ids_gin", "facility_ids", postgresql_using="gin"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    keycloak_user_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="UUID de l'utilisateur dans Keycloak (claim sub)",
    )

    # Profil
    full_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(16), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    specialization: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Rattachements (département principal + établissements)
    department_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    facility_ids: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    # Adresse
    address_county: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    address_sub_county: Mapped[str | None] = mapped_column(String(100), nullable=True)
    address_street: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Licence d'exercice
    license_number: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)

    # Vérification professionnelle
    verification_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="unsubmitted", index=True
    )
    submitted_license_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    licensing_body: Mapped[str | None] = mapped_column(String(16), nullable=True)
    verification_submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Statut
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True, index=True)

    # Métadonnées
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    created_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, role='{self.role}')>"
