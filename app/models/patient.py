"""Modèle de données Patient.

Ce module définit le modèle SQLAlchemy des patients, avec les champs
d'adresse kényans (county / sub-county / ward) et les données cliniques
embarquées (allergies, antécédents, constantes) stockées en JSON.
"""

from datetime import date, datetime

from sqlalchemy import JSON, Date, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Patient(Base):
    """
    Modèle Patient.

    Champs clés pour l'autorisation :
    - created_by : compte créateur (règle front-desk)
    - department_id / facility_id : rattachement (règle infirmier)

    Les champs calculés (nom complet, âge, IMC) ne sont pas stockés ;
    voir app/query/virtual.py.
    """

    __tablename__ = "patients"

    # Identifiants
    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    patient_number: Mapped[str] = mapped_column(
        String(16),
        unique=True,
        nullable=False,
        index=True,
        comment="Identifiant métier généré (P0000001)",
    )
    national_id: Mapped[str | None] = mapped_column(
        String(8),
        unique=True,
        nullable=True,
        index=True,
        comment="Numéro de carte d'identité nationale (8 chiffres)",
    )

    # Informations démographiques
    first_name: Mapped[str] = mapped_column(String(50), nullable=False, comment="Prénom")
    last_name: Mapped[str] = mapped_column(String(50), nullable=False, comment="Nom de famille")
    middle_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    date_of_birth: Mapped[date] = mapped_column(
        Date, nullable=False, index=True, comment="Date de naissance"
    )
    gender: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    blood_type: Mapped[str] = mapped_column(
        String(8), nullable=False, default="unknown", index=True
    )

    # Contact
    phone_number: Mapped[str] = mapped_column(
        String(16), unique=True, nullable=False, comment="Téléphone (+2547XXXXXXXX ou 07XXXXXXXX)"
    )
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)

    # Adresse
    address_street: Mapped[str] = mapped_column(String(255), nullable=False)
    address_city: Mapped[str] = mapped_column(String(100), nullable=False)
    address_county: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    address_sub_county: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    address_ward: Mapped[str] = mapped_column(String(100), nullable=False)
    address_postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    address_country: Mapped[str] = mapped_column(String(100), nullable=False, default="Kenya")

    # Données cliniques embarquées
    allergies: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    medical_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    vital_signs: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    emergency_contact: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # Rattachement
    department_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    facility_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    # Statut
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True, index=True)
    is_verified: Mapped[bool] = mapped_column(nullable=False, default=False)

    # Métadonnées
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    created_by: Mapped[int] = mapped_column(
        Integer, nullable=False, index=True, comment="ID du compte créateur"
    )
    updated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Patient(id={self.id}, patient_number='{self.patient_number}')>"
