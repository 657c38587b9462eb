"""Annotations Pydantic réutilisables pour validation.

Ce module centralise les types annotés et les listes de valeurs
(comtés kényans, groupes sanguins, rôles...) pour assurer la cohérence
de la validation entre les schémas et les tables de filtrage.
"""

from typing import Annotated

from pydantic import ConfigDict, EmailStr, Field, StringConstraints
from pydantic.alias_generators import to_camel

# Configuration commune : JSON en camelCase, noms Python acceptés en entrée
CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# Chaînes avec contraintes
NonEmptyStr = Annotated[str, StringConstraints(min_length=1, strip_whitespace=True)]

# Téléphones kényans (+2547XXXXXXXX, +2541XXXXXXXX ou 07XXXXXXXX, 01XXXXXXXX)
KenyanPhone = Annotated[
    str,
    StringConstraints(pattern=r"^(\+254|0)[17]\d{8}$", strip_whitespace=True),
    Field(
        description="Numéro de téléphone kényan",
        examples=["+254712345678", "0712345678"],
    ),
]

# Carte d'identité nationale kényane
NationalId = Annotated[
    str,
    StringConstraints(pattern=r"^\d{8}$", strip_whitespace=True),
    Field(description="Numéro de carte d'identité nationale (8 chiffres)", examples=["12345678"]),
]

Email = Annotated[EmailStr, Field(description="Adresse email valide")]

KENYAN_COUNTIES = (
    "Mombasa", "Kwale", "Kilifi", "Tana River", "Lamu", "Taita Taveta", "Garissa", "Wajir",
    "Mandera", "Marsabit", "Isiolo", "Meru", "Tharaka Nithi", "Embu", "Kitui", "Machakos",
    "Makueni", "Nyandarua", "Nyeri", "Kirinyaga", "Murang'a", "Kiambu", "Turkana", "West Pokot",
    "Samburu", "Trans Nzoia", "Uasin Gishu", "Elgeyo Marakwet", "Nandi", "Baringo", "Laikipia",
    "Nakuru", "Narok", "Kajiado", "Kericho", "Bomet", "Kakamega", "Vihiga", "Bungoma", "Busia",
    "Siaya", "Kisumu", "Homa Bay", "Migori", "Kisii", "Nyamira", "Nairobi",
)  # fmt: skip

GENDERS = ("male", "female", "other", "prefer_not_to_say")
BLOOD_TYPES = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-", "unknown")
TITLES = ("Dr.", "Prof.", "Mr.", "Mrs.", "Ms.", "Nurse", "Pharm.", "Tech.")
