"""Champs calculés (non stockés) des ressources.

Fonctions pures sur les champs stockés, utilisées à la lecture pour
construire les vues et, pour l'âge, pour convertir une borne d'âge en
intervalle de dates de naissance.
"""

from datetime import date, timedelta
from typing import Any


def full_name(first_name: str | None, last_name: str | None, middle_name: str | None = None) -> str:
    parts = [first_name, middle_name, last_name]
    return " ".join(part for part in parts if part)


def age_on(date_of_birth: date | None, today: date | None = None) -> int | None:
    """Âge révolu en années à la date ``today`` (aujourd'hui par défaut)."""
    if date_of_birth is None:
        return None
    today = today or date.today()
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def years_before(reference: date, years: int) -> date:
    """Même jour ``years`` ans plus tôt (29 février → 28 février)."""
    try:
        return reference.replace(year=reference.year - years)
    except ValueError:
        return reference.replace(year=reference.year - years, day=28)


def birth_date_bounds(min_age: int, max_age: int, today: date) -> tuple[date, date]:
    """
    Intervalle de dates de naissance pour un âge compris entre ``min_age`` et ``max_age``.

    Returns:
        (borne basse exclusive, borne haute inclusive) : une personne a un âge
        dans l'intervalle si ``low < date_of_birth <= high``.
    """
    high = years_before(today, min_age)
    low = years_before(today, max_age + 1)
    return low, high


def latest_vital_signs(vital_signs: list[dict[str, Any]] | None) -> dict[str, Any] | None:
    """Dernière prise de constantes (par horodatage)."""
    if not vital_signs:
        return None
    return max(vital_signs, key=lambda entry: str(entry.get("timestamp") or ""))


def bmi(vital_signs: list[dict[str, Any]] | None) -> float | None:
    """IMC arrondi à une décimale, calculé sur les dernières constantes (poids kg, taille cm)."""
    latest = latest_vital_signs(vital_signs)
    if not latest:
        return None
    weight = latest.get("weight")
    height = latest.get("height")
    if not weight or not height:
        return None
    height_m = float(height) / 100
    return round(float(weight) / (height_m * height_m), 1)


def active_allergies(allergies: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Allergies cliniquement significatives (sévérité autre que ``mild``)."""
    return [allergy for allergy in allergies or [] if allergy.get("severity") != "mild"]


def next_day(day: date) -> date:
    return day + timedelta(days=1)
