"""Registre des types de ressources exposés par le pipeline."""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from app.access.controller import ResourceDescriptor
from app.masking.rules import ACCOUNT_MASKING, PATIENT_MASKING, MaskingTable
from app.models.account import Account
from app.models.patient import Patient
from app.schemas.account import serialize_account
from app.schemas.patient import serialize_patient


def patient_descriptor(patient: Patient) -> ResourceDescriptor:
    return ResourceDescriptor(
        resource_type="patient",
        resource_id=patient.id,
        creator_id=patient.created_by,
        department_id=patient.department_id,
        facility_id=patient.facility_id,
    )


def account_descriptor(account: Account) -> ResourceDescriptor:
    return ResourceDescriptor(
        resource_type="account",
        resource_id=account.id,
        owner_id=account.id,
        creator_id=account.created_by,
        department_id=account.department_id,
    )


@dataclass(frozen=True)
class ResourceType:
    name: str
    label: str
    serialize: Callable[[Any], dict[str, Any]]
    describe: Callable[[Any], ResourceDescriptor]
    masking: MaskingTable


RESOURCES: Mapping[str, ResourceType] = MappingProxyType(
    {
        "patient": ResourceType(
            name="patient",
            label="patient",
            serialize=serialize_patient,
            describe=patient_descriptor,
            masking=PATIENT_MASKING,
        ),
        "account": ResourceType(
            name="account",
            label="user",
            serialize=serialize_account,
            describe=account_descriptor,
            masking=ACCOUNT_MASKING,
        ),
    }
)


def get_resource(name: str) -> ResourceType:
    return RESOURCES[name]
