"""
Access Controller : décision unique par action.

Ordre d'évaluation :
1. identité résolue (sinon ServerMisconfigured, erreur de câblage)
2. rôle présent dans la règle
3. garde anti auto-ciblage
4. vérification professionnelle (doctor / nurse uniquement)
5. relation avec la ressource (titulaire, département, créateur)

Toute combinaison inconnue ou donnée de descripteur manquante échoue fermée.
Les étapes 1, 2 et 4 ne dépendent pas de l'enregistrement : `precheck` les
applique avant le chargement, `authorize` rejoue l'évaluation complète ensuite.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from opentelemetry import trace

from app.access.capabilities import CAPABILITIES, Action, CapabilityRule, Relationship
from app.core.audit import AuditSink, audit_sink
from app.core.exceptions import ForbiddenError, ForbiddenReason, ServerMisconfiguredError
from app.core.security import PROFESSIONAL_ROLES, Identity, Role, VerificationStatus
from app.query.specification import Operator, Predicate

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class ResourceDescriptor:
    """Projection minimale d'un enregistrement pour décider d'un accès."""

    resource_type: str
    resource_id: int | None = None
    owner_id: int | None = None
    creator_id: int | None = None
    department_id: str | None = None
    facility_id: str | None = None

    @property
    def ref(self) -> str:
        return f"{self.resource_type}:{self.resource_id}" if self.resource_id else self.resource_type


@dataclass(frozen=True)
class Allow:
    pass


@dataclass(frozen=True)
class Forbidden:
    reason: ForbiddenReason


@dataclass(frozen=True)
class ServerMisconfigured:
    detail: str


Decision = Allow | Forbidden | ServerMisconfigured

ALLOW = Allow()


def _check_relationship(
    rule: CapabilityRule, identity: Identity, descriptor: ResourceDescriptor | None
) -> Decision:
    if rule.relationship is Relationship.NONE:
        return ALLOW

    if rule.relationship is Relationship.SELF:
        if identity.role is Role.ADMIN:
            return ALLOW
        if descriptor is None or descriptor.owner_id is None:
            return Forbidden(ForbiddenReason.NOT_OWNER)
        if descriptor.owner_id == identity.account_id:
            return ALLOW
        return Forbidden(ForbiddenReason.NOT_OWNER)

    if rule.relationship is Relationship.PATIENT:
        if identity.role in (Role.ADMIN, Role.DOCTOR):
            return ALLOW
        if descriptor is None:
            return Forbidden(ForbiddenReason.RELATIONSHIP_MISMATCH)
        if identity.role is Role.NURSE:
            if descriptor.department_id is not None and (
                descriptor.department_id in identity.department_affiliations
            ):
                return ALLOW
            return Forbidden(ForbiddenReason.RELATIONSHIP_MISMATCH)
        if identity.role is Role.FRONT_DESK:
            if descriptor.creator_id is not None and descriptor.creator_id == identity.account_id:
                return ALLOW
            return Forbidden(ForbiddenReason.NOT_OWNER)

    return Forbidden(ForbiddenReason.RELATIONSHIP_MISMATCH)


def evaluate(
    identity: Identity | None,
    action: Action,
    descriptor: ResourceDescriptor | None = None,
    capabilities: Mapping[Action, CapabilityRule] = CAPABILITIES,
) -> Decision:
    """Décision pure, sans effet de bord."""
    if identity is None:
        return ServerMisconfigured("Authorization invoked without a resolved identity")

    rule = capabilities.get(action)
    if rule is None or identity.role not in rule.roles:
        return Forbidden(ForbiddenReason.ROLE_NOT_PERMITTED)

    if rule.no_self_target:
        if descriptor is None or descriptor.owner_id is None:
            return Forbidden(ForbiddenReason.RELATIONSHIP_MISMATCH)
        if descriptor.owner_id == identity.account_id:
            return Forbidden(ForbiddenReason.SELF_TARGET_FORBIDDEN)

    if rule.requires_verified and identity.role in PROFESSIONAL_ROLES:
        if identity.verification_status is not VerificationStatus.VERIFIED:
            return Forbidden(ForbiddenReason.VERIFICATION_REQUIRED)

    return _check_relationship(rule, identity, descriptor)


def evaluate_gates(
    identity: Identity | None,
    action: Action,
    capabilities: Mapping[Action, CapabilityRule] = CAPABILITIES,
) -> Decision:
    """
    Contrôles indépendants de l'enregistrement : identité, rôle, vérification.

    Exécutés avant toute lecture du store, un refus ne dépend donc pas de
    l'existence de la ressource ciblée.
    """
    if identity is None:
        return ServerMisconfigured("Authorization invoked without a resolved identity")

    rule = capabilities.get(action)
    if rule is None or identity.role not in rule.roles:
        return Forbidden(ForbiddenReason.ROLE_NOT_PERMITTED)

    if rule.requires_verified and identity.role in PROFESSIONAL_ROLES:
        if identity.verification_status is not VerificationStatus.VERIFIED:
            return Forbidden(ForbiddenReason.VERIFICATION_REQUIRED)

    return ALLOW


_FORBIDDEN_DETAILS = {
    ForbiddenReason.ROLE_NOT_PERMITTED: "Your role is not permitted to perform this action.",
    ForbiddenReason.VERIFICATION_REQUIRED: "Professional verification is required for this action.",
    ForbiddenReason.NOT_OWNER: "You can only access your own records.",
    ForbiddenReason.RELATIONSHIP_MISMATCH: "You are not assigned to this record.",
    ForbiddenReason.SELF_TARGET_FORBIDDEN: "This action cannot target your own account.",
}


class AccessController:
    """Applique la table des capacités et trace chaque refus."""

    def __init__(
        self,
        capabilities: Mapping[Action, CapabilityRule] = CAPABILITIES,
        audit: AuditSink | None = None,
    ):
        self.capabilities = capabilities
        self.audit = audit or audit_sink

    def evaluate(
        self,
        identity: Identity | None,
        action: Action,
        descriptor: ResourceDescriptor | None = None,
    ) -> Decision:
        return evaluate(identity, action, descriptor, self.capabilities)

    async def authorize(
        self,
        identity: Identity | None,
        action: Action,
        descriptor: ResourceDescriptor | None = None,
    ) -> Allow:
        """
        Autorise l'action ou lève l'erreur correspondante.

        Raises:
            ServerMisconfiguredError: Aucune identité résolue (journalisé en CRITICAL)
            ForbiddenError: Refus, avec sous-raison
        """
        with tracer.start_as_current_span("authorize") as span:
            decision = self.evaluate(identity, action, descriptor)
            resource_ref = descriptor.ref if descriptor else action.resource_type
            return await self._enforce(span, decision, identity, action, resource_ref)

    async def precheck(self, identity: Identity | None, action: Action) -> Allow:
        """
        Applique les contrôles de rôle et de vérification avant tout chargement.

        Un appelant non autorisé reçoit ainsi un 403 identique, que
        l'identifiant ciblé existe ou non.
        """
        with tracer.start_as_current_span("authorize.precheck") as span:
            decision = evaluate_gates(identity, action, self.capabilities)
            return await self._enforce(span, decision, identity, action, action.resource_type)

    async def _enforce(
        self,
        span,
        decision: Decision,
        identity: Identity | None,
        action: Action,
        resource_ref: str,
    ) -> Allow:
        span.set_attribute("access.action", action.value)

        if isinstance(decision, ServerMisconfigured):
            span.set_attribute("access.misconfigured", True)
            logger.critical(
                f"SECURITY_EVENT CRITICAL_ERROR authorize called without identity: "
                f"action={action.value} resource={resource_ref}"
            )
            await self.audit.record(
                "access.misconfigured",
                actor_id=None,
                resource_ref=resource_ref,
                details={"action": action.value},
            )
            raise ServerMisconfiguredError()

        span.set_attribute("access.account_id", identity.account_id)
        span.set_attribute("access.role", identity.role.value)

        if isinstance(decision, Forbidden):
            span.set_attribute("access.denied", True)
            span.set_attribute("access.reason", decision.reason.value)
            logger.warning(
                f"SECURITY_EVENT access_denied account={identity.account_id} "
                f"role={identity.role.value} action={action.value} "
                f"resource={resource_ref} reason={decision.reason.value}"
            )
            await self.audit.record(
                "access.denied",
                actor_id=identity.account_id,
                resource_ref=resource_ref,
                details={"action": action.value, "reason": decision.reason.value},
            )
            raise ForbiddenError(decision.reason, detail=_FORBIDDEN_DETAILS[decision.reason])

        span.set_attribute("access.granted", True)
        return decision


def scope_predicates(identity: Identity, resource_type: str) -> tuple[Predicate, ...]:
    """
    Restreint une liste au périmètre relationnel de l'appelant.

    Appliqué aux listes de dossiers patients : l'infirmier ne voit que ses
    départements, l'accueil que les patients qu'il a créés.
    """
    if resource_type != "patient":
        return ()
    if identity.role is Role.NURSE:
        return (Predicate("department_id", Operator.IN, tuple(sorted(identity.department_affiliations))),)
    if identity.role is Role.FRONT_DESK:
        return (Predicate("created_by", Operator.EQ, identity.account_id),)
    return ()


access_controller = AccessController()
