"""
Identity Resolver: bearer credential → trusted, request-scoped Identity.

The token is only used to prove *who* is calling. Role, verification status
and affiliations are read from the canonical account record, never from
token claims or request payloads.
"""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from jwcrypto.jwt import JWTExpired
from keycloak import KeycloakOpenID
from opentelemetry import trace
from pydantic import BaseModel, ConfigDict

from app.core.audit import AuditSink, audit_sink
from app.core.config import settings
from app.core.exceptions import UnauthenticatedError
from app.query.specification import Operator, Predicate

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Keycloak client configuration (bearer-only mode - no client_secret needed)
keycloak_openid = KeycloakOpenID(
    server_url=settings.KEYCLOAK_SERVER_URL,
    client_id=settings.KEYCLOAK_CLIENT_ID,
    realm_name=settings.KEYCLOAK_REALM,
)


class Role(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    FRONT_DESK = "front-desk"


class VerificationStatus(str, Enum):
    UNSUBMITTED = "unsubmitted"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


# Roles subject to professional verification
PROFESSIONAL_ROLES = frozenset({Role.DOCTOR, Role.NURSE})


class Identity(BaseModel):
    """Resolved caller. Immutable for the lifetime of the request."""

    model_config = ConfigDict(frozen=True)

    account_id: int
    role: Role
    verification_status: VerificationStatus = VerificationStatus.UNSUBMITTED
    facility_affiliations: frozenset[str] = frozenset()
    department_affiliations: frozenset[str] = frozenset()

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_verified_professional(self) -> bool:
        return self.role in PROFESSIONAL_ROLES and self.verification_status is VerificationStatus.VERIFIED


class VerifiedCredential(BaseModel):
    """Claims extracted from a verified token (informational except ``subject``)."""

    model_config = ConfigDict(frozen=True)

    subject: str
    role: str | None = None
    verification_status: str | None = None
    issued_at: datetime | None = None
    expires_at: datetime | None = None


class AuthFailureReason(str, Enum):
    NO_TOKEN = "no_token"
    INVALID_SCHEME = "invalid_scheme"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    USER_MISSING = "user_missing"


class CredentialInvalidError(Exception):
    """Signature, format or claims rejected."""


class CredentialExpiredError(CredentialInvalidError):
    """Token past its expiry."""


class CredentialVerifier(Protocol):
    def verify(self, token: str) -> VerifiedCredential: ...


class AccountLookup(Protocol):
    async def find_one(self, resource_type: str, predicates: tuple[Predicate, ...]) -> Any: ...


def _timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


def _realm_role(token_info: dict) -> str | None:
    roles = (token_info.get("realm_access") or {}).get("roles", [])
    for role in Role:
        if role.value in roles:
            return role.value
    return None


class KeycloakCredentialVerifier:
    """
    Verify JWT tokens with Keycloak.

    Validates:
    - Token signature and expiration (via decode_token)
    - iss (issuer) - must be from our Keycloak realm (skipped in DEBUG)
    - azp (authorized party) - must be one of KEYCLOAK_ALLOWED_AZP
    - aud (audience) - must include this service or be 'account'
    """

    def __init__(self, client: KeycloakOpenID | None = None):
        self.client = client or keycloak_openid

    def verify(self, token: str) -> VerifiedCredential:
        try:
            token_info = self.client.decode_token(token, validate=True)
        except JWTExpired as e:
            raise CredentialExpiredError(str(e)) from e
        except Exception as e:
            raise CredentialInvalidError(str(e)) from e

        # Skip in DEBUG mode as issuer URL varies (localhost vs keycloak vs host.docker.internal)
        iss = token_info.get("iss")
        if not settings.DEBUG:
            expected_issuer = settings.keycloak_issuer
            if not iss or iss != expected_issuer:
                raise CredentialInvalidError(f"Invalid issuer: {iss}. Expected: {expected_issuer}")
        else:
            logger.debug(f"DEBUG mode: Skipping issuer validation. Token issuer: {iss}")

        azp = token_info.get("azp")
        if not azp or azp not in settings.KEYCLOAK_ALLOWED_AZP:
            raise CredentialInvalidError(f"Invalid azp: {azp}")

        aud = token_info.get("aud", [])
        if isinstance(aud, str):
            aud = [aud]
        valid_audiences = {"account", settings.KEYCLOAK_CLIENT_ID}
        if not any(audience in valid_audiences for audience in aud):
            raise CredentialInvalidError(f"Invalid audience: {aud}")

        subject = token_info.get("sub")
        if not subject:
            raise CredentialInvalidError("Missing subject claim")

        return VerifiedCredential(
            subject=subject,
            role=_realm_role(token_info),
            verification_status=token_info.get("verification_status"),
            issued_at=_timestamp(token_info.get("iat")),
            expires_at=_timestamp(token_info.get("exp")),
        )


_FAILURE_DETAILS = {
    AuthFailureReason.NO_TOKEN: "Authentication required. Provide a Bearer token in the Authorization header.",
    AuthFailureReason.INVALID_SCHEME: "Authorization header must use the Bearer scheme.",
    AuthFailureReason.INVALID_SIGNATURE: "Invalid token",
    AuthFailureReason.EXPIRED: "Token expired",
    AuthFailureReason.USER_MISSING: "User not found or inactive",
}


class _ResolutionFailed(Exception):
    def __init__(self, reason: AuthFailureReason, context: str | None = None):
        super().__init__(reason.value)
        self.reason = reason
        self.context = context


def identity_from_account(account: Any) -> Identity:
    """Build an Identity from the canonical account record."""
    department_ids = {account.department_id} if account.department_id else set()
    return Identity(
        account_id=account.id,
        role=Role(account.role),
        verification_status=VerificationStatus(account.verification_status or "unsubmitted"),
        facility_affiliations=frozenset(account.facility_ids or []),
        department_affiliations=frozenset(department_ids),
    )


class IdentityResolver:
    """Turns the Authorization header into an Identity, or raises UnauthenticatedError."""

    def __init__(self, verifier: CredentialVerifier | None = None, audit: AuditSink | None = None):
        self.verifier = verifier or KeycloakCredentialVerifier()
        self.audit = audit or audit_sink

    @staticmethod
    def _extract_token(authorization: str | None) -> str:
        if authorization is None or not authorization.strip():
            raise _ResolutionFailed(AuthFailureReason.NO_TOKEN)
        parts = authorization.strip().split(None, 1)
        if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
            raise _ResolutionFailed(AuthFailureReason.INVALID_SCHEME)
        return parts[1].strip()

    def _verify(self, token: str) -> VerifiedCredential:
        try:
            return self.verifier.verify(token)
        except CredentialExpiredError as e:
            raise _ResolutionFailed(AuthFailureReason.EXPIRED, str(e)) from e
        except CredentialInvalidError as e:
            raise _ResolutionFailed(AuthFailureReason.INVALID_SIGNATURE, str(e)) from e

    async def _load_account(self, credential: VerifiedCredential, store: AccountLookup) -> Any:
        account = await store.find_one(
            "account",
            (Predicate("keycloak_user_id", Operator.EQ, credential.subject),),
        )
        if account is None or not account.is_active:
            raise _ResolutionFailed(AuthFailureReason.USER_MISSING, f"subject={credential.subject}")
        return account

    async def resolve(
        self,
        authorization: str | None,
        store: AccountLookup,
        request_path: str | None = None,
    ) -> Identity:
        """
        Resolve the caller identity.

        Args:
            authorization: Raw Authorization header value
            store: Record store used to load the account
            request_path: Request path, for the audit trail

        Raises:
            UnauthenticatedError: no token, wrong scheme, invalid or expired
                token, missing or inactive account
        """
        with tracer.start_as_current_span("resolve_identity") as span:
            try:
                token = self._extract_token(authorization)
                credential = self._verify(token)
                span.set_attribute("auth.subject", credential.subject)
                account = await self._load_account(credential, store)
            except _ResolutionFailed as failure:
                span.set_attribute("auth.error", True)
                span.set_attribute("auth.failure_reason", failure.reason.value)
                logger.warning(
                    f"SECURITY_EVENT auth_failed reason={failure.reason.value} "
                    f"path={request_path} context={failure.context}"
                )
                await self.audit.record(
                    "auth.failed",
                    actor_id=None,
                    resource_ref=request_path,
                    details={"reason": failure.reason.value},
                )
                raise UnauthenticatedError(detail=_FAILURE_DETAILS[failure.reason]) from None

            identity = identity_from_account(account)
            span.set_attribute("auth.account_id", identity.account_id)
            span.set_attribute("auth.role", identity.role.value)
            logger.debug(f"Identity resolved: account={identity.account_id} role={identity.role.value}")
            return identity


__all__ = [
    "AuthFailureReason",
    "CredentialExpiredError",
    "CredentialInvalidError",
    "CredentialVerifier",
    "Identity",
    "IdentityResolver",
    "KeycloakCredentialVerifier",
    "PROFESSIONAL_ROLES",
    "Role",
    "VerificationStatus",
    "VerifiedCredential",
    "identity_from_account",
]
