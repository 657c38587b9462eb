"""
Tests unitaires pour les handlers RFC 9457 Problem Details.
"""

import pytest
from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel, field_validator

from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    ForbiddenReason,
    InvalidQueryError,
    MalformedIdentifierError,
    NotFoundError,
    ServerMisconfiguredError,
    UnauthenticatedError,
    setup_problem_handlers,
)
from app.schemas import (
    COMMON_RESPONSES,
    ForbiddenResponse,
    InvalidQueryResponse,
    ValidationErrorResponse,
    build_responses,
)


class ExampleRequest(BaseModel):
    """Modèle de requête pour les tests de validation."""

    name: str
    age: int

    @field_validator("age")
    @classmethod
    def validate_age(cls, v: int) -> int:
        if v < 0 or v > 150:
            raise ValueError("Age must be between 0 and 150")
        return v


def build_app(expose_internal_errors: bool = False) -> FastAPI:
    app = FastAPI()
    setup_problem_handlers(app, expose_internal_errors=expose_internal_errors)

    @app.get("/test/success")
    async def endpoint_success():
        return {"message": "success"}

    @app.get("/test/http-exception")
    async def endpoint_http_exception():
        raise HTTPException(status_code=404, detail="Resource not found")

    @app.get("/test/not-found")
    async def endpoint_not_found():
        raise NotFoundError(detail="Patient not found", resource_type="patient", resource_id="12")

    @app.get("/test/unauthenticated")
    async def endpoint_unauthenticated():
        raise UnauthenticatedError(detail="Token expired")

    @app.get("/test/forbidden")
    async def endpoint_forbidden():
        raise ForbiddenError(ForbiddenReason.VERIFICATION_REQUIRED)

    @app.get("/test/invalid-query")
    async def endpoint_invalid_query():
        raise InvalidQueryError("sortBy", "Unknown sort field: nationalId", allowed=["firstName", "lastName"])

    @app.get("/test/conflict")
    async def endpoint_conflict():
        raise ConflictError()

    @app.get("/test/misconfigured")
    async def endpoint_misconfigured():
        raise ServerMisconfiguredError()

    @app.get("/test/internal-error")
    async def endpoint_internal_error():
        raise RuntimeError("Unexpected error occurred")

    @app.post("/test/request-validation")
    async def endpoint_request_validation(data: ExampleRequest):
        return {"message": "validated", "data": data.model_dump()}

    return app


@pytest.fixture
def client():
    return TestClient(build_app(), raise_server_exceptions=False)


class TestProblemHandlers:
    """Tests pour les handlers RFC 9457."""

    def test_successful_request(self, client):
        response = client.get("/test/success")

        assert response.status_code == 200
        assert response.json() == {"message": "success"}

    def test_http_exception_conversion(self, client):
        """HTTPException standard convertie en Problem Details."""
        response = client.get("/test/http-exception")

        assert response.status_code == 404
        assert response.headers["content-type"] == "application/problem+json"
        data = response.json()
        assert data["type"] == "about:blank"
        assert data["title"] == "Not Found"
        assert data["detail"] == "Resource not found"
        assert data["instance"] == "/test/http-exception"

    def test_not_found_extensions(self, client):
        data = client.get("/test/not-found").json()

        assert data["status"] == 404
        assert data["type"] == "https://medblock.app/errors/not-found"
        assert data["resource_type"] == "patient"
        assert data["resource_id"] == "12"

    def test_unauthenticated_sets_challenge(self, client):
        response = client.get("/test/unauthenticated")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["detail"] == "Token expired"

    def test_forbidden_carries_reason(self, client):
        response = client.get("/test/forbidden")

        assert response.status_code == 403
        data = response.json()
        assert data["reason"] == "verification_required"
        assert data["detail"] == "You do not have permission to perform this action."

    def test_invalid_query_lists_allowed_values(self, client):
        response = client.get("/test/invalid-query")

        assert response.status_code == 400
        data = response.json()
        assert data["parameter"] == "sortBy"
        assert data["allowed"] == ["firstName", "lastName"]

    def test_conflict_is_non_revealing(self, client):
        response = client.get("/test/conflict")

        assert response.status_code == 400
        assert response.json()["detail"] == "A record with these details already exists"

    def test_server_misconfigured(self, client):
        response = client.get("/test/misconfigured")

        assert response.status_code == 500
        assert response.json()["title"] == "Server Misconfigured"

    def test_internal_server_error_hides_message(self, client):
        """Le détail ne doit PAS exposer l'erreur interne."""
        response = client.get("/test/internal-error")

        assert response.status_code == 500
        assert response.headers["content-type"] == "application/problem+json"
        assert response.json()["detail"] == "An unexpected error occurred"

    def test_internal_server_error_exposed_in_debug(self):
        debug_client = TestClient(build_app(expose_internal_errors=True), raise_server_exceptions=False)

        response = debug_client.get("/test/internal-error")

        assert response.json()["detail"] == "Unexpected error occurred"

    def test_request_validation_error(self, client):
        """Erreur de validation Pydantic convertie en 400."""
        response = client.post("/test/request-validation", json={"name": "John", "age": 200})

        assert response.status_code == 400
        data = response.json()
        assert data["title"] == "Validation Failed"
        assert any(error["loc"] == ["body", "age"] for error in data["errors"])

    def test_request_validation_missing_field(self, client):
        response = client.post("/test/request-validation", json={"name": "John"})

        assert response.status_code == 400
        (error,) = response.json()["errors"]
        assert error["type"] == "missing"


class TestExceptions:
    """Tests pour les exceptions pré-configurées."""

    def test_malformed_identifier_message(self):
        exc = MalformedIdentifierError("patient")

        assert exc.status_code == 400
        assert exc.problem_detail.detail == "Invalid patient ID format."

    def test_forbidden_default_reason(self):
        exc = ForbiddenError()

        assert exc.reason is ForbiddenReason.ROLE_NOT_PERMITTED
        assert exc.problem_detail.model_dump()["reason"] == "role_not_permitted"

    def test_invalid_query_without_allowed_values(self):
        exc = InvalidQueryError("limit", "limit must be an integer")

        assert exc.allowed is None
        assert "allowed" not in exc.problem_detail.model_dump(exclude_none=True)

    def test_exceptions_can_be_raised_and_caught(self):
        with pytest.raises(NotFoundError) as exc_info:
            raise NotFoundError(detail="User not found")

        assert exc_info.value.status_code == 404


class TestOpenAPISchemas:
    """Tests pour les schémas OpenAPI RFC 9457."""

    def test_forbidden_response_model(self):
        problem = ForbiddenResponse(title="Forbidden", status=403, reason="not_owner")

        assert problem.type == "about:blank"
        assert problem.reason == "not_owner"

    def test_invalid_query_response_model(self):
        problem = InvalidQueryResponse(title="Invalid Query", status=400, parameter="limit", allowed=["1..100"])

        assert problem.allowed == ["1..100"]

    def test_validation_error_response_model(self):
        problem = ValidationErrorResponse(
            title="Validation Failed",
            status=400,
            errors=[{"loc": ["body", "email"], "msg": "Invalid email", "type": "value_error"}],
        )

        assert problem.errors[0]["loc"] == ["body", "email"]

    def test_common_responses_structure(self):
        assert set(COMMON_RESPONSES) == {400, 401, 403, 500}
        for response_spec in COMMON_RESPONSES.values():
            assert "model" in response_spec
            assert "description" in response_spec
            assert "application/problem+json" in response_spec["content"]

    def test_build_responses_ignores_unknown_codes(self):
        assert set(build_responses(404, 418)) == {404}

    def test_common_responses_merge_with_endpoint_responses(self):
        app_test = FastAPI()
        router = APIRouter(responses=COMMON_RESPONSES)

        @router.get("/test-merge", responses=build_responses(404))
        async def test_merge():
            return {"message": "test"}

        app_test.include_router(router)

        endpoint_responses = app_test.openapi()["paths"]["/test-merge"]["get"]["responses"]
        assert {"400", "401", "403", "404", "500"} <= set(endpoint_responses)
