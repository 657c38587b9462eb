"""Tests unitaires du Record Store : traduction prédicats → SQL paramétré."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import ConflictError
from app.query.specification import Operator, Predicate, SortDirection, SortKey
from app.services.record_store import (
    SqlAlchemyRecordStore,
    build_count,
    build_count_by,
    build_select,
)
from conftest import make_patient


def compile_pg(statement):
    return statement.compile(dialect=postgresql.dialect())


# =============================================================================
# Construction des requêtes
# =============================================================================


class TestBuildSelect:
    def test_values_are_bound_never_inlined(self):
        compiled = compile_pg(
            build_select("patient", (Predicate("last_name", Operator.EQ, "O'Brien; DROP TABLE"),))
        )

        assert "O'Brien" not in str(compiled)
        assert "O'Brien; DROP TABLE" in compiled.params.values()

    def test_sort_keys_in_order(self):
        compiled = str(
            compile_pg(
                build_select(
                    "patient",
                    sort=(
                        SortKey("last_name", SortDirection.DESC),
                        SortKey("id", SortDirection.ASC),
                    ),
                )
            )
        )

        assert "ORDER BY patients.last_name DESC, patients.id ASC" in compiled

    def test_pagination(self):
        compiled = compile_pg(build_select("patient", skip=40, limit=20))

        assert "LIMIT" in str(compiled)
        assert "OFFSET" in str(compiled)
        assert 40 in compiled.params.values()
        assert 20 in compiled.params.values()

    def test_contains_any_combines_fields_with_or(self):
        compiled = str(
            compile_pg(
                build_select(
                    "patient",
                    (Predicate(("first_name", "last_name"), Operator.CONTAINS_ANY_CI, "kam"),),
                )
            )
        )

        assert " OR " in compiled
        assert "patients.first_name" in compiled
        assert "patients.last_name" in compiled

    def test_membership_on_json_list(self):
        compiled = str(
            compile_pg(build_select("account", (Predicate("facility_ids", Operator.HAS, "F1"),)))
        )

        assert "@>" in compiled

    def test_in_operator(self):
        compiled = compile_pg(
            build_select("patient", (Predicate("department_id", Operator.IN, ("D1", "D2")),))
        )

        assert "IN" in str(compiled)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            build_select("patient", (Predicate("password", Operator.EQ, "x"),))

    def test_unknown_resource_rejected(self):
        with pytest.raises(ValueError):
            build_select("invoice")


class TestBuildCount:
    def test_count_applies_predicates(self):
        compiled = str(compile_pg(build_count("patient", (Predicate("is_active", Operator.EQ, True),))))

        assert "count(*)" in compiled
        assert "patients.is_active" in compiled

    def test_count_by_groups_on_field(self):
        compiled = str(compile_pg(build_count_by("patient", "address_county")))

        assert "GROUP BY patients.address_county" in compiled


# =============================================================================
# Enregistrement
# =============================================================================


@pytest.fixture
def session():
    mock = MagicMock()
    mock.commit = AsyncMock()
    mock.rollback = AsyncMock()
    mock.refresh = AsyncMock()
    mock.execute = AsyncMock()
    mock.delete = AsyncMock()
    return mock


class TestSave:
    async def test_save_commits_and_refreshes(self, session):
        patient = make_patient(sequence=1)

        saved = await SqlAlchemyRecordStore(session).save(patient)

        assert saved is patient
        session.add.assert_called_once_with(patient)
        session.commit.assert_awaited_once()
        session.refresh.assert_awaited_once_with(patient)

    async def test_unique_violation_becomes_conflict(self, session):
        session.commit.side_effect = IntegrityError(
            "INSERT INTO patients", {}, Exception('duplicate key "uq_patients_national_id"')
        )

        with pytest.raises(ConflictError) as exc_info:
            await SqlAlchemyRecordStore(session).save(make_patient(sequence=1))

        # Le message ne révèle pas la contrainte en cause
        assert "national_id" not in exc_info.value.detail
        session.rollback.assert_awaited_once()
        session.refresh.assert_not_awaited()

    async def test_count_by_returns_mapping(self, session):
        result = MagicMock()
        result.all.return_value = [("Nairobi", 3), ("Mombasa", 1)]
        session.execute.return_value = result

        totals = await SqlAlchemyRecordStore(session).count_by("patient", "address_county")

        assert totals == {"Nairobi": 3, "Mombasa": 1}
