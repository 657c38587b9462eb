"""Tests des endpoints /api/v1/patients (TestClient, store en mémoire)."""

import pytest

from conftest import bearer, make_patient

PATIENTS_URL = "/api/v1/patients/"


@pytest.fixture
def patients(store, staff):
    records = [
        make_patient(id=1, first_name="Amina", department_id="D1", created_by=4, address_county="Nairobi"),
        make_patient(id=2, first_name="Brian", department_id="D1", created_by=2, address_county="Kisumu"),
        make_patient(id=3, first_name="Chebet", department_id="D2", created_by=4, address_county="Nairobi"),
    ]
    for record in records:
        store.add(record)
    return records


@pytest.fixture
def new_patient():
    return {
        "firstName": "Faith",
        "lastName": "Achieng",
        "dateOfBirth": "1995-11-20",
        "gender": "female",
        "phoneNumber": "0711000111",
        "nationalId": "34567890",
        "address": {
            "street": "Oginga Odinga Street",
            "city": "Kisumu",
            "county": "Kisumu",
            "subCounty": "Kisumu Central",
            "ward": "Market Milimani",
        },
        "departmentId": "D1",
    }


class TestAuthentication:
    def test_missing_token(self, client, patients):
        response = client.get(PATIENTS_URL)

        assert response.status_code == 401
        assert response.headers["content-type"] == "application/problem+json"
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["instance"] == "/api/v1/patients/"

    def test_expired_token(self, client, patients):
        response = client.get(PATIENTS_URL, headers={"Authorization": "Bearer expired:kc-doctor-2"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Token expired"

    def test_authentication_checked_before_body_validation(self, client):
        response = client.post(PATIENTS_URL, json={"firstName": ""})

        assert response.status_code == 401


class TestListPatients:
    def test_doctor_lists_with_pagination(self, client, patients):
        response = client.get(PATIENTS_URL, params={"limit": 2, "sortBy": "firstName"}, headers=bearer("kc-doctor-2"))

        assert response.status_code == 200
        body = response.json()
        assert [item["firstName"] for item in body["data"]] == ["Amina", "Brian"]
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}
        assert "debug" not in body

    def test_nurse_scoped_and_masked(self, client, patients):
        response = client.get(PATIENTS_URL, headers=bearer("kc-nurse-3"))

        body = response.json()
        assert {item["id"] for item in body["data"]} == {1, 2}
        assert all(item["address"]["street"] == "[REDACTED]" for item in body["data"])

    def test_filter_by_county(self, client, patients):
        response = client.get(PATIENTS_URL, params={"county": "Nairobi"}, headers=bearer("kc-admin-1"))

        assert {item["id"] for item in response.json()["data"]} == {1, 3}

    def test_legacy_sort_parameter(self, client, patients):
        response = client.get(PATIENTS_URL, params={"sort": "-firstName"}, headers=bearer("kc-admin-1"))

        assert [item["firstName"] for item in response.json()["data"]] == ["Chebet", "Brian", "Amina"]

    def test_unknown_sort_field(self, client, patients):
        response = client.get(PATIENTS_URL, params={"sortBy": "nationalId"}, headers=bearer("kc-admin-1"))

        assert response.status_code == 400
        problem = response.json()
        assert problem["parameter"] == "sortBy"
        assert "firstName" in problem["allowed"]

    def test_limit_above_maximum(self, client, patients):
        response = client.get(PATIENTS_URL, params={"limit": 500}, headers=bearer("kc-admin-1"))

        assert response.status_code == 400
        assert response.json()["parameter"] == "limit"

    def test_page_overflowing_offset(self, client, patients):
        response = client.get(
            PATIENTS_URL, params={"page": "99999999999999999999"}, headers=bearer("kc-admin-1")
        )

        assert response.status_code == 400
        assert response.json()["parameter"] == "page"

    @pytest.mark.parametrize("name", ["nationalId", "search", "phoneNumber", "subCounty"])
    def test_nurse_cannot_filter_on_masked_fields(self, client, patients, name):
        response = client.get(PATIENTS_URL, params={name: "1234"}, headers=bearer("kc-nurse-3"))

        assert response.status_code == 400
        problem = response.json()
        assert problem["parameter"] == name
        assert name not in problem["allowed"]

    def test_admin_filters_by_national_id(self, client, patients):
        response = client.get(
            PATIENTS_URL, params={"nationalId": patients[0].national_id}, headers=bearer("kc-admin-1")
        )

        assert response.status_code == 200
        assert [item["id"] for item in response.json()["data"]] == [1]

    def test_front_desk_cannot_list(self, client, patients):
        response = client.get(PATIENTS_URL, headers=bearer("kc-front-desk-4"))

        assert response.status_code == 403
        assert response.json()["reason"] == "role_not_permitted"

    def test_unverified_doctor_cannot_list(self, client, patients, staff):
        staff["doctor"].verification_status = "pending"

        response = client.get(PATIENTS_URL, headers=bearer("kc-doctor-2"))

        assert response.status_code == 403
        assert response.json()["reason"] == "verification_required"


class TestReadPatient:
    def test_doctor_sees_raw_identifiers(self, client, patients):
        response = client.get(f"{PATIENTS_URL}1", headers=bearer("kc-doctor-2"))

        assert response.status_code == 200
        body = response.json()
        assert body["nationalId"] == "12345601"
        assert body["patientId"] == "P0000001"
        assert body["age"] >= 35

    def test_nurse_other_department_forbidden(self, client, patients):
        response = client.get(f"{PATIENTS_URL}3", headers=bearer("kc-nurse-3"))

        assert response.status_code == 403
        assert response.json()["reason"] == "relationship_mismatch"

    def test_malformed_id(self, client, patients):
        response = client.get(f"{PATIENTS_URL}abc", headers=bearer("kc-admin-1"))

        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid patient ID format."

    def test_not_found(self, client, patients):
        response = client.get(f"{PATIENTS_URL}404", headers=bearer("kc-admin-1"))

        assert response.status_code == 404
        assert response.json()["detail"] == "Patient not found"


class TestWritePatient:
    def test_create(self, client, patients, new_patient):
        response = client.post(PATIENTS_URL, json=new_patient, headers=bearer("kc-front-desk-4"))

        assert response.status_code == 201
        body = response.json()
        assert body["patientId"] == "P0000004"
        assert body["createdBy"] == 4
        assert body["phoneNumber"] == "07***11"

    def test_create_validation_error(self, client, patients, new_patient):
        new_patient["phoneNumber"] = "12345"

        response = client.post(PATIENTS_URL, json=new_patient, headers=bearer("kc-admin-1"))

        assert response.status_code == 400
        problem = response.json()
        assert problem["title"] == "Validation Failed"
        assert any("phoneNumber" in error["loc"] for error in problem["errors"])

    def test_create_duplicate_is_non_revealing(self, client, patients, new_patient):
        new_patient["nationalId"] = "12345601"

        response = client.post(PATIENTS_URL, json=new_patient, headers=bearer("kc-admin-1"))

        assert response.status_code == 400
        assert "nationalId" not in response.json()["detail"]

    def test_patch(self, client, patients):
        response = client.patch(f"{PATIENTS_URL}2", json={"bloodType": "A-"}, headers=bearer("kc-nurse-3"))

        assert response.status_code == 200
        assert response.json()["bloodType"] == "A-"

    def test_notes_readable_by_clinicians_only(self, client, patients):
        client.patch(
            f"{PATIENTS_URL}2", json={"notes": "Suivi tensionnel mensuel"}, headers=bearer("kc-doctor-2")
        )

        doctor_view = client.get(f"{PATIENTS_URL}2", headers=bearer("kc-doctor-2")).json()
        nurse_view = client.get(f"{PATIENTS_URL}2", headers=bearer("kc-nurse-3")).json()

        assert doctor_view["notes"] == "Suivi tensionnel mensuel"
        assert nurse_view["notes"] == "[REDACTED]"

    def test_put_replaces(self, client, patients, new_patient):
        response = client.put(f"{PATIENTS_URL}1", json=new_patient, headers=bearer("kc-doctor-2"))

        assert response.status_code == 200
        assert response.json()["lastName"] == "Achieng"
        assert response.json()["patientId"] == "P0000001"

    def test_delete_is_soft(self, client, patients, store):
        response = client.delete(f"{PATIENTS_URL}1", headers=bearer("kc-admin-1"))

        assert response.status_code == 200
        assert response.json()["isActive"] is False
        assert 1 in store.records["patient"]

    def test_bulk_deactivate(self, client, patients):
        response = client.request(
            "DELETE", f"{PATIENTS_URL}bulk", json={"ids": [1, 2, "x", 77]}, headers=bearer("kc-admin-1")
        )

        assert response.status_code == 200
        assert response.json() == {
            "deactivatedCount": 2,
            "notFoundCount": 1,
            "invalidIdCount": 1,
            "invalidIds": ["x"],
        }

    def test_bulk_deactivate_requires_ids(self, client, patients):
        response = client.request("DELETE", f"{PATIENTS_URL}bulk", json={"ids": []}, headers=bearer("kc-admin-1"))

        assert response.status_code == 400


class TestClinicalEndpoints:
    def test_record_and_read_vital_signs(self, client, patients):
        created = client.post(
            f"{PATIENTS_URL}1/vital-signs",
            json={"weight": 64, "height": 160, "temperature": 36.8},
            headers=bearer("kc-nurse-3"),
        )
        history = client.get(f"{PATIENTS_URL}1/vital-signs", headers=bearer("kc-doctor-2"))

        assert created.status_code == 201
        body = history.json()
        assert body["patientId"] == "P0000001"
        assert len(body["vitalSigns"]) == 1
        assert body["latestVitalSigns"]["recordedBy"] == 3
        assert body["bmi"] == 25.0

    def test_vital_signs_out_of_range(self, client, patients):
        response = client.post(
            f"{PATIENTS_URL}1/vital-signs", json={"temperature": 50}, headers=bearer("kc-doctor-2")
        )

        assert response.status_code == 400

    def test_add_allergy(self, client, patients):
        response = client.post(
            f"{PATIENTS_URL}2/allergies",
            json={"allergen": "Peanuts", "severity": "severe"},
            headers=bearer("kc-doctor-2"),
        )

        assert response.status_code == 201
        assert response.json()["allergies"][-1]["allergen"] == "Peanuts"

    def test_county_statistics(self, client, patients):
        response = client.get(f"{PATIENTS_URL}statistics/county", headers=bearer("kc-doctor-2"))

        assert response.status_code == 200
        body = response.json()
        assert body["totalPatients"] == 3
        assert body["byCounty"][0] == {"county": "Nairobi", "total": 2, "active": 2}
