"""
End-to-end flow over the HTTP API: onboarding, license assignment, catalog,
assistants, calendar conflicts and cancellation.
"""

import pytest

from fixtures.app_fixtures import register_user
from fixtures.domain_fixtures import ADMIN_EMAIL


@pytest.fixture
def admin(client_factory):
    client = client_factory()
    register_user(client, ADMIN_EMAIL, role="admin")
    return client


@pytest.fixture
def onboarded(client_factory, admin):
    """Owner with a licensed business, one exclusive service and one client."""
    owner = client_factory()
    register_user(owner, "duena@agenda.test", display_name="Dueña")
    business = owner.post(
        "/api/businesses", json={"name": "Estudio Uno", "categories": ["tattoo"]}
    ).get_json()["data"]

    admin.post("/api/licenses/assign", json={"businessId": business["id"], "type": "1month"})
    owner.post("/api/auth/refresh")

    bid = business["id"]
    service = owner.post(
        f"/api/businesses/{bid}/services", json={"name": "Tatuaje", "duration": 60}
    ).get_json()["data"]
    client = owner.post(
        f"/api/businesses/{bid}/clients", json={"name": "Ana Pérez", "phone": "600111222"}
    ).get_json()["data"]
    return {
        "owner": owner,
        "business_id": bid,
        "business_key": business["businessKey"],
        "service_id": service["id"],
        "client_id": client["id"],
    }


def booking(ctx, start="10:00", client_id=None, **extra):
    payload = {
        "clientId": client_id or ctx["client_id"],
        "serviceId": ctx["service_id"],
        "date": "2024-01-20",
        "startTime": start,
    }
    payload.update(extra)
    return payload


class TestOnboarding:
    def test_new_business_waits_for_license(self, client_factory, admin):
        owner = client_factory()
        register_user(owner, "duena@agenda.test")

        response = owner.post(
            "/api/businesses", json={"name": "Estudio Uno", "categories": ["tattoo"]}
        )
        assert response.status_code == 201
        business = response.get_json()["data"]
        assert len(business["businessKey"]) == 16

        me = owner.get("/api/auth/me").get_json()["data"]
        assert me["state"] == "blocked"
        assert me["canWrite"] is False

        assigned = admin.post(
            "/api/licenses/assign", json={"businessId": business["id"], "type": "3months"}
        )
        assert assigned.status_code == 200
        assert assigned.get_json()["data"]["renewalCount"] == 1

        refreshed = owner.post("/api/auth/refresh").get_json()["data"]
        assert refreshed["state"] == "owner_active"
        assert refreshed["canWrite"] is True
        assert refreshed["licenseStatus"]["isValid"] is True

    def test_business_needs_a_category(self, client_factory):
        owner = client_factory()
        register_user(owner, "duena@agenda.test")
        response = owner.post("/api/businesses", json={"name": "Estudio Uno"})
        assert response.status_code == 400

    def test_assistant_cannot_create_business(self, client_factory, onboarded):
        assistant = client_factory()
        register_user(
            assistant, "asis@agenda.test", role="assistant", business_key=onboarded["business_key"]
        )
        response = assistant.post("/api/businesses", json={"name": "Otro", "categories": ["x"]})
        assert response.status_code == 403

    def test_key_regeneration(self, onboarded):
        owner, bid = onboarded["owner"], onboarded["business_id"]
        response = owner.post(f"/api/businesses/{bid}/key")
        assert response.status_code == 200
        assert response.get_json()["data"]["businessKey"] != onboarded["business_key"]


class TestCatalog:
    def test_list_services_and_clients(self, onboarded):
        owner, bid = onboarded["owner"], onboarded["business_id"]
        services = owner.get(f"/api/businesses/{bid}/services").get_json()["data"]
        clients = owner.get(f"/api/businesses/{bid}/clients").get_json()["data"]
        assert [s["name"] for s in services] == ["Tatuaje"]
        assert [c["name"] for c in clients] == ["Ana Pérez"]

    def test_assistant_cannot_add_services(self, client_factory, onboarded):
        assistant = client_factory()
        register_user(
            assistant, "asis@agenda.test", role="assistant", business_key=onboarded["business_key"]
        )
        response = assistant.post(
            f"/api/businesses/{onboarded['business_id']}/services", json={"name": "Piercing"}
        )
        assert response.status_code == 403

    def test_outsider_cannot_list(self, client_factory, onboarded):
        outsider = client_factory()
        register_user(outsider, "otro@agenda.test")
        response = outsider.get(f"/api/businesses/{onboarded['business_id']}/clients")
        assert response.status_code == 403


class TestCalendar:
    def test_conflict_names_client(self, client_factory, onboarded):
        owner, bid = onboarded["owner"], onboarded["business_id"]
        second_client = owner.post(
            f"/api/businesses/{bid}/clients", json={"name": "Luis Gómez"}
        ).get_json()["data"]

        assistant = client_factory()
        register_user(
            assistant, "asis@agenda.test", role="assistant", business_key=onboarded["business_key"]
        )
        created = assistant.post(f"/api/businesses/{bid}/appointments", json=booking(onboarded))
        assert created.status_code == 201
        assert created.get_json()["data"]["endTime"] == "11:00"

        clash = owner.post(
            f"/api/businesses/{bid}/appointments",
            json=booking(onboarded, start="10:30", client_id=second_client["id"]),
        )
        assert clash.status_code == 409
        body = clash.get_json()
        assert body["data"]["conflict"]["clientName"] == "Ana Pérez"
        assert "Ana Pérez" in body["message"]

    def test_move_and_delete(self, onboarded):
        owner, bid = onboarded["owner"], onboarded["business_id"]
        apt = owner.post(f"/api/businesses/{bid}/appointments", json=booking(onboarded)).get_json()["data"]

        moved = owner.patch(
            f"/api/businesses/{bid}/appointments/{apt['id']}", json={"startTime": "16:00"}
        )
        assert moved.get_json()["data"]["endTime"] == "17:00"

        listed = owner.get(f"/api/businesses/{bid}/appointments?date=2024-01-20").get_json()["data"]
        assert [a["startTime"] for a in listed] == ["16:00"]

        assert owner.delete(f"/api/businesses/{bid}/appointments/{apt['id']}").status_code == 200
        assert owner.delete(f"/api/businesses/{bid}/appointments/{apt['id']}").status_code == 404

    def test_bad_date_filter(self, onboarded):
        owner, bid = onboarded["owner"], onboarded["business_id"]
        assert owner.get(f"/api/businesses/{bid}/appointments?date=20-01-2024").status_code == 400

    def test_cancelled_license_blocks_open_session(self, admin, onboarded):
        owner, bid = onboarded["owner"], onboarded["business_id"]

        assert admin.post(f"/api/licenses/{bid}/cancel").status_code == 200

        me = owner.get("/api/auth/me").get_json()["data"]
        assert me["state"] == "blocked"
        response = owner.post(f"/api/businesses/{bid}/appointments", json=booking(onboarded))
        assert response.status_code == 403


class TestRecords:
    def test_record_with_follow_up(self, onboarded):
        owner, bid, cid = onboarded["owner"], onboarded["business_id"], onboarded["client_id"]

        response = owner.post(
            f"/api/businesses/{bid}/clients/{cid}/records",
            json={
                "serviceId": onboarded["service_id"],
                "treatment": "Retoque",
                "followUpDate": "2024-02-01",
            },
        )

        assert response.status_code == 201
        record = response.get_json()["data"]
        assert "followUpDate" not in record.get("data", {})
        listed = owner.get(f"/api/businesses/{bid}/appointments?date=2024-02-01").get_json()["data"]
        assert listed[0]["notes"] == "Seguimiento de: Retoque"

        updated = owner.patch(
            f"/api/businesses/{bid}/records/{record['id']}", json={"notes": "Cicatrizó bien"}
        )
        assert updated.get_json()["data"]["notes"] == "Cicatrizó bien"

    def test_assistant_cannot_read_records(self, client_factory, onboarded):
        assistant = client_factory()
        register_user(
            assistant, "asis@agenda.test", role="assistant", business_key=onboarded["business_key"]
        )
        response = assistant.get(
            f"/api/businesses/{onboarded['business_id']}/clients/{onboarded['client_id']}/records"
        )
        assert response.status_code == 403
