"""
HTTP surface: routing, request validation, response envelopes and the
mapping of domain errors onto status codes.
"""

from datetime import date, timedelta
from uuid import uuid4

from app.database import async_session
from app.models import BloodBank, Donor
from app.utils.phone import normalize_phone
from tests.conftest import assert_response_error, assert_response_success

API = "/api"


async def _create_bank(name="Central Blood Bank", city="Pune"):
    async with async_session() as db:
        bank = BloodBank(name=name, city=city, phone="02025550100", address="1 Main Road")
        db.add(bank)
        await db.commit()
        return bank.id


async def _create_donor(phone, blood_type="O+", city="Pune", last_donation_date=None):
    async with async_session() as db:
        donor = Donor(
            name="Kiran Patil",
            phone=normalize_phone(phone),
            blood_type=blood_type,
            date_of_birth=date(1992, 4, 12),
            city=city,
            weight=70,
            last_donation_date=last_donation_date,
        )
        db.add(donor)
        await db.commit()
        return donor.id


def seed_bank(client, **kwargs):
    return client.portal.call(lambda: _create_bank(**kwargs))


def seed_donor(client, phone="9876543210", **kwargs):
    return client.portal.call(lambda: _create_donor(phone, **kwargs))


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestBloodUnitEndpoints:
    def test_components_catalog(self, client):
        data = assert_response_success(client.get(f"{API}/blood-units/components"))
        assert len(data) == 7
        assert {"code": "FFP", "name": "Fresh Frozen Plasma", "shelf_life_days": 365} in data

    def test_add_and_list_units(self, client):
        bank_id = seed_bank(client)
        collected = date.today() - timedelta(days=1)

        created = assert_response_success(
            client.post(
                f"{API}/blood-units/{bank_id}",
                json={"blood_type": "a+", "component": "FFP", "collection_date": collected.isoformat()},
            ),
            201,
        )
        assert created["unit_number"] == "001"
        assert created["blood_type"] == "A+"
        assert created["status"] == "AVAILABLE"
        assert created["expiry_date"] == (collected + timedelta(days=365)).isoformat()

        units = assert_response_success(
            client.get(f"{API}/blood-units/{bank_id}", params={"component": "FFP"})
        )
        assert [unit["id"] for unit in units] == [created["id"]]

    def test_duplicate_unit_number(self, client):
        bank_id = seed_bank(client)
        body = {
            "blood_type": "B+",
            "component": "CRYO",
            "collection_date": date.today().isoformat(),
            "unit_number": "CRY-9",
        }
        assert_response_success(client.post(f"{API}/blood-units/{bank_id}", json=body), 201)

        assert_response_error(client.post(f"{API}/blood-units/{bank_id}", json=body), 409, "conflict")

    def test_unknown_component(self, client):
        bank_id = seed_bank(client)
        response = client.post(
            f"{API}/blood-units/{bank_id}",
            json={"blood_type": "B+", "component": "PLASMA", "collection_date": date.today().isoformat()},
        )
        assert_response_error(response, 400, "validation_error")

    def test_expired_unit_status_change(self, client):
        bank_id = seed_bank(client)
        collected = date.today() - timedelta(days=10)
        unit = assert_response_success(
            client.post(
                f"{API}/blood-units/{bank_id}",
                json={"blood_type": "O-", "component": "SDP", "collection_date": collected.isoformat()},
            ),
            201,
        )

        response = client.put(
            f"{API}/blood-units/{bank_id}/{unit['id']}/status", json={"status": "RESERVED"}
        )

        body = assert_response_error(response, 410, "expired")
        assert body["expiry_date"] == (collected + timedelta(days=5)).isoformat()

    def test_mark_expired_and_summary(self, client):
        bank_id = seed_bank(client)
        client.post(
            f"{API}/blood-units/{bank_id}",
            json={
                "blood_type": "O-",
                "component": "PLATELETS_RDP",
                "collection_date": (date.today() - timedelta(days=10)).isoformat(),
            },
        )

        swept = assert_response_success(client.post(f"{API}/blood-units/{bank_id}/mark-expired"))
        assert swept == {"count": 1}

        summary = assert_response_success(client.get(f"{API}/blood-units/{bank_id}/expiry-summary"))
        assert summary["totalAvailable"] == 0

    def test_unit_not_found(self, client):
        bank_id = seed_bank(client)
        assert_response_error(client.delete(f"{API}/blood-units/{bank_id}/{uuid4()}"), 404, "not_found")


class TestDonationEndpoints:
    def test_two_step_intake(self, client):
        bank_id = seed_bank(client)
        today = date.today().isoformat()

        donation = assert_response_success(
            client.post(
                f"{API}/blood-units/{bank_id}/record-donation-step1",
                json={
                    "phone": "98765 43210",
                    "donation_date": today,
                    "blood_type": "AB+",
                    "donor_name": "Asha Kulkarni",
                    "donor_date_of_birth": "1991-08-15",
                },
            ),
            201,
        )
        assert donation["components_added"] is False
        assert donation["donor_phone"] == "919876543210"

        pending = assert_response_success(client.get(f"{API}/blood-units/{bank_id}/pending-donations"))
        assert [item["id"] for item in pending] == [donation["id"]]

        units = assert_response_success(
            client.post(
                f"{API}/blood-units/{bank_id}/add-components/{donation['id']}",
                json={"components": ["PRBC_SAGM", "FFP"]},
            )
        )
        assert [unit["unit_number"] for unit in units] == ["001", "002"]
        assert all(unit["blood_type"] == "AB+" for unit in units)

        again = client.post(
            f"{API}/blood-units/{bank_id}/add-components/{donation['id']}",
            json={"components": ["CRYO"]},
        )
        assert_response_error(again, 409, "conflict")

    def test_ineligible_donor(self, client):
        bank_id = seed_bank(client)
        seed_donor(client, phone="9000011111", last_donation_date=date.today() - timedelta(days=30))

        response = client.post(
            f"{API}/blood-units/{bank_id}/record-donation",
            json={"phone": "9000011111", "donation_date": date.today().isoformat(), "components": ["FFP"]},
        )

        body = assert_response_error(response, 422, "ineligible")
        assert body["days_remaining"] == 60

    def test_one_shot_donation(self, client):
        bank_id = seed_bank(client)
        seed_donor(client, phone="9000022222", blood_type="B-")

        data = assert_response_success(
            client.post(
                f"{API}/blood-units/{bank_id}/record-donation",
                json={
                    "phone": "9000022222",
                    "donation_date": date.today().isoformat(),
                    "components": ["WHOLE_BLOOD"],
                },
            ),
            201,
        )

        assert data["donation"]["components_added"] is True
        assert data["units"][0]["component"] == "WHOLE_BLOOD"
        assert data["units"][0]["blood_type"] == "B-"

    def test_lookup_donor(self, client):
        seed_donor(client, phone="9000033333")

        found = assert_response_success(
            client.get(f"{API}/blood-units/lookup-donor", params={"phone": "9000033333"})
        )
        missing = assert_response_success(
            client.get(f"{API}/blood-units/lookup-donor", params={"phone": "9111111111"})
        )

        assert found["found"] is True
        assert found["donor"]["phone"] == "919000033333"
        assert found["donor"]["eligible"] is True
        assert missing == {"found": False, "donor": None}

    def test_extra_fields_rejected(self, client):
        bank_id = seed_bank(client)
        response = client.post(
            f"{API}/blood-units/{bank_id}/record-donation-step1",
            json={"phone": "9000044444", "donation_date": date.today().isoformat(), "units": 3},
        )
        assert response.status_code == 422


class TestInventoryEndpoints:
    def test_set_and_read_inventory(self, client):
        bank_id = seed_bank(client, name="Ruby Hall")

        record = assert_response_success(
            client.put(f"{API}/inventory/{bank_id}", json={"blood_type": "o+", "units": 3})
        )
        assert record["blood_type"] == "O+"
        assert record["units_available"] == 3
        assert record["blood_bank_name"] == "Ruby Hall"

        client.put(f"{API}/inventory/{bank_id}", json={"blood_type": "A+", "units": 0})

        low = assert_response_success(client.get(f"{API}/inventory/low-stock"))
        assert [(alert["bloodType"], alert["units"]) for alert in low] == [("O+", 3)]

        total = assert_response_success(client.get(f"{API}/inventory/stats/total"))
        assert total == {"totalUnits": 3}

    def test_invalid_blood_type(self, client):
        bank_id = seed_bank(client)
        response = client.put(f"{API}/inventory/{bank_id}", json={"blood_type": "Z+", "units": 3})
        assert response.status_code == 422

    def test_deduct_clamps(self, client):
        bank_id = seed_bank(client)
        client.put(f"{API}/inventory/{bank_id}", json={"blood_type": "B+", "units": 3})

        result = assert_response_success(
            client.post(f"{API}/inventory/{bank_id}/deduct", json={"blood_type": "B+", "amount": 5})
        )
        assert result == {"updated": 1}

        records = assert_response_success(client.get(f"{API}/inventory/{bank_id}"))
        assert records[0]["units_available"] == 0


class TestDonorRequestEndpoints:
    def test_request_round_trip(self, client):
        bank_id = seed_bank(client)
        donor_id = seed_donor(client, phone="9000055555")

        found = assert_response_success(
            client.get(f"{API}/donor-requests/{bank_id}/search", params={"city": "pune"})
        )
        assert [donor["id"] for donor in found] == [str(donor_id)]

        request = assert_response_success(
            client.post(f"{API}/donor-requests/{bank_id}/send", json={"donor_id": str(donor_id)}),
            201,
        )
        assert request["status"] == "PENDING"

        again = client.post(f"{API}/donor-requests/{bank_id}/send", json={"donor_id": str(donor_id)})
        body = assert_response_error(again, 422, "ineligible")
        assert body["cooldown_days"] == 7

        incoming = assert_response_success(client.get(f"{API}/donors/{donor_id}/requests"))
        assert incoming[0]["bank_name"] == "Central Blood Bank"

        accepted = assert_response_success(
            client.post(
                f"{API}/donors/{donor_id}/requests/{request['id']}/respond", json={"accept": True}
            )
        )
        assert accepted["status"] == "ACCEPTED"

        donated = assert_response_success(
            client.post(f"{API}/donor-requests/{bank_id}/{request['id']}/donated")
        )
        assert donated["status"] == "DONATED"

        history = assert_response_success(client.get(f"{API}/donor-requests/{bank_id}/history"))
        assert history[0]["donor_phone"] == "919000055555"

    def test_opt_out(self, client):
        bank_id = seed_bank(client)
        donor_id = seed_donor(client, phone="9000066666")

        donor = assert_response_success(
            client.put(f"{API}/donors/{donor_id}/contact-availability", json={"available": False})
        )
        assert donor["is_available_for_contact"] is False

        response = client.post(f"{API}/donor-requests/{bank_id}/send", json={"donor_id": str(donor_id)})
        assert_response_error(response, 422, "ineligible")

    def test_eligibility(self, client):
        donor_id = seed_donor(
            client, phone="9000077777", last_donation_date=date.today() - timedelta(days=80)
        )

        data = assert_response_success(client.get(f"{API}/donors/{donor_id}/eligibility"))

        assert data["eligible"] is False
        assert data["days_until_eligible"] == 10

    def test_unknown_donor(self, client):
        assert_response_error(client.get(f"{API}/donors/{uuid4()}/eligibility"), 404, "not_found")


class TestReservationEndpoints:
    def test_reservation_flow(self, client):
        bank_id = seed_bank(client)
        client.put(f"{API}/inventory/{bank_id}", json={"blood_type": "O+", "units": 5})

        too_many = client.post(
            f"{API}/reservations/{bank_id}",
            json={
                "patient_name": "Sunita Rao",
                "contact_number": "9812345678",
                "blood_type": "O+",
                "units_needed": 6,
            },
        )
        body = assert_response_error(too_many, 422, "ineligible")
        assert body["available"] == 5

        reservation = assert_response_success(
            client.post(
                f"{API}/reservations/{bank_id}",
                json={
                    "patient_name": "Sunita Rao",
                    "contact_number": "9812345678",
                    "blood_type": "O+",
                    "units_needed": 2,
                },
            ),
            201,
        )
        assert reservation["status"] == "pending"

        completed = assert_response_success(
            client.put(
                f"{API}/reservations/{bank_id}/{reservation['id']}/status",
                json={"status": "completed"},
            )
        )
        assert completed["status"] == "completed"

        records = assert_response_success(client.get(f"{API}/inventory/{bank_id}"))
        assert records[0]["units_available"] == 3
