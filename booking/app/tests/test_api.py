from fastapi.testclient import TestClient

from booking.api import app as api
from booking.app.core import db
from booking.app.services.confirmation import MessageTemplates

TUESDAY = "2026-10-20"


class StaticSettings:
    def __init__(self, rules):
        self.rules = rules

    async def load_rule_set(self):
        return self.rules

    async def load_templates(self):
        return MessageTemplates()


def _client(make_rules):
    db.configure_engine("sqlite+aiosqlite:///:memory:")
    api.app.dependency_overrides[api.get_settings_repo] = lambda: StaticSettings(make_rules())
    return TestClient(api.app)


def _teardown():
    api.app.dependency_overrides.clear()
    db._reset_engine_for_tests()


def test_booking_flow_over_http(make_rules):
    try:
        with _client(make_rules) as client:
            assert client.get("/health").json() == {"status": "ok"}
            assert client.post("/customers", json={"id": "c1", "name": "Ann"}).status_code == 201
            assert client.post("/customers", json={"id": "c2"}).status_code == 201

            created = client.post(
                "/appointments",
                json={"customer_id": "c1", "service_id": "cut", "date": TUESDAY, "time": "09:00"},
            )
            assert created.status_code == 201
            body = created.json()
            assert body["success"] is True
            appointment_id = body["appointment"]["appointmentId"]

            clash = client.post(
                "/appointments",
                json={"customer_id": "c2", "service_id": "cut", "date": TUESDAY, "time": "09:00"},
            )
            assert clash.status_code == 409
            assert clash.json()["reason"] == "fully booked"
            assert clash.json()["suggestedSlots"][0] == {"date": TUESDAY, "time": "10:00"}

            preview = client.get("/availability", params={"date": TUESDAY, "time": "09:00", "service_id": "cut"})
            assert preview.json()["available"] is False

            moved = client.post(
                f"/appointments/{appointment_id}/reschedule",
                json={"new_date": TUESDAY, "new_time": "10:00"},
            )
            assert moved.status_code == 200
            assert moved.json()["appointment"]["rescheduledFrom"] == "2026-10-20 09:00"

            listed = client.get("/customers/c1/appointments").json()
            assert [a["time"] for a in listed] == ["10:00"]

            cancelled = client.post(f"/appointments/{appointment_id}/cancel")
            assert cancelled.status_code == 200
            assert cancelled.json()["appointment"]["status"] == "cancelled"
            assert client.get("/customers/c1/appointments").json() == []
    finally:
        _teardown()


def test_validation_faults_map_to_422(make_rules):
    try:
        with _client(make_rules) as client:
            bad_date = client.post(
                "/appointments",
                json={"customer_id": "c1", "service_id": "cut", "date": "20/10/2026", "time": "09:00"},
            )
            assert bad_date.status_code == 422
            assert bad_date.json() == {"detail": "invalid_date"}

            unknown_customer = client.post(
                "/appointments",
                json={"customer_id": "nobody", "service_id": "cut", "date": TUESDAY, "time": "09:00"},
            )
            assert unknown_customer.json() == {"detail": "unknown_customer"}

            missing = client.post("/appointments/404/cancel")
            assert missing.status_code == 422
            assert missing.json() == {"detail": "appointment_not_found"}
    finally:
        _teardown()


def test_chat_intent_endpoint(make_rules):
    try:
        with _client(make_rules) as client:
            client.post("/customers", json={"id": "c1"})
            reply = client.post(
                "/chat/intents",
                json={
                    "customer_id": "c1",
                    "intent": "booked",
                    "appointmentDetails": {"service": "Haircut", "date": TUESDAY, "time": "11:00"},
                },
            )
            assert reply.status_code == 200
            data = reply.json()
            assert data["intent"] == "booked"
            assert data["appointment"]["serviceId"] == "cut"
    finally:
        _teardown()
