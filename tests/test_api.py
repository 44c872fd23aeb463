import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import DBAPIError

from opd_tokens.api import api
from opd_tokens.db import DoctorRepository


@pytest_asyncio.fixture
async def client(db):
    transport = httpx.ASGITransport(app=api)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _doctor_with_slots(client, capacities, name="Dr. Api"):
    response = await client.post(
        "/api/doctors", json={"name": name, "department": "General"}
    )
    assert response.status_code == 201
    doctor_id = response.json()["id"]
    slot_ids = []
    for offset, capacity in enumerate(capacities):
        response = await client.post(
            f"/api/doctors/{doctor_id}/slots",
            json={
                "startTime": f"{9 + offset:02d}:00",
                "endTime": f"{10 + offset:02d}:00",
                "maxCapacity": capacity,
            },
        )
        assert response.status_code == 201, response.text
        slot_ids.append(response.json()["id"])
    return doctor_id, slot_ids


async def _book(client, doctor_id, slot_id, source):
    return await client.post(
        "/api/tokens",
        json={"doctorId": doctor_id, "slotId": slot_id, "source": source},
    )


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "connected"


async def test_create_and_list_doctors(client):
    await _doctor_with_slots(client, [], name="Dr. Zed")
    await _doctor_with_slots(client, [], name="Dr. Amy")

    response = await client.get("/api/doctors")

    assert [d["name"] for d in response.json()] == ["Dr. Amy", "Dr. Zed"]


async def test_create_slot(client):
    doctor_id, _ = await _doctor_with_slots(client, [])

    response = await client.post(
        f"/api/doctors/{doctor_id}/slots",
        json={"start_time": "09:00", "end_time": "10:00", "max_capacity": 2},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["doctor_id"] == doctor_id
    assert body["start_time"] == "09:00:00"
    assert body["current_count"] == 0


@pytest.mark.parametrize(
    "payload",
    [
        {"startTime": "10:00", "endTime": "09:00", "maxCapacity": 1},
        {"startTime": "09:00", "endTime": "10:00", "maxCapacity": 0},
        {"startTime": "09:00", "endTime": "10:00"},
    ],
)
async def test_create_slot_rejects_bad_input(client, payload):
    doctor_id, _ = await _doctor_with_slots(client, [])

    response = await client.post(f"/api/doctors/{doctor_id}/slots", json=payload)

    assert response.status_code == 422


async def test_create_slot_for_unknown_doctor(client):
    response = await client.post(
        "/api/doctors/missing/slots",
        json={"startTime": "09:00", "endTime": "10:00", "maxCapacity": 1},
    )

    assert response.status_code == 404


async def test_duplicate_slot_start_conflicts(client):
    doctor_id, _ = await _doctor_with_slots(client, [1])

    response = await client.post(
        f"/api/doctors/{doctor_id}/slots",
        json={"startTime": "09:00", "endTime": "09:30", "maxCapacity": 1},
    )

    assert response.status_code == 409


async def test_book_token(client):
    doctor_id, (slot_id,) = await _doctor_with_slots(client, [1])

    response = await _book(client, doctor_id, slot_id, "online")

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Token created in requested slot"
    assert body["token"]["source"] == "ONLINE"
    assert body["token"]["priority"] == 2
    assert body["token"]["status"] == "ACTIVE"
    assert body["bumped_token_id"] is None


async def test_book_token_bumps_lower_priority(client):
    doctor_id, (nine, ten) = await _doctor_with_slots(client, [1, 1])
    walk_in = (await _book(client, doctor_id, nine, "WALK_IN")).json()["token"]

    response = await _book(client, doctor_id, nine, "PAID")

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Token created by bumping lower priority token to next slot"
    assert body["bumped_token_id"] == walk_in["id"]
    assert body["bumped_to_slot_id"] == ten


async def test_book_token_refused_when_full(client):
    doctor_id, (slot_id,) = await _doctor_with_slots(client, [1])
    await _book(client, doctor_id, slot_id, "PAID")

    response = await _book(client, doctor_id, slot_id, "PAID")

    assert response.status_code == 409
    body = response.json()
    assert body["detail"] == "Slot full. Incoming token has lower or equal priority."
    assert body["code"] == "slot_full"
    assert body["retryable"] is False


async def test_book_token_without_next_slot(client):
    doctor_id, (slot_id,) = await _doctor_with_slots(client, [1])
    await _book(client, doctor_id, slot_id, "WALK_IN")

    response = await _book(client, doctor_id, slot_id, "PAID")

    assert response.status_code == 409
    assert response.json()["detail"] == (
        "Slot full. No next slot available for reallocation."
    )


async def test_book_token_errors(client):
    doctor_id, (slot_id,) = await _doctor_with_slots(client, [1])
    other_id, (other_slot,) = await _doctor_with_slots(client, [1], name="Dr. Other")

    assert (await _book(client, doctor_id, slot_id, "VIP")).status_code == 422
    assert (await _book(client, doctor_id, "missing", "ONLINE")).status_code == 404
    assert (await _book(client, "missing", slot_id, "ONLINE")).status_code == 404
    assert (await _book(client, doctor_id, other_slot, "ONLINE")).status_code == 400


async def test_emergency_token(client):
    doctor_id, (slot_id,) = await _doctor_with_slots(client, [1])
    await _book(client, doctor_id, slot_id, "PAID")

    response = await client.post(
        "/api/tokens/emergency", json={"doctor_id": doctor_id, "slot_id": slot_id}
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Emergency token created"
    assert body["token"]["priority"] == 5


async def test_cancel_token(client):
    doctor_id, (nine, ten) = await _doctor_with_slots(client, [1, 1])
    walk_in = (await _book(client, doctor_id, nine, "WALK_IN")).json()["token"]
    paid = (await _book(client, doctor_id, ten, "PAID")).json()["token"]

    response = await client.patch(f"/api/tokens/{walk_in['id']}/cancel")

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Token cancelled"
    assert body["token"]["status"] == "CANCELLED"
    assert body["pulled_token_id"] == paid["id"]
    assert body["pulled_from_slot_id"] == ten

    again = await client.patch(f"/api/tokens/{walk_in['id']}/cancel")
    assert again.status_code == 400
    missing = await client.patch("/api/tokens/missing/cancel")
    assert missing.status_code == 404


async def test_doctor_schedule(client):
    doctor_id, (nine, ten) = await _doctor_with_slots(client, [1, 1])
    await _book(client, doctor_id, ten, "ONLINE")
    await _book(client, doctor_id, nine, "FOLLOW_UP")

    response = await client.get(f"/api/doctors/{doctor_id}/slots")

    assert response.status_code == 200
    body = response.json()
    assert body["doctor"]["id"] == doctor_id
    assert [s["id"] for s in body["slots"]] == [nine, ten]
    assert [t["source"] for t in body["slots"][0]["tokens"]] == ["FOLLOW_UP"]
    assert [t["source"] for t in body["slots"][1]["tokens"]] == ["ONLINE"]
    assert (await client.get("/api/doctors/missing/slots")).status_code == 404


async def test_simulate_day(client):
    response = await client.post("/api/simulate/day")

    assert response.status_code == 200
    body = response.json()
    assert len(body["doctors"]) == 3
    assert len(body["slots"]) == 9
    assert [t["source"] for t in body["tokens"] if t["status"] == "CANCELLED"] == [
        "WALK_IN"
    ]


async def test_lock_timeout_returns_503(client, monkeypatch):
    doctor_id, (slot_id,) = await _doctor_with_slots(client, [1])

    class _LockNotAvailable(Exception):
        sqlstate = "55P03"

    async def lock(self, doctor_id):
        raise DBAPIError("SELECT ... FOR UPDATE", {}, _LockNotAvailable())

    monkeypatch.setattr(DoctorRepository, "lock", lock)

    response = await _book(client, doctor_id, slot_id, "ONLINE")

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["code"] == "lock_timeout"
    assert response.json()["retryable"] is True
