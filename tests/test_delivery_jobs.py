# tests/test_delivery_jobs.py

import uuid

import pytest

from app.delivery import service as delivery_service
from app.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.orders import service as order_service
from tests.conftest import _auth_headers


@pytest.fixture()
def confirmed(store):
    """A confirmed JEMO_RIDER order with its OPEN job, picked up in Douala."""
    vendor_id = store.add_vendor()
    product = store.add_product(vendor_id=vendor_id, price=4000, city=" DOUALA ")
    order = store.add_order(vendor_id=vendor_id, items=[(product, 1, 4000)])
    order_service.confirm_order(order["id"], vendor_id)
    job = store.jobs_for_order(order["id"])[0]
    return {"order": order, "job": job, "vendor_id": vendor_id}


@pytest.fixture()
def agency(store):
    return store.add_agency(cities=["Douala", "Kribi"])


def test_available_jobs_match_normalized_cities(store, confirmed, agency):
    elsewhere = store.add_agency(cities=["Garoua"])

    assert [j["id"] for j in delivery_service.list_available_jobs(agency["user_id"])] == [confirmed["job"]["id"]]
    assert delivery_service.list_available_jobs(elsewhere["user_id"]) == []


def test_accept_assigns_job_and_moves_order_in_transit(store, confirmed, agency):
    result = delivery_service.accept_job(confirmed["job"]["id"], agency["user_id"])

    assert result["job"]["status"] == "ACCEPTED"
    assert result["job"]["agency_id"] == agency["id"]
    order = store.order(confirmed["order"]["id"])
    assert order["status"] == "IN_TRANSIT"
    assert order["in_transit_at"] is not None

    log = store.db["job_logs"][-1]
    assert log["event"] == "ACCEPTED"
    assert log["actor_type"] == "DELIVERY_AGENCY"
    assert log["actor_name"] == agency["name"]


def test_second_agency_gets_a_conflict(store, confirmed, agency):
    rival = store.add_agency(cities=["Douala"])
    # the rival's update lands first, after this agency read the job as OPEN
    store.assign_open_job(None, confirmed["job"]["id"], rival["id"])
    store.db["jobs"][str(confirmed["job"]["id"])]["status"] = "OPEN"

    with pytest.raises(ConflictError) as exc:
        delivery_service.accept_job(confirmed["job"]["id"], agency["user_id"])

    assert exc.value.status_code == 409
    assert exc.value.code == "JOB_ALREADY_ASSIGNED"
    assert store.order(confirmed["order"]["id"])["status"] == "CONFIRMED"


def test_losing_the_conditional_update_is_a_conflict(store, monkeypatch, confirmed, agency):
    monkeypatch.setattr("app.delivery.repository.assign_open_job", lambda conn, job_id, agency_id: None)

    with pytest.raises(ConflictError) as exc:
        delivery_service.accept_job(confirmed["job"]["id"], agency["user_id"])

    assert exc.value.code == "JOB_ALREADY_ASSIGNED"
    assert store.order(confirmed["order"]["id"])["status"] == "CONFIRMED"


def test_accepting_a_taken_job_is_not_open(store, confirmed, agency):
    delivery_service.accept_job(confirmed["job"]["id"], agency["user_id"])
    other = store.add_agency(cities=["Douala"])

    with pytest.raises(BadRequestError) as exc:
        delivery_service.accept_job(confirmed["job"]["id"], other["user_id"])

    assert exc.value.code == "JOB_NOT_OPEN"


def test_city_not_covered(store, confirmed):
    far = store.add_agency(cities=["Maroua"])

    with pytest.raises(ForbiddenError) as exc:
        delivery_service.accept_job(confirmed["job"]["id"], far["user_id"])

    assert exc.value.code == "CITY_NOT_COVERED"
    assert store.jobs_for_order(confirmed["order"]["id"])[0]["status"] == "OPEN"


def test_inactive_agency_is_rejected(store, confirmed):
    inactive = store.add_agency(is_active=False)

    with pytest.raises(ForbiddenError) as exc:
        delivery_service.accept_job(confirmed["job"]["id"], inactive["user_id"])

    assert exc.value.code == "AGENCY_INACTIVE"


def test_mark_delivered_moves_order(store, confirmed, agency):
    delivery_service.accept_job(confirmed["job"]["id"], agency["user_id"])

    result = delivery_service.mark_job_delivered(confirmed["job"]["id"], agency["user_id"], notes="Left at gate")

    assert result["job"]["status"] == "DELIVERED"
    order = store.order(confirmed["order"]["id"])
    assert order["status"] == "DELIVERED"
    assert order["delivered_at"] is not None
    assert store.db["job_logs"][-1]["notes"] == "Left at gate"


def test_only_assigned_agency_can_deliver(store, confirmed, agency):
    delivery_service.accept_job(confirmed["job"]["id"], agency["user_id"])
    other = store.add_agency()

    with pytest.raises(ForbiddenError) as exc:
        delivery_service.mark_job_delivered(confirmed["job"]["id"], other["user_id"])

    assert exc.value.code == "NOT_ASSIGNED_AGENCY"


def test_open_job_cannot_be_delivered(store, confirmed, agency):
    store.db["jobs"][str(confirmed["job"]["id"])]["agency_id"] = agency["id"]

    with pytest.raises(BadRequestError) as exc:
        delivery_service.mark_job_delivered(confirmed["job"]["id"], agency["user_id"])

    assert exc.value.code == "INVALID_JOB_TRANSITION"


def test_unknown_job(store, agency):
    with pytest.raises(NotFoundError):
        delivery_service.accept_job(uuid.uuid4(), agency["user_id"])


# ---------------------------
# Admin
# ---------------------------

def test_admin_assign(store, confirmed, agency, admin_id):
    result = delivery_service.admin_assign_job(confirmed["job"]["id"], agency["id"], admin_id, notes="Urgent")

    assert result["job"]["agency_id"] == agency["id"]
    assert result["order"]["status"] == "IN_TRANSIT"
    assert store.db["job_logs"][-1]["event"] == "ADMIN_ASSIGNED"
    assert store.db["audit"][-1]["action"] == "DELIVERY_JOB_ASSIGN"


def test_admin_assign_to_inactive_agency(store, confirmed, admin_id):
    inactive = store.add_agency(is_active=False)

    with pytest.raises(BadRequestError) as exc:
        delivery_service.admin_assign_job(confirmed["job"]["id"], inactive["id"], admin_id)

    assert exc.value.code == "AGENCY_INACTIVE"
    assert store.db["audit"] == []


def test_admin_override_cannot_move_rider_order_past_its_job(store, confirmed, agency, admin_id):
    with pytest.raises(BadRequestError) as exc:
        order_service.admin_update_status(confirmed["order"]["id"], admin_id, "IN_TRANSIT")

    assert exc.value.code == "INVALID_ORDER_TRANSITION"
    assert store.order(confirmed["order"]["id"])["status"] == "CONFIRMED"

    # the job still drives the order
    result = delivery_service.admin_assign_job(confirmed["job"]["id"], agency["id"], admin_id)
    assert result["order"]["status"] == "IN_TRANSIT"
    delivery_service.mark_job_delivered(confirmed["job"]["id"], agency["user_id"])
    assert store.order(confirmed["order"]["id"])["status"] == "DELIVERED"


def test_admin_cancel_leaves_order_alone(store, confirmed, admin_id):
    delivery_service.admin_cancel_job(confirmed["job"]["id"], admin_id, reason="Duplicate job")

    assert store.jobs_for_order(confirmed["order"]["id"])[0]["status"] == "CANCELLED"
    assert store.order(confirmed["order"]["id"])["status"] == "CONFIRMED"
    assert store.db["audit"][-1]["metadata"]["reason"] == "Duplicate job"


def test_order_cancel_leaves_a_cancelled_job_alone(store, confirmed, admin_id):
    delivery_service.admin_cancel_job(confirmed["job"]["id"], admin_id, reason="Duplicate job")
    logs_before = len(store.db["job_logs"])

    result = order_service.cancel_order(confirmed["order"]["id"], actor="vendor", actor_id=confirmed["vendor_id"])

    assert result["delivery_job"] is None
    assert result["order"]["status"] == "CANCELLED"
    assert len(store.db["job_logs"]) == logs_before


def test_admin_cannot_cancel_delivered_job(store, confirmed, agency, admin_id):
    delivery_service.accept_job(confirmed["job"]["id"], agency["user_id"])
    delivery_service.mark_job_delivered(confirmed["job"]["id"], agency["user_id"])

    with pytest.raises(BadRequestError) as exc:
        delivery_service.admin_cancel_job(confirmed["job"]["id"], admin_id, reason="Too late")

    assert exc.value.code == "INVALID_JOB_TRANSITION"


def test_job_detail_and_stats(store, confirmed, agency):
    delivery_service.accept_job(confirmed["job"]["id"], agency["user_id"])

    detail = delivery_service.admin_job_detail(confirmed["job"]["id"])
    assert detail["agency"]["id"] == agency["id"]
    assert [log["event"] for log in detail["logs"]] == ["CREATED", "ACCEPTED"]

    stats = delivery_service.admin_job_stats()
    assert stats["by_status"] == {"OPEN": 0, "ACCEPTED": 1, "DELIVERED": 0, "CANCELLED": 0}
    assert stats["total"] == 1
    assert stats["stale_open"] == 0


# ---------------------------
# HTTP
# ---------------------------

def test_accept_endpoint_conflict_is_409(client, store, confirmed, agency):
    rival = store.add_agency(cities=["Douala"])
    store.db["jobs"][str(confirmed["job"]["id"])]["agency_id"] = rival["id"]

    r = client.post(f"/v1/agency/jobs/{confirmed['job']['id']}/accept", headers=_auth_headers(agency["user_id"], "DELIVERY_AGENCY"))

    assert r.status_code == 409, r.text
    assert r.json()["detail"]["code"] == "JOB_ALREADY_ASSIGNED"


def test_inactive_agency_blocked_at_the_door(client, store, confirmed):
    inactive = store.add_agency(is_active=False)

    r = client.get("/v1/agency/jobs/available", headers=_auth_headers(inactive["user_id"], "DELIVERY_AGENCY"))

    assert r.status_code == 403, r.text
    assert r.json()["detail"]["code"] == "AGENCY_INACTIVE"


def test_admin_cancel_body_is_strict(client, store, confirmed, admin_id):
    r = client.post(
        f"/v1/admin/delivery-jobs/{confirmed['job']['id']}/cancel",
        json={"reason": "Duplicate job", "force": True},
        headers=_auth_headers(admin_id, "ADMIN"),
    )
    assert r.status_code == 422
