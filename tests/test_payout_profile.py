# tests/test_payout_profile.py

import logging

import pytest

from app.errors import BadRequestError
from app.payouts import profile as payout_profile
from tests.conftest import _auth_headers


def test_phone_is_stored_normalized(store):
    vendor_id = store.add_vendor()

    saved = payout_profile.upsert_payout_profile(
        vendor_id, method="cm_momo", phone="0676 85 82 16", full_name="  Jean Mbarga "
    )

    assert saved["phone"] == "+237676858216"
    assert saved["preferred_method"] == "CM_MOMO"
    assert saved["full_name"] == "Jean Mbarga"
    assert payout_profile.get_payout_profile(vendor_id)["phone"] == "+237676858216"


def test_upsert_replaces(store):
    vendor_id = store.add_vendor()
    payout_profile.upsert_payout_profile(vendor_id, method="CM_MOMO", phone="676858216", full_name="Jean Mbarga")

    saved = payout_profile.upsert_payout_profile(vendor_id, method="CM_OM", phone="699112233", full_name="Jean Mbarga")

    assert saved["preferred_method"] == "CM_OM"
    assert saved["phone"] == "+237699112233"
    assert len(store.db["payout_profiles"]) == 1


@pytest.mark.parametrize("phone", ["12345", "+237576858216", "", "6768582160"])
def test_invalid_phone(store, phone):
    with pytest.raises(BadRequestError) as exc:
        payout_profile.upsert_payout_profile(store.add_vendor(), method="CM_MOMO", phone=phone, full_name="Jean Mbarga")
    assert exc.value.code == "INVALID_PHONE"


@pytest.mark.parametrize("name", ["", " A ", "x" * 101])
def test_invalid_name(store, name):
    with pytest.raises(BadRequestError) as exc:
        payout_profile.upsert_payout_profile(store.add_vendor(), method="CM_MOMO", phone="676858216", full_name=name)
    assert exc.value.code == "INVALID_NAME"


def test_invalid_method(store):
    with pytest.raises(BadRequestError) as exc:
        payout_profile.upsert_payout_profile(store.add_vendor(), method="BANK", phone="676858216", full_name="Jean Mbarga")
    assert exc.value.code == "INVALID_PAYOUT_METHOD"
    assert exc.value.context["allowedMethods"] == ["CM_MOMO", "CM_OM"]


def test_operator_mismatch_only_warns(store, caplog):
    vendor_id = store.add_vendor()

    with caplog.at_level(logging.WARNING, logger="jemo.payouts"):
        saved = payout_profile.upsert_payout_profile(
            vendor_id, method="CM_OM", phone="676858216", full_name="Jean Mbarga"
        )

    assert saved["preferred_method"] == "CM_OM"
    assert "payout_profile_operator_mismatch" in caplog.text
    assert "operator=MTN" in caplog.text
    assert "676858216" not in caplog.text


def test_profile_endpoints(client, store):
    vendor_id = store.add_vendor()
    headers = _auth_headers(vendor_id, "VENDOR")

    r = client.put(
        "/v1/vendor/payout-profile",
        json={"method": "CM_MOMO", "phone": "+237 676 858 216", "full_name": "Jean Mbarga"},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["profile"]["phone"] == "+237676858216"

    r = client.get("/v1/vendor/payout-profile", headers=headers)
    assert r.json()["profile"]["preferred_method"] == "CM_MOMO"


def test_profile_endpoint_rejects_unknown_method(client, store):
    vendor_id = store.add_vendor()
    r = client.put(
        "/v1/vendor/payout-profile",
        json={"method": "PAYPAL", "phone": "676858216", "full_name": "Jean Mbarga"},
        headers=_auth_headers(vendor_id, "VENDOR"),
    )
    assert r.status_code == 422
