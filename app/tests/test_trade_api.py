from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.models.commodity_contribution import CommodityContribution
from app.models.notification import UserNotification
from app.models.org_membership import OrgMember, UserMembership

BASE = "/v1/trade"


def _closes_at(hours=2):
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


@pytest.fixture
def staff(auth_headers):
    return auth_headers("staff-1", "org_staff", "org-1")


@pytest.fixture
def create_bid(client, staff):
    def _create(org_id="org-1", headers=None, **body):
        payload = {"commodity": "kales", "requestedQty": 500, "closesAt": _closes_at()}
        payload.update(body)
        return client.post(f"{BASE}/orgs/{org_id}/bids", json=payload, headers=headers or staff)

    return _create


@pytest.fixture
def buyer(auth_headers, approve_buyer):
    def _buyer(uid):
        approve_buyer(uid)
        return auth_headers(uid, "buyer")

    return _buyer


def _offer(client, bid_id, headers, price, qty=100):
    return client.post(
        f"{BASE}/bids/{bid_id}/offers",
        json={"pricePerKg": price, "qty": qty},
        headers=headers,
    )


# ---------------------------------------------------------------------
# bids
# ---------------------------------------------------------------------


def test_staff_creates_bid_with_defaults(create_bid):
    r = create_bid()
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["ok"] is True
    bid = body["bid"]
    assert bid["orgId"] == "org-1"
    assert bid["status"] == "open"
    assert bid["currency"] == "KES"
    assert bid["unit"] == "kg"
    assert bid["visibilityMode"] == "eligible_only"
    assert bid["transparencyMode"] == "top_only"
    assert bid["bidderCountSnapshot"] == 0
    assert bid["createdByUid"] == "staff-1"
    assert Decimal(bid["requestedQty"]) == Decimal("500")


def test_create_bid_notifies_farmers(create_bid, db):
    db.add(OrgMember(org_id="org-1", member_uid="farmer-1", role="farmer"))
    db.add(OrgMember(org_id="org-1", member_uid="farmer-2", role="member", status="removed"))
    db.commit()

    r = create_bid(commodity="Tomatoes")
    assert r.status_code == 201
    assert r.json()["bid"]["commodity"] == "tomatoes"

    rows = db.query(UserNotification).filter(UserNotification.type == "BID_OPEN").all()
    assert [n.uid for n in rows] == ["farmer-1"]


@pytest.mark.parametrize(
    "body",
    [
        {"commodity": "apples"},
        {"requestedQty": 0},
        {"requestedQty": "lots"},
        {"requestedQty": "10.005"},
        {"unit": "lb"},
        {"closesAt": "not-a-date"},
        {"closesAt": None},
        {"opensAt": _closes_at(5), "closesAt": _closes_at(4)},
    ],
)
def test_create_bid_rejects_bad_input(create_bid, body):
    r = create_bid(**body)
    assert r.status_code == 400
    assert r.json()["ok"] is False
    assert r.json()["message"]


def test_create_bid_with_explicit_id_and_duplicate(create_bid):
    r = create_bid(bidId="kales-week-42", visibilityMode="all_members", transparencyMode="full_list")
    assert r.status_code == 201
    assert r.json()["bid"]["bidId"] == "kales-week-42"
    assert r.json()["bid"]["visibilityMode"] == "all_members"
    assert r.json()["bid"]["transparencyMode"] == "full_list"

    dup = create_bid(bidId="kales-week-42")
    assert dup.status_code == 400
    assert dup.json() == {"ok": False, "message": "A bid with this id already exists"}


def test_only_own_org_staff_manage_bids(create_bid, auth_headers):
    assert create_bid(headers=auth_headers("buyer-1", "buyer")).status_code == 403
    assert create_bid(headers=auth_headers("farmer-1", "farmer")).status_code == 403
    assert create_bid(headers=auth_headers("staff-2", "org_admin", "org-2")).status_code == 403
    assert create_bid(headers=auth_headers("admin-1", "admin")).status_code == 403
    assert create_bid(headers=auth_headers("root", "superadmin")).status_code == 201


def test_authentication_failures_are_401(client):
    r = client.get(f"{BASE}/bids/open")
    assert r.status_code == 401
    assert r.json()["ok"] is False

    r = client.get(f"{BASE}/bids/open", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


def test_tokens_without_role_or_expired_are_401(client):
    from app.core.security import create_access_token, create_principal_token

    no_role = create_access_token("buyer-1", {"uid": "buyer-1"})
    r = client.get(f"{BASE}/bids/open", headers={"Authorization": f"Bearer {no_role}"})
    assert r.status_code == 401
    assert r.json()["message"] == "Token missing required claims."

    expired = create_principal_token("buyer-1", "buyer", expires_minutes=-5)
    r = client.get(f"{BASE}/bids/open", headers={"Authorization": f"Bearer {expired}"})
    assert r.status_code == 401


def test_scheduler_role_is_not_accepted_from_tokens(client, auth_headers):
    r = client.get(f"{BASE}/bids/open", headers=auth_headers("system", "scheduler"))
    assert r.status_code == 401


def test_list_and_get_org_bids(client, create_bid, staff, auth_headers):
    first = create_bid(commodity="kales").json()["bid"]
    second = create_bid(commodity="cabbage").json()["bid"]

    r = client.get(f"{BASE}/orgs/org-1/bids", headers=staff)
    assert r.status_code == 200
    assert [b["bidId"] for b in r.json()["items"]] == [second["bidId"], first["bidId"]]

    r = client.get(f"{BASE}/orgs/org-1/bids", params={"commodity": "kales"}, headers=staff)
    assert [b["bidId"] for b in r.json()["items"]] == [first["bidId"]]

    r = client.get(f"{BASE}/orgs/org-1/bids/{first['bidId']}", headers=staff)
    assert r.status_code == 200
    assert r.json()["bid"]["commodity"] == "kales"

    r = client.get(f"{BASE}/orgs/org-1/bids/missing", headers=staff)
    assert r.status_code == 404
    assert r.json() == {"ok": False, "message": "Bid not found"}

    other = auth_headers("staff-2", "org_staff", "org-2")
    assert client.get(f"{BASE}/orgs/org-1/bids", headers=other).status_code == 403


# ---------------------------------------------------------------------
# offers + masking
# ---------------------------------------------------------------------


def test_full_trade_flow(client, create_bid, staff, buyer):
    bid_id = create_bid(transparencyMode="full_list").json()["bid"]["bidId"]
    alpha = buyer("alpha-buyer")
    bravo = buyer("bravo-buyer")

    r = _offer(client, bid_id, alpha, 90)
    assert r.status_code == 201, r.text
    assert r.json()["offer"]["buyerUid"] == "alpha-buyer"
    r = _offer(client, bid_id, bravo, "120")
    assert r.status_code == 201
    bravo_offer = r.json()["offer"]["offerId"]

    r = client.get(f"{BASE}/bids/open", headers=alpha)
    assert r.status_code == 200
    assert "buyerUid" not in r.text
    assert "bravo-buyer" not in r.text
    assert r.json()["currency"] == "KES"
    [item] = r.json()["items"]
    assert item["bidId"] == bid_id
    assert item["bidderCount"] == 2
    assert Decimal(item["topPrice"]) == Decimal("120")
    assert [Decimal(p) for p in item["topPriceList"]] == [Decimal("120"), Decimal("90")]
    assert item["winnerLabel"] is None

    r = client.get(f"{BASE}/orgs/org-1/bids/{bid_id}/offers", headers=staff)
    assert r.status_code == 200
    assert {o["buyerUid"] for o in r.json()["offers"]} == {"alpha-buyer", "bravo-buyer"}

    r = client.post(f"{BASE}/orgs/org-1/bids/{bid_id}/close", headers=staff)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "closed"
    assert r.json()["winningOfferId"] == bravo_offer
    assert Decimal(r.json()["winningPrice"]) == Decimal("120")

    r = client.get(f"{BASE}/bids/{bid_id}/result", headers=alpha)
    assert r.status_code == 200
    result = r.json()["result"]
    assert result["status"] == "closed"
    assert result["winnerLabel"] == "Buyer B"
    assert Decimal(result["winningPrice"]) == Decimal("120")
    assert "bravo-buyer" not in r.text

    assert client.get(f"{BASE}/bids/open", headers=alpha).json()["items"] == []
    assert _offer(client, bid_id, alpha, 150).status_code == 400


def test_top_only_hides_price_list(client, create_bid, buyer):
    bid_id = create_bid().json()["bid"]["bidId"]
    headers = buyer("alpha-buyer")
    _offer(client, bid_id, headers, 55)

    [item] = client.get(f"{BASE}/bids/open", headers=headers).json()["items"]
    assert item["topPriceList"] is None
    assert Decimal(item["topPrice"]) == Decimal("55")

    r = client.get(f"{BASE}/bids/{bid_id}/result", headers=headers)
    assert r.json()["result"]["winningPrice"] is None


def test_open_list_filters_by_commodity(client, create_bid, auth_headers):
    create_bid(commodity="kales")
    cabbage = create_bid(commodity="cabbage", closesAt=_closes_at(1)).json()["bid"]["bidId"]
    headers = auth_headers("farmer-1", "farmer")

    r = client.get(f"{BASE}/bids/open", params={"commodity": "cabbage"}, headers=headers)
    assert [i["bidId"] for i in r.json()["items"]] == [cabbage]

    r = client.get(f"{BASE}/bids/open", params={"commodity": "maize"}, headers=headers)
    assert r.status_code == 400


def test_duplicate_offer_then_rate_limit(client, create_bid, buyer):
    bid_id = create_bid().json()["bid"]["bidId"]
    headers = buyer("alpha-buyer")

    assert _offer(client, bid_id, headers, 10).status_code == 201
    for _ in range(3):
        r = _offer(client, bid_id, headers, 11)
        assert r.status_code == 400
        assert r.json()["message"] == "You already have an active offer on this bid"

    r = _offer(client, bid_id, headers, 12)
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "60"
    assert r.json()["ok"] is False


def test_unapproved_buyer_gets_403(client, create_bid, auth_headers):
    bid_id = create_bid().json()["bid"]["bidId"]
    r = _offer(client, bid_id, auth_headers("new-buyer", "buyer"), 10)
    assert r.status_code == 403
    assert "approval" in r.json()["message"].lower()


def test_withdraw_own_offer(client, create_bid, buyer):
    bid_id = create_bid().json()["bid"]["bidId"]
    alpha = buyer("alpha-buyer")
    bravo = buyer("bravo-buyer")
    offer_id = _offer(client, bid_id, alpha, 10).json()["offer"]["offerId"]

    url = f"{BASE}/bids/{bid_id}/offers/{offer_id}/withdraw"
    assert client.post(url, headers=bravo).status_code == 403

    r = client.post(url, headers=alpha)
    assert r.status_code == 200
    assert r.json() == {"ok": True, "offerId": offer_id, "status": "withdrawn"}

    assert client.post(url, headers=alpha).status_code == 400
    assert _offer(client, bid_id, alpha, 11).status_code == 201


def test_withdraw_drops_offer_from_result(client, create_bid, buyer):
    bid_id = create_bid().json()["bid"]["bidId"]
    alpha = buyer("alpha-buyer")
    bravo = buyer("bravo-buyer")
    assert _offer(client, bid_id, bravo, 80).status_code == 201
    offer_id = _offer(client, bid_id, alpha, 150).json()["offer"]["offerId"]

    r = client.post(f"{BASE}/bids/{bid_id}/offers/{offer_id}/withdraw", headers=alpha)
    assert r.status_code == 200

    result = client.get(f"{BASE}/bids/{bid_id}/result", headers=alpha).json()["result"]
    assert result["bidderCount"] == 1
    assert Decimal(result["topPrice"]) == Decimal("80")


def test_offer_amounts_are_limited_to_cents(client, create_bid, buyer):
    bid_id = create_bid().json()["bid"]["bidId"]
    alpha = buyer("alpha-buyer")

    r = _offer(client, bid_id, alpha, "0.004")
    assert r.status_code == 400
    assert "pricePerKg" in r.json()["message"]
    assert _offer(client, bid_id, alpha, 10, qty="1.001").status_code == 400

    r = _offer(client, bid_id, alpha, "12.34", qty="0.5")
    assert r.status_code == 201
    assert Decimal(r.json()["offer"]["pricePerKg"]) == Decimal("12.34")


def test_buyers_cannot_read_offer_rows(client, create_bid, buyer):
    bid_id = create_bid().json()["bid"]["bidId"]
    r = client.get(f"{BASE}/orgs/org-1/bids/{bid_id}/offers", headers=buyer("alpha-buyer"))
    assert r.status_code == 403


# ---------------------------------------------------------------------
# close / winner / cancel
# ---------------------------------------------------------------------


def test_close_with_override_and_reclose(client, create_bid, staff, buyer):
    bid_id = create_bid().json()["bid"]["bidId"]
    alpha_offer = _offer(client, bid_id, buyer("alpha-buyer"), 90).json()["offer"]["offerId"]
    _offer(client, bid_id, buyer("bravo-buyer"), 120)

    url = f"{BASE}/orgs/org-1/bids/{bid_id}/close"
    r = client.post(url, json={"winnerOfferId": alpha_offer}, headers=staff)
    assert r.status_code == 200
    assert r.json()["winningOfferId"] == alpha_offer

    again = client.post(url, headers=staff)
    assert again.status_code == 400
    assert again.json()["message"] == "Bid is not open"


def test_close_without_offers(client, create_bid, staff):
    bid_id = create_bid().json()["bid"]["bidId"]
    r = client.post(f"{BASE}/orgs/org-1/bids/{bid_id}/close", headers=staff)
    assert r.status_code == 200
    assert r.json()["status"] == "closed"
    assert r.json()["winningOfferId"] is None
    assert r.json()["winningPrice"] is None


def test_set_winner_closes_then_corrects(client, create_bid, staff, buyer):
    bid_id = create_bid().json()["bid"]["bidId"]
    alpha_offer = _offer(client, bid_id, buyer("alpha-buyer"), 90).json()["offer"]["offerId"]
    bravo_offer = _offer(client, bid_id, buyer("bravo-buyer"), 120).json()["offer"]["offerId"]
    url = f"{BASE}/orgs/org-1/bids/{bid_id}/winner"

    r = client.post(url, headers=staff)
    assert r.status_code == 200
    assert r.json()["status"] == "closed"
    assert r.json()["winningOfferId"] == bravo_offer
    assert r.json()["message"] == "Winner set successfully"

    r = client.post(url, json={"winnerOfferId": alpha_offer}, headers=staff)
    assert r.status_code == 200
    assert r.json()["winningOfferId"] == alpha_offer
    assert Decimal(r.json()["winningPrice"]) == Decimal("90")


def test_cancel_bid(client, create_bid, staff, buyer):
    bid_id = create_bid().json()["bid"]["bidId"]
    url = f"{BASE}/orgs/org-1/bids/{bid_id}"

    r = client.post(f"{url}/cancel", headers=staff)
    assert r.status_code == 200
    assert r.json()["bid"]["status"] == "cancelled"

    assert client.post(f"{url}/cancel", headers=staff).status_code == 400
    assert client.post(f"{url}/close", headers=staff).status_code == 400
    r = client.post(f"{url}/winner", headers=staff)
    assert r.status_code == 400
    assert r.json()["message"] == "Cannot pick winner for cancelled bid"
    assert _offer(client, bid_id, buyer("alpha-buyer"), 10).status_code == 400


def test_malformed_body_is_400(client, create_bid, staff):
    bid_id = create_bid().json()["bid"]["bidId"]
    r = client.post(
        f"{BASE}/orgs/org-1/bids/{bid_id}/close",
        json={"winnerOfferId": ["a", "b"]},
        headers=staff,
    )
    assert r.status_code == 400
    assert r.json()["ok"] is False


# ---------------------------------------------------------------------
# farmer view
# ---------------------------------------------------------------------


def test_farmer_bids_are_masked_and_filtered(client, create_bid, db, auth_headers, buyer):
    db.add(UserMembership(user_uid="farmer-1", org_id="org-1", status="active"))
    db.add(CommodityContribution(org_id="org-1", uid="farmer-1", commodity="kales"))
    db.commit()

    kales = create_bid(commodity="kales").json()["bid"]["bidId"]
    create_bid(commodity="tomatoes")
    _offer(client, kales, buyer("alpha-buyer"), 70)

    r = client.get(f"{BASE}/farmer/bids", headers=auth_headers("farmer-1", "farmer"))
    assert r.status_code == 200
    assert "alpha-buyer" not in r.text
    [item] = r.json()["items"]
    assert item["bidId"] == kales
    assert item["bidderCount"] == 1

    r = client.get(f"{BASE}/farmer/bids", headers=auth_headers("buyer-1", "buyer"))
    assert r.status_code == 403
