from datetime import datetime, timedelta
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.promotion import PromotionStatus
from app.schemas.cart import CartLine, CartSnapshot
from app.schemas.user import CurrentUser
from app.services.coupon_service import CouponService
from app.services.promotion_service import PromotionService
from helpers import auth_headers, create_coupon, create_promotion

ADMIN = auth_headers("admin-1", role="admin")
SHOPPER = auth_headers("user-1")


def _promotion_payload(**overrides) -> dict:
    payload = {
        "name": "Spring sale",
        "type": "PERCENTAGE_DISCOUNT",
        "start_date": (datetime.utcnow() - timedelta(days=1)).isoformat(),
        "end_date": (datetime.utcnow() + timedelta(days=10)).isoformat(),
        "conditions": {"cart_value": {"min": 20}},
        "actions": {"percentage": 15},
    }
    payload.update(overrides)
    return payload


def test_list_active_filters_status_window_and_orders_by_priority(client: TestClient, db_session: Session):
    now = datetime.utcnow()
    low = create_promotion(db_session, name="Low", priority=1)
    high = create_promotion(db_session, name="High", priority=9)
    create_promotion(db_session, name="Draft", status=PromotionStatus.DRAFT, priority=50)
    create_promotion(db_session, name="Paused", status=PromotionStatus.PAUSED, priority=50)
    create_promotion(
        db_session,
        name="Ended",
        priority=50,
        start_date=now - timedelta(days=5),
        end_date=now - timedelta(days=1),
    )
    create_promotion(
        db_session,
        name="Upcoming",
        priority=50,
        start_date=now + timedelta(days=1),
        end_date=now + timedelta(days=5),
    )
    create_promotion(db_session, name="Seller only", seller_id="seller-1", priority=50)

    response = client.get("/api/v1/promotions/")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [p["id"] for p in body["data"]] == [high.id, low.id]


def test_list_active_scoped_by_seller(client: TestClient, db_session: Session):
    create_promotion(db_session, name="Platform")
    seller = create_promotion(db_session, name="Seller", seller_id="seller-1")

    response = client.get("/api/v1/promotions/", params={"seller_id": "seller-1"})

    assert [p["id"] for p in response.json()["data"]] == [seller.id]


def test_admin_creates_promotion_as_draft(client: TestClient):
    response = client.post("/api/v1/promotions/", json=_promotion_payload(), headers=ADMIN)

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "DRAFT"
    assert data["priority"] == 0
    assert data["is_stackable"] is False
    assert data["actions"]["type"] == "PERCENTAGE_DISCOUNT"


def test_create_promotion_requires_admin(client: TestClient):
    response = client.post("/api/v1/promotions/", json=_promotion_payload(), headers=SHOPPER)

    assert response.status_code == 403
    assert response.json()["success"] is False


def test_create_promotion_rejects_bad_window_and_mismatched_action(client: TestClient):
    start = datetime.utcnow()
    bad_window = _promotion_payload(start_date=start.isoformat(), end_date=(start - timedelta(days=1)).isoformat())
    mismatched = _promotion_payload(type="FIXED_DISCOUNT", actions={"percentage": 10})

    assert client.post("/api/v1/promotions/", json=bad_window, headers=ADMIN).status_code == 422
    assert client.post("/api/v1/promotions/", json=mismatched, headers=ADMIN).status_code == 422


def test_update_promotion_follows_status_transitions(client: TestClient, db_session: Session):
    promotion = create_promotion(db_session, status=PromotionStatus.DRAFT)
    url = f"/api/v1/promotions/{promotion.id}"

    assert client.put(url, json={"status": "PAUSED"}, headers=ADMIN).status_code == 422

    activated = client.put(url, json={"status": "ACTIVE", "priority": 4}, headers=ADMIN)
    assert activated.status_code == 200
    assert activated.json()["data"]["status"] == "ACTIVE"
    assert activated.json()["data"]["priority"] == 4

    assert client.put(url, json={"status": "EXPIRED"}, headers=ADMIN).status_code == 200
    reopened = client.put(url, json={"status": "ACTIVE"}, headers=ADMIN)
    assert reopened.status_code == 422
    assert reopened.json()["errors"][0]["code"] == "INVALID_PROMOTION"


def test_update_promotion_revalidates_merged_record(client: TestClient, db_session: Session):
    promotion = create_promotion(db_session)

    response = client.put(
        f"/api/v1/promotions/{promotion.id}",
        json={"end_date": (promotion.start_date - timedelta(hours=1)).isoformat()},
        headers=ADMIN,
    )

    assert response.status_code == 422


def test_delete_promotion_refused_once_redeemed(client: TestClient, db_session: Session):
    promotion = create_promotion(db_session)
    coupon = create_coupon(db_session, promotion, code="USED")
    CouponService.redeem(db_session, coupon.id, "user-1", "order-1", Decimal("1.00"))

    response = client.delete(f"/api/v1/promotions/{promotion.id}", headers=ADMIN)

    assert response.status_code == 409
    assert response.json()["errors"][0]["code"] == "PROMOTION_IN_USE"


def test_delete_promotion_removes_unused_coupons(client: TestClient, db_session: Session):
    promotion = create_promotion(db_session)
    create_coupon(db_session, promotion, code="UNUSED")

    response = client.delete(f"/api/v1/promotions/{promotion.id}", headers=ADMIN)

    assert response.status_code == 200
    assert client.get(f"/api/v1/promotions/{promotion.id}").status_code == 404


def test_get_missing_promotion(client: TestClient):
    response = client.get("/api/v1/promotions/999")

    assert response.status_code == 404
    assert response.json()["errors"][0]["code"] == "NOT_FOUND"


def test_evaluate_cart_stacks_promotions(client: TestClient, db_session: Session):
    create_promotion(db_session, name="Exclusive 10", priority=10, is_stackable=False)
    create_promotion(db_session, name="Exclusive 5", priority=8, is_stackable=False)
    create_promotion(
        db_session,
        name="Stack 5",
        priority=5,
        is_stackable=True,
        actions={"type": "PERCENTAGE_DISCOUNT", "percentage": "5"},
    )

    response = client.post(
        "/api/v1/promotions/evaluate",
        json={"items": [{"product_id": "p1", "unit_price": "50.00", "quantity": 2}]},
        headers=SHOPPER,
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert [p["name"] for p in data["applied_promotions"]] == ["Exclusive 10", "Stack 5"]
    assert data["subtotal"] == "100.00"
    assert data["discount"] == "15.00"
    assert data["total"] == "85.00"
    assert data["coupon_error"] is None


def test_evaluate_cart_reports_coupon_error_and_keeps_promotions(client: TestClient, db_session: Session):
    create_promotion(db_session, name="Automatic")

    response = client.post(
        "/api/v1/promotions/evaluate",
        json={"items": [{"product_id": "p1", "unit_price": "40.00", "quantity": 1}], "coupon_code": "ghost"},
        headers=SHOPPER,
    )

    data = response.json()["data"]
    assert data["coupon_error"]["code"] == "NOT_FOUND"
    assert [p["name"] for p in data["applied_promotions"]] == ["Automatic"]
    assert data["discount"] == "4.00"


def test_coupon_promotions_are_not_applied_automatically(db_session: Session):
    coupon_only = create_promotion(db_session, name="Coupon only", priority=10)
    create_coupon(db_session, coupon_only, code="ONLY")
    automatic = create_promotion(db_session, name="Automatic", priority=1)

    result = PromotionService.apply_promotions_to_cart(
        db_session,
        CartSnapshot(items=[CartLine(product_id="p1", unit_price=Decimal("10.00"), quantity=1)]),
        CurrentUser(id="user-1"),
    )

    assert [p.promotion_id for p in result.applied_promotions] == [automatic.id]


def test_customer_group_comes_from_the_token(client: TestClient, db_session: Session):
    create_promotion(db_session, name="VIP only", conditions={"customer_group_id": "vip"})
    body = {"items": [{"product_id": "p1", "unit_price": "30.00", "quantity": 1}]}

    regular = client.post("/api/v1/promotions/evaluate", json=body, headers=SHOPPER)
    vip = client.post("/api/v1/promotions/evaluate", json=body, headers=auth_headers("user-2", customer_group_id="vip"))

    assert regular.json()["data"]["applied_promotions"] == []
    assert [p["name"] for p in vip.json()["data"]["applied_promotions"]] == ["VIP only"]


def test_promotion_dates_with_utc_offsets_are_stored_as_utc(client: TestClient, db_session: Session):
    start = datetime.utcnow().replace(microsecond=0) - timedelta(days=1)
    payload = _promotion_payload(
        start_date=start.isoformat(),
        end_date=(start + timedelta(days=5)).strftime("%Y-%m-%dT%H:%M:%S+02:00"),
    )

    created = client.post("/api/v1/promotions/", json=payload, headers=ADMIN)
    assert created.status_code == 201
    assert created.json()["data"]["end_date"] == (start + timedelta(days=5, hours=-2)).isoformat()

    promotion = create_promotion(db_session)
    url = f"/api/v1/promotions/{promotion.id}"

    moved = client.put(url, json={"end_date": "2099-01-01T00:00:00Z"}, headers=ADMIN)
    assert moved.status_code == 200
    assert moved.json()["data"]["end_date"] == "2099-01-01T00:00:00"

    before_start = (promotion.start_date - timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    rejected = client.put(url, json={"end_date": before_start}, headers=ADMIN)
    assert rejected.status_code == 422
