from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from app.models.coupon import CouponStatus
from app.models.coupon_usage import CouponUsage
from helpers import auth_headers, create_cart, create_coupon, create_promotion

ADMIN = auth_headers("admin-1", role="admin")
SERVICE = auth_headers("order-service", role="service")


def _save20(db: Session):
    promotion = create_promotion(
        db,
        name="Save 20",
        conditions={"cart_value": {"min": "50"}},
        actions={"type": "PERCENTAGE_DISCOUNT", "percentage": "20"},
    )
    return create_coupon(db, promotion, code="SAVE20", usage_limit=1, user_limit=1)


def test_validate_redeem_and_revalidate(client: TestClient, db_session: Session):
    coupon = _save20(db_session)
    shopper = auth_headers("user-1")

    preview = client.post("/api/v1/coupons/validate", json={"code": "save20", "cartValue": 80}, headers=shopper)
    assert preview.status_code == 200
    data = preview.json()["data"]
    assert data["discount"] == "16.00"
    assert data["final_total"] == "64.00"
    assert data["coupon"]["code"] == "SAVE20"

    redeemed = client.post(
        "/api/v1/coupons/redeem",
        json={"coupon_id": coupon.id, "user_id": "user-1", "order_id": "order-1", "discount_amount": "16.00"},
        headers=SERVICE,
    )
    assert redeemed.status_code == 200
    assert redeemed.json()["data"]["discount_amount"] == "16.00"

    again = client.post("/api/v1/coupons/validate", json={"code": "SAVE20", "cart_value": 80}, headers=shopper)
    assert again.status_code == 400
    assert again.json()["errors"][0]["code"] == "USER_LIMIT_EXCEEDED"


def test_validate_reports_unmet_condition(client: TestClient, db_session: Session):
    _save20(db_session)

    response = client.post(
        "/api/v1/coupons/validate",
        json={"code": "SAVE20", "cart_value": "49.99"},
        headers=auth_headers("user-1"),
    )

    assert response.status_code == 400
    error = response.json()["errors"][0]
    assert error["code"] == "CONDITIONS_NOT_MET"
    assert error["condition"] == "MIN_CART_VALUE"
    assert error["threshold"] == "50"


def test_validate_requires_authentication(client: TestClient):
    response = client.post("/api/v1/coupons/validate", json={"code": "SAVE20", "cart_value": 80})

    assert response.status_code == 401


def test_redeem_is_internal_only(client: TestClient, db_session: Session):
    coupon = _save20(db_session)

    response = client.post(
        "/api/v1/coupons/redeem",
        json={"coupon_id": coupon.id, "user_id": "user-1", "order_id": "order-1", "discount_amount": "16.00"},
        headers=auth_headers("user-1"),
    )

    assert response.status_code == 403
    assert db_session.query(CouponUsage).count() == 0


def test_redeem_retry_returns_same_usage(client: TestClient, db_session: Session):
    coupon = _save20(db_session)
    body = {"coupon_id": coupon.id, "user_id": "user-1", "order_id": "order-1", "discount_amount": "16.00"}

    first = client.post("/api/v1/coupons/redeem", json=body, headers=SERVICE)
    retry = client.post("/api/v1/coupons/redeem", json=body, headers=SERVICE)

    assert first.status_code == retry.status_code == 200
    assert first.json()["data"]["id"] == retry.json()["data"]["id"]
    assert db_session.query(CouponUsage).count() == 1


def test_redeem_after_exhaustion_is_conflict(client: TestClient, db_session: Session):
    coupon = _save20(db_session)
    client.post(
        "/api/v1/coupons/redeem",
        json={"coupon_id": coupon.id, "user_id": "user-1", "order_id": "order-1", "discount_amount": "16.00"},
        headers=SERVICE,
    )

    response = client.post(
        "/api/v1/coupons/redeem",
        json={"coupon_id": coupon.id, "user_id": "user-2", "order_id": "order-2", "discount_amount": "16.00"},
        headers=SERVICE,
    )

    assert response.status_code == 409
    assert response.json()["errors"][0]["code"] == "CONCURRENT_EXHAUSTION"


def test_admin_creates_coupon_with_normalized_code(client: TestClient, db_session: Session):
    promotion = create_promotion(db_session)

    response = client.post(
        "/api/v1/coupons/",
        json={"code": "  welcome5 ", "promotion_id": promotion.id, "usage_limit": 100},
        headers=ADMIN,
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["code"] == "WELCOME5"
    assert data["user_limit"] == 1
    assert data["status"] == "ACTIVE"


def test_duplicate_coupon_code_is_conflict(client: TestClient, db_session: Session):
    promotion = create_promotion(db_session)
    create_coupon(db_session, promotion, code="TAKEN")

    response = client.post(
        "/api/v1/coupons/",
        json={"code": "taken", "promotion_id": promotion.id},
        headers=ADMIN,
    )

    assert response.status_code == 409
    assert response.json()["errors"][0]["code"] == "DUPLICATE_COUPON_CODE"


def test_coupon_for_missing_promotion(client: TestClient):
    response = client.post("/api/v1/coupons/", json={"code": "ORPHAN", "promotion_id": 404}, headers=ADMIN)

    assert response.status_code == 404


def test_list_and_disable_coupons(client: TestClient, db_session: Session):
    promotion = create_promotion(db_session)
    other = create_promotion(db_session, name="Other")
    coupon = create_coupon(db_session, promotion, code="ONE")
    create_coupon(db_session, promotion, code="TWO")
    create_coupon(db_session, other, code="THREE")

    listed = client.get("/api/v1/coupons/", params={"promotion_id": promotion.id, "limit": 1}, headers=ADMIN)
    assert listed.status_code == 200
    assert listed.json()["meta"]["total"] == 2
    assert listed.json()["meta"]["total_pages"] == 2
    assert [c["code"] for c in listed.json()["data"]] == ["ONE"]

    disabled = client.post(f"/api/v1/coupons/{coupon.id}/disable", headers=ADMIN)
    assert disabled.json()["data"]["status"] == CouponStatus.DISABLED.value

    response = client.post(
        "/api/v1/coupons/validate",
        json={"code": "ONE", "cart_value": 80},
        headers=auth_headers("user-1"),
    )
    assert response.json()["errors"][0]["code"] == "INACTIVE_OR_DRAFT"


def test_cart_coupon_bind_and_unbind(client: TestClient, db_session: Session):
    _save20(db_session)
    cart = create_cart(db_session, "user-1", [("p1", "40.00", 2)])
    owner = auth_headers("user-1")

    applied = client.post("/api/v1/cart/coupon/apply", json={"cart_id": cart.id, "code": "save20"}, headers=owner)
    assert applied.status_code == 200
    assert applied.json()["data"]["cart"]["coupon_code"] == "SAVE20"
    assert applied.json()["data"]["validation"]["discount"] == "16.00"

    evaluated = client.get(f"/api/v1/cart/{cart.id}/promotions", headers=owner)
    assert evaluated.status_code == 200
    assert evaluated.json()["data"]["applied_promotions"][0]["code"] == "SAVE20"
    assert evaluated.json()["data"]["total"] == "64.00"

    removed = client.post("/api/v1/cart/coupon/remove", json={"cart_id": cart.id}, headers=owner)
    assert removed.status_code == 200
    assert removed.json()["data"]["coupon_code"] is None


def test_cart_coupon_binding_requires_ownership(client: TestClient, db_session: Session):
    _save20(db_session)
    cart = create_cart(db_session, "user-1", [("p1", "40.00", 2)])

    response = client.post(
        "/api/v1/cart/coupon/apply",
        json={"cart_id": cart.id, "code": "SAVE20"},
        headers=auth_headers("user-2"),
    )

    assert response.status_code == 403
    assert response.json()["errors"][0]["code"] == "OWNERSHIP_VIOLATION"
    db_session.refresh(cart)
    assert cart.coupon_code is None


def test_cart_coupon_bind_rejects_invalid_coupon(client: TestClient, db_session: Session):
    _save20(db_session)
    cart = create_cart(db_session, "user-1", [("p1", "20.00", 1)])

    response = client.post(
        "/api/v1/cart/coupon/apply",
        json={"cart_id": cart.id, "code": "SAVE20"},
        headers=auth_headers("user-1"),
    )

    assert response.status_code == 400
    assert response.json()["errors"][0]["condition"] == "MIN_CART_VALUE"


def test_health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_errors_carry_the_request_correlation_id(client: TestClient):
    response = client.get("/api/v1/promotions/12345", headers={"X-Correlation-ID": "trace-abc"})

    assert response.status_code == 404
    assert response.headers["X-Correlation-ID"] == "trace-abc"
    assert response.json()["correlation_id"] == "trace-abc"
