"""
Public checkout API tests.

Verifies:
- 201 with order summary on success
- 400 field errors for malformed payloads, counted by the rate limiter
- 429 with Retry-After on the eleventh request in a window
- Fraud and blacklist rejections return the generic message only
- Client IP comes from X-Forwarded-For / X-Real-IP
"""

from order_gate.models import Order, SecurityEvent
from order_gate.services.intake_service import PUBLIC_REJECTION_MESSAGE

from conftest import checkout_payload, variant_named


def forwarded(ip: str) -> dict:
    return {"X-Forwarded-For": ip, "User-Agent": "pytest-browser"}


# =============================================================================
# SUCCESS
# =============================================================================


class TestSubmitOrder:

    def test_created(self, client, product, db_session):
        resp = client.post("/api/public/order", json=checkout_payload(product, quantity=2),
                           headers=forwarded("198.51.100.20"))

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["success"] is True
        assert body["total_amount_cents"] == 79900
        assert body["status"] == "NEW"
        assert body["order_number"].startswith("ORD-")

        order = db_session.get(Order, body["order_id"])
        assert order.ip_address == "198.51.100.20"
        assert order.user_agent == "pytest-browser"
        assert order.referrer == "Direct"
        assert variant_named(product, "Black").stock == 98

    def test_first_forwarded_address_wins(self, client, product, db_session):
        resp = client.post("/api/public/order", json=checkout_payload(product),
                           headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
        assert db_session.get(Order, resp.get_json()["order_id"]).ip_address == "203.0.113.9"

    def test_real_ip_header_fallback(self, client, product, db_session):
        resp = client.post("/api/public/order", json=checkout_payload(product),
                           headers={"X-Real-IP": "203.0.113.44"})
        assert db_session.get(Order, resp.get_json()["order_id"]).ip_address == "203.0.113.44"

    def test_unparseable_forwarded_value_is_skipped(self, client, product, db_session):
        resp = client.post("/api/public/order", json=checkout_payload(product),
                           headers={"X-Forwarded-For": "x" * 200, "X-Real-IP": "203.0.113.45"})
        assert resp.status_code == 201
        assert db_session.get(Order, resp.get_json()["order_id"]).ip_address == "203.0.113.45"

    def test_socket_address_without_proxy_headers(self, client, product, db_session):
        resp = client.post("/api/public/order", json=checkout_payload(product))
        assert db_session.get(Order, resp.get_json()["order_id"]).ip_address == "127.0.0.1"

    def test_cors_header_for_landing_pages(self, client, product, db_session):
        resp = client.post("/api/public/order", json=checkout_payload(product),
                           headers={"Origin": "https://shop.example.com"})
        assert resp.headers["Access-Control-Allow-Origin"] == "https://shop.example.com"


# =============================================================================
# INPUT ERRORS
# =============================================================================


class TestInputErrors:

    def test_missing_field(self, client, product, db_session):
        payload = checkout_payload(product)
        del payload["phone"]

        resp = client.post("/api/public/order", json=payload)
        assert resp.status_code == 400
        assert "phone" in resp.get_json()["error"]
        assert db_session.query(SecurityEvent).count() == 0

    def test_not_json(self, client, db_session):
        resp = client.post("/api/public/order", data="name=x", content_type="application/x-www-form-urlencoded")
        assert resp.status_code == 400

    def test_unknown_product(self, client, product, db_session):
        resp = client.post("/api/public/order", json=checkout_payload(product, product_id=987654))
        assert resp.status_code == 404
        assert db_session.query(Order).count() == 0

    def test_variant_required(self, client, product, db_session):
        payload = checkout_payload(product)
        del payload["variant_selection"]

        resp = client.post("/api/public/order", json=payload)
        assert resp.status_code == 400
        assert "variant_selection" in resp.get_json()["error"]


# =============================================================================
# GATE REJECTIONS
# =============================================================================


class TestRejections:

    def test_rate_limited_with_retry_after(self, client, product, db_session):
        for i in range(10):
            resp = client.post("/api/public/order", json=checkout_payload(product, phone=f"053276543{i:02d}"),
                               headers=forwarded("198.51.100.30"))
            assert resp.status_code == 201

        resp = client.post("/api/public/order", json=checkout_payload(product, phone="05327654399"),
                           headers=forwarded("198.51.100.30"))

        assert resp.status_code == 429
        assert resp.get_json()["error"] == PUBLIC_REJECTION_MESSAGE
        assert 1 <= int(resp.headers["Retry-After"]) <= 60
        assert db_session.query(SecurityEvent).filter_by(event_type="RATE_LIMIT").count() == 1

    def test_malformed_payloads_spend_the_budget(self, client, product, db_session):
        for _ in range(10):
            resp = client.post("/api/public/order", json={"product_id": product.id},
                               headers=forwarded("198.51.100.33"))
            assert resp.status_code == 400

        resp = client.post("/api/public/order", json=checkout_payload(product), headers=forwarded("198.51.100.33"))

        assert resp.status_code == 429
        assert db_session.query(Order).count() == 0
        assert db_session.query(SecurityEvent).filter_by(event_type="RATE_LIMIT").count() == 1

    def test_fraud_rejection_is_generic(self, client, product, db_session):
        resp = client.post("/api/public/order", json=checkout_payload(product, name="test", phone="5555555555"),
                           headers=forwarded("198.51.100.31"))

        assert resp.status_code == 400
        body = resp.get_json()
        assert body == {"success": False, "error": PUBLIC_REJECTION_MESSAGE}
        assert "Suspicious" not in resp.get_data(as_text=True)

        event = db_session.query(SecurityEvent).filter_by(event_type="FAKE_ORDER_ATTEMPT").one()
        assert event.ip_address == "198.51.100.31"
        assert event.user_agent == "pytest-browser"

    def test_auto_blocked_ip_then_blacklisted(self, client, product, db_session):
        bad = checkout_payload(product, name="test", phone="5555555555")
        client.post("/api/public/order", json=bad, headers=forwarded("198.51.100.32"))

        resp = client.post("/api/public/order", json=checkout_payload(product), headers=forwarded("198.51.100.32"))

        assert resp.status_code == 400
        assert resp.get_json()["error"] == PUBLIC_REJECTION_MESSAGE
        assert db_session.query(SecurityEvent).filter_by(event_type="BLACKLIST_BLOCK").count() == 1
        assert db_session.query(Order).count() == 0


class TestHealth:

    def test_health(self, client, db_session):
        resp = client.get("/api/public/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["rate_limiter"]["details"]["max_requests"] == 10
