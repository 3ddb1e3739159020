# Overview: Flask API routes for public checkout; parses input and returns JSON responses.

# backend/order_gate/routes/public.py
"""
Public Checkout API Routes

WHY: Landing pages submit orders here without any authentication. Every
submission passes the intake gate (rate limit, blacklist, fraud score)
before an order exists.

SECURITY:
- Rejections share one generic message; reasons only reach security events
- Every submission counts against the rate limiter before the payload is
  parsed; malformed payloads then get a field-specific 400
- The client IP comes from proxy headers when TRUST_PROXY_HEADERS is on
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import client_ip
from ..services.catalog_service import ProductNotFound
from ..services.intake_service import IntakeRejected, RateLimited
from ..services.stock_service import StockError
from ..validation import ValidationError, parse_order_request


public_bp = Blueprint("public", __name__, url_prefix="/api/public")


@public_bp.post("/order")
def submit_order_route():
    """
    Submit an order from a landing page.

    Request body:
    {
        "product_id": 1,
        "price_id": 2,
        "name": "Ayse Yilmaz",
        "phone": "05321234567",
        "address": "Ataturk Cad. No 5",
        "city": "Istanbul",
        "district": "Kadikoy",
        "payment_method": "COD",       (optional, default COD)
        "variant_selection": "Black",  (optional)
        "referrer": "shop.example.com" (optional, "domain" accepted as alias)
    }

    Returns:
        201: Order created
        400: Invalid input or order rejected
        404: Product or price tier not found
        429: Too many requests from this IP (Retry-After header set)
        500: Server error
    """
    try:
        ip = client_ip()
        user_agent = request.headers.get("User-Agent")

        intake = current_app.extensions["order_intake"]
        intake.admit(ip, user_agent)

        order_request = parse_order_request(
            request.get_json(silent=True),
            ip_address=ip,
            user_agent=user_agent,
        )
        order = intake.submit(order_request, admitted=True)

        return jsonify({
            "success": True,
            "order_id": order.id,
            "order_number": order.order_number,
            "total_amount_cents": order.total_amount_cents,
            "status": order.status,
        }), 201

    except RateLimited as e:
        response = jsonify({"success": False, "error": e.public_message})
        response.headers["Retry-After"] = str(max(1, e.retry_after))
        return response, e.http_status
    except IntakeRejected as e:
        return jsonify({"success": False, "error": e.public_message}), e.http_status
    except ProductNotFound as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except (ValidationError, StockError) as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to submit order")
        return jsonify({"success": False, "error": "Internal server error"}), 500
