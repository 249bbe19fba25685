# Overview: Flask API routes for orders, cart and checkout; thin wrappers over OrderLifecycle.

"""
Order Lifecycle API routes

- GET  /api/v1/orders                   List the caller's orders
- GET  /api/v1/orders/<id>              Order detail (object-level gate)
- POST /api/v1/cart/add                 Add {item_id, qty} to the caller's cart
- POST /api/v1/checkout/start           CART -> PLACED
- POST /api/v1/checkout/apply-coupon    Apply FREESHIP / HALFPRICE
- POST /api/v1/checkout/pay             PLACED -> PAID
- POST /api/v1/checkout/ship            PAID -> SHIPPED

Error responses:
    400: Validation failure (bad id, qty out of range, unknown coupon)
    402: Payment declined or timed out
    403: Object-level gate denied the transition
    404: Order or item not found
    409: Transition not valid from the current status
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..extensions import get_order_lifecycle, get_policy
from ..services.authorization import AccessDeniedError
from ..services.order_lifecycle import LifecycleError, PaymentFailedError
from ..validation import NotFoundError, ValidationError
from ..errors import error_response, internal_error


orders_bp = Blueprint("orders", __name__, url_prefix="/api/v1")


def _field(data: dict, name: str, alias: str):
    """Body fields are snake_case; the camelCase spelling is accepted too."""
    value = data.get(name)
    return data.get(alias) if value is None else value


def _parse_flag(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return value is True


def _order_response(action: str, func):
    try:
        order = func()
        return jsonify({"order": order.to_dict()}), 200

    except AccessDeniedError as e:
        return error_response(e.reason or "Access denied", 403)
    except NotFoundError as e:
        return error_response(str(e), 404)
    except PaymentFailedError as e:
        return error_response(str(e), 402)
    except LifecycleError as e:
        return error_response(str(e), 409)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error(f"Failed to {action}", e)


@orders_bp.get("/orders")
@require_auth
def list_orders_route():
    try:
        orders = get_order_lifecycle().list_orders(g.principal)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except Exception as e:
        return internal_error("Failed to list orders", e)


@orders_bp.get("/orders/<order_id>")
@require_auth
def get_order_route(order_id):
    """
    Strict object-level policy answers 404 for another user's order so its
    existence is not revealed.
    """
    return _order_response(
        "get order",
        lambda: get_order_lifecycle().get_order(g.principal, order_id, get_policy()),
    )


@orders_bp.post("/cart/add")
@require_auth
def add_to_cart_route():
    data = request.get_json(silent=True) or {}
    return _order_response(
        "add item to cart",
        lambda: get_order_lifecycle().add_item(
            g.principal,
            _field(data, "item_id", "itemId"),
            data.get("qty", 1),
            get_policy(),
        ),
    )


@orders_bp.post("/checkout/start")
@require_auth
def start_checkout_route():
    data = request.get_json(silent=True) or {}
    return _order_response(
        "start checkout",
        lambda: get_order_lifecycle().start_checkout(
            g.principal,
            _field(data, "order_id", "orderId"),
            get_policy(),
            shipping_address=_field(data, "shipping_address", "shippingAddress"),
        ),
    )


@orders_bp.post("/checkout/apply-coupon")
@require_auth
def apply_coupon_route():
    data = request.get_json(silent=True) or {}
    return _order_response(
        "apply coupon",
        lambda: get_order_lifecycle().apply_coupon(
            g.principal,
            _field(data, "order_id", "orderId"),
            _field(data, "coupon_code", "couponCode"),
            get_policy(),
        ),
    )


@orders_bp.post("/checkout/pay")
@require_auth
def pay_route():
    """
    Request body:
        {"order_id": 1, "paid": true, "amount": 0, "currency": "USD"}

    paid/amount/currency are client assertions; only the permissive
    business-flow policy acts on "paid".
    """
    data = request.get_json(silent=True) or {}
    return _order_response(
        "pay order",
        lambda: get_order_lifecycle().pay(
            g.principal,
            _field(data, "order_id", "orderId"),
            get_policy(),
            client_asserted_paid=_parse_flag(data.get("paid")),
            amount=data.get("amount"),
            currency=data.get("currency"),
        ),
    )


@orders_bp.post("/checkout/ship")
@require_auth
def ship_route():
    data = request.get_json(silent=True) or {}
    return _order_response(
        "ship order",
        lambda: get_order_lifecycle().ship(
            g.principal,
            _field(data, "order_id", "orderId"),
            get_policy(),
        ),
    )
