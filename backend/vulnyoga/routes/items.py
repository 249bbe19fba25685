# Overview: Flask API routes for the item catalog; public reads, STAFF writes and CSV export.

"""
Catalog API routes

- GET    /api/v1/items              List items (public)
- GET    /api/v1/items/search       Paginated search (resource-limit gate)
- GET    /api/v1/items/<id>         Item detail (public)
- POST   /api/v1/items              Create item (STAFF)
- PATCH  /api/v1/items/<id>         Update item (STAFF)
- DELETE /api/v1/items/<id>         Delete item (STAFF)
- GET    /api/v1/export/csv         CSV export (auth required unless misconfig is permissive)

SECURITY:
- cost_price_cents and supplier_email are only shown to STAFF/ADMIN owners
  under strict property-level policy
- Write routes go through require_role; X-Role is honoured only when the
  function-level policy is permissive
"""

from flask import Blueprint, Response, request, jsonify, g

from ..decorators import optional_auth, require_auth, require_role, resolve_principal
from ..extensions import get_audit_sink, get_policy
from ..security import ROLE_STAFF
from ..services import catalog_service
from ..validation import NotFoundError, ValidationError
from ..errors import error_response, internal_error


items_bp = Blueprint("items", __name__, url_prefix="/api/v1")


@items_bp.get("/items")
@optional_auth
def list_items_route():
    try:
        views = catalog_service.list_items(g.principal, get_policy(), get_audit_sink())
        return jsonify({"items": views}), 200
    except Exception as e:
        return internal_error("Failed to list items", e)


@items_bp.get("/items/search")
@optional_auth
def search_items_route():
    """
    Query params:
        q          Search term (matched against name and description)
        page       1-based page number
        page_size  Clamped to [1, 100] under strict resource-limit policy
    """
    try:
        result = catalog_service.search_items(
            g.principal,
            request.args.get("q", ""),
            request.args.get("page"),
            request.args.get("page_size"),
            get_policy(),
            get_audit_sink(),
        )
        return jsonify(result), 200

    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to search items", e)


@items_bp.get("/items/<item_id>")
@optional_auth
def get_item_route(item_id):
    try:
        view = catalog_service.get_item(g.principal, item_id, get_policy(), get_audit_sink())
        return jsonify({"item": view}), 200

    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to get item", e)


@items_bp.post("/items")
@require_auth
@require_role(ROLE_STAFF)
def create_item_route():
    try:
        data = request.get_json(silent=True) or {}
        view = catalog_service.create_item(g.principal, data, get_policy(), get_audit_sink())
        return jsonify({"item": view}), 201

    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to create item", e)


@items_bp.patch("/items/<item_id>")
@require_auth
@require_role(ROLE_STAFF)
def update_item_route(item_id):
    try:
        data = request.get_json(silent=True) or {}
        view = catalog_service.update_item(g.principal, item_id, data, get_policy(), get_audit_sink())
        return jsonify({"item": view}), 200

    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to update item", e)


@items_bp.delete("/items/<item_id>")
@require_auth
@require_role(ROLE_STAFF)
def delete_item_route(item_id):
    try:
        catalog_service.delete_item(item_id)
        return jsonify({"message": "Item deleted"}), 200

    except NotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        return error_response(str(e), 400, e)
    except Exception as e:
        return internal_error("Failed to delete item", e)


@items_bp.get("/export/csv")
def export_items_csv_route():
    """
    Catalog export.

    Under strict misconfig policy the caller must be authenticated; the
    permissive posture leaves the export open to anyone.
    """
    try:
        if get_policy().misconfig_strict:
            result = resolve_principal()
            if not result.ok:
                return jsonify({"error": result.failure.message}), 401

        body = catalog_service.export_items_csv()
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=items.csv"},
        )
    except Exception as e:
        return internal_error("Failed to export items", e)
