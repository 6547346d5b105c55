# Overview: Flask API routes for products and categories; parses input and returns JSON responses.

"""
Product catalog routes.

All routes require authentication. Reads are open to every role; writes,
CSV import/export and category management require admin.
"""
from flask import Blueprint, Response, request, jsonify, current_app

from ..services import catalog_service
from ..models import Product
from ..models.auth import ROLE_ADMIN
from ..errors import PosError, http_status
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_role

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "barcode", "cost_price", "sale_price", "quantity", "category"},
    required_on_create={"name", "cost_price", "sale_price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")
categories_bp = Blueprint("categories", __name__, url_prefix="/api/categories")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params:
    - search: name, category or barcode fragment
    - category: exact category filter
    - page, per_page: optional pagination (default 20, max 100)
    """
    result = catalog_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.get("/barcode/<string:barcode>")
@require_auth
def lookup_barcode_route(barcode: str):
    """Scanner lookup."""
    try:
        product = catalog_service.find_by_barcode(barcode)
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        product = catalog_service.create_product(patch=patch)
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)

    current_app.logger.info("Product %s created: %s", product.id, product.name)
    return jsonify({"product": product.to_dict()}), 201


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    try:
        product = catalog_service.update_product(product_id, patch=patch)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)

    return jsonify({"product": product.to_dict()}), 200


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(product_id)
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)

    current_app.logger.info("Product %s deleted", product_id)
    return jsonify({"ok": True}), 200


@products_bp.get("/export")
@require_auth
@require_role(ROLE_ADMIN)
def export_products_route():
    csv_text = catalog_service.export_products_csv()
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=products.csv"},
    )


@products_bp.post("/import")
@require_auth
@require_role(ROLE_ADMIN)
def import_products_route():
    """Accepts a multipart `file` upload or a raw text/csv body."""
    upload = request.files.get("file")
    if upload is not None:
        raw = upload.read()
    else:
        raw = request.get_data()
    if not raw:
        return jsonify({"error": "CSV content required"}), 400

    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return jsonify({"error": "CSV must be UTF-8"}), 400

    try:
        result = catalog_service.import_products_csv(text)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    except Exception:
        current_app.logger.exception("Failed to import products")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Product import: %s imported, %s skipped", result["imported"], result["skipped"])
    return jsonify(result), 200


# =============================================================================
# Categories
# =============================================================================

@categories_bp.get("")
@require_auth
def list_categories_route():
    return jsonify({"items": catalog_service.list_categories()}), 200


@categories_bp.post("")
@require_auth
@require_role(ROLE_ADMIN)
def create_category_route():
    data = request.get_json(silent=True) or {}
    try:
        category = catalog_service.create_category(data.get("name"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"category": category.to_dict()}), 201


@categories_bp.patch("/<int:category_id>")
@require_auth
@require_role(ROLE_ADMIN)
def rename_category_route(category_id: int):
    data = request.get_json(silent=True) or {}
    try:
        category = catalog_service.rename_category(category_id, data.get("name"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"category": category.to_dict()}), 200


@categories_bp.delete("/<int:category_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_category_route(category_id: int):
    try:
        catalog_service.delete_category(category_id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PosError as e:
        return jsonify(e.to_dict()), http_status(e)
    return jsonify({"ok": True}), 200
