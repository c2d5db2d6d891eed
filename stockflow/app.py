"""Flask application exposing the inventory store as a JSON API."""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import replace
from pathlib import Path
from threading import RLock
from typing import Any, Dict, Optional, Tuple
import logging
import math
import secrets

from flask import Flask, Response, jsonify, request, session

from .config import Settings, get_settings
from .export import build_inventory_pdf, pdf_filename, transactions_to_xls, xls_filename
from .metrics import (
    inventory_stats,
    is_low_stock,
    low_stock_products,
    product_value,
    quantity_by_category,
    value_by_category,
)
from .models import Product, ProductDraft, TransactionType
from .report import ReportBusyError, ReportGenerator
from .sharing import SnapshotLinkService
from .storage import PersistenceGateway
from .store import InventoryStore, MutationOutcome, MutationResult

logger = logging.getLogger(__name__)

_SHARED_SESSION_KEY = "shared_snapshot"

_OUTCOME_STATUS = {
    MutationOutcome.UNKNOWN_PRODUCT: 404,
    MutationOutcome.INSUFFICIENT_STOCK: 409,
    MutationOutcome.INVALID_QUANTITY: 400,
}
_OUTCOME_MESSAGES = {
    MutationOutcome.UNKNOWN_PRODUCT: "Product not found",
    MutationOutcome.INSUFFICIENT_STOCK: "Not enough stock",
    MutationOutcome.INVALID_QUANTITY: "Quantity must be greater than zero",
}


class SharedSessionRegistry:
    """In-memory stores opened from shared links, keyed by session token.

    Only ``limit`` stores are kept; opening another drops the oldest.
    """

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self._stores: "OrderedDict[str, InventoryStore]" = OrderedDict()
        self._lock = RLock()

    def add(self, store: InventoryStore) -> str:
        token = secrets.token_urlsafe(16)
        with self._lock:
            self._stores[token] = store
            while len(self._stores) > self.limit:
                evicted, _ = self._stores.popitem(last=False)
                logger.info("Dropped shared session %s", evicted[:6])
        return token

    def get(self, token: Optional[str]) -> Optional[InventoryStore]:
        if not token:
            return None
        with self._lock:
            store = self._stores.get(token)
            if store is not None:
                self._stores.move_to_end(token)
            return store

    def discard(self, token: Optional[str]) -> None:
        if not token:
            return
        with self._lock:
            self._stores.pop(token, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._stores)


def create_app(
    storage_path: str | Path | None = None,
    settings: Optional[Settings] = None,
    report_generator: Optional[ReportGenerator] = None,
) -> Flask:
    settings = settings or get_settings()
    storage_path = Path(storage_path or settings.storage_path)
    logging.getLogger("stockflow").setLevel(settings.log_level)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.secret_key
    app.config["STOCKFLOW_SETTINGS"] = settings

    gateway = PersistenceGateway(storage_path)
    persistent_store = InventoryStore(gateway, SnapshotLinkService())
    persistent_store.initialize()
    shared_sessions = SharedSessionRegistry(settings.max_shared_sessions)
    reports = report_generator or ReportGenerator(
        settings.report_api_key,
        model=settings.report_model,
        endpoint=settings.report_endpoint,
        timeout=settings.report_timeout,
    )
    app.extensions["stockflow"] = {
        "gateway": gateway,
        "store": persistent_store,
        "shared_sessions": shared_sessions,
        "reports": reports,
    }

    def _current_store() -> InventoryStore:
        store = shared_sessions.get(session.get(_SHARED_SESSION_KEY))
        return store if store is not None else persistent_store

    def _json_error(message: str, status: int = 400) -> Tuple[Any, int]:
        return jsonify({"error": message}), status

    def _outcome_error(result: MutationResult) -> Tuple[Any, int]:
        return _json_error(
            _OUTCOME_MESSAGES[result.outcome], _OUTCOME_STATUS[result.outcome]
        )

    def _product_payload(product: Product) -> Dict[str, Any]:
        payload = product.to_dict()
        payload["lowStock"] = is_low_stock(product)
        payload["value"] = product_value(product)
        return payload

    def _session_payload(store: InventoryStore) -> Dict[str, Any]:
        return {
            "mode": store.mode.value,
            "shared": store.is_shared,
            "products": len(store.products),
            "transactions": len(store.transactions),
        }

    @app.get("/")
    def open_session() -> Any:
        shared_sessions.discard(session.pop(_SHARED_SESSION_KEY, None))
        links = SnapshotLinkService(request.url)
        if links.detect_incoming_snapshot() is None:
            return jsonify(_session_payload(persistent_store))
        store = InventoryStore(gateway, links)
        store.initialize()
        session[_SHARED_SESSION_KEY] = shared_sessions.add(store)
        return jsonify(_session_payload(store))

    @app.get("/api/session")
    def describe_session() -> Any:
        return jsonify(_session_payload(_current_store()))

    @app.post("/api/session/exit")
    def exit_shared_session() -> Any:
        shared_sessions.discard(session.pop(_SHARED_SESSION_KEY, None))
        return jsonify(_session_payload(persistent_store))

    @app.get("/api/products")
    def list_products() -> Any:
        products = _current_store().search_products(request.args.get("q"))
        return jsonify([_product_payload(product) for product in products])

    @app.post("/api/products")
    def add_product() -> Any:
        payload = _get_payload(request)
        try:
            draft = _parse_draft(payload)
        except ValueError as exc:
            return _json_error(str(exc))
        result = _current_store().add_product(draft)
        return jsonify(_product_payload(result.product)), 201

    @app.put("/api/products/<string:product_id>")
    def edit_product(product_id: str) -> Any:
        store = _current_store()
        existing = store.get_product(product_id)
        if existing is None:
            return _json_error("Product not found", 404)
        payload = _get_payload(request)
        try:
            draft = _parse_draft(payload, base=existing)
        except ValueError as exc:
            return _json_error(str(exc))
        updated = replace(
            existing,
            name=draft.name,
            sku=draft.sku,
            category=draft.category,
            quantity=draft.quantity,
            min_level=draft.min_level,
            price=draft.price,
        )
        result = store.edit_product(updated)
        if not result.applied:
            return _outcome_error(result)
        return jsonify(_product_payload(result.product))

    @app.delete("/api/products/<string:product_id>")
    def delete_product(product_id: str) -> Any:
        result = _current_store().delete_product(product_id)
        if not result.applied:
            return _outcome_error(result)
        return "", 204

    @app.post("/api/products/<string:product_id>/adjust")
    def adjust_product(product_id: str) -> Any:
        payload = _get_payload(request)
        counted = _parse_int_value(payload.get("quantity"))
        if counted is None:
            return _json_error("Invalid quantity")
        result = _current_store().adjust_stock(
            product_id, counted, _parse_notes(payload.get("notes"))
        )
        if not result.applied:
            return _outcome_error(result)
        return jsonify(
            {
                "product": _product_payload(result.product),
                "transaction": None
                if result.transaction is None
                else result.transaction.to_dict(),
            }
        )

    @app.get("/api/transactions")
    def list_transactions() -> Any:
        limit_raw = request.args.get("limit")
        limit: Optional[int]
        if limit_raw is None or limit_raw == "":
            limit = None
        else:
            limit = _parse_int_value(limit_raw)
            if limit is None or limit < 0:
                return _json_error("Invalid limit")
        entries = _current_store().recent_transactions(limit)
        return jsonify([entry.to_dict() for entry in entries])

    @app.post("/api/transactions")
    def record_transaction() -> Any:
        payload = _get_payload(request)
        product_id = str(payload.get("productId") or "").strip()
        if not product_id:
            return _json_error("Missing productId")
        type_raw = str(payload.get("type") or "").strip().upper()
        if type_raw not in (TransactionType.IN.value, TransactionType.OUT.value):
            return _json_error("Type must be IN or OUT")
        quantity = _parse_int_value(payload.get("quantity"))
        if quantity is None:
            return _json_error("Invalid quantity")
        result = _current_store().record_transaction(
            product_id,
            TransactionType(type_raw),
            quantity,
            _parse_notes(payload.get("notes")),
        )
        if not result.applied:
            return _outcome_error(result)
        return (
            jsonify(
                {
                    "product": _product_payload(result.product),
                    "transaction": result.transaction.to_dict(),
                }
            ),
            201,
        )

    @app.get("/api/dashboard")
    def dashboard() -> Any:
        store = _current_store()
        products = store.products
        transactions = store.transactions
        return jsonify(
            {
                "stats": inventory_stats(products, transactions).to_dict(),
                "lowStock": [_product_payload(product) for product in low_stock_products(products)],
                "quantityByCategory": [
                    {"name": name, "value": value} for name, value in quantity_by_category(products)
                ],
                "valueByCategory": [
                    {"name": name, "value": value} for name, value in value_by_category(products)
                ],
            }
        )

    @app.get("/api/share")
    def share() -> Any:
        location = request.args.get("location") or request.url_root
        return jsonify({"url": _current_store().share(location)})

    @app.post("/api/report")
    def generate_report() -> Any:
        store = _current_store()
        try:
            text = reports.generate(store.products, store.transactions)
        except ReportBusyError as exc:
            return _json_error(str(exc), 409)
        return jsonify({"report": text})

    @app.post("/api/export/pdf")
    def export_pdf() -> Response:
        payload = _get_payload(request)
        report_text = payload.get("report")
        store = _current_store()
        content = build_inventory_pdf(
            store.products,
            store.transactions,
            report_text if isinstance(report_text, str) and report_text.strip() else None,
            title=settings.app_name,
        )
        response = Response(content, mimetype="application/pdf")
        response.headers["Content-Disposition"] = f"attachment; filename={pdf_filename()}"
        return response

    @app.get("/api/transactions/export")
    def export_transactions() -> Response:
        content = transactions_to_xls(_current_store().transactions)
        response = Response(content, mimetype="application/vnd.ms-excel")
        response.headers["Content-Disposition"] = (
            f"attachment; filename={xls_filename('stockflow_activity')}"
        )
        return response

    return app


def _get_payload(req: Any) -> Dict[str, Any]:
    if req.is_json:
        payload = req.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}
    if req.form:
        return req.form.to_dict()
    payload = req.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _parse_int_value(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _parse_price_value(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(str(value).strip())
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed) or parsed < 0:
        return None
    return parsed


def _parse_notes(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_draft(payload: Dict[str, Any], base: Optional[Product] = None) -> ProductDraft:
    """Validate product fields, falling back to ``base`` for omitted ones."""

    def _field(key: str, default: Any) -> Any:
        return payload[key] if key in payload else default

    name = str(_field("name", base.name if base else "") or "").strip()
    if not name:
        raise ValueError("Missing product name")
    quantity = _parse_int_value(_field("quantity", base.quantity if base else 0))
    if quantity is None or quantity < 0:
        raise ValueError("Quantity must be a non-negative integer")
    min_level = _parse_int_value(_field("minLevel", base.min_level if base else 5))
    if min_level is None or min_level < 0:
        raise ValueError("Minimum level must be a non-negative integer")
    price = _parse_price_value(_field("price", base.price if base else 0))
    if price is None:
        raise ValueError("Price must be a non-negative number")
    return ProductDraft(
        name=name,
        sku=str(_field("sku", base.sku if base else "") or "").strip(),
        category=str(_field("category", base.category if base else "") or "").strip(),
        quantity=quantity,
        min_level=min_level,
        price=price,
    )


__all__ = ["SharedSessionRegistry", "create_app"]
