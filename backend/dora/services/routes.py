# dora/services/routes.py
"""
Service inventory API routes.

All endpoints are read-only views over QueryFacade. Empty results are not
errors: they come back as 200 with an explicit message saying what was
searched for. Storage failures come back as 500 with a "Could not
retrieve ..." error.

Store selection:
    Stores live side by side, one per OS build, in the directory of
    DORA_DATABASE. GET /services/stores lists them; search and detail take
    an optional ?db=<store name> to read one of them instead of the
    configured store. Selected stores are opened query-only.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager

from flask import Blueprint, abort, current_app, request, jsonify
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dora.host import is_valid_store_name, list_stores
from dora.queries import QueryFacade
from dora.store import open_readonly_engine

logger = logging.getLogger(__name__)

services_bp = Blueprint("services", __name__, url_prefix="/services")

SEARCH_FIELDS = ("service", "entitlement", "library", "symbol")

# app.extensions key for engines of selected stores, keyed by file path
ENGINES_KEY = "dora_store_engines"


def _store_directory() -> str:
    return os.path.dirname(current_app.config["DORA_DATABASE"])


def _selected_store_path():
    """Path of the ?db= store, or None for the configured store. Aborts on a bad name."""
    name = (request.args.get("db") or "").strip()
    if not name or name == os.path.basename(current_app.config["DORA_DATABASE"]):
        return None
    if not is_valid_store_name(name):
        abort(400, description=f"Invalid store name: {name}")
    if name not in list_stores(_store_directory()):
        abort(400, description=f"Unknown store: {name}")
    return os.path.join(_store_directory(), name)


@contextmanager
def _query_facade():
    path = _selected_store_path()
    if path is None:
        yield QueryFacade()
        return

    engines = current_app.extensions.setdefault(ENGINES_KEY, {})
    engine = engines.get(path)
    if engine is None:
        engine = engines[path] = open_readonly_engine(path)
        logger.info("Opened store %s", path)

    session = Session(bind=engine)
    try:
        yield QueryFacade(session)
    finally:
        session.close()


def _empty_search_message(criteria: dict) -> str:
    entitlement = criteria["entitlement"]
    symbol = criteria["symbol"]
    if entitlement and symbol:
        return f"No services found with entitlement: {entitlement} and symbol: {symbol}"
    if entitlement:
        return f"No services found with entitlement: {entitlement}"
    if criteria["library"]:
        return f"No services found with library: {criteria['library']}"
    if symbol:
        return f"No services found with symbol: {symbol}"
    return f"No service found with label: {criteria['service']}"


@services_bp.get("/stores")
def available_stores():
    stores = list_stores(_store_directory())
    return jsonify({
        "stores": stores,
        "count": len(stores),
        "current": os.path.basename(current_app.config["DORA_DATABASE"]),
    }), 200


@services_bp.get("/search")
def search_services():
    criteria = {name: (request.args.get(name) or "").strip() for name in SEARCH_FIELDS}

    try:
        with _query_facade() as facade:
            refs = facade.search(**criteria)
    except SQLAlchemyError as e:
        logger.error("Service search %s failed: %s", criteria, e, exc_info=True)
        return jsonify({
            "error": "Could not retrieve services",
            "message": "The inventory store could not be read.",
        }), 500

    if refs:
        message = f"Found {len(refs)} services"
    else:
        message = _empty_search_message(criteria)

    return jsonify({
        "results": [ref.to_dict() for ref in refs],
        "count": len(refs),
        "message": message,
    }), 200


@services_bp.get("/<label>")
def service_detail(label: str):
    try:
        with _query_facade() as facade:
            detail = facade.service_detail(label)
    except SQLAlchemyError as e:
        logger.error("Detail lookup for %s failed: %s", label, e, exc_info=True)
        return jsonify({
            "error": "Could not retrieve service details",
            "message": "The inventory store could not be read.",
        }), 500

    if detail is None:
        return jsonify({
            "error": "Not found",
            "message": f"No service found with label: {label}",
        }), 404

    body = detail.to_dict()
    body["messages"] = {
        "mach_services": None if detail.mach_services else "No mach services declared",
        "entitlements": None if detail.entitlements else "No entitlements found",
        "libraries": None if detail.libraries else "No external dependencies found",
        "symbols": None if detail.symbols else "No imported symbols found",
    }
    return jsonify(body), 200
