# dora/__init__.py
"""
App factory.

The application serves one inventory store read-only. The store is
populated beforehand by populate.py, which uses the same factory to get a
configured database session.

Configuration comes from environment variables; tests pass a mapping that
overrides them:
    DORA_DATABASE            store file (default: dora_default.sqlite)
    DORA_SYMBOL_ARCH         architecture slice for nm (default: arm64e)
    DORA_CAPABILITY_TIMEOUT  seconds per external tool call (default: 30)
    DORA_SCAN_WORKERS        Phase B thread pool size (default: 1)
    DORA_LOG_LEVEL           root log level (default: INFO)
"""

from __future__ import annotations

import logging
import os
import traceback
from typing import Any, Mapping, Optional

from flask import Flask, jsonify

from .extensions import init_extensions, db
from . import models
from .services import services_bp

error_logger = logging.getLogger("dora.errors")


def _default_config() -> dict:
    return {
        "DORA_DATABASE": os.getenv("DORA_DATABASE", "dora_default.sqlite"),
        "DORA_SYMBOL_ARCH": os.getenv("DORA_SYMBOL_ARCH", "arm64e"),
        "DORA_CAPABILITY_TIMEOUT": float(os.getenv("DORA_CAPABILITY_TIMEOUT", "30")),
        "DORA_SCAN_WORKERS": int(os.getenv("DORA_SCAN_WORKERS", "1")),
        "DORA_LOG_LEVEL": os.getenv("DORA_LOG_LEVEL", "INFO").upper(),
    }


def create_app(config: Optional[Mapping[str, Any]] = None) -> Flask:
    app = Flask(__name__)

    app.config.update(_default_config())
    if config:
        app.config.update(config)

    # ── Logging ──────────────────────────────────────────────────────
    level = getattr(logging, str(app.config["DORA_LOG_LEVEL"]).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    app.logger.setLevel(level)

    # Werkzeug logs every request
    logging.getLogger("werkzeug").setLevel(logging.INFO)
    # Quieten noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    # ─────────────────────────────────────────────────────────────────

    # ── Database ─────────────────────────────────────────────────────
    # Always SQLite: one file per scanned OS build
    database_path = os.path.abspath(app.config["DORA_DATABASE"])
    app.config["DORA_DATABASE"] = database_path
    app.config.setdefault("SQLALCHEMY_DATABASE_URI", f"sqlite:///{database_path}")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False

    # ── Extensions ───────────────────────────────────────────────────
    init_extensions(app)

    # ── Blueprints ───────────────────────────────────────────────────
    app.register_blueprint(services_bp)

    # ── Global Error Handlers ────────────────────────────────────────
    # Clean JSON for all errors, tracebacks only go to the log.

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({
            "error": "Bad request",
            "message": str(e.description) if hasattr(e, "description") else "The request was malformed or invalid.",
        }), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({
            "error": "Not found",
            "message": "The requested resource was not found.",
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({
            "error": "Method not allowed",
            "message": "This HTTP method is not allowed for this endpoint.",
        }), 405

    @app.errorhandler(500)
    def internal_error(e):
        error_logger.error(
            "500 Internal Server Error:\n%s", traceback.format_exc()
        )
        return jsonify({
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
        }), 500

    @app.errorhandler(Exception)
    def catch_all(e):
        """Catch-all for any unhandled exception."""
        error_logger.error(
            "Unhandled exception: %s\n%s", str(e), traceback.format_exc()
        )
        return jsonify({
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
        }), 500

    # ─────────────────────────────────────────────────────────────────

    # Health check
    @app.get("/health")
    def health():
        return jsonify(status="up and running", database=os.path.basename(database_path)), 200

    return app
