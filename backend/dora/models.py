from __future__ import annotations

from sqlalchemy import UniqueConstraint
from .extensions import db


# run_as_user values, derived from the descriptor directory class
RUN_AS_ROOT = "root"
RUN_AS_STANDARD = "standard"


class Service(db.Model):
    """
    One discovered program.

    Rows created from a launchd descriptor carry the descriptor fields
    (run_as_user, run_at_load, keep_alive, descriptor_path). Rows created by
    the raw binary sweep use the code-signing identifier as label and leave
    those fields NULL.
    """
    __tablename__ = "service"

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.Text, nullable=False, unique=True)
    path = db.Column(db.Text, nullable=False)
    run_as_user = db.Column(db.Text, nullable=True)   # root, standard
    run_at_load = db.Column(db.Boolean, nullable=True)
    keep_alive = db.Column(db.Boolean, nullable=True)
    descriptor_path = db.Column(db.Text, nullable=True, unique=True)


class MachService(db.Model):
    __tablename__ = "mach_service"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text, nullable=False)
    value = db.Column(db.Text, nullable=True)
    service_id = db.Column(db.Integer, db.ForeignKey("service.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("service_id", "name", name="uq_mach_service_service_name"),
    )


class Entitlement(db.Model):
    __tablename__ = "entitlement"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text, nullable=False, unique=True)


class ServiceEntitlement(db.Model):
    """Many-to-many link between services and entitlements, carrying the rendered value."""
    __tablename__ = "service_entitlement"

    service_id = db.Column(db.Integer, db.ForeignKey("service.id"), primary_key=True)
    entitlement_id = db.Column(db.Integer, db.ForeignKey("entitlement.id"), primary_key=True)
    value = db.Column(db.Text, nullable=False, default="")


class Library(db.Model):
    __tablename__ = "library"

    id = db.Column(db.Integer, primary_key=True)
    path = db.Column(db.Text, nullable=False, unique=True)
    name = db.Column(db.Text, nullable=False, index=True)


class ServiceLibrary(db.Model):
    __tablename__ = "service_library"

    service_id = db.Column(db.Integer, db.ForeignKey("service.id"), primary_key=True)
    library_id = db.Column(db.Integer, db.ForeignKey("library.id"), primary_key=True)


class Symbol(db.Model):
    __tablename__ = "symbol"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text, nullable=False, unique=True)


class ServiceSymbol(db.Model):
    __tablename__ = "service_symbol"

    service_id = db.Column(db.Integer, db.ForeignKey("service.id"), primary_key=True)
    symbol_id = db.Column(db.Integer, db.ForeignKey("symbol.id"), primary_key=True)
