# dora/queries.py
"""
Read-only queries over a populated inventory store.

Every list query returns distinct ServiceRef(label, path) rows ordered by
label. Substring matches on labels, entitlement names and library names are
case-insensitive LIKE; symbol matches use SQLite GLOB and are case-sensitive.

    facade = QueryFacade()
    facade.services_by_entitlement("com.apple.private.tcc")
    facade.services_by_entitlement_and_symbol("tcc", "_TCCAccessRequest")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional

from sqlalchemy import select

from dora.extensions import db
from dora.models import (
    Entitlement,
    Library,
    MachService,
    Service,
    ServiceEntitlement,
    ServiceLibrary,
    ServiceSymbol,
    Symbol,
)

logger = logging.getLogger(__name__)


class ServiceRef(NamedTuple):
    label: str
    path: str

    def to_dict(self) -> Dict[str, str]:
        return {"label": self.label, "path": self.path}


@dataclass
class ServiceDetail:
    label: str
    path: str
    run_as_user: Optional[str] = None
    run_at_load: Optional[bool] = None
    keep_alive: Optional[bool] = None
    descriptor_path: Optional[str] = None
    mach_services: Dict[str, str] = field(default_factory=dict)
    entitlements: Dict[str, str] = field(default_factory=dict)
    libraries: List[str] = field(default_factory=list)
    symbols: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "path": self.path,
            "run_as_user": self.run_as_user,
            "run_at_load": self.run_at_load,
            "keep_alive": self.keep_alive,
            "descriptor_path": self.descriptor_path,
            "mach_services": self.mach_services,
            "entitlements": self.entitlements,
            "libraries": self.libraries,
            "symbols": self.symbols,
        }


def _contains(value: str) -> str:
    return f"%{value}%"


def _glob_contains(value: str) -> str:
    return f"*{value}*"


class QueryFacade:

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    # ── Service id subqueries ───────────────────────────────────────

    @staticmethod
    def _ids_with_entitlement(name: str):
        return (
            select(ServiceEntitlement.service_id)
            .join(Entitlement, Entitlement.id == ServiceEntitlement.entitlement_id)
            .where(Entitlement.name.ilike(_contains(name)))
        )

    @staticmethod
    def _ids_with_library(name: str):
        return (
            select(ServiceLibrary.service_id)
            .join(Library, Library.id == ServiceLibrary.library_id)
            .where(Library.name.ilike(_contains(name)))
        )

    @staticmethod
    def _ids_with_symbol(symbol: str):
        return (
            select(ServiceSymbol.service_id)
            .join(Symbol, Symbol.id == ServiceSymbol.symbol_id)
            .where(Symbol.name.op("GLOB")(_glob_contains(symbol)))
        )

    def _refs(self, *criteria) -> List[ServiceRef]:
        rows = (
            self.session.query(Service.label, Service.path)
            .filter(*criteria)
            .distinct()
            .order_by(Service.label)
            .all()
        )
        return [ServiceRef(label, path) for label, path in rows]

    # ── List queries ────────────────────────────────────────────────

    def services_by_label(self, pattern: str) -> List[ServiceRef]:
        return self._refs(Service.label.ilike(_contains(pattern)))

    def services_by_entitlement(self, name: str) -> List[ServiceRef]:
        return self._refs(Service.id.in_(self._ids_with_entitlement(name)))

    def services_by_entitlement_and_symbol(self, name: str, symbol: str) -> List[ServiceRef]:
        """Services holding a matching entitlement AND importing a matching symbol."""
        return self._refs(
            Service.id.in_(self._ids_with_entitlement(name)),
            Service.id.in_(self._ids_with_symbol(symbol)),
        )

    def services_by_library(self, name: str) -> List[ServiceRef]:
        return self._refs(Service.id.in_(self._ids_with_library(name)))

    def services_by_symbol(self, symbol: str) -> List[ServiceRef]:
        return self._refs(Service.id.in_(self._ids_with_symbol(symbol)))

    def search(
        self,
        service: str = "",
        entitlement: str = "",
        library: str = "",
        symbol: str = "",
    ) -> List[ServiceRef]:
        """
        Dispatch a search form to one query.

        Entitlement and symbol together narrow to the intersection. Otherwise
        the first filled field wins, in the order entitlement, library,
        symbol, service. An empty form matches every service.
        """
        service = (service or "").strip()
        entitlement = (entitlement or "").strip()
        library = (library or "").strip()
        symbol = (symbol or "").strip()

        if entitlement and symbol:
            return self.services_by_entitlement_and_symbol(entitlement, symbol)
        if entitlement:
            return self.services_by_entitlement(entitlement)
        if library:
            return self.services_by_library(library)
        if symbol:
            return self.services_by_symbol(symbol)
        return self.services_by_label(service)

    # ── Detail ──────────────────────────────────────────────────────

    def service_detail(self, label: str) -> Optional[ServiceDetail]:
        service = (
            self.session.query(Service)
            .filter(Service.label.collate("NOCASE") == label)
            .order_by(Service.id)
            .first()
        )
        if service is None:
            return None

        mach_services = (
            self.session.query(MachService.name, MachService.value)
            .filter(MachService.service_id == service.id)
            .order_by(MachService.name)
            .all()
        )
        entitlements = (
            self.session.query(Entitlement.name, ServiceEntitlement.value)
            .join(ServiceEntitlement, ServiceEntitlement.entitlement_id == Entitlement.id)
            .filter(ServiceEntitlement.service_id == service.id)
            .order_by(Entitlement.name)
            .all()
        )
        libraries = (
            self.session.query(Library.path)
            .join(ServiceLibrary, ServiceLibrary.library_id == Library.id)
            .filter(ServiceLibrary.service_id == service.id)
            .order_by(Library.path)
            .all()
        )
        symbols = (
            self.session.query(Symbol.name)
            .join(ServiceSymbol, ServiceSymbol.symbol_id == Symbol.id)
            .filter(ServiceSymbol.service_id == service.id)
            .order_by(Symbol.name)
            .all()
        )

        return ServiceDetail(
            label=service.label,
            path=service.path,
            run_as_user=service.run_as_user,
            run_at_load=service.run_at_load,
            keep_alive=service.keep_alive,
            descriptor_path=service.descriptor_path,
            mach_services={name: value or "" for name, value in mach_services},
            entitlements={name: value or "" for name, value in entitlements},
            libraries=[path for (path,) in libraries],
            symbols=[name for (name,) in symbols],
        )
