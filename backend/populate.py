#!/usr/bin/env python3
"""
populate.py

Builds the service inventory store for this host.

The store is named after the OS build (dora_<name>_<version>_<build>.sqlite)
unless --db is given. A store stamped as a completed run of the current
schema generation is left alone; anything else is discarded and rebuilt.

Usage:
    # Build the store for this host if it is missing or stale:
    python populate.py

    # Explicit store file, rebuilt even if current:
    python populate.py --db dora_test.sqlite --force

Run from the backend directory (where dora/ lives).
"""

import argparse
import logging
import os
import sys

# Ensure the app is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dora import create_app
from dora.host import is_valid_store_name, store_filename
from dora.scanner import ScanOrchestrator
from dora.scanner.base import CapabilityExecutionError
from dora.store import (
    NotAStoreError,
    RelationalStore,
    StoreError,
    StoreState,
    discard_store,
    store_state,
)

logger = logging.getLogger("dora.populate")


def check_store_path(db_path):
    """Only dora_*.sqlite regular files are ever created, discarded or rebuilt."""
    if not is_valid_store_name(os.path.basename(db_path)):
        raise NotAStoreError(f"{db_path} is not a store file name (expected dora_<name>.sqlite)")
    if os.path.exists(db_path) and not os.path.isfile(db_path):
        raise NotAStoreError(f"{db_path} exists and is not a regular file")


def populate(db_path, force=False, config=None, orchestrator=None):
    """
    Populate `db_path` unless it already holds a current store.

    Returns the ScanStats of the run, or None when nothing had to be done.
    NotAStoreError is raised before anything is touched when db_path does
    not name a store file. StoreError propagates and leaves the store
    unstamped (STALE).
    """
    check_store_path(db_path)
    state = store_state(db_path)
    if state is StoreState.CURRENT and not force:
        logger.info("Store %s is current, nothing to do", db_path)
        return None

    if state is not StoreState.MISSING:
        logger.info("Discarding %s store %s", "current" if force else state.value, db_path)
        discard_store(db_path)

    app = create_app({**(config or {}), "DORA_DATABASE": db_path})

    with app.app_context():
        store = RelationalStore()
        store.create_schema()

        if orchestrator is None:
            orchestrator = ScanOrchestrator.from_config(app.config, store=store)
        stats = orchestrator.run()

        store.mark_complete()
        logger.info("Store %s is complete", db_path)
        return stats


def main(argv=None):
    parser = argparse.ArgumentParser(description="Populate the service inventory store.")
    parser.add_argument("--db", help="store file (default: derived from sw_vers)")
    parser.add_argument("--force", action="store_true", help="rebuild even a current store")
    args = parser.parse_args(argv)

    db_path = args.db
    if not db_path:
        try:
            db_path = store_filename()
        except CapabilityExecutionError as e:
            print(f"Could not determine the host OS build: {e}", file=sys.stderr)
            return 2

    try:
        stats = populate(db_path, force=args.force)
    except NotAStoreError as e:
        print(f"Refusing to use {db_path}: {e}", file=sys.stderr)
        return 2
    except StoreError as e:
        logger.error("Population of %s aborted: %s", db_path, e)
        print(f"\nFAILED — {db_path} was not completed: {e}", file=sys.stderr)
        return 1

    if stats is None:
        print(f"{db_path} is already populated. Run with --force to rebuild.")
        return 0

    print(f"\n{'=' * 60}")
    print(f"Descriptors loaded:  {stats.descriptors_loaded} ({stats.descriptors_failed} skipped)")
    print(f"Binaries identified: {stats.binaries_identified} of {stats.binaries_examined} Mach-O files")
    print(f"Services recorded:   {stats.services_recorded}")
    print(f"Capability failures: {stats.capability_failures}")
    print(f"\nDONE — {db_path} populated in {stats.duration_seconds:.2f}s.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
