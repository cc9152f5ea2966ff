#!/usr/bin/env python3
"""
Open (or create) a dataman store and migrate it to a schema.

Loads entities from YAML schema files, opens the store at
<data-dir>/<app-id>.sqlite with lightweight migration, and reports
how many records each entity holds.

Usage:
    python scripts/init_store.py schema.yaml
    python scripts/init_store.py schema.yaml --data-dir /path/to/data --no-migrate
"""

import argparse
import sys
from pathlib import Path

from dataman.core.config import get_logger, settings, setup_logging
from dataman.core.errors import ResolutionError, StoreError
from dataman.storage.registry import EntityRegistry
from dataman.storage.store import BackingStore

logger = get_logger("init_store")


def init_store(schema_files: list[Path], data_dir: Path, app_id: str, migrate: bool) -> dict[str, int]:
    """Open the store for the given schema files. Returns record counts per entity."""
    registry = EntityRegistry.from_schema_files(schema_files)
    logger.info(f"Loaded {len(registry)} entities from {len(schema_files)} schema file(s)")
    
    location = data_dir / f"{app_id}.sqlite"
    store = BackingStore.open(
        location,
        registry,
        migrate_automatically=migrate,
        infer_mapping_automatically=migrate,
    )
    return {name: store.count(name) for name in registry}


def main():
    parser = argparse.ArgumentParser(description="Open or create a dataman store")
    parser.add_argument(
        "schema_files",
        nargs="+",
        type=Path,
        help="YAML schema files",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=settings.data_dir,
        help="Directory holding the store",
    )
    parser.add_argument(
        "--app-id",
        default=settings.app_id,
        help="Application identifier (names the store file)",
    )
    parser.add_argument(
        "--no-migrate",
        action="store_true",
        help="Refuse to migrate a store with a different schema",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output",
    )
    
    args = parser.parse_args()
    
    setup_logging("DEBUG" if args.verbose else "INFO")
    
    print("=" * 50)
    print("dataman - Store Init")
    print("=" * 50)
    print(f"\nStore: {args.data_dir / f'{args.app_id}.sqlite'}")
    
    try:
        counts = init_store(args.schema_files, args.data_dir, args.app_id, not args.no_migrate)
    except (ResolutionError, StoreError) as e:
        print(f"\n✗ {type(e).__name__}: {e}")
        sys.exit(1)
    
    print("\n" + "=" * 50)
    print("Entities")
    print("=" * 50)
    for name, count in counts.items():
        print(f"{name:<24} {count} records")
    
    print("\n✅ Store ready!")


if __name__ == "__main__":
    main()
