"""Migration script upgrading stored menu payloads to the version 2 bundle.

Reads every ``weeklyMenu:<range>`` entry and rewrites legacy payloads
(flat ``mealData`` maps or malformed bundles) into a single-profile
version 2 bundle, folding in the period's ``cellPeopleCount`` and
``cookedStatus`` entries.

Usage::

    python -m menu_planner.db.migrate_bundles /path/to/menu_planner.db

The script is idempotent: entries that already decode as version 2 are
left untouched, and unreadable JSON is reported and skipped.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from menu_planner.addressing import (
    MENU_STORAGE_PREFIX,
    cooked_status_storage_key,
    people_count_storage_key,
    range_key_from_storage_key,
)
from menu_planner.bundle_codec import (
    CURRENT_VERSION,
    DEFAULT_MENU_NAME,
    detect_version,
    parse_bundle,
    serialize_bundle,
)
from menu_planner.storage import SqliteStorage, StoragePort, read_json

logger = logging.getLogger(__name__)


def _upgrade_entry(
    storage: StoragePort, key: str, default_name: str, dry_run: bool
) -> bool:
    """Upgrade one stored payload if it is legacy.

    Args:
        storage: Storage backend.
        key: ``weeklyMenu:<range>`` key.
        default_name: Name of the profile wrapping legacy data.
        dry_run: Report without writing.

    Returns:
        True if the entry needed an upgrade.
    """
    range_key = range_key_from_storage_key(key, MENU_STORAGE_PREFIX)
    raw = storage.get(key)
    if range_key is None or raw is None:
        return False
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("%s: not valid JSON, skipped", key)
        return False
    if detect_version(payload) == CURRENT_VERSION:
        return False

    parsed = parse_bundle(
        raw,
        read_json(storage, people_count_storage_key(range_key)),
        read_json(storage, cooked_status_storage_key(range_key)),
        default_name=default_name,
    )
    logger.debug("%s: legacy payload -> %d profile(s)", key, len(parsed.menus))
    if not dry_run:
        storage.set(key, serialize_bundle(parsed.menus, parsed.active_menu_id))
    return True


def migrate(
    storage: StoragePort,
    default_name: str = DEFAULT_MENU_NAME,
    dry_run: bool = False,
) -> int:
    """Upgrade every legacy menu payload in a storage backend.

    Args:
        storage: Storage backend.
        default_name: Name of the profile wrapping legacy data.
        dry_run: Report without writing.

    Returns:
        Number of entries upgraded (or that would be, on a dry run).
    """
    keys = storage.keys(f"{MENU_STORAGE_PREFIX}:")
    upgraded = sum(
        1 for key in keys if _upgrade_entry(storage, key, default_name, dry_run)
    )
    logger.info(
        "Migration complete: %d of %d menu entr%s %s.",
        upgraded,
        len(keys),
        "y" if len(keys) == 1 else "ies",
        "would be upgraded" if dry_run else "upgraded",
    )
    return upgraded


def _build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        description="Upgrade stored menu payloads to the version 2 bundle."
    )
    parser.add_argument("db_path", help="Path to the SQLite database file.")
    parser.add_argument(
        "--default-name",
        default=DEFAULT_MENU_NAME,
        help="Name of the profile created for legacy data.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable DEBUG logging.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the migration CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv).

    Returns:
        Exit code (0 on success).
    """
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )
    migrate(SqliteStorage(args.db_path), args.default_name, args.dry_run)
    return 0


if __name__ == "__main__":
    sys.exit(main())
