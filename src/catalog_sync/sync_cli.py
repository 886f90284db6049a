#!/usr/bin/env python3
"""
CLI entry point for catalog synchronisation.

Usage:
    catalog-sync --config config/catalog_sync.yaml sync
    catalog-sync --config config/catalog_sync.yaml sync --site <site-id>
    catalog-sync reconcile --type workbook --scope <site-id>
    catalog-sync propagate --scope <site-id>
    catalog-sync propagate --scope <site-id> --type workbook --type worksheet
    catalog-sync propagate --type project --scope <site-id> --id <project-id>
    catalog-sync stats
    catalog-sync test-connection
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from catalog_sync.config import (
    SyncConfig,
    build_mapper,
    build_source,
    build_store,
    build_target,
)
from catalog_sync.core.exceptions import CatalogSyncError
from catalog_sync.core.logging import configure_logging
from catalog_sync.core.models import GLOBAL_SCOPE, GLOBAL_TYPES, AssetType, NaturalKey, scope_for
from catalog_sync.runner import SyncRunner


logger = logging.getLogger("catalog_sync.cli")


def setup_logging(config: SyncConfig, verbose: bool = False, log_format: Optional[str] = None) -> None:
    """Configure logging from the config file and command line."""
    logging_config = config.get_logging_config()
    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, str(logging_config.get("level", "INFO")).upper(), logging.INFO)
    log_format = log_format or logging_config.get("format", "text")
    configure_logging(level=level, structured=(log_format == "json"))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Mirror Tableau assets into a local store and propagate them to Collibra"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Log output format (default: from config, else text)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Reconcile one asset type in one scope")
    reconcile.add_argument(
        "--type",
        required=True,
        choices=[t.value for t in AssetType],
        help="Asset type to reconcile",
    )
    reconcile.add_argument(
        "--scope",
        default="global",
        help="Site id (ignored for server and site)",
    )

    propagate = subparsers.add_parser("propagate", help="Propagate pending changes downstream")
    propagate.add_argument("--scope", default=None, help="Site id (default: all scopes)")
    propagate.add_argument(
        "--type",
        action="append",
        default=None,
        choices=[t.value for t in AssetType],
        help="Only propagate this asset type (repeatable)",
    )
    propagate.add_argument("--id", default=None, help="Only propagate the record with this asset id")
    propagate.add_argument("--worksheet", default=None, help="Worksheet id of a report attribute given by --id")

    sync = subparsers.add_parser("sync", help="Reconcile every type, then propagate")
    sync.add_argument(
        "--site",
        action="append",
        default=None,
        help="Site id to sync (repeatable; default: configured or all known sites)",
    )
    sync.add_argument(
        "--no-propagate",
        action="store_true",
        help="Reconcile only",
    )

    subparsers.add_parser("stats", help="Show record counts per type and lifecycle state")
    subparsers.add_parser("test-connection", help="Check both catalogs are reachable")

    args = parser.parse_args(argv)

    if args.command == "propagate" and args.id:
        if not args.type or len(args.type) != 1:
            parser.error("--id requires exactly one --type")
        asset_type = AssetType(args.type[0])
        if asset_type not in GLOBAL_TYPES and not args.scope:
            parser.error(f"--id for {asset_type.value} requires --scope")
        if asset_type == AssetType.REPORT_ATTRIBUTE and not args.worksheet:
            parser.error("--id for report_attribute requires --worksheet")

    return args


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_reconcile(args, config: SyncConfig) -> int:
    source = build_source(config)
    try:
        store = build_store(config)
    except CatalogSyncError:
        source.close()
        raise
    try:
        runner = SyncRunner(store, source)
        result = runner.reconcile_type(AssetType(args.type), args.scope)
        _print_json(result.to_dict())
        return 0 if result.success else 1
    finally:
        source.close()
        store.close()


def cmd_propagate(args, config: SyncConfig) -> int:
    mapper = build_mapper(config)
    target = build_target(config)
    try:
        store = build_store(config)
    except CatalogSyncError:
        target.close()
        raise
    try:
        runner = SyncRunner(store, source=None, target=target, mapper=mapper)
        asset_types = [AssetType(t) for t in args.type] if args.type else None
        key = None
        if args.id:
            key = NaturalKey(
                asset_type=asset_types[0],
                asset_id=args.id,
                scope_id=scope_for(asset_types[0], args.scope or GLOBAL_SCOPE),
                worksheet_id=args.worksheet if asset_types[0] == AssetType.REPORT_ATTRIBUTE else None,
            )
        result = runner.propagate(None if key else args.scope, asset_types=asset_types, key=key)
        _print_json(result.to_dict())
        return 0 if result.success else 1
    finally:
        target.close()
        store.close()


def cmd_sync(args, config: SyncConfig) -> int:
    sync_config = config.get_sync_config()
    mapper = build_mapper(config)
    source = build_source(config)
    target = None
    try:
        if not args.no_propagate:
            target = build_target(config)
        store = build_store(config)
    except CatalogSyncError:
        source.close()
        if target:
            target.close()
        raise
    try:
        runner = SyncRunner(
            store,
            source,
            target=target,
            mapper=mapper,
            propagate_mode=sync_config.get("propagate", "global"),
        )
        report = runner.run(sites=args.site or sync_config.get("sites") or None)
        _print_json(report)
        return 0 if report["success"] else 1
    finally:
        source.close()
        if target:
            target.close()
        store.close()


def cmd_stats(args, config: SyncConfig) -> int:
    store = build_store(config)
    try:
        _print_json(store.get_stats())
        return 0
    finally:
        store.close()


def cmd_test_connection(args, config: SyncConfig) -> int:
    ok = True

    source = build_source(config)
    try:
        source.sign_in(source.default_site)
        logger.info("Tableau connection OK")
    except CatalogSyncError as e:
        logger.error(f"Tableau connection failed: {e}")
        ok = False
    finally:
        source.close()

    target = build_target(config)
    try:
        if target.test_connection():
            logger.info("Collibra connection OK")
        else:
            ok = False
    finally:
        target.close()

    return 0 if ok else 1


COMMANDS = {
    "reconcile": cmd_reconcile,
    "propagate": cmd_propagate,
    "sync": cmd_sync,
    "stats": cmd_stats,
    "test-connection": cmd_test_connection,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = SyncConfig(config_path=args.config)
    except CatalogSyncError as e:
        configure_logging()
        logger.error(f"Configuration error: {e}")
        return 1

    setup_logging(config, verbose=args.verbose, log_format=args.log_format)

    try:
        return COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1
    except CatalogSyncError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
