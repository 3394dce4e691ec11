"""Command line interface for the content migration engine."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .client import PlatformClient
from .extractors.platform_extractor import PlatformExtractor
from .models.flow import ConflictResolution
from .models.migration import ConnectionConfig, MigrationConfig, MigrationRun, MigrationStatus
from .models.schema import SchemaDiff, SchemaMetadata
from .orchestrator import MigrationOrchestrator, plan_migration
from .services.diff_selector import NOTHING_TO_APPLY, filter_schema_diff
from .services.migration_order import group_into_batches

logger = logging.getLogger(__name__)


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def _add_connection_args(parser: argparse.ArgumentParser, source: bool = True, target: bool = True):
    if source:
        parser.add_argument("--source-url", help="Source base URL (default: $SOURCE_URL)")
        parser.add_argument("--source-token", help="Source static token (default: $SOURCE_TOKEN)")
    if target:
        parser.add_argument("--target-url", help="Target base URL (default: $TARGET_URL)")
        parser.add_argument("--target-token", help="Target static token (default: $TARGET_TOKEN)")


def _add_selection_args(parser: argparse.ArgumentParser):
    parser.add_argument("--collections", "-c", help="Comma-separated collections to migrate")
    parser.add_argument("--include-system", action="store_true", help="Include system collections")
    parser.add_argument("--no-closure", action="store_true", help="Do not add related collections")
    parser.add_argument("--order", help="Comma-separated custom migration order")


def _add_common_args(parser: argparse.ArgumentParser):
    parser.add_argument("--config", help="Path to migration config file")
    parser.add_argument("--dry-run", action="store_true", help="Simulate without changes")
    parser.add_argument("--output-dir", help="Directory for run reports")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Content Migrator - Migrate schema, items, flows and access control between instances"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Plan
    plan_parser = subparsers.add_parser("plan", help="Show the closed selection and migration order")
    plan_parser.add_argument("--metadata", help="Read collections/fields/relations from a JSON file instead of the source")
    _add_connection_args(plan_parser, target=False)
    _add_selection_args(plan_parser)
    plan_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Filter a saved diff
    filter_parser = subparsers.add_parser("filter-diff", help="Filter a saved schema diff to a selection")
    filter_parser.add_argument("--diff", required=True, help="Path to a schema diff JSON file")
    filter_parser.add_argument("--collections", "-c", help="Comma-separated collections to keep")
    filter_parser.add_argument("--include-system", action="store_true", help="Keep system collections")
    filter_parser.add_argument("--output", help="Output file path")
    filter_parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    # Single-phase commands
    phase_help = {
        "schema": "Migrate the schema of the selected collections",
        "data": "Migrate items of the selected collections",
        "files": "Migrate folders and files",
        "flows": "Migrate automation flows",
        "access": "Migrate roles, policies and permissions",
    }
    for name, help_text in phase_help.items():
        phase_parser = subparsers.add_parser(name, help=help_text)
        _add_connection_args(phase_parser)
        _add_common_args(phase_parser)
        if name in ("schema", "data"):
            _add_selection_args(phase_parser)
        if name == "data":
            phase_parser.add_argument("--limit", type=int, help="Maximum items per collection")
            phase_parser.add_argument("--concurrency", type=int, help="Items written in parallel")
            phase_parser.add_argument("--title-filter", help="Only items whose title contains this text")
        if name == "files":
            phase_parser.add_argument("--folder", action="append", help="Folder ID to migrate (repeatable, default: all)")
            phase_parser.add_argument("--new-ids", action="store_true", help="Assign new IDs instead of preserving them")
        if name == "flows":
            phase_parser.add_argument("--flow", action="append", help="Flow ID to migrate (repeatable, default: all)")
            phase_parser.add_argument("--new-ids", action="store_true", help="Assign new IDs instead of preserving them")
            phase_parser.add_argument(
                "--conflict",
                choices=[c.value for c in ConflictResolution],
                help="What to do with flows already on the target (default: overwrite)",
            )
            phase_parser.add_argument("--base-url", help="Replace localhost URLs in operation options with this URL")

    # Full run
    run_parser = subparsers.add_parser("run", help="Run a full migration")
    _add_connection_args(run_parser)
    _add_common_args(run_parser)
    _add_selection_args(run_parser)
    run_parser.add_argument("--title-filter", help="Only items whose title contains this text")

    args = parser.parse_args()

    # Set up logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    if args.command == "plan":
        run_plan(args)
    elif args.command == "filter-diff":
        run_filter_diff(args)
    elif args.command in ("schema", "data", "files", "flows", "access", "run"):
        run_migration(args)
    else:
        parser.print_help()


def _connection(url: Optional[str], token: Optional[str], prefix: str) -> Optional[ConnectionConfig]:
    if url and token:
        return ConnectionConfig(url=url, token=token)
    return ConnectionConfig.from_env(prefix)


def build_config(args) -> MigrationConfig:
    """Build a migration config from a config file and command line overrides."""
    if getattr(args, "config", None):
        config = MigrationConfig.from_json_file(args.config)
    else:
        config = MigrationConfig.from_dict({"name": f"cli-{args.command}"})

    if getattr(args, "source_url", None):
        config.source = _connection(args.source_url, args.source_token, "SOURCE")
    if getattr(args, "target_url", None):
        config.target = _connection(args.target_url, args.target_token, "TARGET")

    if getattr(args, "collections", None):
        config.collections = _split(args.collections)
    if getattr(args, "include_system", False):
        config.include_system = True
    if getattr(args, "no_closure", False):
        config.expand_closure = False
    if getattr(args, "order", None):
        config.custom_order = _split(args.order)
    if getattr(args, "dry_run", False):
        config.dry_run = True
    if getattr(args, "output_dir", None):
        config.output_dir = args.output_dir
    if getattr(args, "limit", None):
        config.item_limit = args.limit
    if getattr(args, "concurrency", None):
        config.concurrency = max(1, args.concurrency)
    if getattr(args, "title_filter", None):
        config.title_filter = args.title_filter

    if args.command != "run":
        config.migrate_schema = args.command == "schema"
        config.migrate_data = args.command == "data"
        config.migrate_files = args.command == "files"
        config.migrate_access_control = args.command == "access"
        if args.command == "files":
            config.file_folders = args.folder or []
            config.preserve_file_ids = not args.new_ids
        if args.command == "flows":
            config.flows = args.flow or ["*"]
            config.preserve_flow_ids = not args.new_ids
            if getattr(args, "conflict", None):
                config.flow_conflict = ConflictResolution(args.conflict)
            if getattr(args, "base_url", None):
                config.flow_environment.base_url = args.base_url
        else:
            config.flows = []

    return config


def run_plan(args):
    """Print the closed selection, the order and its batches."""
    if args.metadata:
        metadata = SchemaMetadata.from_json_file(args.metadata)
    else:
        connection = _connection(args.source_url, args.source_token, "SOURCE")
        if not connection:
            print("Source connection required (--source-url/--source-token or SOURCE_URL/SOURCE_TOKEN)")
            sys.exit(2)
        metadata = PlatformExtractor(PlatformClient(connection.url, connection.token)).fetch_metadata()

    plan = plan_migration(
        metadata,
        _split(args.collections),
        include_system=args.include_system,
        expand_closure=not args.no_closure,
        custom_order=_split(args.order),
    )

    print("\n=== Migration Plan ===")
    for i, name in enumerate(plan.order, 1):
        deps = plan.dependencies_of(name)
        print(f"  {i:3}. {name}" + (f"  (after {', '.join(deps)})" if deps else ""))

    print("\nBatches:")
    for i, batch in enumerate(group_into_batches(plan), 1):
        print(f"  {i}: {', '.join(batch)}")

    if plan.has_cycles:
        print("\nCycles:")
        for cycle in plan.cycles:
            print(f"  - {' -> '.join(cycle)}")

    if plan.violated_edges:
        print("\nDependencies broken by cycles:")
        for one, many in plan.violated_edges:
            print(f"  - {many} is migrated before {one}")

    if plan.warnings:
        print("\nWarnings:")
        for warning in plan.warnings:
            print(f"  - {warning}")


def run_filter_diff(args):
    """Filter a saved schema diff."""
    diff = SchemaDiff.from_json_file(args.diff)
    filtered = filter_schema_diff(diff, _split(args.collections), include_system=args.include_system)

    if filtered.is_empty:
        print(NOTHING_TO_APPLY)
        return

    output = filtered.to_dict()
    if args.output:
        with open(args.output, 'w') as f:
            json.dump(output, f, indent=2)
        print(f"Filtered diff saved to {args.output}")
    else:
        print(json.dumps(output, indent=2))


def run_migration(args):
    """Run a full migration or a single phase."""
    config = build_config(args)

    try:
        orchestrator = MigrationOrchestrator(config)
    except ValueError as e:
        print(str(e))
        sys.exit(2)

    result = orchestrator.run_migration()
    print_summary(result)

    if result.status == MigrationStatus.FAILED:
        sys.exit(1)


def print_summary(result: MigrationRun):
    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE")
    print("=" * 60)
    print(f"Status: {result.status.value}")
    if result.plan:
        print(f"Collections: {', '.join(result.plan.order)}")
    for step in result.steps:
        print(
            f"  {step.name}: {step.status.value} "
            f"({step.records_succeeded}/{step.records_processed} succeeded)"
        )
    print(f"Records Processed: {result.total_records_processed}")
    print(f"Succeeded: {result.total_records_succeeded}")
    print(f"Failed: {result.total_records_failed}")
    if result.duration_seconds:
        print(f"Duration: {result.duration_seconds:.2f} seconds")
    for error in result.errors:
        print(f"Error: {error.get('error')}")
    for warning in result.warnings:
        print(f"Warning: {warning}")


if __name__ == "__main__":
    main()
