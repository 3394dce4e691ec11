"""Migration orchestrator - coordinates the complete migration process."""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Sequence

from .client import PlatformAPIError, PlatformClient, PlatformConnectionError
from .extractors.platform_extractor import PlatformExtractor
from .loaders.access_loader import AccessControlLoader
from .loaders.file_loader import FileLoader
from .loaders.flow_loader import FlowLoader
from .loaders.item_loader import ItemLoader
from .models.migration import (
    MigrationConfig,
    MigrationPlan,
    MigrationRun,
    MigrationSession,
    MigrationStatus,
    MigrationStep,
)
from .models.schema import SYSTEM_PREFIX, SchemaMetadata
from .services.migration_order import calculate_migration_order, validate_custom_order
from .services.relation_graph import RelationGraph
from .services.schema_migrator import SchemaApplyStatus, SchemaMigrator

logger = logging.getLogger(__name__)

StepCallback = Callable[[MigrationStep], None]


def plan_migration(
    metadata: SchemaMetadata,
    collections: Sequence[str],
    include_system: bool = False,
    system_prefix: str = SYSTEM_PREFIX,
    expand_closure: bool = True,
    custom_order: Optional[Sequence[str]] = None
) -> MigrationPlan:
    """
    Turn a user selection into an ordered plan.

    Args:
        metadata: Schema metadata of the source
        collections: Selected collections; empty selects every visible collection
        include_system: Keep collections with the reserved prefix
        system_prefix: Reserved prefix of system collections
        expand_closure: Add the collections the selection depends on
        custom_order: User order, used when it is a permutation of the selection

    Returns:
        MigrationPlan
    """
    graph = RelationGraph.from_metadata(metadata, system_prefix)
    selection = list(collections) or [
        c.collection for c in metadata.collections
        if include_system or not c.system
    ]

    warnings = []
    if expand_closure:
        selection = graph.closure(selection, include_system)
    else:
        warnings.extend(graph.missing_dependencies(selection, include_system))

    plan = calculate_migration_order(graph, selection)
    plan.warnings = warnings + plan.warnings

    if custom_order:
        plan.warnings.extend(validate_custom_order(graph, selection, custom_order))
        if sorted(custom_order) == sorted(plan.order):
            plan.order = list(custom_order)
        else:
            plan.warnings.append("Custom order does not match the selection; using the computed order")

    return plan


class MigrationOrchestrator:
    """
    Orchestrates the complete migration process.

    Handles:
    - Connection checks on both instances
    - Selection closure and migration order
    - Schema diff, filtering and apply
    - Item transfer per collection in plan order
    - Files and folders, flows and access control
    - Progress tracking and reporting
    """

    def __init__(
        self,
        config: MigrationConfig,
        source_client: Optional[PlatformClient] = None,
        target_client: Optional[PlatformClient] = None,
        cancel_event: Optional[threading.Event] = None,
        on_step: Optional[StepCallback] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Migration configuration
            source_client: Client for the source (built from config if omitted)
            target_client: Client for the target (built from config if omitted)
            cancel_event: Stops the run between items when set
            on_step: Called whenever a step finishes
        """
        self.config = config
        self.source = source_client or self._client_for(config.source, "source")
        self.target = target_client or self._client_for(config.target, "target")
        self.cancel_event = cancel_event or threading.Event()
        self.on_step = on_step

        self.session = MigrationSession(
            config.collections,
            include_system=config.include_system,
            system_prefix=config.system_prefix,
        )
        self.extractor = PlatformExtractor(self.source, config.system_prefix, config.page_size)

        # Runtime state
        self.run = MigrationRun(name=config.name, dry_run=config.dry_run)
        self.metadata: Optional[SchemaMetadata] = None
        self.plan: Optional[MigrationPlan] = None

        self.logs_dir = Path(self.config.output_dir) / "logs"

    def _client_for(self, connection, role: str) -> PlatformClient:
        if connection is None or not connection.url:
            raise ValueError(f"No {role} connection configured (set it in the config or {role.upper()}_URL/{role.upper()}_TOKEN)")
        return PlatformClient(connection.url, connection.token, timeout=self.config.timeout)

    def run_migration(self) -> MigrationRun:
        """
        Run the complete migration.

        Returns:
            MigrationRun with results and statistics
        """
        self.run.started_at = datetime.utcnow()

        try:
            logger.info("=== PHASE 1: CONNECT ===")
            self.run.status = MigrationStatus.CONNECTING
            self.connect()

            logger.info("=== PHASE 2: PLAN ===")
            self.run.status = MigrationStatus.PLANNING
            self.build_plan()
            self.run.plan = self.plan
            self.run.warnings.extend(self.plan.warnings)

            if self.config.migrate_schema:
                logger.info("=== PHASE 3: SCHEMA ===")
                self.run.status = MigrationStatus.MIGRATING_SCHEMA
                self._run_schema()

            if self.config.migrate_files and not self.cancel_event.is_set():
                logger.info("=== PHASE 4: FILES ===")
                self.run.status = MigrationStatus.MIGRATING_FILES
                self._run_files()

            if self.config.migrate_data:
                logger.info("=== PHASE 5: DATA ===")
                self.run.status = MigrationStatus.MIGRATING_DATA
                self._run_data()

            if self.config.flows and not self.cancel_event.is_set():
                logger.info("=== PHASE 6: FLOWS ===")
                self.run.status = MigrationStatus.MIGRATING_FLOWS
                self._run_flows()

            if self.config.migrate_access_control and not self.cancel_event.is_set():
                logger.info("=== PHASE 7: ACCESS CONTROL ===")
                self.run.status = MigrationStatus.MIGRATING_ACCESS
                self._run_access_control()

            self.run.status = self._final_status()
            logger.info(f"=== MIGRATION {self.run.status.value.upper()} ===")

        except PlatformAPIError as e:
            logger.error(f"Migration failed during {self.run.status.value}: {e.message}")
            self.run.errors.append({
                "phase": self.run.status.value,
                "error": e.message,
                "status": e.status_code,
                "timestamp": datetime.utcnow().isoformat(),
            })
            step = self.run.get_step(self.run.current_step) if self.run.current_step else None
            if step and step.completed_at is None:
                self._fail_step(step, e)
            self.run.status = MigrationStatus.FAILED

        finally:
            self.run.completed_at = datetime.utcnow()
            self.run.update_totals()
            self.run.current_step = None
            if self.config.save_report:
                self._save_report()

        return self.run

    def cancel(self) -> None:
        """Request cancellation; the current item finishes first."""
        self.cancel_event.set()

    def connect(self) -> None:
        """
        Validate both instances before anything is attempted.

        Raises:
            PlatformConnectionError: if either instance is unusable
        """
        for role, client in (("source", self.source), ("target", self.target)):
            try:
                client.validate_token()
            except PlatformConnectionError as e:
                logger.error(f"Cannot use {role} instance: {e.message}")
                raise

    def build_plan(self) -> MigrationPlan:
        """
        Expand the selection to its closure and compute the migration order.

        Returns:
            MigrationPlan for the session's selection
        """
        self.metadata = self.extractor.fetch_metadata()
        plan = plan_migration(
            self.metadata,
            self.session.selection,
            include_system=self.config.include_system,
            system_prefix=self.config.system_prefix,
            expand_closure=self.config.expand_closure,
            custom_order=self.config.custom_order,
        )
        self.session.replace_selection(plan.order)
        self.plan = plan
        for warning in plan.warnings:
            logger.warning(warning)
        return plan

    def _start_step(self, name: str, entity: str, status: MigrationStatus) -> MigrationStep:
        step = self.run.add_step(name=name, entity=entity)
        step.status = status
        step.started_at = datetime.utcnow()
        self.run.current_step = step.id
        return step

    def _finish_step(self, step: MigrationStep) -> None:
        step.completed_at = datetime.utcnow()
        if self.on_step:
            self.on_step(step)

    def _fail_step(self, step: MigrationStep, error: PlatformAPIError) -> None:
        logger.error(f"{step.name} failed: {error.message}")
        step.errors.append(error.to_dict())
        step.status = MigrationStatus.FAILED
        self._finish_step(step)

    def _run_schema(self) -> None:
        """Run the schema phase."""
        step = self._start_step("Apply schema", "schema", MigrationStatus.MIGRATING_SCHEMA)
        migrator = SchemaMigrator(self.source, self.target)

        if self.config.dry_run:
            try:
                diff = migrator.preview(self.session)
            except PlatformConnectionError:
                raise
            except PlatformAPIError as e:
                self._fail_step(step, e)
                return
            step.details = {"diff": diff.to_dict()["diff"], "change_count": diff.change_count}
            step.records_processed = diff.change_count
            step.status = MigrationStatus.SKIPPED
            self._finish_step(step)
            return

        result = migrator.migrate_selection(self.session)
        step.details = result.to_dict()
        step.records_processed = sum(result.counts.values())

        if result.status == SchemaApplyStatus.APPLIED:
            step.records_succeeded = step.records_processed
            step.status = MigrationStatus.COMPLETED
        elif result.status == SchemaApplyStatus.NOTHING_TO_APPLY:
            step.warnings.append(result.message)
            self.run.warnings.append(result.message)
            step.status = MigrationStatus.SKIPPED
        else:
            step.records_failed = step.records_processed
            step.errors.append(result.error or {"message": result.message})
            step.status = MigrationStatus.FAILED
        self._finish_step(step)

    def _run_files(self) -> None:
        """Run the file phase: folders, then the files they hold."""
        step = self._start_step("Migrate files", "files", MigrationStatus.MIGRATING_FILES)
        try:
            folders = self.extractor.fetch_folders()
            files = self.extractor.fetch_files()
        except PlatformConnectionError:
            raise
        except PlatformAPIError as e:
            self._fail_step(step, e)
            return

        if self.config.dry_run:
            ordered = FileLoader.order_folders(folders, self.config.file_folders)
            step.details = {"folders": len(ordered), "files": len(files)}
            step.records_processed = len(files)
            step.records_skipped = len(files)
            step.status = MigrationStatus.SKIPPED
            self._finish_step(step)
            return

        loader = FileLoader(self.target, self.source.base_url, preserve_ids=self.config.preserve_file_ids)
        result = loader.migrate(
            folders,
            files,
            self.config.file_folders,
            session=self.session,
            cancel_event=self.cancel_event,
        )
        units = result.folders + result.files
        step.records_processed = len(result.files)
        step.records_succeeded = sum(1 for r in result.files if r.success)
        step.records_skipped = sum(1 for r in result.files if r.status == "skipped")
        step.records_failed = sum(1 for r in result.files if r.status == "error")
        step.errors.extend(
            {"record_id": u.original_id, "name": u.name, "error": u.error}
            for u in units if u.status == "error"
        )
        step.details = {"message": result.message, "folder_mapping": result.folder_mapping}
        step.status = MigrationStatus.COMPLETED_WITH_ERRORS if step.errors else MigrationStatus.COMPLETED
        self._finish_step(step)

    def _title_filter_for(self, collection: str) -> Optional[str]:
        # Collections without the title field are read unfiltered
        if not self.config.title_filter:
            return None
        root = self.config.title_field.split(".")[0]
        if self.metadata and not self.metadata.has_field(collection, root):
            logger.debug(f"{collection} has no {root} field, title filter not applied")
            return None
        return self.config.title_filter

    def _run_data(self) -> None:
        """Run the data phase, one collection at a time in plan order."""
        loader = ItemLoader(self.target, concurrency=self.config.concurrency)

        for collection in self.plan.order:
            if self.cancel_event.is_set():
                logger.warning("Migration cancelled")
                break

            descriptor = self.metadata.get_collection(collection) if self.metadata else None
            if descriptor and descriptor.is_folder:
                logger.debug(f"Skipping folder {collection}")
                continue
            if descriptor and descriptor.system and not self.config.include_system:
                continue

            step = self._start_step(f"Migrate items of {collection}", collection, MigrationStatus.MIGRATING_DATA)
            singleton = bool(descriptor and descriptor.singleton)
            fields = self.config.fields.get(collection)

            extraction = self.extractor.items(
                collection,
                limit=self.config.item_limit,
                fields=fields,
                singleton=singleton,
                title_filter=self._title_filter_for(collection),
                title_field=self.config.title_field,
            ).extract()
            step.warnings.extend(extraction.warnings)

            if not extraction.success:
                step.errors.extend(extraction.errors)
                step.status = MigrationStatus.FAILED
                self._finish_step(step)
                continue

            if self.config.dry_run:
                step.records_processed = extraction.total_extracted
                step.records_skipped = extraction.total_extracted
                step.status = MigrationStatus.SKIPPED
                self._finish_step(step)
                continue

            result = loader.load_collection(
                collection,
                extraction.records,
                fields=fields,
                limit=self.config.item_limit,
                session=self.session,
                singleton=singleton,
                cancel_event=self.cancel_event,
            )
            step.records_processed = result.total_attempted
            step.records_succeeded = result.total_succeeded
            step.records_failed = result.total_failed
            step.records_skipped = result.total_skipped
            step.errors.extend(result.errors)
            step.details = {"created": result.created, "updated": result.updated}

            if result.cancelled:
                step.status = MigrationStatus.CANCELLED
            elif result.total_failed:
                step.status = MigrationStatus.COMPLETED_WITH_ERRORS
            else:
                step.status = MigrationStatus.COMPLETED
            self._finish_step(step)

    def _run_flows(self) -> None:
        """Run the flow phase."""
        step = self._start_step("Migrate flows", "flows", MigrationStatus.MIGRATING_FLOWS)
        try:
            flows, operations = self.extractor.fetch_flows(self.config.flows)
        except PlatformConnectionError:
            raise
        except PlatformAPIError as e:
            self._fail_step(step, e)
            return
        loader = FlowLoader(
            self.target,
            preserve_ids=self.config.preserve_flow_ids,
            conflict_resolution=self.config.flow_conflict,
            environment=self.config.flow_environment,
        )

        if self.config.dry_run:
            validation = loader.validate(flows, operations)
            step.details = {"validation": {k: v.to_dict() for k, v in validation.items()}}
            step.errors.extend({"error": e} for e in loader.batch_errors(flows, operations))
            step.records_processed = len(flows)
            step.records_skipped = len(flows)
            step.status = MigrationStatus.SKIPPED
            self._finish_step(step)
            return

        result = loader.migrate(flows, operations, session=self.session)
        step.records_processed = len(result.flows)
        step.records_succeeded = result.successful_flows
        step.records_skipped = result.skipped_flows
        step.records_failed = sum(1 for r in result.flows if r.status == "error")
        step.errors.extend({"error": e} for e in result.errors)
        step.errors.extend(
            {"record_id": r.original_id, "error": r.error}
            for r in result.flows + result.operations if r.status == "error"
        )
        step.details = {"message": result.message, "id_mapping": result.id_mapping}
        step.status = MigrationStatus.COMPLETED_WITH_ERRORS if step.errors else MigrationStatus.COMPLETED
        self._finish_step(step)

    def _run_access_control(self) -> None:
        """Run the access control phase."""
        step = self._start_step("Migrate access control", "access_control", MigrationStatus.MIGRATING_ACCESS)
        try:
            data = self.extractor.fetch_access_control()
        except PlatformConnectionError:
            raise
        except PlatformAPIError as e:
            self._fail_step(step, e)
            return

        if self.config.dry_run:
            step.details = data.summary()
            step.status = MigrationStatus.SKIPPED
            self._finish_step(step)
            return

        result = AccessControlLoader(self.target, self.config.access_control).migrate_data(data)
        units = result.roles + result.policies + result.permissions + result.access
        step.records_processed = len(units)
        step.records_succeeded = sum(1 for u in units if u.success)
        step.records_skipped = sum(1 for u in units if u.status == "skipped")
        step.records_failed = step.records_processed - step.records_succeeded - step.records_skipped
        step.errors.extend(
            {"record_id": u.original_id, "name": u.name, "error": u.error}
            for u in units if u.status == "error"
        )
        step.details = {"message": result.message}
        step.status = MigrationStatus.COMPLETED_WITH_ERRORS if step.records_failed else MigrationStatus.COMPLETED
        self._finish_step(step)

    def _final_status(self) -> MigrationStatus:
        if self.cancel_event.is_set():
            return MigrationStatus.CANCELLED
        failed = {MigrationStatus.FAILED, MigrationStatus.COMPLETED_WITH_ERRORS}
        if any(step.status in failed for step in self.run.steps):
            return MigrationStatus.COMPLETED_WITH_ERRORS
        return MigrationStatus.COMPLETED

    def _save_report(self):
        """Save the migration report."""
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        filepath = self.logs_dir / f"migration_report_{datetime.utcnow().strftime('%Y%m%d_%H%M%S')}.json"
        report = self.run.to_dict()
        report["config"] = self.config.to_dict()
        report["progress"] = self.session.progress_snapshot()
        with open(filepath, 'w') as f:
            json.dump(report, f, indent=2, default=str)
        logger.info(f"Saved migration report to {filepath}")
