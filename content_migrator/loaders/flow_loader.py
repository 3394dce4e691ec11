"""Flow and operation loader with two-phase linking."""

import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence, Set

from ..client import PlatformAPIError, PlatformClient
from ..models.flow import (
    ConflictResolution,
    EnvironmentMapping,
    Flow,
    FlowImportResult,
    FlowValidationResult,
    Operation,
)
from ..models.migration import MigrationSession, MigrationStatus
from ..models.record import UnitResult
from .item_loader import NOT_FOUND_STATUSES

logger = logging.getLogger(__name__)


class FlowLoader:
    """
    Migrates automation flows and their operation graphs.

    Operations point at each other through ``resolve``/``reject``, so they
    cannot be created with their pointers set. Each flow is applied in two
    phases:

    1. Create the flow without a root and every operation with null pointers
    2. Patch the pointers of every operation, then link the flow root

    If the flow already exists on the target, the create is rejected and the
    flow is updated in place instead. With ``skip`` an existing flow is left
    alone; with ``rename`` it is copied under new ids and a suffixed name.
    Operation options are rewritten through the environment mapping.
    """

    def __init__(
        self,
        client: PlatformClient,
        preserve_ids: bool = True,
        not_found_statuses: Sequence[int] = NOT_FOUND_STATUSES,
        conflict_resolution: ConflictResolution = ConflictResolution.OVERWRITE,
        environment: Optional[EnvironmentMapping] = None
    ):
        """
        Initialize the loader.

        Args:
            client: Client for the target instance
            preserve_ids: Keep source ids; otherwise mint new UUIDs
            not_found_statuses: Statuses meaning "operation does not exist"
            conflict_resolution: Handling of flows already on the target
            environment: Source to target names used in operation options
        """
        self.client = client
        self.preserve_ids = preserve_ids
        self.not_found_statuses = tuple(not_found_statuses)
        self.conflict_resolution = ConflictResolution(conflict_resolution)
        self.environment = environment or EnvironmentMapping()

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def batch_errors(self, flows: Sequence[Flow], operations: Sequence[Operation]) -> List[str]:
        """Operations whose flow is not part of the batch."""
        flow_ids = {f.id for f in flows}
        return [
            f'Operation "{op.label}" references missing flow: {op.flow}'
            for op in operations if op.flow not in flow_ids
        ]

    def validate_flow(self, flow: Flow, operations: Sequence[Operation]) -> FlowValidationResult:
        """
        Validate one flow against the operations of the batch.

        Checks the root operation, every resolve/reject pointer, and walks the
        graph depth-first to find cycles. The first operation found again on
        the walk stack is reported.
        """
        result = FlowValidationResult(flow_id=flow.id)
        by_id = {op.id: op for op in operations}
        own = [op for op in operations if op.flow == flow.id]

        if flow.operation and flow.operation not in by_id:
            result.errors.append(f'Flow "{flow.name}" references missing root operation: {flow.operation}')

        for op in own:
            if op.resolve and op.resolve not in by_id:
                result.errors.append(f'Operation "{op.label}" references missing resolve operation: {op.resolve}')
            if op.reject and op.reject not in by_id:
                result.errors.append(f'Operation "{op.label}" references missing reject operation: {op.reject}')

        visited: Set[str] = set()
        stack: List[str] = []

        def walk(op_id: str) -> Optional[str]:
            if op_id in stack:
                return op_id
            if op_id in visited or op_id not in by_id:
                return None
            visited.add(op_id)
            stack.append(op_id)
            for pointer in by_id[op_id].pointers:
                repeated = walk(pointer)
                if repeated:
                    return repeated
            stack.pop()
            return None

        starts = ([flow.operation] if flow.operation else []) + [op.id for op in own]
        for start in starts:
            repeated = walk(start)
            if repeated:
                result.cycle_at = repeated
                result.errors.append(
                    f'Circular reference detected in flow "{flow.name}" at operation "{by_id[repeated].label}"'
                )
                break
            stack.clear()

        reachable = self._reachable(flow.operation, by_id) if flow.operation else set()
        unreachable = [op.label for op in own if op.id not in reachable]
        if unreachable and not result.cycle_at:
            result.warnings.append(f'Flow "{flow.name}" has operations unreachable from its root: {", ".join(unreachable)}')

        for op in own:
            result.warnings.extend(self.environment.unmapped_references(op))

        return result

    @staticmethod
    def _reachable(root: str, by_id: Dict[str, Operation]) -> Set[str]:
        seen: Set[str] = set()
        pending = [root]
        while pending:
            op_id = pending.pop()
            if op_id in seen or op_id not in by_id:
                continue
            seen.add(op_id)
            pending.extend(by_id[op_id].pointers)
        return seen

    def validate(self, flows: Sequence[Flow], operations: Sequence[Operation]) -> Dict[str, FlowValidationResult]:
        """Validate every flow of the batch before any write."""
        return {flow.id: self.validate_flow(flow, operations) for flow in flows}

    # -------------------------------------------------------------------------
    # Migration
    # -------------------------------------------------------------------------

    def build_id_mapping(self, flows: Sequence[Flow], operations: Sequence[Operation]) -> Dict[str, str]:
        """Source id -> target id for every flow and operation."""
        mapping = {}
        for obj in list(flows) + list(operations):
            mapping[obj.id] = obj.id if self.preserve_ids else str(uuid.uuid4())
        return mapping

    def migrate(
        self,
        flows: Sequence[Flow],
        operations: Sequence[Operation],
        session: Optional[MigrationSession] = None
    ) -> FlowImportResult:
        """
        Validate and apply a batch of flows.

        Invalid flows are rejected without writes. One flow failing never
        blocks the next.

        Args:
            flows: Flows to migrate
            operations: Operations of those flows
            session: Session whose progress map is updated per flow

        Returns:
            FlowImportResult
        """
        result = FlowImportResult()
        result.errors.extend(self.batch_errors(flows, operations))
        result.validation = self.validate(flows, operations)
        result.id_mapping = self.build_id_mapping(flows, operations)

        logger.info(f"Migrating {len(flows)} flows with {len(operations)} operations")

        for flow in flows:
            own = [op for op in operations if op.flow == flow.id]
            validation = result.validation[flow.id]
            progress_key = flow.name or flow.id

            if session:
                session.update_progress(progress_key, total=len(own), status=MigrationStatus.MIGRATING_FLOWS)

            if not validation.is_valid:
                logger.error(f"Flow {flow.name} rejected: {'; '.join(validation.errors)}")
                result.flows.append(UnitResult(
                    original_id=flow.id,
                    name=flow.name,
                    status="error",
                    error=f"Validation failed: {'; '.join(validation.errors)}",
                ))
                if session:
                    session.update_progress(progress_key, status=MigrationStatus.FAILED)
                continue

            flow_result, op_results = self._apply_flow(flow, own, result.id_mapping)
            result.flows.append(flow_result)
            result.operations.extend(op_results)

            if session:
                failed = sum(1 for r in op_results if not r.success)
                if flow_result.status == "skipped":
                    status = MigrationStatus.SKIPPED
                elif not flow_result.success:
                    status = MigrationStatus.FAILED
                elif failed:
                    status = MigrationStatus.COMPLETED_WITH_ERRORS
                else:
                    status = MigrationStatus.COMPLETED
                session.update_progress(
                    progress_key,
                    processed=len(op_results),
                    succeeded=len(op_results) - failed,
                    failed=failed,
                    status=status,
                )

        logger.info(result.message)
        return result

    def _map(self, mapping: Dict[str, str], source_id: Optional[str]) -> Optional[str]:
        if not source_id:
            return None
        return mapping.get(source_id, source_id)

    def _flow_payload(self, flow: Flow, mapping: Dict[str, str], name: Optional[str] = None) -> Dict[str, Any]:
        payload = flow.to_dict()
        payload["id"] = mapping[flow.id]
        if name:
            payload["name"] = name
        payload["operation"] = None
        return payload

    def _operation_payload(self, op: Operation, mapping: Dict[str, str]) -> Dict[str, Any]:
        payload = op.to_dict()
        payload["id"] = mapping[op.id]
        payload["flow"] = mapping.get(op.flow, op.flow)
        payload["options"] = self.environment.transform_options(op.options)
        payload["resolve"] = None
        payload["reject"] = None
        return payload

    def _flow_exists(self, flow_id: str) -> bool:
        try:
            self.client.get(f"/flows/{flow_id}")
        except PlatformAPIError as e:
            if e.status_code in self.not_found_statuses:
                return False
            raise
        return True

    def _apply_flow(self, flow: Flow, operations: List[Operation], mapping: Dict[str, str]):
        flow_id = mapping[flow.id]
        flow_result = UnitResult(original_id=flow.id, new_id=flow_id, name=flow.name)
        op_results: Dict[str, UnitResult] = {}
        name = None

        if self.conflict_resolution != ConflictResolution.OVERWRITE:
            try:
                exists = self._flow_exists(flow_id)
            except PlatformAPIError as e:
                logger.error(f"Could not check flow {flow.name} on target: {e.message}")
                flow_result.status = "error"
                flow_result.error = f"Existence check failed: {e.message}"
                return flow_result, []

            if exists and self.conflict_resolution == ConflictResolution.SKIP:
                logger.info(f"Flow {flow.name} already exists on target, skipping")
                flow_result.status = "skipped"
                flow_result.action = "skipped"
                return flow_result, []

            if exists:
                for obj in [flow] + list(operations):
                    mapping[obj.id] = str(uuid.uuid4())
                flow_id = mapping[flow.id]
                flow_result.new_id = flow_id
                name = f"{flow.name} (copy)"
                logger.info(f"Flow {flow.name} already exists on target, copying as {flow_id}")

        # Phase 1: flow without root, operations without pointers
        try:
            self.client.post("/flows", self._flow_payload(flow, mapping, name))
            flow_result.action = "created"
            update_in_place = False
            logger.info(f"Created flow {flow.name} ({flow_id})")
        except PlatformAPIError as create_error:
            logger.warning(f"Create of flow {flow.name} rejected ({create_error.message}), updating in place")
            payload = self._flow_payload(flow, mapping, name)
            payload.pop("id")
            try:
                self.client.patch(f"/flows/{flow_id}", payload)
            except PlatformAPIError as e:
                logger.error(f"Failed to import flow {flow.name}: {e.message}")
                flow_result.status = "error"
                flow_result.error = f"Create failed: {create_error.message}; update failed: {e.message}"
                return flow_result, []
            flow_result.action = "updated"
            update_in_place = True

        for op in operations:
            op_results[op.id] = self._create_operation(op, mapping, flow_id, update_in_place)

        # Phase 2: pointers, then root
        for op in operations:
            if not op.pointers or not op_results[op.id].success:
                continue
            try:
                self.client.patch(f"/operations/{mapping[op.id]}", {
                    "resolve": self._map(mapping, op.resolve),
                    "reject": self._map(mapping, op.reject),
                })
            except PlatformAPIError as e:
                logger.error(f"Failed to link operation {op.label}: {e.message}")
                op_results[op.id].status = "error"
                op_results[op.id].error = f"Linking failed: {e.message}"

        if flow.operation:
            try:
                self.client.patch(f"/flows/{flow_id}", {"operation": self._map(mapping, flow.operation)})
            except PlatformAPIError as e:
                logger.error(f"Failed to link root operation of flow {flow.name}: {e.message}")
                flow_result.status = "error"
                flow_result.error = f"Linking root operation failed: {e.message}"

        return flow_result, [op_results[op.id] for op in operations]

    def _create_operation(
        self,
        op: Operation,
        mapping: Dict[str, str],
        flow_id: str,
        update_in_place: bool
    ) -> UnitResult:
        op_id = mapping[op.id]
        result = UnitResult(original_id=op.id, new_id=op_id, name=op.label, parent_id=flow_id)
        payload = self._operation_payload(op, mapping)

        try:
            if update_in_place:
                body = dict(payload)
                body.pop("id")
                try:
                    self.client.patch(f"/operations/{op_id}", body)
                    result.action = "updated"
                    return result
                except PlatformAPIError as e:
                    if e.status_code not in self.not_found_statuses:
                        raise
            self.client.post("/operations", payload)
            result.action = "created"
        except PlatformAPIError as e:
            logger.error(f"Failed to import operation {op.label}: {e.message}")
            result.status = "error"
            result.error = e.message
        return result
