"""Access control loader: roles, policies, permissions and role-policy links."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..client import PlatformAPIError, PlatformClient
from ..models.access import Access, AccessControlData, AccessControlResult, Permission, Policy, Role
from ..models.migration import AccessControlOptions
from ..models.record import UnitResult

logger = logging.getLogger(__name__)


class AccessControlLoader:
    """
    Loader for access control objects.

    Supports:
    - Roles and policies with preserved or target-assigned ids
    - Skipping admin roles and admin policies
    - Permissions upserted by (collection, action, policy)
    - Role-policy access links, skipping links that already exist

    Every object succeeds or fails on its own; the batch always completes.
    """

    def __init__(self, client: PlatformClient, options: Optional[AccessControlOptions] = None):
        self.client = client
        self.options = options or AccessControlOptions()
        self._role_ids: Dict[str, str] = {}
        self._policy_ids: Dict[str, str] = {}

    def _existing(self, endpoint: str) -> List[Dict[str, Any]]:
        """Read existing target objects; an unreadable endpoint counts as empty."""
        try:
            return self.client.get(endpoint, params={"limit": -1}) or []
        except PlatformAPIError as e:
            logger.warning(f"Could not read {endpoint} from target: {e.message}")
            return []

    @staticmethod
    def _new_id(response: Any, fallback: Any) -> Any:
        if isinstance(response, dict) and response.get("id") is not None:
            return response["id"]
        return fallback

    def _upsert_by_id(
        self,
        endpoint: str,
        obj_id: str,
        payload: Dict[str, Any],
        existing_ids: set,
        preserve_ids: bool
    ) -> UnitResult:
        result = UnitResult(original_id=obj_id, name=payload.get("name"))
        try:
            if preserve_ids and obj_id in existing_ids:
                body = {k: v for k, v in payload.items() if k != "id"}
                self.client.patch(f"{endpoint}/{obj_id}", body)
                result.new_id = obj_id
                result.action = "updated"
            else:
                body = dict(payload)
                if not preserve_ids:
                    body.pop("id", None)
                response = self.client.post(endpoint, body)
                result.new_id = self._new_id(response, obj_id)
                result.action = "created"
        except PlatformAPIError as e:
            logger.error(f"Failed to import {endpoint.strip('/')} entry {payload.get('name') or obj_id}: {e.message}")
            result.status = "error"
            result.error = e.message
        return result

    def migrate_roles(self, roles: Sequence[Role]) -> List[UnitResult]:
        existing_ids = {r.get("id") for r in self._existing("/roles")}
        results = []
        for role in roles:
            if self.options.skip_admin_roles and role.admin_access:
                logger.info(f"Skipping admin role {role.name}")
                continue
            result = self._upsert_by_id("/roles", role.id, role.to_payload(), existing_ids, self.options.preserve_role_ids)
            if result.success:
                self._role_ids[role.id] = result.new_id
            results.append(result)
        return results

    def migrate_policies(self, policies: Sequence[Policy]) -> List[UnitResult]:
        existing_ids = {p.get("id") for p in self._existing("/policies")}
        results = []
        for policy in policies:
            if self.options.skip_admin_policies and policy.admin_access:
                logger.info(f"Skipping admin policy {policy.name}")
                continue
            result = self._upsert_by_id(
                "/policies", policy.id, policy.to_payload(), existing_ids, self.options.preserve_policy_ids
            )
            if result.success:
                self._policy_ids[policy.id] = result.new_id
            results.append(result)
        for policy_id in existing_ids:
            self._policy_ids.setdefault(policy_id, policy_id)
        return results

    def migrate_permissions(self, permissions: Sequence[Permission]) -> List[UnitResult]:
        existing = {
            (p.get("collection"), p.get("action"), p.get("policy")): p.get("id")
            for p in self._existing("/permissions")
        }
        results = []
        for permission in permissions:
            name = f"{permission.collection}:{permission.action}"
            if not permission.policy:
                if self.options.skip_invalid_permissions:
                    continue
            elif permission.policy not in self._policy_ids:
                results.append(UnitResult(
                    original_id=permission.id,
                    name=name,
                    status="skipped",
                    error=f"Policy {permission.policy} not found in target",
                ))
                continue

            payload = permission.to_payload()
            payload["policy"] = self._policy_ids.get(permission.policy, permission.policy)
            key = (permission.collection, permission.action, payload["policy"])
            result = UnitResult(original_id=permission.id, name=name, parent_id=payload["policy"])
            try:
                if key in existing:
                    self.client.patch(f"/permissions/{existing[key]}", payload)
                    result.new_id = existing[key]
                    result.action = "updated"
                else:
                    response = self.client.post("/permissions", payload)
                    result.new_id = self._new_id(response, None)
                    result.action = "created"
            except PlatformAPIError as e:
                logger.error(f"Failed to import permission {name}: {e.message}")
                result.status = "error"
                result.error = e.message
            results.append(result)
        return results

    def migrate_access(self, roles: Sequence[Role], access: Sequence[Access] = ()) -> List[UnitResult]:
        """Link imported roles to their policies."""
        links = []
        for role in roles:
            for policy_id in role.policies:
                links.append((role.id, policy_id))
        for link in access:
            if link.role:
                links.append((link.role, link.policy))

        existing = {(a.get("role"), a.get("policy")) for a in self._existing("/access")}
        results = []
        seen = set()
        for role_id, policy_id in links:
            if (role_id, policy_id) in seen:
                continue
            seen.add((role_id, policy_id))
            if role_id not in self._role_ids or policy_id not in self._policy_ids:
                continue

            target_link = (self._role_ids[role_id], self._policy_ids[policy_id])
            result = UnitResult(original_id=f"{role_id}:{policy_id}", name=f"{role_id} -> {policy_id}")
            if target_link in existing:
                result.action = "exists"
                results.append(result)
                continue
            try:
                response = self.client.post("/access", {"role": target_link[0], "policy": target_link[1], "sort": None})
                result.new_id = self._new_id(response, None)
                result.action = "created"
            except PlatformAPIError as e:
                logger.error(f"Failed to link role {role_id} to policy {policy_id}: {e.message}")
                result.status = "error"
                result.error = e.message
            results.append(result)
        return results

    def migrate(
        self,
        roles: Sequence[Role],
        policies: Sequence[Policy],
        permissions: Sequence[Permission],
        access: Sequence[Access] = ()
    ) -> AccessControlResult:
        """
        Migrate access control objects in dependency order.

        Policies are written before permissions and links so that both can
        reference policies created in this run.
        """
        logger.info(
            f"Migrating {len(roles)} roles, {len(policies)} policies and {len(permissions)} permissions"
        )
        result = AccessControlResult()
        result.roles = self.migrate_roles(roles)
        result.policies = self.migrate_policies(policies)
        result.permissions = self.migrate_permissions(permissions)
        result.access = self.migrate_access(roles, access)
        logger.info(result.message)
        return result

    def migrate_data(self, data: AccessControlData) -> AccessControlResult:
        return self.migrate(data.roles, data.policies, data.permissions, data.access)
