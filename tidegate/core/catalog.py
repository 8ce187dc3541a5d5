"""Static permission catalog and the built-in system roles.

The catalog is the one source of truth for which (resource_type, action)
pairs exist. It is immutable at runtime: the seeder copies it into the
``permissions`` table, and nothing ever writes to that table afterwards.
Permission ids are derived from the name with uuid5, so every deployment
agrees on them without coordination.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from ..exceptions import ValidationError
from .scope import ScopeType

_ID_NAMESPACE = uuid.UUID("5b0d7c1e-2f4a-4c8e-9d1b-7e3a6f2c8b90")


@dataclass(frozen=True)
class PermissionSpec:
    """One catalog entry. ``scope`` is a display hint only, never used for matching."""

    resource_type: str
    action: str
    display_name: str
    scope: ScopeType
    description: str = ""

    @property
    def name(self) -> str:
        return f"{self.resource_type}:{self.action}"

    @property
    def id(self) -> str:
        return str(uuid.uuid5(_ID_NAMESPACE, self.name))


@dataclass(frozen=True)
class SystemRoleSpec:
    name: str
    display_name: str
    description: str
    permissions: tuple[str, ...]
    is_default: bool = False


_G, _C, _N = ScopeType.GLOBAL, ScopeType.CLUSTER, ScopeType.NAMESPACE

PERMISSIONS: tuple[PermissionSpec, ...] = (
    PermissionSpec("cluster", "create", "Create cluster", _G, "Register a new Kubernetes cluster"),
    PermissionSpec("cluster", "read", "View cluster", _G, "View cluster information and status"),
    PermissionSpec("cluster", "update", "Update cluster", _G, "Change cluster configuration"),
    PermissionSpec("cluster", "delete", "Delete cluster", _G, "Remove a cluster"),

    PermissionSpec("deployment", "create", "Create deployment", _N),
    PermissionSpec("deployment", "read", "View deployment", _N),
    PermissionSpec("deployment", "update", "Update deployment", _N),
    PermissionSpec("deployment", "delete", "Delete deployment", _N),
    PermissionSpec("deployment", "scale", "Scale deployment", _N, "Change the replica count"),
    PermissionSpec("deployment", "restart", "Restart deployment", _N),

    PermissionSpec("service", "create", "Create service", _N),
    PermissionSpec("service", "read", "View service", _N),
    PermissionSpec("service", "update", "Update service", _N),
    PermissionSpec("service", "delete", "Delete service", _N),

    PermissionSpec("pod", "read", "View pod", _N),
    PermissionSpec("pod", "delete", "Delete pod", _N),
    PermissionSpec("pod", "logs", "View pod logs", _N),
    PermissionSpec("pod", "exec", "Exec into pod", _N, "Run commands inside a container"),

    PermissionSpec("node", "read", "View node", _C),
    PermissionSpec("node", "update", "Update node", _C),
    PermissionSpec("node", "drain", "Drain node", _C, "Evict all pods from a node"),
    PermissionSpec("node", "cordon", "Cordon node", _C, "Mark a node (un)schedulable"),

    PermissionSpec("namespace", "read", "View namespace", _C),
    PermissionSpec("namespace", "create", "Create namespace", _C),
    PermissionSpec("namespace", "delete", "Delete namespace", _C),

    PermissionSpec("user", "create", "Create user", _G),
    PermissionSpec("user", "read", "View user", _G),
    PermissionSpec("user", "update", "Update user", _G),
    PermissionSpec("user", "delete", "Delete user", _G),

    PermissionSpec("role", "create", "Create role", _G),
    PermissionSpec("role", "read", "View role", _G),
    PermissionSpec("role", "update", "Update role", _G),
    PermissionSpec("role", "delete", "Delete role", _G),

    PermissionSpec("audit", "read", "View audit log", _G),
)

_BY_KEY: dict[tuple[str, str], PermissionSpec] = {(p.resource_type, p.action): p for p in PERMISSIONS}
_BY_NAME: dict[str, PermissionSpec] = {p.name: p for p in PERMISSIONS}
_BY_ID: dict[str, PermissionSpec] = {p.id: p for p in PERMISSIONS}

RESOURCE_TYPES: frozenset[str] = frozenset(p.resource_type for p in PERMISSIONS)
ACTIONS: frozenset[str] = frozenset(p.action for p in PERMISSIONS)


def _names(*names: str) -> tuple[str, ...]:
    for name in names:
        if name not in _BY_NAME:
            raise KeyError(f"Unknown catalog permission: {name}")
    return names


_WORKLOAD_ADMIN = _names(
    "deployment:create", "deployment:read", "deployment:update", "deployment:delete",
    "deployment:scale", "deployment:restart",
    "service:create", "service:read", "service:update", "service:delete",
    "pod:read", "pod:delete", "pod:logs", "pod:exec",
)

SYSTEM_ROLES: tuple[SystemRoleSpec, ...] = (
    SystemRoleSpec(
        "super_admin", "Super administrator",
        "Every permission in the catalog",
        tuple(p.name for p in PERMISSIONS),
    ),
    SystemRoleSpec(
        "cluster_admin", "Cluster administrator",
        "Manages every resource of the clusters it is granted on",
        _names("cluster:read", "cluster:update") + _WORKLOAD_ADMIN + _names(
            "node:read", "node:update", "node:drain", "node:cordon",
            "namespace:read", "namespace:create", "namespace:delete",
        ),
    ),
    SystemRoleSpec(
        "namespace_admin", "Namespace administrator",
        "Manages workloads inside the namespaces it is granted on",
        _WORKLOAD_ADMIN,
    ),
    SystemRoleSpec(
        "developer", "Developer",
        "Deploys and manages applications",
        _names(
            "deployment:create", "deployment:read", "deployment:update", "deployment:delete",
            "deployment:scale",
            "service:create", "service:read", "service:update", "service:delete",
            "pod:read", "pod:delete", "pod:logs",
        ),
    ),
    SystemRoleSpec(
        "viewer", "Viewer",
        "Read-only access to cluster resources",
        _names(
            "cluster:read", "deployment:read", "service:read", "pod:read", "pod:logs",
            "node:read", "namespace:read",
        ),
        is_default=True,
    ),
    SystemRoleSpec(
        "operator", "Operator",
        "Operates infrastructure and running workloads",
        _names(
            "cluster:read", "cluster:update",
            "deployment:read", "deployment:update", "deployment:scale", "deployment:restart",
            "service:read", "service:update",
            "pod:read", "pod:delete", "pod:logs", "pod:exec",
            "node:read", "node:update", "node:drain", "node:cordon",
            "namespace:read",
        ),
    ),
)


def lookup(resource_type: str, action: str) -> Optional[PermissionSpec]:
    """Catalog entry for (resource_type, action), or None if there is none."""
    return _BY_KEY.get((resource_type, action))


def get_by_name(name: str) -> Optional[PermissionSpec]:
    return _BY_NAME.get(name)


def get_by_id(permission_id: str) -> Optional[PermissionSpec]:
    return _BY_ID.get(permission_id)


def all_permissions() -> tuple[PermissionSpec, ...]:
    return PERMISSIONS


def by_resource(resource_type: str) -> list[PermissionSpec]:
    return [p for p in PERMISSIONS if p.resource_type == resource_type]


def group_by_resource() -> dict[str, list[PermissionSpec]]:
    grouped: dict[str, list[PermissionSpec]] = {}
    for p in PERMISSIONS:
        grouped.setdefault(p.resource_type, []).append(p)
    return grouped


def parse_permission_name(name: str) -> tuple[str, str]:
    """Split and validate a ``resource:action`` name.

    Raises ValidationError when the format is wrong or either half is not a
    known resource type or action.
    """
    resource_type, sep, action = name.partition(":")
    if not sep or ":" in action:
        raise ValidationError("Permission name must be in format 'resource:action'", field="name")
    if not resource_type:
        raise ValidationError("Resource type cannot be empty", field="name")
    if not action:
        raise ValidationError("Action cannot be empty", field="name")
    if resource_type not in RESOURCE_TYPES:
        raise ValidationError(f"Invalid resource type: {resource_type}", field="name")
    if action not in ACTIONS:
        raise ValidationError(f"Invalid action: {action}", field="name")
    return resource_type, action


def require(resource_type: str, action: str) -> PermissionSpec:
    """Catalog entry for the pair. ValidationError when the pair is not one.

    Both halves may be known on their own (``pod`` and ``scale``) without the
    pair existing; that is rejected too.
    """
    parse_permission_name(f"{resource_type}:{action}")
    entry = lookup(resource_type, action)
    if entry is None:
        raise ValidationError(f"Unknown permission: {resource_type}:{action}", field="name")
    return entry
