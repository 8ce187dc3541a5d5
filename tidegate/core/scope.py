"""Grant scopes and the containment rule between them.

A scope is one of three shapes::

    Scope.global_()                    -> ("global", "")
    Scope.cluster("prod")              -> ("cluster", "prod")
    Scope.namespace("prod", "default") -> ("namespace", "prod/default")

Containment only narrows downward: a global grant covers every cluster and
namespace, a cluster grant covers the cluster and every namespace inside it,
and a namespace grant covers exactly that namespace. ``implies`` is the single
definition of that rule; ``candidate_scopes`` enumerates, for a request, every
grant scope that implies it, which is what the grant repository turns into a
SQL predicate.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..exceptions import ValidationError

NAMESPACE_SEPARATOR = "/"


class ScopeType(str, Enum):
    GLOBAL = "global"
    CLUSTER = "cluster"
    NAMESPACE = "namespace"


@dataclass(frozen=True)
class Scope:
    """Immutable scope value. Build it with the classmethods, not directly."""

    type: ScopeType
    cluster_name: Optional[str] = None
    namespace_name: Optional[str] = None

    @classmethod
    def global_(cls) -> Scope:
        return cls(ScopeType.GLOBAL)

    @classmethod
    def cluster(cls, name: str) -> Scope:
        name = _clean_segment(name, "cluster")
        return cls(ScopeType.CLUSTER, cluster_name=name)

    @classmethod
    def namespace(cls, cluster: str, namespace: str) -> Scope:
        cluster = _clean_segment(cluster, "cluster")
        namespace = _clean_segment(namespace, "namespace")
        return cls(ScopeType.NAMESPACE, cluster_name=cluster, namespace_name=namespace)

    @classmethod
    def from_parts(cls, scope_type: str | ScopeType, scope_value: Optional[str] = None) -> Scope:
        """Parse the stored (scope_type, scope_value) pair.

        Raises ValidationError for an unknown type or a value that does not
        fit the type (non-empty value for global, missing ``/`` for namespace).
        """
        try:
            kind = ScopeType(scope_type)
        except ValueError:
            raise ValidationError(
                f"Invalid scope type: {scope_type}. Must be global, cluster, or namespace.",
                field="scope_type",
            ) from None

        value = (scope_value or "").strip()
        if kind is ScopeType.GLOBAL:
            if value:
                raise ValidationError("Global scope does not take a scope value", field="scope_value")
            return cls.global_()
        if kind is ScopeType.CLUSTER:
            return cls.cluster(value)

        cluster, sep, namespace = value.partition(NAMESPACE_SEPARATOR)
        if not sep:
            raise ValidationError(
                "Namespace scope value must be '<cluster>/<namespace>'", field="scope_value"
            )
        return cls.namespace(cluster, namespace)

    @property
    def value(self) -> str:
        """Storage key: '' for global, cluster name, or 'cluster/namespace'."""
        if self.type is ScopeType.GLOBAL:
            return ""
        if self.type is ScopeType.CLUSTER:
            return self.cluster_name or ""
        return f"{self.cluster_name}{NAMESPACE_SEPARATOR}{self.namespace_name}"

    def parent(self) -> Optional[Scope]:
        if self.type is ScopeType.NAMESPACE:
            return Scope.cluster(self.cluster_name or "")
        if self.type is ScopeType.CLUSTER:
            return Scope.global_()
        return None

    def __str__(self) -> str:
        if self.type is ScopeType.GLOBAL:
            return "global"
        return f"{self.type.value}:{self.value}"


@dataclass(frozen=True)
class ScopeContext:
    """Cluster/namespace coordinates of a request, as taken from path params."""

    cluster: Optional[str] = None
    namespace: Optional[str] = None

    def to_scope(self) -> Scope:
        """Narrowest scope the request targets.

        A namespace without a cluster is not addressable, so it collapses to
        the cluster (or global) level.
        """
        cluster = (self.cluster or "").strip()
        namespace = (self.namespace or "").strip()
        if cluster and namespace:
            return Scope.namespace(cluster, namespace)
        if cluster:
            return Scope.cluster(cluster)
        return Scope.global_()


def candidate_scopes(request: Scope | ScopeContext) -> list[Scope]:
    """Every grant scope that satisfies *request*, broadest first."""
    scope = request.to_scope() if isinstance(request, ScopeContext) else request
    chain: list[Scope] = []
    current: Optional[Scope] = scope
    while current is not None:
        chain.append(current)
        current = current.parent()
    chain.reverse()
    return chain


def implies(grant_scope: Scope, request_scope: Scope) -> bool:
    """True when a grant at *grant_scope* covers a request at *request_scope*."""
    return grant_scope in candidate_scopes(request_scope)


def _clean_segment(raw: Optional[str], field: str) -> str:
    value = (raw or "").strip()
    if not value:
        raise ValidationError(f"{field.capitalize()} name is required for {field} scope", field="scope_value")
    if NAMESPACE_SEPARATOR in value:
        raise ValidationError(f"{field.capitalize()} name may not contain '/'", field="scope_value")
    return value
