# backend/compdb/permissions.py
"""
Authorization collaborator.

The component core never decides *who* may do something; it asks an
`Authorizer` and turns a False answer into `ComponentForbidden`.
`PermissionAuthorizer` is the default used by the HTTP adapter: a flat
permission-string check plus tenant access.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Protocol

from .tenancy import TenantResolver

PERM_VIEW = "components.view"
PERM_CREATE = "components.create"
PERM_EDIT = "components.edit"
PERM_DELETE = "components.delete"
PERM_CHECKOUT = "components.checkout"

ALL_COMPONENT_PERMISSIONS = frozenset({PERM_VIEW, PERM_CREATE, PERM_EDIT, PERM_DELETE, PERM_CHECKOUT})


@dataclass(frozen=True)
class Actor:
    """The user an operation runs on behalf of. Passed explicitly everywhere."""

    user_id: str
    company_id: Optional[str] = None
    is_superuser: bool = False
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    def has(self, permission: str) -> bool:
        return self.is_superuser or permission in self.permissions


class Authorizer(Protocol):
    def can_view(self, actor: Actor, component=None) -> bool: ...

    def can_create(self, actor: Actor, kind: str) -> bool: ...

    def can_update(self, actor: Actor, component) -> bool: ...

    def can_delete(self, actor: Actor, component) -> bool: ...

    def can_checkout(self, actor: Actor, component) -> bool: ...


class PermissionAuthorizer:
    def __init__(self, tenants: TenantResolver):
        self.tenants = tenants

    def _allowed(self, actor: Actor, permission: str, component) -> bool:
        if not actor.has(permission):
            return False
        if component is None:
            return True
        return self.tenants.can_access(actor, component.company_id)

    def can_view(self, actor: Actor, component=None) -> bool:
        return self._allowed(actor, PERM_VIEW, component)

    def can_create(self, actor: Actor, kind: str) -> bool:
        # `kind` is the entity kind being created; only components exist here.
        return kind == "component" and actor.has(PERM_CREATE)

    def can_update(self, actor: Actor, component) -> bool:
        return self._allowed(actor, PERM_EDIT, component)

    def can_delete(self, actor: Actor, component) -> bool:
        return self._allowed(actor, PERM_DELETE, component)

    def can_checkout(self, actor: Actor, component) -> bool:
        return self._allowed(actor, PERM_CHECKOUT, component)
