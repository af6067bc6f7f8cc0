# backend/compdb/tenancy.py
"""
Tenant (company) resolution.

Mirrors the classic "full multiple company support" switch:

- Switch OFF: company ids are stored exactly as requested and every
  actor can see every component.
- Switch ON: superusers may act in any company (the requested id is
  honoured); every other actor is pinned to their own company, whatever
  the request says, and only sees components of that company.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .permissions import Actor


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


FULL_MULTIPLE_COMPANIES_SUPPORT = _env_flag("FULL_MULTIPLE_COMPANIES_SUPPORT", "true")


@dataclass(frozen=True)
class TenantScope:
    """Filter to apply to component lookups. `unscoped` means no filter."""

    unscoped: bool
    company_id: Optional[str] = None


UNSCOPED = TenantScope(unscoped=True)


class TenantResolver:
    def __init__(self, full_company_support: Optional[bool] = None):
        if full_company_support is None:
            full_company_support = FULL_MULTIPLE_COMPANIES_SUPPORT
        self.full_company_support = full_company_support

    def resolve_tenant(self, actor: "Actor", requested_company_id: Optional[str]) -> Optional[str]:
        if not self.full_company_support or actor.is_superuser:
            return requested_company_id
        return actor.company_id

    def scope_for(self, actor: "Actor") -> TenantScope:
        if not self.full_company_support or actor.is_superuser:
            return UNSCOPED
        return TenantScope(unscoped=False, company_id=actor.company_id)

    def can_access(self, actor: "Actor", company_id: Optional[str]) -> bool:
        scope = self.scope_for(actor)
        return scope.unscoped or scope.company_id == company_id
