# backend/compdb/__init__.py
"""
Import ORM models from each app so that:

- Alembic and Base.metadata.create_all() see all tables.
- The package exposes a clear surface.

The actual model classes are kept in compdb/apps/*/models.py.
"""

from .apps.components import models as components_models      # components + allocation ledger

__all__ = [
    "components_models",
]
