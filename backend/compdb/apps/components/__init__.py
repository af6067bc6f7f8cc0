"""
Components module.

Quantity-bearing inventory items (RAM sticks, cables, ...) that can be
partially checked out to other assets, and the guard that keeps the
total quantity from dropping below what is checked out.
"""

from . import models  # noqa: F401
