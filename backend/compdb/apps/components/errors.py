"""
Errors raised by the component core.

Each carries the HTTP status the API layer answers with, so the router
does not need its own mapping table.
"""

from __future__ import annotations

from typing import Optional


class ComponentError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def as_dict(self) -> dict:
        return {"detail": self.detail}


class ComponentNotFound(ComponentError):
    status_code = 404

    def __init__(self, component_id=None, detail: Optional[str] = None):
        super().__init__(detail or "Component not found.")
        self.component_id = component_id


class ComponentForbidden(ComponentError):
    status_code = 403

    def __init__(self, action: str):
        super().__init__(f"Not allowed to {action} this component.")
        self.action = action


class ComponentValidationError(ComponentError):
    status_code = 422

    def __init__(
        self,
        field: str,
        message: str,
        *,
        min_allowed: Optional[int] = None,
        remaining: Optional[int] = None,
    ):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message
        self.min_allowed = min_allowed
        self.remaining = remaining

    def as_dict(self) -> dict:
        body = {"detail": self.detail, "field": self.field}
        if self.min_allowed is not None:
            body["min_allowed"] = self.min_allowed
        if self.remaining is not None:
            body["remaining"] = self.remaining
        return body


class ComponentConflict(ComponentError):
    """Concurrent writers kept winning, or the delete policy refused."""

    status_code = 409


class DependencyUnavailable(ComponentError):
    """Database or blob store could not be reached."""

    status_code = 503
