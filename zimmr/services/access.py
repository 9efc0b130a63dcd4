"""
Ownership checks and partial-update handling shared by the craftsman-scoped
services.
"""

from typing import Any, Dict, Iterable, Optional

from pydantic import BaseModel

from zimmr.exceptions import PermissionDeniedError, ValidationError
from zimmr.security import TokenUser


def ensure_owner(
    owner_craftsman_id: Optional[int],
    user: TokenUser,
    resource: str,
    resource_id: int,
) -> None:
    """Admins pass; everyone else must be the owning craftsman."""
    if user.is_admin:
        return
    if owner_craftsman_id is None or owner_craftsman_id != user.craftsman_id:
        raise PermissionDeniedError(
            f"You do not have access to this {resource}",
            context={"resource": resource, "resource_id": str(resource_id)},
        )


def partial_changes(data: BaseModel, not_null: Iterable[str] = ()) -> Dict[str, Any]:
    """
    The fields a PUT body actually sent.

    An explicit null clears optional columns, but is a 400 for the fields in
    `not_null` (the NOT NULL columns the body may touch).
    """
    changes = data.model_dump(exclude_unset=True)
    for field in not_null:
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be null", field=field)
    if not changes:
        raise ValidationError("No fields to update")
    return changes
