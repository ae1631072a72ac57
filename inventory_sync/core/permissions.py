from collections.abc import Callable

from fastapi import Depends, HTTPException, status

from inventory_sync.core.security import OperatorIdentity
from inventory_sync.core.security_current import get_current_operator

READ_ROLES = ("admin", "operator", "viewer")
WRITE_ROLES = ("admin", "operator")


def require_operator_roles(*allowed_roles: str) -> Callable[[OperatorIdentity], OperatorIdentity]:
    normalized_allowed = {role.strip().lower() for role in allowed_roles if role.strip()}
    if not normalized_allowed:
        raise ValueError("At least one allowed role is required")

    def dependency(operator: OperatorIdentity = Depends(get_current_operator)) -> OperatorIdentity:
        if operator.role not in normalized_allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this action",
            )
        return operator

    return dependency
