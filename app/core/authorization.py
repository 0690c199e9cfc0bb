from enum import Enum

from fastapi import Depends, HTTPException, Request

from app.deps.auth import require_auth


class Role(Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    MEMBER = "MEMBER"


ROLE_RANK = {
    Role.MEMBER: 1,
    Role.MANAGER: 2,
    Role.ADMIN: 3,
}


def parse_role(value) -> Role:
    if not value:
        return Role.MANAGER
    return Role(str(value).upper())


def require_role(role: Role):
    def dependency(request: Request, _user_id: str = Depends(require_auth)):
        claims = getattr(request.state, "claims", {}) or {}

        try:
            user_role = parse_role(claims.get("role"))
        except ValueError as exc:
            raise HTTPException(status_code=403, detail="Invalid role claim") from exc

        if ROLE_RANK[user_role] < ROLE_RANK[role]:
            raise HTTPException(status_code=403, detail="Insufficient role")

        request.state.role = user_role.value
        return user_role

    return dependency
