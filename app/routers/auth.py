from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from app.core.authorization import parse_role
from app.core.config import get_env
from app.services.auth_service import create_access_token

router = APIRouter(prefix="/auth", tags=["auth"])


class TokenRequest(BaseModel):
    user_id: str
    role: str = "MANAGER"


@router.post("/token")
def issue_token(payload: TokenRequest):
    if get_env() not in {"dev", "local", "test"}:
        raise HTTPException(status_code=404, detail="Not Found")
    try:
        role = parse_role(payload.role)
        token = create_access_token(user_id=str(payload.user_id), role=role.value)
    except Exception as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {
        "access_token": token,
        "token_type": "bearer",
    }
