from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict

from localfy.routers.dependencies import get_auth
from localfy.services.auth import AuthSession

router = APIRouter(prefix="/session", tags=["Session"])


class SignInRequest(BaseModel):
    user_id: str

    model_config = ConfigDict(extra="forbid")


@router.put("")
async def sign_in(payload: SignInRequest, auth: AuthSession = Depends(get_auth)) -> dict:
    try:
        auth.sign_in(payload.user_id)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"user_id": auth.current_user_id}


@router.delete("")
async def sign_out(auth: AuthSession = Depends(get_auth)) -> dict:
    auth.sign_out()
    return {"user_id": None}
