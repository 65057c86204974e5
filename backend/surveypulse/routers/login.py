# surveypulse/routers/login.py
from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

router = APIRouter(prefix="/api", tags=["login"])

COOKIE_NAME = "companyId"


class LoginIn(BaseModel):
    companyId: str


@router.post("/login")
def login(data: LoginIn):
    """
    Dev helper: remember the dashboard's tenant in an HTTP-only cookie.
    Nothing is checked; there is no authentication behind this.
    """
    if not data.companyId:
        raise HTTPException(status_code=400, detail="companyId required")
    resp = JSONResponse({"ok": True, "companyId": data.companyId})
    resp.set_cookie(COOKIE_NAME, data.companyId, httponly=True, samesite="lax")
    return resp
