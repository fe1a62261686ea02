"""
Anti-forgery Token Routes

- POST /csrf-token          - Issue a token for the session in X-Session-Id
- POST /csrf-token/verify   - Check X-CSRF-Token against the session
"""

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from core.context import AppContext
from core.dependencies import get_context

router = APIRouter(prefix="/csrf-token", tags=["security"])


class TokenResponse(BaseModel):
    csrfToken: str


class VerifyResponse(BaseModel):
    valid: bool


def _session(session_id: str) -> str:
    session_id = session_id.strip()
    if not session_id or len(session_id) > 128:
        raise HTTPException(status_code=400, detail="Invalid session id")
    return session_id


@router.post("", response_model=TokenResponse)
async def issue_token(
    x_session_id: str = Header(...),
    context: AppContext = Depends(get_context),
):
    return TokenResponse(csrfToken=context.tokens.issue(_session(x_session_id)))


@router.post("/verify", response_model=VerifyResponse)
async def verify_token(
    x_session_id: str = Header(...),
    x_csrf_token: str = Header(""),
    context: AppContext = Depends(get_context),
):
    if not context.tokens.validate(_session(x_session_id), x_csrf_token):
        raise HTTPException(status_code=403, detail="Invalid CSRF token")
    return VerifyResponse(valid=True)


@router.delete("")
async def revoke_token(
    x_session_id: str = Header(...),
    context: AppContext = Depends(get_context),
):
    context.tokens.revoke(_session(x_session_id))
    return {"message": "Token revoked"}
