# talk2text/routes/auth.py

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from talk2text.services.auth.identity import session_user

router = APIRouter(tags=["auth"])


@router.get("/auth/me")
async def me(request: Request) -> JSONResponse:
    return JSONResponse({"user": session_user(request)})


@router.post("/auth/logout")
async def logout(request: Request) -> JSONResponse:
    if "session" in request.scope:
        request.session.clear()
    return JSONResponse({"ok": True})
