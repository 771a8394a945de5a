# talk2text/services/auth/identity.py

from __future__ import annotations

from typing import Optional

from fastapi import Request

from talk2text.core import settings


class IdentityMismatch(Exception):
    """The signed-in user and the claimed user_id disagree."""


def session_user(request: Request) -> Optional[dict]:
    if "session" not in request.scope:
        return None
    u = request.session.get("user")
    return u if isinstance(u, dict) else None


def resolve_owner(
    request: Request,
    claimed: Optional[str] = None,
    *,
    trust_claimed: Optional[bool] = None,
) -> Optional[str]:
    """
    Who is calling, asked once per request.

    A session user (cookie issued by the identity provider) always wins.
    Without one, the client-supplied user_id is used when trust_claimed is on.
    Returns None when nobody can be resolved.
    """
    claimed = (claimed or "").strip()
    trust = settings.TRUST_CLIENT_USER_ID if trust_claimed is None else trust_claimed

    u = session_user(request)
    if u:
        uid = str(u.get("id") or "").strip()
        if uid:
            if claimed and claimed != uid:
                raise IdentityMismatch(f"session user {uid} != claimed {claimed}")
            return uid

    if trust and claimed:
        return claimed
    return None
