from __future__ import annotations

import hmac

from fastapi import HTTPException, Request


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip()
    token_header = request.headers.get("X-Admin-Token", "").strip()
    return token_header or None


async def require_admin_auth(request: Request, expected_token: str) -> dict[str, str]:
    if not expected_token:
        raise HTTPException(status_code=503, detail="ADMIN_AUTH_TOKEN 未配置")

    token = extract_token(request)
    if token and hmac.compare_digest(token, expected_token):
        return {"auth": "token", "user": "admin-token"}

    raise HTTPException(status_code=401, detail="未授权")
