"""Bearer token check for the machine-to-machine marketplace API."""

import hmac

from fastapi import HTTPException, Request

from middlesman.config import settings


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_bearer_token(request: Request) -> str:
    """Accept any well-formed bearer token unless an allow-list is configured."""
    token = extract_bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing or invalid OAuth token")
    if settings.marketplace_api_tokens and not any(
        hmac.compare_digest(token, allowed) for allowed in settings.marketplace_api_tokens
    ):
        raise HTTPException(status_code=401, detail="Missing or invalid OAuth token")
    return token
