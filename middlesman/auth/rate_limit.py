"""Token bucket rate limiter backed by Redis."""

import hashlib
import re
import time

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Request, Response

from middlesman.auth.bearer import extract_bearer_token
from middlesman.config import settings
from middlesman.redis import get_redis

# Lua script for atomic token bucket check-and-consume
_TOKEN_BUCKET_SCRIPT = """
local key = KEYS[1]
local capacity = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local bucket = redis.call('HMGET', key, 'tokens', 'last_refill')
local tokens = tonumber(bucket[1])
local last_refill = tonumber(bucket[2])

if tokens == nil then
    tokens = capacity
    last_refill = now
end

local elapsed = math.max(0, now - last_refill)
local new_tokens = math.min(capacity, tokens + elapsed * (refill_rate / 60.0))
local ttl = 3600
if refill_rate > 0 then
    ttl = math.ceil(capacity * 60 / refill_rate) + 1
end

if new_tokens >= 1 then
    new_tokens = new_tokens - 1
    redis.call('HSET', key, 'tokens', new_tokens, 'last_refill', now)
    redis.call('EXPIRE', key, ttl)
    return {1, math.floor(new_tokens), 0}
else
    local retry_after = ttl
    if refill_rate > 0 then
        retry_after = math.ceil((1 - new_tokens) * 60 / refill_rate)
    end
    redis.call('HSET', key, 'tokens', new_tokens, 'last_refill', now)
    redis.call('EXPIRE', key, ttl)
    return {0, 0, retry_after}
end
"""

# Money-moving endpoints, matched on whole path segments
_LIFECYCLE_PATH = re.compile(
    r"/transactions/\d+/(?:release|refund|dispute|create-payment|verify-payment"
    r"|milestones/\d+/(?:submit|approve|reject))/?$"
)


def _get_rate_config(method: str, path: str) -> tuple[int, int, str]:
    """Return (capacity, refill_per_min, category) based on endpoint."""
    # Credential endpoints get their own tight limit (per-IP since unauthenticated)
    if method == "POST" and path.rstrip("/") in ("/api/auth/login", "/api/auth/register"):
        return (
            settings.rate_limit_auth_capacity,
            settings.rate_limit_auth_refill_per_min,
            "auth",
        )
    if path.startswith("/api/admin"):
        return (
            settings.rate_limit_admin_capacity,
            settings.rate_limit_admin_refill_per_min,
            "admin",
        )
    if method in ("POST", "PATCH", "PUT", "DELETE"):
        if _LIFECYCLE_PATH.search(path):
            return (
                settings.rate_limit_lifecycle_capacity,
                settings.rate_limit_lifecycle_refill_per_min,
                "lifecycle",
            )
        return (
            settings.rate_limit_write_capacity,
            settings.rate_limit_write_refill_per_min,
            "write",
        )
    return (
        settings.rate_limit_read_capacity,
        settings.rate_limit_read_refill_per_min,
        "read",
    )


def _get_client_ip(request: Request) -> str:
    """Extract client IP, respecting X-Forwarded-For for reverse proxies."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First IP in the chain is the original client
        return forwarded_for.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def _client_identity(request: Request) -> str:
    session_id = request.cookies.get(settings.session_cookie_name)
    if session_id:
        return "session:" + hashlib.sha256(session_id.encode()).hexdigest()[:32]
    token = extract_bearer_token(request)
    if token:
        return "token:" + hashlib.sha256(token.encode()).hexdigest()[:32]
    return f"ip:{_get_client_ip(request)}"


async def check_rate_limit(
    request: Request,
    response: Response,
    redis: aioredis.Redis = Depends(get_redis),
) -> None:
    """Rate limit dependency keyed by session, bearer token or client IP."""
    method = request.method.upper()
    path = request.url.path
    capacity, refill_rate, category = _get_rate_config(method, path)

    bucket_key = f"ratelimit:{_client_identity(request)}:{category}"
    now = time.time()

    result = await redis.eval(
        _TOKEN_BUCKET_SCRIPT, 1, bucket_key, capacity, refill_rate, now
    )

    allowed, remaining, retry_after = int(result[0]), int(result[1]), int(result[2])

    response.headers["X-RateLimit-Limit"] = str(capacity)
    response.headers["X-RateLimit-Remaining"] = str(remaining)

    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(retry_after)},
        )
