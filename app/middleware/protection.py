"""Middleware that asks the protection client for a decision before any route runs."""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.core.config import Settings
from app.core.cookies import read_token
from app.core.security import TokenError, decode_access_token
from app.services.protection import (
    Decision,
    DenialReason,
    ProtectionClient,
    ProtectionPolicy,
    QuotaTier,
    RateTier,
    RequestFingerprint,
)

logger = logging.getLogger(__name__)


class ProtectionMiddleware(BaseHTTPMiddleware):
    """
    Shield, bot and per-role rate limiting in front of every route.

    Denials answer 429. A failure inside this middleware answers 500 so it is
    never mistaken for a denial; errors from the routes themselves pass through.
    """

    def __init__(
        self,
        app: ASGIApp,
        client: ProtectionClient,
        policy: ProtectionPolicy,
        settings: Settings,
    ) -> None:
        super().__init__(app)
        self.client = client
        self.policy = policy
        self.settings = settings

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        user_agent = request.headers.get("user-agent")
        if self.policy.is_exempt(request.url.path, user_agent):
            return await call_next(request)

        try:
            quota = self.policy.quota_for(self._resolve_tier(request))
            fingerprint = RequestFingerprint.from_request(request, self.policy.trusted_proxy_hops)
            decision = await self.client.protect(fingerprint, quota.rule, burst=self.policy.burst)
            denial = self._denial_response(decision, quota, fingerprint)
        except Exception:
            logger.exception("Protection middleware error on %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "message": "Something went wrong with security middleware",
                },
            )

        if denial is not None:
            return denial
        return await call_next(request)

    def _resolve_tier(self, request: Request) -> RateTier:
        """Tier from the token's role; a missing or unusable token means guest."""
        token = read_token(request, self.settings)
        if not token:
            return RateTier.GUEST
        try:
            claims = decode_access_token(token, self.settings)
        except TokenError as e:
            logger.debug("Rate limiting as guest, token rejected: %s", e.message)
            return RateTier.GUEST
        return RateTier.for_role(claims.role)

    def _denial_response(
        self,
        decision: Decision,
        quota: QuotaTier,
        fingerprint: RequestFingerprint,
    ) -> JSONResponse | None:
        log_extra = {
            "ip": fingerprint.ip,
            "user_agent": fingerprint.user_agent,
            "path": fingerprint.path,
            "method": fingerprint.method,
        }

        if decision.denied_by(DenialReason.BOT):
            if self.policy.is_allowed_tool(fingerprint.user_agent):
                logger.debug("Bot verdict overridden for API client", extra=log_extra)
            else:
                logger.warning("Bot request blocked", extra=log_extra)
                return JSONResponse(
                    status_code=429,
                    content={
                        "error": "Bot blocked",
                        "message": "Automated requests are not allowed.",
                    },
                )

        if decision.denied_by(DenialReason.SHIELD):
            logger.warning("Shield request blocked", extra=log_extra)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Shield blocked",
                    "message": "Shield blocked the request. Please try again later.",
                },
            )

        result = decision.denial_for(DenialReason.RATE_LIMIT)
        if result is not None:
            logger.warning(
                "Rate limit request blocked",
                extra={**log_extra, "rule": result.rule},
            )
            headers = None
            if result.retry_after:
                headers = {"Retry-After": str(result.retry_after)}
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded", "message": quota.message},
                headers=headers,
            )

        return None
