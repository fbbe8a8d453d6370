"""
Request protection decisions: shield, bot detection and sliding-window rate limits.

ProtectionClient is the seam the middleware talks to. LocalProtectionService is
the single-node implementation: every rule is evaluated independently and the
verdicts come back together in one Decision.
"""

import enum
import logging
import math
import re
import threading
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Protocol
from urllib.parse import unquote

from starlette.requests import Request

from app.models.user import UserRole

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

SHIELD_RULE_NAME = "shield"
BOT_RULE_NAME = "detect-bot"


class RuleMode(str, enum.Enum):
    """LIVE rules can deny; DRY_RUN rules are evaluated and logged only."""

    LIVE = "LIVE"
    DRY_RUN = "DRY_RUN"


class DenialReason(str, enum.Enum):
    SHIELD = "shield"
    BOT = "bot"
    RATE_LIMIT = "rate_limit"


class BotCategory(str, enum.Enum):
    SEARCH_ENGINE = "SEARCH_ENGINE"
    PREVIEW = "PREVIEW"
    AUTOMATED = "AUTOMATED"


class RateTier(enum.Enum):
    """Quota class of a caller, derived from the role in its token."""

    ADMIN = "admin"
    USER = "user"
    GUEST = "guest"

    @classmethod
    def for_role(cls, role: UserRole | None) -> "RateTier":
        if role is UserRole.ADMIN:
            return cls.ADMIN
        if role is UserRole.USER:
            return cls.USER
        return cls.GUEST


@dataclass(frozen=True)
class SlidingWindowRule:
    """At most max_requests per client within any trailing interval_seconds."""

    name: str
    max_requests: int
    interval_seconds: int
    mode: RuleMode = RuleMode.LIVE


@dataclass(frozen=True)
class QuotaTier:
    tier: RateTier
    rule: SlidingWindowRule
    message: str


@dataclass(frozen=True)
class RequestFingerprint:
    """The parts of a request the protection rules look at."""

    ip: str
    method: str
    path: str
    query: str
    user_agent: str

    @classmethod
    def from_request(cls, request: Request, trusted_proxy_hops: int = 0) -> "RequestFingerprint":
        """
        Client address is the socket peer unless trusted_proxy_hops proxies sit in front.

        Each trusted proxy appends the address it received the request from to
        X-Forwarded-For, so the client is the entry just before the trusted hops.
        Anything further left was written by the client and is ignored.
        """
        ip = request.client.host if request.client else "unknown"
        if trusted_proxy_hops:
            forwarded = [
                part.strip()
                for part in request.headers.get("x-forwarded-for", "").split(",")
                if part.strip()
            ]
            chain = [*forwarded, ip]
            ip = chain[max(0, len(chain) - 1 - trusted_proxy_hops)]
        return cls(
            ip=ip,
            method=request.method,
            path=request.url.path,
            query=request.url.query,
            user_agent=request.headers.get("user-agent", ""),
        )


@dataclass(frozen=True)
class RuleResult:
    rule: str
    reason: DenialReason
    mode: RuleMode
    denied: bool
    detail: str = ""
    retry_after: int | None = None

    @property
    def enforced(self) -> bool:
        """True when this result actually blocks the request."""
        return self.denied and self.mode is RuleMode.LIVE


@dataclass(frozen=True)
class Decision:
    results: tuple[RuleResult, ...] = ()

    def is_denied(self) -> bool:
        return any(r.enforced for r in self.results)

    def denied_by(self, reason: DenialReason) -> bool:
        return any(r.enforced and r.reason is reason for r in self.results)

    def result_for(self, reason: DenialReason) -> RuleResult | None:
        return next((r for r in self.results if r.reason is reason), None)

    def denial_for(self, reason: DenialReason) -> RuleResult | None:
        """First result for reason that actually blocks the request."""
        return next((r for r in self.results if r.enforced and r.reason is reason), None)


class ProtectionClient(Protocol):
    """Anything that can turn a request plus its rate-limit rules into a Decision."""

    async def protect(
        self,
        request: RequestFingerprint,
        rate_limit: SlidingWindowRule,
        burst: SlidingWindowRule | None = None,
    ) -> Decision: ...


# Order matters: specific crawlers before the generic bot/crawler/spider fallbacks.
BOT_SIGNATURES: tuple[tuple[re.Pattern[str], BotCategory], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), category)
    for pattern, category in (
        (r"googlebot|bingbot|duckduckbot|baiduspider|yandexbot|applebot|slurp", BotCategory.SEARCH_ENGINE),
        (
            r"slackbot|facebookexternalhit|twitterbot|discordbot|linkedinbot|telegrambot|whatsapp",
            BotCategory.PREVIEW,
        ),
        (
            r"curl/|wget/|python-requests|python-urllib|python-httpx|aiohttp|go-http-client"
            r"|okhttp|java/|libwww-perl|scrapy|headlesschrome|phantomjs|selenium|puppeteer"
            r"|axios/|node-fetch|postmanruntime|insomnia|httpie",
            BotCategory.AUTOMATED,
        ),
        (r"bot\b|crawler|spider|scraper", BotCategory.AUTOMATED),
    )
)

SHIELD_SIGNATURES: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (name, re.compile(pattern, re.IGNORECASE))
    for name, pattern in (
        ("path-traversal", r"\.\./|\.\.\\"),
        ("sql-injection", r"\bunion\b.+\bselect\b|'\s*or\s+'?\d+'?\s*=\s*'?\d+|;\s*drop\s+table|'\s*--"),
        ("cross-site-scripting", r"<\s*script|javascript:|onerror\s*="),
        ("null-byte", r"\x00"),
        ("sensitive-file", r"/etc/passwd|/\.env\b|/\.git/"),
    )
)


def classify_user_agent(user_agent: str) -> BotCategory | None:
    """Return the bot category for a user agent, or None for a regular client."""
    for pattern, category in BOT_SIGNATURES:
        if pattern.search(user_agent):
            return category
    return None


def detect_attack(path: str, query: str) -> str | None:
    """Return the name of the first attack signature found in path or query, if any."""
    target = unquote(f"{path}?{query}" if query else path)
    for name, pattern in SHIELD_SIGNATURES:
        if pattern.search(target):
            return name
    return None


@dataclass(frozen=True)
class ProtectionConfig:
    """Client-side configuration, fixed at startup."""

    mode: RuleMode = RuleMode.LIVE
    allowed_bot_categories: frozenset[BotCategory] = frozenset(
        {BotCategory.SEARCH_ENGINE, BotCategory.PREVIEW}
    )

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ProtectionConfig":
        return cls(mode=RuleMode(settings.protection_mode))


class SlidingWindowLog:
    """
    Exact sliding window: keeps the timestamps of admitted hits per (rule, client).

    Every sweep_interval seconds the log drops clients whose newest hit has left
    its rule's window, so the number of tracked keys follows recent traffic only.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60.0,
    ) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._hits: dict[tuple[str, str], deque[float]] = {}
        self._intervals: dict[str, int] = {}
        self._lock = threading.Lock()
        self._next_sweep = clock() + sweep_interval

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    def hit(self, rule: SlidingWindowRule, key: str) -> tuple[bool, int | None]:
        """Record a hit if under quota. Returns (allowed, seconds until a slot frees up when denied)."""
        with self._lock:
            now = self._clock()
            self._intervals[rule.name] = rule.interval_seconds
            if now >= self._next_sweep:
                self._sweep(now)
            window_start = now - rule.interval_seconds
            hits = self._hits.setdefault((rule.name, key), deque())
            while hits and hits[0] <= window_start:
                hits.popleft()
            if len(hits) >= rule.max_requests:
                retry_after = max(1, math.ceil(hits[0] + rule.interval_seconds - now))
                return False, retry_after
            hits.append(now)
            return True, None

    def _sweep(self, now: float) -> None:
        # Caller holds the lock.
        stale = [
            (name, key)
            for (name, key), hits in self._hits.items()
            if not hits or hits[-1] <= now - self._intervals.get(name, 0)
        ]
        for entry in stale:
            del self._hits[entry]
        self._next_sweep = now + self._sweep_interval
        if stale:
            logger.debug("Sliding window sweep dropped %d idle clients", len(stale))

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


class LocalProtectionService:
    """In-process ProtectionClient for a single node."""

    def __init__(
        self,
        config: ProtectionConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or ProtectionConfig()
        self._window = SlidingWindowLog(clock)

    async def protect(
        self,
        request: RequestFingerprint,
        rate_limit: SlidingWindowRule,
        burst: SlidingWindowRule | None = None,
    ) -> Decision:
        results = (
            self._shield(request),
            self._detect_bot(request),
            self._rate_limit(request, rate_limit),
        )
        if burst is not None:
            results += (self._rate_limit(request, burst),)
        for result in results:
            if result.denied and result.mode is RuleMode.DRY_RUN:
                logger.info(
                    "DRY_RUN rule %s would deny %s %s: %s",
                    result.rule,
                    request.method,
                    request.path,
                    result.detail,
                )
        return Decision(results=results)

    def _shield(self, request: RequestFingerprint) -> RuleResult:
        attack = detect_attack(request.path, request.query)
        return RuleResult(
            rule=SHIELD_RULE_NAME,
            reason=DenialReason.SHIELD,
            mode=self.config.mode,
            denied=attack is not None,
            detail=attack or "",
        )

    def _detect_bot(self, request: RequestFingerprint) -> RuleResult:
        category = classify_user_agent(request.user_agent)
        denied = category is not None and category not in self.config.allowed_bot_categories
        return RuleResult(
            rule=BOT_RULE_NAME,
            reason=DenialReason.BOT,
            mode=self.config.mode,
            denied=denied,
            detail=category.value if category else "",
        )

    def _rate_limit(self, request: RequestFingerprint, rule: SlidingWindowRule) -> RuleResult:
        allowed, retry_after = self._window.hit(rule, request.ip)
        return RuleResult(
            rule=rule.name,
            reason=DenialReason.RATE_LIMIT,
            mode=rule.mode,
            denied=not allowed,
            detail=f"{rule.max_requests}/{rule.interval_seconds}s",
            retry_after=retry_after,
        )


@dataclass(frozen=True)
class ProtectionPolicy:
    """Middleware-side configuration, fixed at startup: quotas, proxy trust and exemptions."""

    quotas: Mapping[RateTier, QuotaTier]
    health_path: str = "/health"
    allowed_tools: tuple[str, ...] = field(default_factory=tuple)
    burst: SlidingWindowRule | None = None
    trusted_proxy_hops: int = 0

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ProtectionPolicy":
        window = settings.RATE_LIMIT_WINDOW_SECONDS
        quotas = {
            RateTier.ADMIN: QuotaTier(
                RateTier.ADMIN,
                SlidingWindowRule("admin-rate-limit", settings.RATE_LIMIT_ADMIN_MAX, window),
                "Admin request limit exceeded. Slow down",
            ),
            RateTier.USER: QuotaTier(
                RateTier.USER,
                SlidingWindowRule("user-rate-limit", settings.RATE_LIMIT_USER_MAX, window),
                "User request limit exceeded. Slow down",
            ),
            RateTier.GUEST: QuotaTier(
                RateTier.GUEST,
                SlidingWindowRule("guest-rate-limit", settings.RATE_LIMIT_GUEST_MAX, window),
                "Guest request limit exceeded. Slow down",
            ),
        }
        burst = None
        if settings.BURST_LIMIT_MAX:
            burst = SlidingWindowRule(
                "burst-limit", settings.BURST_LIMIT_MAX, settings.BURST_WINDOW_SECONDS
            )
        return cls(
            quotas=MappingProxyType(quotas),
            health_path=settings.HEALTH_CHECK_PATH,
            allowed_tools=tuple(settings.BOT_ALLOWED_TOOLS),
            burst=burst,
            trusted_proxy_hops=settings.TRUSTED_PROXY_HOPS,
        )

    def quota_for(self, tier: RateTier) -> QuotaTier:
        return self.quotas[tier]

    def is_exempt(self, path: str, user_agent: str | None) -> bool:
        """Health checks and requests without a user agent are treated as internal traffic."""
        return path == self.health_path or not user_agent

    def is_allowed_tool(self, user_agent: str) -> bool:
        ua = user_agent.lower()
        return any(tool in ua for tool in self.allowed_tools)
