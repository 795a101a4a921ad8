"""
Client for the relay's scheduled-publishing HTTP API.

Signed events can be handed to the relay backend to be published later.
Every request carries a freshly minted NIP-98 ``Authorization`` header from
the [SignerGateway][relaysite.services.signer.SignerGateway]; tokens are
never reused between requests.

Endpoints, relative to the API base URL:

- ``GET    /scheduler/list``         all posts of the authenticated user
- ``POST   /scheduler/schedule``     ``{signed_event, relays, scheduled_for}``
- ``DELETE /scheduler/delete?id=``   remove one post
- ``GET    /health``                 liveness

The base URL is ``scheduler.api_url`` when configured, else derived from the
preferred relay (``wss://relay.example.com`` -> ``https://relay.example.com/api``),
else ``<site_url>/api``.
"""

from __future__ import annotations

import datetime
import json
from typing import Any, Literal, NamedTuple
from urllib.parse import quote

import aiohttp
from pydantic import BaseModel, ConfigDict, Field

from relaysite.core.exceptions import ConfigurationError, SchedulerApiError
from relaysite.core.logger import Logger
from relaysite.core.settings import SiteSettings
from relaysite.models import SignedEvent
from relaysite.utils.http import read_bounded, read_bounded_json
from relaysite.utils.urls import relay_to_http_base

from .signer import SignerGateway


PostStatus = Literal["pending", "published", "failed"]


class ScheduledPost(BaseModel):
    """One scheduled post as reported by the API."""

    model_config = ConfigDict(extra="ignore")

    id: str
    status: str = "pending"
    scheduled_for: datetime.datetime
    relays: list[str] = Field(default_factory=list)
    signed_event: dict[str, Any] | None = None
    error_message: str | None = None


class SchedulerStats(BaseModel):
    pending: int = 0
    published: int = 0
    failed: int = 0


class TimeRemaining(NamedTuple):
    text: str
    is_past: bool
    seconds: int


def _plural(count: int, unit: str) -> str:
    return f"in {count} {unit}{'s' if count > 1 else ''}"


def time_remaining(
    scheduled_for: datetime.datetime,
    now: datetime.datetime | None = None,
) -> TimeRemaining:
    """Human-readable countdown to *scheduled_for* (``"in 3 hours"``, ``"Due now"``).

    Naive datetimes are taken as UTC.
    """
    if scheduled_for.tzinfo is None:
        scheduled_for = scheduled_for.replace(tzinfo=datetime.UTC)
    now = now or datetime.datetime.now(datetime.UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.UTC)

    seconds = int((scheduled_for - now).total_seconds())
    if seconds <= 0:
        return TimeRemaining("Due now", True, 0)

    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if days > 0:
        return TimeRemaining(_plural(days, "day"), False, seconds)
    if hours > 0:
        return TimeRemaining(_plural(hours, "hour"), False, seconds)
    if minutes > 0:
        return TimeRemaining(_plural(minutes, "minute"), False, seconds)
    return TimeRemaining(_plural(seconds, "second"), False, seconds)


class SchedulerClient:
    """NIP-98 authenticated client for the scheduling API.

    Args:
        settings: Provides the API base URL, timeout and response size limit.
        gateway: Mints one authorization token per request.
        logger: Structured logger (defaults to ``Logger("scheduler")``).
    """

    def __init__(
        self,
        settings: SiteSettings,
        gateway: SignerGateway,
        *,
        logger: Logger | None = None,
    ) -> None:
        self._config = settings.scheduler
        self._gateway = gateway
        self._logger = logger or Logger("scheduler")
        self._base_url = self._resolve_base_url(settings)

    @staticmethod
    def _resolve_base_url(settings: SiteSettings) -> str | None:
        if settings.scheduler.api_url:
            return settings.scheduler.api_url.rstrip("/")
        if settings.preferred_relay:
            return relay_to_http_base(settings.preferred_relay)
        if settings.site_url:
            return settings.site_url.rstrip("/") + "/api"
        return None

    @property
    def base_url(self) -> str:
        if self._base_url is None:
            raise ConfigurationError(
                "scheduler API url is unknown: set scheduler.api_url, preferred_relay or site_url"
            )
        return self._base_url

    def _url(self, path: str) -> str:
        return path if path.startswith("http") else f"{self.base_url}{path}"

    async def _request(self, method: str, path: str, body: Any = None) -> Any:
        """Send one authenticated request.

        Returns:
            Parsed JSON, response text, or ``None`` for ``204 No Content``.

        Raises:
            NotAuthenticatedError: If there is no identity to sign with.
            SchedulerApiError: On a non-2xx status.
            aiohttp.ClientError: On transport failures.
        """
        url = self._url(path)
        data = json.dumps(body).encode("utf-8") if body is not None else None
        headers = {
            "Authorization": await self._gateway.authorization_header(url, method, body=data),
            "Content-Type": "application/json",
        }
        timeout = aiohttp.ClientTimeout(total=self._config.timeout)
        limit = self._config.max_response_size

        async with (
            aiohttp.ClientSession(timeout=timeout) as session,
            session.request(method, url, headers=headers, data=data) as response,
        ):
            if response.status >= 400:
                text = (await read_bounded(response, limit)).decode("utf-8", errors="replace")
                self._logger.warning("scheduler_request_failed", url=url, status=response.status)
                raise SchedulerApiError(response.status, text)
            if response.status == 204:
                return None
            if "application/json" in (response.content_type or ""):
                return await read_bounded_json(response, limit)
            return (await read_bounded(response, limit)).decode("utf-8", errors="replace")

    # -- Queries ------------------------------------------------------------

    async def list_posts(self, status: PostStatus | None = None) -> list[ScheduledPost]:
        """All posts of the current identity, soonest first, optionally by status."""
        raw = await self._request("GET", "/scheduler/list") or []
        posts = [ScheduledPost.model_validate(item) for item in raw]
        if status is not None:
            posts = [p for p in posts if p.status == status]
        return sorted(posts, key=lambda p: p.scheduled_for)

    async def stats(self) -> SchedulerStats:
        counts = {"pending": 0, "published": 0, "failed": 0}
        for post in await self.list_posts():
            if post.status in counts:
                counts[post.status] += 1
        return SchedulerStats(**counts)

    async def get_post(self, post_id: str) -> ScheduledPost:
        """Find one post by id.

        Raises:
            KeyError: If no such post exists.
        """
        for post in await self.list_posts():
            if post.id == post_id:
                return post
        raise KeyError(f"scheduled post not found: {post_id}")

    # -- Mutations ----------------------------------------------------------

    async def schedule(
        self,
        event: SignedEvent,
        relays: list[str],
        scheduled_for: datetime.datetime,
    ) -> ScheduledPost:
        """Hand a signed event to the backend for publishing at *scheduled_for*."""
        if scheduled_for.tzinfo is None:
            scheduled_for = scheduled_for.replace(tzinfo=datetime.UTC)
        body = {
            "signed_event": event.to_dict(),
            "relays": relays,
            "scheduled_for": scheduled_for.isoformat(),
        }
        result = await self._request("POST", "/scheduler/schedule", body)
        self._logger.info("post_scheduled", id=event.id, scheduled_for=body["scheduled_for"])
        return ScheduledPost.model_validate(result)

    async def delete(self, post_id: str) -> str:
        await self._request("DELETE", f"/scheduler/delete?id={quote(post_id, safe='')}")
        self._logger.info("post_deleted", id=post_id)
        return post_id

    async def reschedule(
        self,
        post_id: str,
        event: SignedEvent,
        relays: list[str],
        scheduled_for: datetime.datetime,
    ) -> ScheduledPost:
        """Replace a post: delete the old one, then schedule the new one."""
        await self.delete(post_id)
        return await self.schedule(event, relays, scheduled_for)

    async def health(self) -> bool:
        """Probe ``/health``, then the base URL; 401/403 count as alive.

        Never raises: any transport failure means "not alive".
        """
        if self._base_url is None:
            return False
        timeout = aiohttp.ClientTimeout(total=self._config.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(f"{self._base_url}/health") as response:
                    if response.status < 400:
                        return True
                async with session.get(self._base_url) as response:
                    return response.status < 400 or response.status in (401, 403)
        except (aiohttp.ClientError, TimeoutError) as e:
            self._logger.debug("scheduler_unreachable", url=self._base_url, error=str(e))
            return False
