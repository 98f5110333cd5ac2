"""
RuneMetrics / hiscores client.

Three categories of upstream call:

  Profile feed (RuneMetrics)::

      GET {profile_url}?user={username}&activities={n}
        → {"name": "Zezima", "activities": [{"text": ..., "date": ...}], ...}
        → {"error": "NO_PROFILE", "loggedIn": "false"}  (still HTTP 200)

  Tier classification probes (hiscore tables)::

      GET {hiscore_*_url}?player={username}
        → 200 with CSV body if the player is on that table, 404 otherwise

  Reference data (pass-through, no transformation)::

      GET {price_url}?id={item_id}
      GET {item_detail_url}?item={item_id}

No retries happen here. Every request carries its own bounded timeout.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, ClassVar, Optional

import httpx

from drop_tracker.config import UpstreamConfig
from drop_tracker.exceptions import (
    InvalidProfile,
    ProfileNotFound,
    TransportError,
    UpstreamRejected,
)
from drop_tracker.models.player import TierClassification
from drop_tracker.models.profile import ProfilePayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PassThroughResponse:
    """Status and decoded body of a proxied upstream read."""

    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class RuneMetricsClient:
    """HTTP client for player profiles, tier probes, and reference data.

    Usage::

        with RuneMetricsClient(config.upstream) as client:
            profile = client.fetch_profile("zezima")
            tier = client.classify_tier("zezima")

    Args:
        config: Upstream URLs and timeouts.
        http: Optional pre-built ``httpx.Client`` (tests pass one with a
            ``MockTransport``). When omitted the client owns and closes one.
    """

    NOT_FOUND_ERRORS: ClassVar[frozenset[str]] = frozenset({"NO_PROFILE"})

    def __init__(
        self,
        config: UpstreamConfig,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.config = config
        self._owns_http = http is None
        self.http = http or httpx.Client(
            headers={"User-Agent": config.user_agent},
            follow_redirects=True,
        )

    def close(self) -> None:
        if self._owns_http:
            self.http.close()

    def __enter__(self) -> "RuneMetricsClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Profile feed ──────────────────────────────────────────────────────────

    def fetch_profile(self, username: str) -> ProfilePayload:
        """Fetch and validate a player's RuneMetrics profile.

        Raises:
            TransportError: Connection failure or timeout.
            ProfileNotFound: HTTP 404, or an ``error`` of ``NO_PROFILE``.
            UpstreamRejected: Any other non-2xx status.
            InvalidProfile: 2xx body that is not JSON, carries another
                ``error``, or has no name.
        """
        resp = self._get(
            self.config.profile_url,
            params={"user": username, "activities": self.config.activities},
            timeout=self.config.profile_timeout_s,
        )
        if resp.status_code == 404:
            raise ProfileNotFound(username, reason=f"HTTP 404: {resp.text[:200]}")
        if not resp.is_success:
            raise UpstreamRejected("RuneMetrics", resp.status_code, resp.text)

        try:
            data = resp.json()
        except ValueError as exc:
            raise InvalidProfile(f"RuneMetrics returned non-JSON body: {exc}") from exc

        if isinstance(data, dict) and data.get("error") in self.NOT_FOUND_ERRORS:
            raise ProfileNotFound(username, reason=data["error"])

        return ProfilePayload.from_response(data)

    # ── Tier classification ───────────────────────────────────────────────────

    def classify_tier(self, username: str) -> TierClassification:
        """Probe the restricted hiscore tables in priority order.

        Hardcore is checked first because hardcore players also appear on the
        regular ironman table. The first affirmative probe wins; a failed or
        negative probe moves on to the next. Never raises.
        """
        probes = (
            (self.config.hiscore_hardcore_url, TierClassification.HARDCORE_IRONMAN),
            (self.config.hiscore_ironman_url, TierClassification.IRONMAN),
            (self.config.hiscore_group_url, TierClassification.GROUP_IRONMAN),
        )
        for url, tier in probes:
            try:
                resp = self._get(
                    url,
                    params={"player": username},
                    timeout=self.config.probe_timeout_s,
                )
            except TransportError as exc:
                logger.debug("Tier probe failed for %s: %s", username, exc)
                continue
            if resp.is_success:
                return tier
        return TierClassification.STANDARD

    # ── Reference data (pass-through) ─────────────────────────────────────────

    def fetch_raw_profile(self, username: str) -> PassThroughResponse:
        """Profile response exactly as RuneMetrics returned it."""
        return self._pass_through(
            self.config.profile_url,
            {"user": username, "activities": self.config.activities},
        )

    def fetch_latest_price(self, item_id: Optional[int] = None) -> PassThroughResponse:
        """Latest price entry; defaults to the chronote item."""
        item = item_id if item_id is not None else self.config.chronote_item_id
        return self._pass_through(self.config.price_url, {"id": item})

    def fetch_item_detail(self, item_id: int) -> PassThroughResponse:
        """Item catalogue detail record."""
        return self._pass_through(self.config.item_detail_url, {"item": item_id})

    # ── Internals ─────────────────────────────────────────────────────────────

    def _pass_through(self, url: str, params: dict[str, Any]) -> PassThroughResponse:
        resp = self._get(url, params=params, timeout=self.config.reference_timeout_s)
        try:
            body = resp.json()
        except ValueError:
            body = {"error": resp.text[:200]}
        return PassThroughResponse(status_code=resp.status_code, body=body)

    def _get(
        self,
        url: str,
        params: dict[str, Any],
        timeout: float,
    ) -> httpx.Response:
        """GET ``url``, translating request failures into ``TransportError``.

        Covers connection errors and timeouts as well as redirect loops and
        undecodable bodies (``httpx.RequestError`` and subclasses).
        """
        try:
            return self.http.get(url, params=params, timeout=timeout)
        except httpx.RequestError as exc:
            raise TransportError(url, str(exc) or type(exc).__name__) from exc
