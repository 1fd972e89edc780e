from __future__ import annotations

import ipaddress
import logging
from typing import Protocol

import httpx

from visitor_tracker.config import GEO_CACHE_SIZE, GEO_TIMEOUT_SECONDS, IP_API_URL, IPAPI_CO_URL
from visitor_tracker.models import LOCAL_REGION, PRIVATE_REGION, UNKNOWN_REGION

logger = logging.getLogger(__name__)


class GeoProvider(Protocol):
    name: str

    async def lookup(self, client: httpx.AsyncClient, ip: str) -> str | None:
        """Return a region label for ``ip``, or None if this provider can't tell."""
        ...


class IpApiProvider:
    """ip-api.com: "{country} {regionName} {city}", empty parts omitted."""

    name = "ip-api.com"

    def __init__(self, url: str = IP_API_URL, timeout: float = GEO_TIMEOUT_SECONDS) -> None:
        self.url = url
        self.timeout = timeout

    async def lookup(self, client: httpx.AsyncClient, ip: str) -> str | None:
        resp = await client.get(self.url.format(ip=ip), timeout=self.timeout)
        if resp.status_code != 200:
            logger.warning("%s returned HTTP %d for %s", self.name, resp.status_code, ip)
            return None
        data = resp.json()
        if not isinstance(data, dict) or data.get("status") != "success":
            return None
        parts = [str(data.get(k) or "").strip() for k in ("country", "regionName", "city")]
        label = " ".join(p for p in parts if p).strip()
        return label or None


class IpapiCoProvider:
    """ipapi.co: "{country_name} - {region}", both fields required."""

    name = "ipapi.co"

    def __init__(self, url: str = IPAPI_CO_URL, timeout: float = GEO_TIMEOUT_SECONDS) -> None:
        self.url = url
        self.timeout = timeout

    async def lookup(self, client: httpx.AsyncClient, ip: str) -> str | None:
        resp = await client.get(self.url.format(ip=ip), timeout=self.timeout)
        if resp.status_code != 200:
            logger.warning("%s returned HTTP %d for %s", self.name, resp.status_code, ip)
            return None
        data = resp.json()
        if not isinstance(data, dict) or data.get("error"):
            return None
        country = str(data.get("country_name") or "").strip()
        region = str(data.get("region") or "").strip()
        if country and region:
            return f"{country} - {region}"
        return None


def default_providers() -> list[GeoProvider]:
    return [IpApiProvider(), IpapiCoProvider()]


def classify_local(ip: str) -> str | None:
    """Return LOCAL_REGION / PRIVATE_REGION for non-routable addresses, else None.

    Strings that are not IP addresses are reported as UNKNOWN_REGION so no
    provider is asked about them.
    """
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return UNKNOWN_REGION
    if addr.version == 4 and addr.is_loopback:
        return LOCAL_REGION
    if addr.is_loopback or addr.is_private or addr.is_link_local:
        return PRIVATE_REGION
    return None


class RegionResolver:
    """Best-effort ip -> region label. resolve() never raises.

    Providers are tried in order; the first non-empty label wins. Only
    successful lookups are cached.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        providers: list[GeoProvider] | None = None,
        cache_size: int = GEO_CACHE_SIZE,
    ) -> None:
        self._client = client
        self.providers = providers if providers is not None else default_providers()
        self._cache_size = cache_size
        self._cache: dict[str, str] = {}

    async def resolve(self, ip: str) -> str:
        local = classify_local(ip)
        if local is not None:
            return local

        cached = self._cache.get(ip)
        if cached is not None:
            return cached

        for provider in self.providers:
            try:
                label = await provider.lookup(self._client, ip)
            except (httpx.HTTPError, ValueError) as exc:
                # ValueError covers malformed JSON bodies
                logger.warning("%s lookup failed for %s: %s", provider.name, ip, exc)
                continue
            except Exception:
                logger.exception("%s lookup crashed for %s", provider.name, ip)
                continue
            if label:
                self._remember(ip, label)
                return label

        logger.info("No provider resolved %s", ip)
        return UNKNOWN_REGION

    def _remember(self, ip: str, label: str) -> None:
        if len(self._cache) >= self._cache_size:
            # Evict the oldest entry (dicts keep insertion order)
            self._cache.pop(next(iter(self._cache)))
        self._cache[ip] = label
