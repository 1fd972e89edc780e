from __future__ import annotations

import logging
from dataclasses import dataclass

from visitor_tracker.models import LOOPBACK_IP, UNKNOWN_DEVICE
from visitor_tracker.region import RegionResolver
from visitor_tracker.store import VisitorStore
from visitor_tracker.timefmt import local_now

logger = logging.getLogger(__name__)

_MAPPED_PREFIX = "::ffff:"
_LOOPBACK_FORMS = {"", "::1", "127.0.0.1", "localhost", "0:0:0:0:0:0:0:1"}


@dataclass(slots=True)
class RecordResult:
    accepted: bool
    blocked: bool
    visitor_ip: str
    region: str | None = None
    visit_time: str | None = None


def extract_client_ip(peer: str | None, forwarded: str | None) -> str:
    """Pick the client address: first X-Forwarded-For entry, else the peer."""
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return peer or ""


def normalize_ip(ip: str | None) -> str:
    """Collapse IPv4-mapped IPv6 to IPv4 and every loopback form to LOOPBACK_IP."""
    ip = (ip or "").strip()
    if ip.lower().startswith(_MAPPED_PREFIX):
        ip = ip[len(_MAPPED_PREFIX):]
    if ip.lower() in _LOOPBACK_FORMS:
        return LOOPBACK_IP
    return ip


async def record_visit(
    store: VisitorStore,
    resolver: RegionResolver,
    peer: str | None,
    forwarded: str | None,
    user_agent: str | None,
) -> RecordResult:
    """Record one visit unless the client ip is blacklisted.

    Region lookup failures degrade to "unknown"; store failures propagate.
    """
    visitor_ip = normalize_ip(extract_client_ip(peer, forwarded))

    if await store.is_blacklisted(visitor_ip):
        logger.info("Blocked visit from blacklisted ip %s", visitor_ip)
        return RecordResult(accepted=False, blocked=True, visitor_ip=visitor_ip)

    region = await resolver.resolve(visitor_ip)
    visit_time, _ = local_now()
    record = await store.insert_visit(
        visitor_ip=visitor_ip,
        region=region,
        visit_time=visit_time,
        user_agent=user_agent or UNKNOWN_DEVICE,
    )
    logger.debug("Recorded visit #%d from %s (%s)", record.id, visitor_ip, region)
    return RecordResult(
        accepted=True,
        blocked=False,
        visitor_ip=visitor_ip,
        region=region,
        visit_time=visit_time,
    )
