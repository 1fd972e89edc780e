from __future__ import annotations

import logging
import secrets

from visitor_tracker.errors import AdminNotConfigured, Unauthorized, ValidationError
from visitor_tracker.models import NO_REMARK, BlacklistEntry
from visitor_tracker.store import VisitorStore

logger = logging.getLogger(__name__)


async def list_entries(store: VisitorStore) -> list[BlacklistEntry]:
    return await store.list_blacklist()


async def add(store: VisitorStore, ip: str | None, remark: str | None = None) -> bool:
    """Blacklist ``ip``. Returns True if created, False if it was already listed."""
    ip = (ip or "").strip()
    if not ip:
        raise ValidationError("ip is required")
    created = await store.insert_blacklist_entry(ip, (remark or "").strip() or NO_REMARK)
    if created:
        logger.info("Blacklisted %s", ip)
    return created


async def remove(store: VisitorStore, entry_id: int | str) -> None:
    """Delete a blacklist entry by id. Absent or non-numeric ids are not an error."""
    try:
        entry_id = int(entry_id)
    except (TypeError, ValueError):
        logger.debug("Ignoring delete of non-numeric blacklist id %r", entry_id)
        return
    deleted = await store.delete_blacklist_entry(entry_id)
    if deleted:
        logger.info("Removed blacklist entry %d", entry_id)


async def reset(store: VisitorStore, supplied: str | None, configured: str) -> int:
    """Wipe all visit records if ``supplied`` matches the configured admin secret.

    Blacklist entries are kept. Returns the number of visits deleted.
    """
    if not configured:
        raise AdminNotConfigured("admin key not configured: set ADMIN_KEY")
    if not secrets.compare_digest((supplied or "").encode(), configured.encode()):
        logger.warning("Rejected visit reset with a wrong admin key")
        raise Unauthorized("invalid admin key")
    return await store.reset_all_visits()
