"""Role-scoped summary rows for medical-record list views."""

import logging

from medtimeline.config import ADMIN_PAGE_CAP
from medtimeline.database import DatabaseAdapter, get_db
from medtimeline.errors import SourceUnavailable
from medtimeline.models.access import RequesterContext, Role
from medtimeline.models.record import CompositeId, IndexEntry
from medtimeline.services.access_scope import AccessScopeResolver
from medtimeline.services.patient_store import (
    fetch_history_summary,
    list_history_summaries,
    parse_status,
)

logger = logging.getLogger(__name__)


def _to_entry(row: dict) -> IndexEntry:
    names = [row.get("first_names"), row.get("first_surname"), row.get("second_surname")]
    return IndexEntry(
        composite_id=CompositeId(patient_id=row["patient_id"], history_id=row["history_id"]).encode(),
        patient_display_name=" ".join(n.strip() for n in names if n and n.strip()),
        last_update_date=row.get("last_service_date") or row["created_at"],
        history_status=parse_status(row.get("status_label")),
    )


class RecordIndexBuilder:
    def __init__(
        self,
        db: DatabaseAdapter | None = None,
        resolver: AccessScopeResolver | None = None,
        page_cap: int = ADMIN_PAGE_CAP,
    ) -> None:
        self._db = db
        self.resolver = resolver or AccessScopeResolver(db=db)
        self.page_cap = page_cap

    async def list_index(
        self,
        role: Role | str,
        requester: RequesterContext,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[IndexEntry]:
        """List the histories visible to a requester, in store order.

        Unbounded scopes page straight through the history table. Bounded
        scopes do one lookup per patient id; ids without a history are
        skipped, and a failed lookup is logged and skipped so one bad id
        never hides the rest. Only when every lookup fails is the store
        reported as unavailable.
        """
        if limit is not None and limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        if offset < 0:
            raise ValueError(f"offset must not be negative, got {offset}")

        db = self._db or await get_db()
        scope = await self.resolver.resolve(role, requester)
        cap = min(limit, self.page_cap) if limit is not None else self.page_cap

        if scope.is_unbounded:
            try:
                rows = await list_history_summaries(db, cap, offset)
            except Exception as exc:
                raise SourceUnavailable(f"Could not list medical histories: {exc}") from exc
            return self._entries(rows)

        patient_ids = scope.patient_ids[offset: offset + cap]
        rows = []
        failures = 0
        for patient_id in patient_ids:
            try:
                row = await fetch_history_summary(db, patient_id)
            except Exception as exc:
                failures += 1
                logger.warning("History lookup failed for profile %s: %s", patient_id, exc)
                continue
            if row is None:
                logger.debug("Profile %s has no medical history", patient_id)
                continue
            rows.append(row)

        if patient_ids and failures == len(patient_ids):
            raise SourceUnavailable("Every history lookup failed; the store looks unreachable")
        return self._entries(rows)

    @staticmethod
    def _entries(rows: list[dict]) -> list[IndexEntry]:
        entries = []
        for row in rows:
            try:
                entries.append(_to_entry(row))
            except ValueError as exc:
                logger.warning("Skipping malformed history %s: %s", row.get("history_id"), exc)
        return entries


async def list_index(
    role: Role | str,
    requester: RequesterContext,
    limit: int | None = None,
    offset: int = 0,
) -> list[IndexEntry]:
    """List visible histories using the shared database connection."""
    db = await get_db()
    return await RecordIndexBuilder(db=db).list_index(role, requester, limit=limit, offset=offset)
