"""Timeline aggregation - assembles one patient's unified medical record.

Identity and history are mandatory and fail fast. Every event category is
fetched concurrently and independently: a category that errors, times out or
returns nothing contributes zero events plus a diagnostic, never an
exception. Merging happens in a fixed source order after all fetches have
settled, so the output does not depend on which fetch finished first.
"""

import asyncio
import logging
from datetime import time

from medtimeline.config import CATEGORY_TIMEOUT_SECONDS
from medtimeline.database import DatabaseAdapter, get_db
from medtimeline.errors import AccessDenied, RecordNotFound, SourceUnavailable
from medtimeline.models.access import RequesterContext, Role
from medtimeline.models.events import EventFragment, ServiceEvent
from medtimeline.models.identity import MedicalHistoryRecord, MedicalProfile, PatientIdentity
from medtimeline.models.record import (
    CategoryDiagnostic,
    CompositeId,
    DiagnosticKind,
    MedicalRecord,
    SourceFilters,
)
from medtimeline.services.access_scope import AccessScopeResolver
from medtimeline.services.normalizer import normalize_rows
from medtimeline.services.patient_store import fetch_history, fetch_identity, fetch_profile
from medtimeline.services.sources import CategorySource, default_sources

logger = logging.getLogger(__name__)


def merge_fragments(fragments: list[EventFragment]) -> list[ServiceEvent]:
    """Group fragments into one envelope per encounter id.

    When several fragments share an encounter, the last one processed supplies
    the header fields and payloads with a repeated (kind, id) replace earlier
    copies.
    """
    events: dict[str, ServiceEvent] = {}
    for fragment in fragments:
        event = events.get(fragment.encounter_id)
        if event is None:
            events[fragment.encounter_id] = ServiceEvent.from_fragment(fragment)
        else:
            event.absorb(fragment)
    return list(events.values())


def sort_events(events: list[ServiceEvent]) -> list[ServiceEvent]:
    """Newest first; same slot ordered by category precedence, then encounter id."""
    ordered = sorted(events, key=lambda e: (e.category.precedence, e.id))
    ordered.sort(key=lambda e: (e.date, e.start_time or time.min), reverse=True)
    return ordered


class TimelineAggregator:
    def __init__(
        self,
        db: DatabaseAdapter | None = None,
        sources: dict[str, CategorySource] | None = None,
        resolver: AccessScopeResolver | None = None,
        category_timeout: float = CATEGORY_TIMEOUT_SECONDS,
    ) -> None:
        self._db = db
        self.sources = sources if sources is not None else default_sources(db)
        self.resolver = resolver or AccessScopeResolver(db=db)
        self.category_timeout = category_timeout

    async def get_timeline(
        self,
        composite_id: CompositeId | str,
        role: Role | str | None = None,
        requester: RequesterContext | None = None,
        filters: SourceFilters | None = None,
    ) -> MedicalRecord:
        """Assemble the full medical record addressed by ``composite_id``.

        Args:
            composite_id: ``CompositeId`` or its encoded string form
            role: Requester role; when given, the patient must be in scope
            requester: Requester identity used to resolve the scope
            filters: Optional encounter date window applied to every category

        Raises:
            InvalidCompositeId: the id cannot be split
            AccessDenied: the patient is outside the requester's scope
            RecordNotFound: identity or history is missing
            SourceUnavailable: identity or history could not be read
        """
        key = composite_id if isinstance(composite_id, CompositeId) else CompositeId.parse(composite_id)
        db = self._db or await get_db()

        if role is not None:
            scope = await self.resolver.resolve(role, requester or RequesterContext())
            if not scope.allows(key.patient_id):
                raise AccessDenied(f"Patient {key.patient_id} is outside the requester's scope")

        tasks = {
            name: asyncio.create_task(self._fetch_category(source, key.patient_id, filters))
            for name, source in self.sources.items()
        }
        try:
            identity, history = await self._fetch_mandatory(db, key)
            profile = await self._fetch_profile(db, history.profile_id)
            outcomes = await asyncio.gather(*tasks.values())
        finally:
            pending = [task for task in tasks.values() if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        fragments: list[EventFragment] = []
        diagnostics: list[CategoryDiagnostic] = []
        for name, (rows, failure) in zip(tasks, outcomes):
            if failure is not None:
                diagnostics.append(failure)
                continue
            if not rows:
                diagnostics.append(CategoryDiagnostic(
                    source=name,
                    kind=DiagnosticKind.PARTIAL_CATEGORY_FAILURE,
                    reason="empty",
                ))
                continue
            normalized, skipped = normalize_rows(name, rows)
            fragments.extend(normalized)
            if skipped:
                diagnostics.append(CategoryDiagnostic(
                    source=name,
                    kind=DiagnosticKind.VALIDATION_GAP,
                    reason="invalid_rows",
                    detail=f"{skipped} of {len(rows)} rows could not be normalized",
                    skipped_rows=skipped,
                ))

        events = sort_events(merge_fragments(fragments))
        logger.info(
            "Assembled timeline %s: %d events, %d payloads, %d diagnostics",
            key.encode(), len(events), sum(e.payload_count() for e in events), len(diagnostics),
        )
        return MedicalRecord(
            composite_id=key.encode(),
            identity=identity,
            profile=profile,
            history=history,
            events=events,
            diagnostics=diagnostics,
        )

    async def _fetch_mandatory(
        self, db: DatabaseAdapter, key: CompositeId
    ) -> tuple[PatientIdentity, MedicalHistoryRecord]:
        try:
            identity = await fetch_identity(db, key.patient_id)
        except Exception as exc:
            raise SourceUnavailable(f"Could not read patient {key.patient_id}: {exc}") from exc
        if identity is None:
            raise RecordNotFound(f"Patient {key.patient_id} not found")

        try:
            history = await fetch_history(db, key.history_id)
        except Exception as exc:
            raise SourceUnavailable(f"Could not read history {key.history_id}: {exc}") from exc
        if history is None:
            raise RecordNotFound(f"History {key.history_id} not found")
        if history.profile_id != key.patient_id:
            raise RecordNotFound(
                f"History {key.history_id} does not belong to patient {key.patient_id}"
            )
        return identity, history

    async def _fetch_profile(self, db: DatabaseAdapter, profile_id: str) -> MedicalProfile:
        try:
            profile = await fetch_profile(db, profile_id)
        except Exception as exc:
            logger.warning("Profile lookup failed for %s, using empty profile: %s", profile_id, exc)
            return MedicalProfile(id=profile_id)
        if profile is None:
            logger.info("No medical profile for %s, using empty profile", profile_id)
            return MedicalProfile(id=profile_id)
        return profile

    async def _fetch_category(
        self,
        source: CategorySource,
        patient_id: str,
        filters: SourceFilters | None,
    ) -> tuple[list[dict], CategoryDiagnostic | None]:
        try:
            rows = await asyncio.wait_for(
                source.fetch(patient_id, filters), timeout=self.category_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Category %s timed out after %.1fs for patient %s",
                source.name, self.category_timeout, patient_id,
            )
            return [], CategoryDiagnostic(
                source=source.name,
                kind=DiagnosticKind.PARTIAL_CATEGORY_FAILURE,
                reason="timeout",
                detail=f"no response within {self.category_timeout:.1f}s",
            )
        except Exception as exc:
            logger.warning("Category %s failed for patient %s: %s", source.name, patient_id, exc)
            return [], CategoryDiagnostic(
                source=source.name,
                kind=DiagnosticKind.PARTIAL_CATEGORY_FAILURE,
                reason="error",
                detail=str(exc),
            )
        return list(rows), None


async def get_timeline(
    composite_id: CompositeId | str,
    role: Role | str | None = None,
    requester: RequesterContext | None = None,
    filters: SourceFilters | None = None,
) -> MedicalRecord:
    """Assemble a medical record using the shared database connection."""
    db = await get_db()
    return await TimelineAggregator(db=db).get_timeline(
        composite_id, role=role, requester=requester, filters=filters
    )
