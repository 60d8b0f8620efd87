import logging

from medtimeline.config import CLINICIAN_SCOPE_POLICY, MAX_DEPENDENTS
from medtimeline.database import DatabaseAdapter, get_db
from medtimeline.errors import AccessDenied, SourceUnavailable
from medtimeline.models.access import AccessScope, RequesterContext, Role
from medtimeline.services.patient_store import attended_patient_ids

logger = logging.getLogger(__name__)

CLINICIAN_POLICIES = ("assigned", "unbounded")


class AccessScopeResolver:
    """Compute which patient ids a requester may see.

    - patient: their own profile plus the dependents they manage
      (capped at ``max_dependents``).
    - admin: unbounded.
    - clinician: depends on ``clinician_policy``. ``"assigned"`` limits the
      scope to patients the clinician has attended at least once;
      ``"unbounded"`` grants the same view as an admin.
    """

    def __init__(
        self,
        db: DatabaseAdapter | None = None,
        clinician_policy: str = CLINICIAN_SCOPE_POLICY,
        max_dependents: int = MAX_DEPENDENTS,
    ) -> None:
        if clinician_policy not in CLINICIAN_POLICIES:
            raise ValueError(f"Unknown clinician scope policy {clinician_policy!r}")
        self._db = db
        self.clinician_policy = clinician_policy
        self.max_dependents = max_dependents

    async def resolve(self, role: Role | str, requester: RequesterContext) -> AccessScope:
        role = Role(role)

        if role == Role.ADMIN:
            return AccessScope.unbounded()

        if not requester.requester_id:
            raise AccessDenied(f"A requester id is required for role {role.value}")

        if role == Role.PATIENT:
            dependents = requester.dependent_ids
            if len(dependents) > self.max_dependents:
                logger.warning(
                    "Requester %s listed %d dependents, keeping the first %d",
                    requester.requester_id, len(dependents), self.max_dependents,
                )
                dependents = dependents[: self.max_dependents]
            return AccessScope.of([requester.requester_id, *dependents])

        if self.clinician_policy == "unbounded":
            return AccessScope.unbounded()

        db = self._db or await get_db()
        try:
            patient_ids = await attended_patient_ids(db, requester.requester_id)
        except Exception as exc:
            raise SourceUnavailable(f"Could not resolve clinician assignments: {exc}") from exc
        return AccessScope.of(patient_ids)
