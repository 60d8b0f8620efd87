"""View projection that hides sensitive identity fields on request.

The gate only ever builds new dicts; the models passed in are not touched,
so toggling ``reveal_sensitive`` back and forth needs no re-fetch.
"""

from medtimeline.models.identity import PatientIdentity
from medtimeline.models.record import MedicalRecord

SENSITIVE_FIELDS = frozenset({"address", "personal_phone", "emergency_phone", "email"})


def project(identity: PatientIdentity, reveal_sensitive: bool) -> dict:
    """Serialize an identity, dropping sensitive contact fields unless revealed."""
    if reveal_sensitive:
        return identity.model_dump(mode="json")
    return identity.model_dump(mode="json", exclude=set(SENSITIVE_FIELDS))


def project_record(record: MedicalRecord, reveal_sensitive: bool) -> dict:
    """Serialize a whole medical record with the identity projected."""
    data = record.model_dump(mode="json", exclude={"identity"})
    data["identity"] = project(record.identity, reveal_sensitive)
    data["sensitive_revealed"] = reveal_sensitive
    return data
