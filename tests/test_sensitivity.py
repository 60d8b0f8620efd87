from datetime import date

from medtimeline.models.identity import MedicalHistoryRecord, MedicalProfile, PatientIdentity
from medtimeline.models.record import MedicalRecord
from medtimeline.services.sensitivity import SENSITIVE_FIELDS, project, project_record


def _identity() -> PatientIdentity:
    return PatientIdentity(
        id="p-1",
        first_names="Ana Lucia",
        first_surname="Torres",
        second_surname="Vega",
        national_id="40582934",
        birth_date=date(1987, 4, 12),
        sex="F",
        address="Av. Los Olivos 221",
        personal_phone="+51 987 654 321",
        emergency_phone="+51 912 345 678",
        email="ana@example.com",
    )


class TestProject:
    def test_hidden_by_default(self):
        view = project(_identity(), reveal_sensitive=False)
        assert not SENSITIVE_FIELDS & set(view)
        assert view["full_name"] == "Ana Lucia Torres Vega"
        assert view["national_id"] == "40582934"
        assert view["birth_date"] == "1987-04-12"

    def test_revealed(self):
        view = project(_identity(), reveal_sensitive=True)
        assert view["email"] == "ana@example.com"
        assert view["address"] == "Av. Los Olivos 221"

    def test_toggle_round_trip_leaves_identity_untouched(self):
        identity = _identity()
        before = identity.model_dump()
        first = project(identity, True)
        project(identity, False)
        again = project(identity, True)
        assert first == again
        assert identity.model_dump() == before


class TestProjectRecord:
    def _record(self) -> MedicalRecord:
        return MedicalRecord(
            composite_id="p-1:h-1",
            identity=_identity(),
            profile=MedicalProfile(id="p-1"),
            history=MedicalHistoryRecord(id="h-1", profile_id="p-1", created_at=date(2023, 1, 1)),
        )

    def test_record_identity_projected(self):
        data = project_record(self._record(), reveal_sensitive=False)
        assert data["composite_id"] == "p-1:h-1"
        assert "personal_phone" not in data["identity"]
        assert data["sensitive_revealed"] is False

    def test_record_revealed(self):
        data = project_record(self._record(), reveal_sensitive=True)
        assert data["identity"]["personal_phone"] == "+51 987 654 321"
        assert data["sensitive_revealed"] is True
