import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from filelock import FileLock

sys.path.append(str(Path(__file__).parent.parent))

from vitaltrack.scheduling.errors import (
    DocumentNotFoundError, StoreTimeoutError, StoreUnavailableError, ValidationError
)
from vitaltrack.scheduling.logic import AppointmentService
from vitaltrack.scheduling.models import AppointmentStatus, PatientRegistrationRequest
from vitaltrack.scheduling.patient_repository import PatientRepository
from vitaltrack.scheduling.remote import call_with_retry
from vitaltrack.scheduling.store import JsonDocumentStore


def write_json(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(payload, f, indent=2)


def seed_data_dir(data_dir: Path) -> None:
    write_json(
        data_dir / "patients.json",
        {
            "patients": [
                {
                    "id": "P100",
                    "name": "Test Patient",
                    "phone": "+1-555-1000",
                    "email": "test.patient@example.com",
                    "primary_physician": "Hardik Sharma",
                },
                {
                    "id": "P200",
                    "name": "Second Patient",
                    "phone": "+1-555-2000",
                    "email": "second.patient@example.com",
                    "primary_physician": "Aditya Gupta – Neurosurgeon",
                },
            ]
        },
    )
    write_json(
        data_dir / "appointments.json",
        {
            "appointments": [
                {
                    "id": "A001",
                    "patient_id": "P100",
                    "schedule": "2025-03-01T09:00:00+00:00",
                    "status": "Scheduled",
                    "reason": "Checkup",
                    "note": None,
                    "primary_physician": "Hardik Sharma",
                    "created_at": "2025-01-01T08:00:00+00:00",
                },
                {
                    "id": "A002",
                    "patient_id": "P100",
                    "schedule": "not a date",
                    "status": "pending",
                    "reason": "Broken record",
                    "primary_physician": "Hardik Sharma",
                    "created_at": "2025-01-02T08:00:00+00:00",
                },
                {
                    "id": "A003",
                    "patient_id": "P200",
                    "schedule": "2025-03-02T09:00:00+00:00",
                    "status": "Canceled",
                    "reason": "Headache",
                    "primary_physician": "Aditya Gupta – Neurosurgeon",
                    "cancellation_reason": "Doctor unavailable",
                    "created_at": "2025-01-03T08:00:00+00:00",
                },
            ]
        },
    )


@pytest.fixture
def store(tmp_path: Path) -> JsonDocumentStore:
    data_dir = tmp_path / "data"
    seed_data_dir(data_dir)
    return JsonDocumentStore(str(data_dir), timeout=1)


def test_list_appointments_newest_first_and_skips_malformed(store):
    appointments = store.list_appointments()

    assert [appt.id for appt in appointments] == ["A003", "A001"]
    assert appointments[0].status == AppointmentStatus.CANCELLED
    assert appointments[1].status == AppointmentStatus.SCHEDULED


def test_update_is_partial_and_written_in_canonical_form(store, tmp_path):
    updated = store.update_appointment("A001", {"note": "Bring x-rays"})

    assert updated.note == "Bring x-rays"
    assert updated.reason == "Checkup"
    assert updated.updated_at is not None

    with open(tmp_path / "data" / "appointments.json") as f:
        raw = json.load(f)
    stored = next(doc for doc in raw["appointments"] if doc["id"] == "A001")
    assert stored["status"] == "scheduled"
    assert stored["note"] == "Bring x-rays"


def test_missing_documents_raise_not_found(store):
    with pytest.raises(DocumentNotFoundError):
        store.get_appointment("A999")
    with pytest.raises(DocumentNotFoundError):
        store.update_appointment("A999", {"note": "x"})
    with pytest.raises(DocumentNotFoundError):
        store.get_patient("P999")


def test_malformed_record_cannot_be_updated(store, tmp_path):
    with pytest.raises(DocumentNotFoundError):
        store.update_appointment("A002", {"note": "x"})

    result = AppointmentService(store).mark_completed("A002")
    assert result.ok is False
    assert result.error == "not_found"

    with open(tmp_path / "data" / "appointments.json") as f:
        raw = json.load(f)
    broken = next(doc for doc in raw["appointments"] if doc["id"] == "A002")
    assert broken["schedule"] == "not a date"
    assert "note" not in broken


def test_update_rejected_by_model_is_unavailable(store):
    with pytest.raises(StoreUnavailableError):
        store.update_appointment("A001", {"status": "archived"})
    assert store.get_appointment("A001").status == AppointmentStatus.SCHEDULED


def test_held_lock_times_out(tmp_path):
    data_dir = tmp_path / "data"
    seed_data_dir(data_dir)
    store = JsonDocumentStore(str(data_dir), timeout=0.1)

    with FileLock(str(data_dir / "appointments.json") + ".lock"):
        with pytest.raises(StoreTimeoutError):
            store.list_appointments()

    assert len(store.list_appointments()) == 2


def test_service_reports_unavailable_after_one_retry(tmp_path):
    data_dir = tmp_path / "data"
    seed_data_dir(data_dir)
    store = JsonDocumentStore(str(data_dir), timeout=0.1)
    calls = []
    real_update = store.update_appointment

    def counting_update(*args, **kwargs):
        calls.append(args)
        return real_update(*args, **kwargs)

    store.update_appointment = counting_update
    service = AppointmentService(store)

    with FileLock(str(data_dir / "appointments.json") + ".lock"):
        result = service.mark_completed("A001")

    assert result.ok is False
    assert result.error == "unavailable"
    assert len(calls) == 2
    assert store.get_appointment("A001").note is None


def test_patients_filtered_by_physician(store):
    patients = store.list_patients(primary_physician="Hardik Sharma")
    assert [p.id for p in patients] == ["P100"]
    assert len(store.list_patients()) == 2


def test_patient_and_appointment_persistence(tmp_path: Path) -> None:
    data_dir = tmp_path / "data"
    seed_data_dir(data_dir)

    repo = PatientRepository(JsonDocumentStore(str(data_dir)))
    new_patient = repo.register_patient(PatientRegistrationRequest(
        name="New Patient",
        phone="+1-555-200-3000",
        email="new.patient@example.com",
        primary_physician="Hardik Sharma",
        allergies="Penicillin",
    ))

    reloaded = JsonDocumentStore(str(data_dir))
    assert any(p.id == new_patient.id for p in reloaded.list_patients())

    appointment = reloaded.create_appointment({
        "patient_id": new_patient.id,
        "schedule": datetime.now(timezone.utc) + timedelta(days=3),
        "reason": "Allergy review",
        "primary_physician": "Hardik Sharma",
    })

    assert reloaded.get_appointment(appointment.id).status == AppointmentStatus.PENDING
    assert reloaded.list_appointments()[0].id == appointment.id


def test_registration_validated_before_write(store):
    repo = PatientRepository(store)
    with pytest.raises(ValidationError) as excinfo:
        repo.register_patient(PatientRegistrationRequest(name="X", phone="123", email="nope"))

    assert "Invalid email format" in excinfo.value.errors
    assert "Phone number must have at least 10 digits" in excinfo.value.errors
    assert len(store.list_patients()) == 2


def test_repository_treats_missing_patient_as_empty(store):
    repo = PatientRepository(store)
    assert repo.get_patient("P999") is None
    assert repo.phone_for("P100") == "+1-555-1000"


def test_retry_once_on_timeout():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise StoreTimeoutError("slow")
        return "ok"

    assert call_with_retry(flaky, retries=1) == "ok"
    assert len(calls) == 2


def test_retry_gives_up_after_second_timeout():
    calls = []

    def always_slow():
        calls.append(1)
        raise StoreTimeoutError("slow")

    with pytest.raises(StoreTimeoutError):
        call_with_retry(always_slow, retries=5)
    assert len(calls) == 2


def test_not_found_is_never_retried():
    calls = []

    def missing():
        calls.append(1)
        raise DocumentNotFoundError("appointments", "A1")

    with pytest.raises(DocumentNotFoundError):
        call_with_retry(missing)
    assert len(calls) == 1
