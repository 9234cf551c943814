import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

from filelock import FileLock, Timeout
from pydantic import ValidationError as ModelValidationError

from .errors import DocumentNotFoundError, StoreTimeoutError, StoreUnavailableError
from .models import Appointment, Patient, utcnow

logger = logging.getLogger(__name__)

APPOINTMENTS = "appointments"
PATIENTS = "patients"


class AppointmentStore(ABC):
    """Document store holding appointment and patient records."""

    @abstractmethod
    def list_appointments(self) -> List[Appointment]:
        """All appointments, most recently created first."""

    @abstractmethod
    def get_appointment(self, appointment_id: str) -> Appointment:
        """Raise DocumentNotFoundError when the id is unknown."""

    @abstractmethod
    def create_appointment(self, data: Dict[str, Any]) -> Appointment:
        ...

    @abstractmethod
    def update_appointment(self, appointment_id: str, patch: Dict[str, Any]) -> Appointment:
        """Apply a partial-field patch and return the stored record."""

    @abstractmethod
    def list_patients(self, primary_physician: Optional[str] = None) -> List[Patient]:
        ...

    @abstractmethod
    def get_patient(self, patient_id: str) -> Patient:
        ...

    @abstractmethod
    def create_patient(self, data: Dict[str, Any]) -> Patient:
        ...


def _generate_id() -> str:
    return uuid.uuid4().hex


class JsonDocumentStore(AppointmentStore):
    """File-backed store: one JSON document list per collection."""

    def __init__(self, data_dir: str = "data", timeout: float = 10.0):
        self.data_dir = Path(data_dir)
        self.timeout = timeout

    def _path(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    def _lock(self, collection: str) -> FileLock:
        return FileLock(str(self._path(collection)) + ".lock", timeout=self.timeout)

    def _read(self, collection: str) -> List[Dict[str, Any]]:
        path = self._path(collection)
        if not path.exists():
            return []
        try:
            with open(path, 'r', encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreUnavailableError(f"Could not read {collection}: {e}") from e
        documents = data.get(collection, []) if isinstance(data, dict) else []
        return [doc for doc in documents if isinstance(doc, dict)]

    def _write(self, collection: str, documents: List[Dict[str, Any]]) -> None:
        path = self._path(collection)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            # Write to temporary file first, then replace to avoid corruption
            temp_file = path.with_suffix('.tmp')
            with open(temp_file, 'w', encoding="utf-8") as f:
                json.dump({collection: documents}, f, indent=2, default=str)
            os.replace(temp_file, path)
        except OSError as e:
            raise StoreUnavailableError(f"Could not write {collection}: {e}") from e

    def _load_collection(self, collection: str) -> List[Dict[str, Any]]:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        try:
            with self._lock(collection):
                return self._read(collection)
        except Timeout as e:
            raise StoreTimeoutError(f"Timed out waiting for {collection}") from e

    def _modify_collection(self, collection: str, mutate) -> Dict[str, Any]:
        """Run ``mutate(documents)`` under the collection lock and persist the result."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        try:
            with self._lock(collection):
                documents = self._read(collection)
                document = mutate(documents)
                self._write(collection, documents)
                return document
        except Timeout as e:
            raise StoreTimeoutError(f"Timed out waiting for {collection}") from e

    @staticmethod
    def _parse_appointment(document: Dict[str, Any]) -> Optional[Appointment]:
        try:
            return Appointment(**document)
        except ModelValidationError as e:
            logger.warning("Skipping malformed appointment %s: %s", document.get("id"), e)
            return None

    def list_appointments(self) -> List[Appointment]:
        appointments = []
        for document in self._load_collection(APPOINTMENTS):
            appointment = self._parse_appointment(document)
            if appointment is not None:
                appointments.append(appointment)
        appointments.sort(key=lambda appt: appt.created_at, reverse=True)
        return appointments

    def get_appointment(self, appointment_id: str) -> Appointment:
        for document in self._load_collection(APPOINTMENTS):
            if document.get("id") == appointment_id:
                appointment = self._parse_appointment(document)
                if appointment is not None:
                    return appointment
        raise DocumentNotFoundError(APPOINTMENTS, appointment_id)

    def create_appointment(self, data: Dict[str, Any]) -> Appointment:
        appointment = Appointment(id=_generate_id(), created_at=utcnow(), **data)
        document = appointment.to_document()

        def mutate(documents):
            documents.append(document)
            return document

        self._modify_collection(APPOINTMENTS, mutate)
        logger.debug("Created appointment %s for patient %s", appointment.id, appointment.patient_id)
        return appointment

    def update_appointment(self, appointment_id: str, patch: Dict[str, Any]) -> Appointment:
        def mutate(documents):
            for idx, document in enumerate(documents):
                if document.get("id") == appointment_id:
                    # Malformed records are invisible to reads, so they cannot be updated either.
                    if self._parse_appointment(document) is None:
                        raise DocumentNotFoundError(APPOINTMENTS, appointment_id)
                    merged = dict(document)
                    merged.update(patch)
                    merged["id"] = appointment_id
                    merged["updated_at"] = utcnow()
                    try:
                        updated = Appointment(**merged).to_document()
                    except ModelValidationError as e:
                        raise StoreUnavailableError(
                            f"Rejected update of appointment {appointment_id}: {e}") from e
                    documents[idx] = updated
                    return updated
            raise DocumentNotFoundError(APPOINTMENTS, appointment_id)

        updated = self._modify_collection(APPOINTMENTS, mutate)
        logger.debug("Updated appointment %s fields %s", appointment_id, sorted(patch))
        return Appointment(**updated)

    def list_patients(self, primary_physician: Optional[str] = None) -> List[Patient]:
        patients = []
        for document in self._load_collection(PATIENTS):
            try:
                patient = Patient(**document)
            except ModelValidationError as e:
                logger.warning("Skipping malformed patient %s: %s", document.get("id"), e)
                continue
            if primary_physician is None or patient.primary_physician == primary_physician:
                patients.append(patient)
        return patients

    def get_patient(self, patient_id: str) -> Patient:
        for patient in self.list_patients():
            if patient.id == patient_id:
                return patient
        raise DocumentNotFoundError(PATIENTS, patient_id)

    def create_patient(self, data: Dict[str, Any]) -> Patient:
        patient = Patient(id=_generate_id(), created_at=utcnow(), **data)
        document = patient.model_dump()
        document["created_at"] = patient.created_at.isoformat()

        def mutate(documents):
            documents.append(document)
            return document

        self._modify_collection(PATIENTS, mutate)
        logger.info("Created new patient: %s (ID: %s)", patient.name, patient.id)
        return patient
