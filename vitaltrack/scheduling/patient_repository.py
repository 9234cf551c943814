import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from .errors import DocumentNotFoundError, StoreError, ValidationError
from .models import Patient, PatientRegistrationRequest
from .remote import call_with_retry
from .store import AppointmentStore

logger = logging.getLogger(__name__)


class PatientRepository:
    """Registration and lookup of patients on top of the document store."""

    def __init__(self, store: AppointmentStore, retries: int = 1):
        self.store = store
        self.retries = retries

    def _normalize_phone(self, phone: str) -> str:
        """Normalize phone number by removing non-digit characters."""
        return re.sub(r'\D', '', phone) if phone else ""

    def validate_patient_data(self, patient_data: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """Validate patient data before creating a new patient."""
        errors = []

        # Required fields
        required_fields = ["name", "phone", "email"]
        for field in required_fields:
            if field not in patient_data or not patient_data[field]:
                errors.append(f"Missing required field: {field}")

        if patient_data.get("email") and '@' not in patient_data["email"]:
            errors.append("Invalid email format")

        # Phone format (basic validation)
        if patient_data.get("phone"):
            digits = self._normalize_phone(patient_data["phone"])
            if len(digits) < 10:
                errors.append("Phone number must have at least 10 digits")

        if patient_data.get("name") and len(patient_data["name"].strip()) < 2:
            errors.append("Name must be at least 2 characters long")

        return len(errors) == 0, errors

    def register_patient(self, request: PatientRegistrationRequest) -> Patient:
        """Validate and persist a new patient.

        Raises ValidationError before touching the store when the data is
        incomplete; store failures propagate to the caller.
        """
        patient_data = request.model_dump()
        is_valid, errors = self.validate_patient_data(patient_data)
        if not is_valid:
            raise ValidationError(errors)

        patient_data["name"] = patient_data["name"].strip()
        patient_data["email"] = patient_data["email"].strip()
        patient_data["phone"] = patient_data["phone"].strip()
        return call_with_retry(self.store.create_patient, patient_data, retries=self.retries)

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        """Missing patients come back as None."""
        try:
            return call_with_retry(self.store.get_patient, patient_id, retries=self.retries)
        except DocumentNotFoundError:
            return None
        except StoreError as e:
            logger.error("Error retrieving patient %s: %s", patient_id, e)
            return None

    def list_patients(self, primary_physician: Optional[str] = None) -> List[Patient]:
        try:
            return call_with_retry(self.store.list_patients, primary_physician=primary_physician,
                                   retries=self.retries)
        except StoreError as e:
            logger.error("Error listing patients: %s", e)
            return []

    def phone_for(self, patient_id: str) -> Optional[str]:
        patient = self.get_patient(patient_id)
        return patient.phone if patient else None
