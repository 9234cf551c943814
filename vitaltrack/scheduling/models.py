from datetime import datetime, timezone
from typing import List, Optional, Dict, Any
from enum import Enum
from pydantic import BaseModel, Field, field_validator


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @classmethod
    def normalize(cls, value: Any) -> "AppointmentStatus":
        """Map any stored spelling ("Scheduled", "Canceled", ...) to the canonical member."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text == "canceled":
            text = "cancelled"
        try:
            return cls(text)
        except ValueError:
            raise ValueError(f"Unknown appointment status: {value!r}")


class StatusFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"


COMPLETED_NOTE = "completed"


def ensure_aware(value: datetime) -> datetime:
    """Naive datetimes are read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Patient(BaseModel):
    id: str
    name: str
    email: str
    phone: str
    primary_physician: Optional[str] = None
    allergies: Optional[str] = None
    current_medication: Optional[str] = None
    family_medical_history: Optional[str] = None
    past_medical_history: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if '@' not in v:
            raise ValueError('Invalid email format')
        return v

    @field_validator('created_at')
    @classmethod
    def validate_created_at(cls, v):
        return ensure_aware(v)


class Appointment(BaseModel):
    id: str
    patient_id: str
    schedule: datetime
    status: AppointmentStatus = AppointmentStatus.PENDING
    reason: str = ""
    note: Optional[str] = None
    primary_physician: str
    cancellation_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @field_validator('status', mode="before")
    @classmethod
    def normalize_status(cls, v):
        return AppointmentStatus.normalize(v)

    @field_validator('schedule', 'created_at', 'updated_at')
    @classmethod
    def validate_timestamps(cls, v):
        if v is None:
            return v
        return ensure_aware(v)

    def is_note_completed(self) -> bool:
        return (self.note or "").lower() == COMPLETED_NOTE

    def to_document(self) -> Dict[str, Any]:
        """Serialize for storage; statuses go out in canonical lowercase."""
        data = self.model_dump()
        data["status"] = self.status.value
        for key in ("schedule", "created_at", "updated_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class Doctor(BaseModel):
    name: str
    image: str
    password: str


class DoctorProfile(BaseModel):
    """Roster entry as exposed over the API, without the password."""
    name: str
    image: str


class PatientRegistrationRequest(BaseModel):
    name: str
    email: str
    phone: str
    primary_physician: Optional[str] = None
    allergies: Optional[str] = None
    current_medication: Optional[str] = None
    family_medical_history: Optional[str] = None
    past_medical_history: Optional[str] = None


class AppointmentCreateRequest(BaseModel):
    patient_id: str
    schedule: datetime
    primary_physician: str
    reason: str
    note: Optional[str] = None
    status: AppointmentStatus = AppointmentStatus.PENDING

    @field_validator('status', mode="before")
    @classmethod
    def normalize_status(cls, v):
        return AppointmentStatus.normalize(v)

    @field_validator('schedule')
    @classmethod
    def validate_schedule(cls, v):
        return ensure_aware(v)

    @field_validator('patient_id', 'primary_physician', 'reason')
    @classmethod
    def validate_required_text(cls, v):
        if not v or not v.strip():
            raise ValueError('Field must not be empty')
        return v.strip()


class ScheduleRequest(BaseModel):
    schedule: Optional[datetime] = None
    primary_physician: Optional[str] = None

    @field_validator('schedule')
    @classmethod
    def validate_schedule(cls, v):
        return ensure_aware(v) if v is not None else v


class CancelRequest(BaseModel):
    cancellation_reason: str

    @field_validator('cancellation_reason')
    @classmethod
    def validate_reason(cls, v):
        if not v or not v.strip():
            raise ValueError('Cancellation reason must not be empty')
        return v.strip()


class NoteUpdateRequest(BaseModel):
    note: str


class RescheduleRequest(BaseModel):
    schedule: datetime

    @field_validator('schedule')
    @classmethod
    def validate_schedule(cls, v):
        return ensure_aware(v)


class DoctorLoginRequest(BaseModel):
    name: str
    password: str


class PatientGroup(BaseModel):
    patient: Patient
    upcoming: List[Appointment] = []
    past: List[Appointment] = []


class PatientAppointmentBuckets(BaseModel):
    upcoming: List[Appointment] = []
    completed: List[Appointment] = []
    cancelled: List[Appointment] = []
    past_unmarked: List[Appointment] = []

    def is_empty(self) -> bool:
        return not (self.upcoming or self.completed or self.cancelled or self.past_unmarked)


class AppointmentCounts(BaseModel):
    total_count: int = 0
    scheduled_count: int = 0
    pending_count: int = 0
    cancelled_count: int = 0
    completed_count: int = 0


class RecentAppointments(AppointmentCounts):
    documents: List[Appointment] = []


class OperationResult(BaseModel):
    ok: bool
    message: str
    appointment: Optional[Appointment] = None
    error: Optional[str] = None
