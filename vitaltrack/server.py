import logging
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request

from .config import Settings
from .scheduling.doctors import DoctorDirectory, StaticDoctorDirectory
from .scheduling.errors import StoreError, ValidationError
from .scheduling.logic import AppointmentService
from .scheduling.models import (
    AppointmentCreateRequest, CancelRequest, DoctorLoginRequest, NoteUpdateRequest,
    OperationResult, PatientRegistrationRequest, RescheduleRequest, ScheduleRequest,
    StatusFilter
)
from .scheduling.notifications import (
    LoggingNotificationSender, NotificationSender, TwilioSmsSender
)
from .scheduling.patient_repository import PatientRepository
from .scheduling.store import AppointmentStore, JsonDocumentStore

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    "validation": 422,
    "not_found": 404,
    "unavailable": 502,
}


def build_notifier(settings: Settings, patient_repo: PatientRepository) -> NotificationSender:
    if settings.sms_enabled:
        logger.info("SMS notifications enabled via Twilio")
        return TwilioSmsSender(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_from_number,
            resolve_phone=patient_repo.phone_for,
            timeout=settings.store_timeout_seconds,
        )
    logger.info("Twilio configuration incomplete; notifications will only be logged")
    return LoggingNotificationSender()


def _result_or_raise(result: OperationResult) -> dict:
    if not result.ok:
        raise HTTPException(status_code=ERROR_STATUS_CODES.get(result.error, 500),
                            detail=result.message)
    return {"message": result.message, "appointment": result.appointment}


def create_app(settings: Optional[Settings] = None,
               store: Optional[AppointmentStore] = None,
               notifier: Optional[NotificationSender] = None,
               doctors: Optional[DoctorDirectory] = None) -> FastAPI:
    """Build the API with its collaborators; anything not given comes from settings."""
    settings = settings or Settings.from_env()
    store = store or JsonDocumentStore(settings.data_dir, timeout=settings.store_timeout_seconds)
    patient_repo = PatientRepository(store, retries=settings.store_max_retries)
    notifier = notifier or build_notifier(settings, patient_repo)

    app = FastAPI(
        title="VitalTrack Appointments API",
        description="Patient registration, appointment booking and doctor dashboards",
        version="1.0.0"
    )
    app.state.settings = settings
    app.state.patient_repo = patient_repo
    app.state.doctors = doctors or StaticDoctorDirectory()
    app.state.service = AppointmentService(
        store,
        notifier=notifier,
        clinic_name=settings.clinic_name,
        display_timezone=settings.display_timezone,
        retries=settings.store_max_retries,
    )

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sms_enabled": request.app.state.settings.sms_enabled,
        }

    @app.post("/patients")
    async def register_patient(patient_data: PatientRegistrationRequest, request: Request):
        """Register a new patient."""
        try:
            patient = request.app.state.patient_repo.register_patient(patient_data)
        except ValidationError as e:
            raise HTTPException(status_code=422, detail={"errors": e.errors})
        except StoreError as e:
            logger.error("Error registering patient: %s", e)
            raise HTTPException(status_code=502, detail="Failed to register patient")
        return {"message": "Patient registered successfully", "patient": patient}

    @app.get("/patients")
    async def list_patients(request: Request, physician: Optional[str] = None):
        patients = request.app.state.patient_repo.list_patients(primary_physician=physician)
        return {"patients": patients}

    @app.get("/patients/{patient_id}")
    async def get_patient(patient_id: str, request: Request):
        patient = request.app.state.patient_repo.get_patient(patient_id)
        if patient is None:
            raise HTTPException(status_code=404, detail="Patient not found")
        return {"patient": patient}

    @app.get("/patients/{patient_id}/appointments")
    async def get_patient_appointments(patient_id: str, request: Request):
        """Upcoming, completed, cancelled and past-unmarked appointments of one patient."""
        buckets = request.app.state.service.patient_appointments(patient_id)
        return {"patient_id": patient_id, "appointments": buckets, "empty": buckets.is_empty()}

    @app.get("/appointments")
    async def get_recent_appointments(request: Request):
        """All appointments, newest first, with per-status counts."""
        return request.app.state.service.get_recent_appointments()

    @app.post("/appointments")
    async def create_appointment(appointment_data: AppointmentCreateRequest, request: Request):
        return _result_or_raise(request.app.state.service.create_appointment(appointment_data))

    @app.get("/appointments/{appointment_id}")
    async def get_appointment(appointment_id: str, request: Request):
        appointment = request.app.state.service.get_appointment(appointment_id)
        if appointment is None:
            raise HTTPException(status_code=404, detail="Appointment not found")
        return {"appointment": appointment}

    @app.post("/appointments/{appointment_id}/schedule")
    async def schedule_appointment(appointment_id: str, request: Request,
                                   schedule_data: Optional[ScheduleRequest] = None):
        return _result_or_raise(
            request.app.state.service.schedule_appointment(appointment_id, schedule_data))

    @app.post("/appointments/{appointment_id}/cancel")
    async def cancel_appointment(appointment_id: str, cancel_data: CancelRequest, request: Request):
        return _result_or_raise(
            request.app.state.service.cancel_appointment(appointment_id, cancel_data))

    @app.post("/appointments/{appointment_id}/complete")
    async def complete_appointment(appointment_id: str, request: Request):
        return _result_or_raise(request.app.state.service.mark_completed(appointment_id))

    @app.put("/appointments/{appointment_id}/note")
    async def update_note(appointment_id: str, note_data: NoteUpdateRequest, request: Request):
        return _result_or_raise(
            request.app.state.service.update_note(appointment_id, note_data.note))

    @app.post("/appointments/{appointment_id}/reschedule")
    async def reschedule_appointment(appointment_id: str, reschedule_data: RescheduleRequest,
                                     request: Request):
        return _result_or_raise(
            request.app.state.service.reschedule_appointment(appointment_id,
                                                             reschedule_data.schedule))

    @app.get("/doctors")
    async def list_doctors(request: Request):
        return {"doctors": request.app.state.doctors.profiles()}

    @app.post("/doctors/login")
    async def doctor_login(credentials: DoctorLoginRequest, request: Request):
        doctor = request.app.state.doctors.authenticate(credentials.name, credentials.password)
        if doctor is None:
            raise HTTPException(status_code=401, detail="Invalid credentials. Please try again.")
        return {"name": doctor.name, "image": doctor.image}

    @app.get("/doctors/{doctor_name}/dashboard")
    async def doctor_dashboard(doctor_name: str, request: Request,
                               status: StatusFilter = StatusFilter.ALL):
        """Appointments of the doctor's assigned patients, grouped per patient."""
        doctors = request.app.state.doctors
        if doctors.find_by_name(doctor_name) is None:
            raise HTTPException(status_code=404, detail="Doctor not found")
        groups = request.app.state.service.doctor_dashboard(doctor_name, status)
        return {
            "doctor": doctor_name,
            "image": doctors.image_for(doctor_name),
            "status_filter": status,
            "patients": list(groups.values()),
        }

    return app


def main():
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting VitalTrack server, data dir %s", settings.data_dir)
    uvicorn.run(create_app(settings), host="127.0.0.1", port=8000)


if __name__ == "__main__":
    main()
