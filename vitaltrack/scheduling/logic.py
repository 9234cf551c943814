import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as ModelValidationError

from .cache import AppointmentCache
from .errors import DocumentNotFoundError, StoreError
from .grouping import count_by_status, filter_groups, group_for_doctor, partition_for_patient
from .models import (
    Appointment, AppointmentCreateRequest, AppointmentStatus, CancelRequest, COMPLETED_NOTE,
    OperationResult, PatientAppointmentBuckets, PatientGroup, RecentAppointments,
    RescheduleRequest, ScheduleRequest, StatusFilter, utcnow
)
from .notifications import (
    LoggingNotificationSender, NotificationSender, cancellation_message,
    confirmation_message, notify
)
from .remote import call_with_retry
from .store import AppointmentStore

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "Something went wrong while saving the appointment. Please try again."


def _failed(error: str, message: str) -> OperationResult:
    return OperationResult(ok=False, error=error, message=message)


def _validation_messages(exc: ModelValidationError) -> List[str]:
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]


class AppointmentService:
    """Appointment lifecycle operations and the dashboard views for one session.

    Every write goes to the store first; the session cache only ever receives
    the record the store confirmed.
    """

    def __init__(self,
                 store: AppointmentStore,
                 notifier: Optional[NotificationSender] = None,
                 clinic_name: str = "VitalTrack",
                 display_timezone: str = "UTC",
                 retries: int = 1):
        self.store = store
        self.notifier = notifier or LoggingNotificationSender()
        self.clinic_name = clinic_name
        self.display_timezone = display_timezone
        self.retries = retries
        self.cache = AppointmentCache()

    def _call(self, operation, *args, **kwargs):
        return call_with_retry(operation, *args, retries=self.retries, **kwargs)

    def _write(self, action: str, appointment_id: str, patch: Dict[str, Any]) -> OperationResult:
        """Persist a patch; translate store failures into a failed result."""
        try:
            updated = self._call(self.store.update_appointment, appointment_id, patch)
        except DocumentNotFoundError:
            logger.info("%s: appointment %s not found", action, appointment_id)
            return _failed("not_found", f"Appointment {appointment_id} was not found.")
        except StoreError as e:
            logger.error("Error during %s of appointment %s: %s", action, appointment_id, e)
            return _failed("unavailable", FAILURE_MESSAGE)

        self.cache.apply(updated)
        return OperationResult(ok=True, appointment=updated, message=f"Appointment {action} succeeded.")

    # Reads

    def refresh(self) -> List[Appointment]:
        """Pull all appointments and merge them into the session cache."""
        fetched_at = utcnow()
        try:
            fetched = self._call(self.store.list_appointments)
        except StoreError as e:
            logger.error("Error retrieving appointments: %s", e)
            return self.cache.values()
        diff = self.cache.refresh(fetched, fetched_at=fetched_at)
        logger.debug("Appointment cache refreshed: %s", {k: len(v) for k, v in diff.items()})
        return fetched

    def get_recent_appointments(self) -> RecentAppointments:
        fetched_at = utcnow()
        try:
            documents = self._call(self.store.list_appointments)
        except StoreError as e:
            logger.error("Error retrieving recent appointments: %s", e)
            return RecentAppointments()
        self.cache.refresh(documents, fetched_at=fetched_at)
        counts = count_by_status(documents)
        return RecentAppointments(documents=documents, **counts.model_dump())

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        try:
            return self._call(self.store.get_appointment, appointment_id)
        except DocumentNotFoundError:
            return None
        except StoreError as e:
            logger.error("Error retrieving appointment %s: %s", appointment_id, e)
            return None

    def doctor_dashboard(self,
                         doctor_name: str,
                         status_filter: StatusFilter = StatusFilter.ALL,
                         now: Optional[datetime] = None) -> Dict[str, PatientGroup]:
        """Assigned patients' appointments, grouped and filtered for a doctor."""
        try:
            patients = self._call(self.store.list_patients, primary_physician=doctor_name)
        except StoreError as e:
            logger.error("Error retrieving patients for %s: %s", doctor_name, e)
            patients = []
        self.refresh()
        groups = group_for_doctor(self.cache.values(), patients, now=now)
        return filter_groups(groups, status_filter)

    def patient_appointments(self, patient_id: str,
                             now: Optional[datetime] = None) -> PatientAppointmentBuckets:
        self.refresh()
        return partition_for_patient(self.cache.values(), patient_id, now=now)

    # Lifecycle

    def create_appointment(self, request: Union[AppointmentCreateRequest, Dict[str, Any]]) -> OperationResult:
        try:
            if not isinstance(request, AppointmentCreateRequest):
                request = AppointmentCreateRequest(**request)
        except ModelValidationError as e:
            return _failed("validation", "; ".join(_validation_messages(e)))

        try:
            self._call(self.store.get_patient, request.patient_id)
        except DocumentNotFoundError:
            return _failed("validation", f"Unknown patient {request.patient_id}.")
        except StoreError as e:
            logger.error("An error occurred while creating a new appointment: %s", e)
            return _failed("unavailable", FAILURE_MESSAGE)

        try:
            created = self._call(self.store.create_appointment, request.model_dump())
        except StoreError as e:
            logger.error("An error occurred while creating a new appointment: %s", e)
            return _failed("unavailable", FAILURE_MESSAGE)

        self.cache.apply(created)
        logger.info("Created appointment %s for patient %s", created.id, created.patient_id)
        return OperationResult(ok=True, appointment=created, message="Appointment created.")

    def schedule_appointment(self, appointment_id: str,
                             request: Optional[ScheduleRequest] = None) -> OperationResult:
        request = request or ScheduleRequest()
        patch: Dict[str, Any] = {"status": AppointmentStatus.SCHEDULED.value}
        if request.schedule is not None:
            patch["schedule"] = request.schedule
        if request.primary_physician:
            patch["primary_physician"] = request.primary_physician

        result = self._write("schedule", appointment_id, patch)
        if result.ok:
            appt = result.appointment
            notify(self.notifier, appt.patient_id,
                   confirmation_message(self.clinic_name, appt.schedule, appt.primary_physician,
                                        self.display_timezone))
            result.message = "Appointment scheduled."
        return result

    def cancel_appointment(self, appointment_id: str,
                           request: Union[CancelRequest, str]) -> OperationResult:
        try:
            if not isinstance(request, CancelRequest):
                request = CancelRequest(cancellation_reason=request)
        except ModelValidationError as e:
            return _failed("validation", "; ".join(_validation_messages(e)))

        result = self._write("cancel", appointment_id, {
            "status": AppointmentStatus.CANCELLED.value,
            "cancellation_reason": request.cancellation_reason,
        })
        if result.ok:
            appt = result.appointment
            notify(self.notifier, appt.patient_id,
                   cancellation_message(self.clinic_name, appt.schedule, appt.cancellation_reason,
                                        self.display_timezone))
            result.message = "Appointment cancelled."
        return result

    def mark_completed(self, appointment_id: str) -> OperationResult:
        # Note and status travel in one patch: both persist or neither does.
        result = self._write("completion", appointment_id, {
            "note": COMPLETED_NOTE,
            "status": AppointmentStatus.COMPLETED.value,
        })
        if result.ok:
            result.message = "Appointment marked as completed!"
        return result

    def update_note(self, appointment_id: str, note: Optional[str]) -> OperationResult:
        result = self._write("note update", appointment_id, {"note": note or ""})
        if result.ok:
            result.message = "Notes saved!"
        return result

    def reschedule_appointment(self, appointment_id: str,
                               new_schedule: Union[datetime, str]) -> OperationResult:
        try:
            request = RescheduleRequest(schedule=new_schedule)
        except ModelValidationError as e:
            return _failed("validation", "; ".join(_validation_messages(e)))

        result = self._write("reschedule", appointment_id, {"schedule": request.schedule})
        if result.ok:
            result.message = "Appointment rescheduled!"
        return result
