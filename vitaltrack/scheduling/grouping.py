"""Partitioning and sorting of appointment lists for the dashboards.

Two views are built from the same flat list:

* the doctor view groups appointments per assigned patient into ``upcoming``
  and ``past`` purely by time;
* the patient view splits one patient's appointments into four disjoint
  buckets by time and status, so that scheduled appointments whose time has
  passed show up as ``past_unmarked`` instead of disappearing.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .models import (
    Appointment, AppointmentCounts, AppointmentStatus, Patient, PatientAppointmentBuckets,
    PatientGroup, StatusFilter, ensure_aware, utcnow
)


def _ascending(appointments: List[Appointment]) -> List[Appointment]:
    return sorted(appointments, key=lambda appt: appt.schedule)


def _descending(appointments: List[Appointment]) -> List[Appointment]:
    return sorted(appointments, key=lambda appt: appt.schedule, reverse=True)


def group_for_doctor(appointments: Iterable[Appointment],
                     patients: Iterable[Patient],
                     now: Optional[datetime] = None) -> Dict[str, PatientGroup]:
    """Group appointments per assigned patient into upcoming/past.

    Appointments whose patient is not among ``patients`` are dropped.
    """
    now = ensure_aware(now) if now else utcnow()
    assigned = {patient.id: patient for patient in patients}
    buckets: Dict[str, Dict[str, List[Appointment]]] = {}

    for appt in appointments:
        if appt.patient_id not in assigned:
            continue
        bucket = buckets.setdefault(appt.patient_id, {"upcoming": [], "past": []})
        if appt.schedule >= now:
            bucket["upcoming"].append(appt)
        else:
            bucket["past"].append(appt)

    return {
        patient_id: PatientGroup(
            patient=assigned[patient_id],
            upcoming=_ascending(bucket["upcoming"]),
            past=_descending(bucket["past"]),
        )
        for patient_id, bucket in buckets.items()
    }


def partition_for_patient(appointments: Iterable[Appointment],
                          patient_id: str,
                          now: Optional[datetime] = None) -> PatientAppointmentBuckets:
    now = ensure_aware(now) if now else utcnow()
    own = [appt for appt in appointments if appt.patient_id == patient_id]

    upcoming = [a for a in own if a.status == AppointmentStatus.SCHEDULED and a.schedule >= now]
    past_unmarked = [a for a in own if a.status == AppointmentStatus.SCHEDULED and a.schedule < now]
    completed = [a for a in own if a.status == AppointmentStatus.COMPLETED]
    cancelled = [a for a in own if a.status == AppointmentStatus.CANCELLED]

    return PatientAppointmentBuckets(
        upcoming=_ascending(upcoming),
        completed=_descending(completed),
        cancelled=_descending(cancelled),
        past_unmarked=_descending(past_unmarked),
    )


def filter_by_status(appointments: Iterable[Appointment],
                     status_filter: StatusFilter = StatusFilter.ALL) -> List[Appointment]:
    # Completion for this filter is read from the note, not the status field.
    status_filter = StatusFilter(status_filter)
    if status_filter == StatusFilter.COMPLETED:
        return [appt for appt in appointments if appt.is_note_completed()]
    if status_filter == StatusFilter.PENDING:
        return [appt for appt in appointments if not appt.is_note_completed()]
    return list(appointments)


def filter_groups(groups: Dict[str, PatientGroup],
                  status_filter: StatusFilter = StatusFilter.ALL) -> Dict[str, PatientGroup]:
    """Apply the status filter per bucket; drop groups left with nothing to show."""
    filtered = {}
    for patient_id, group in groups.items():
        upcoming = filter_by_status(group.upcoming, status_filter)
        past = filter_by_status(group.past, status_filter)
        if not upcoming and not past:
            continue
        filtered[patient_id] = PatientGroup(patient=group.patient, upcoming=upcoming, past=past)
    return filtered


def count_by_status(appointments: Iterable[Appointment]) -> AppointmentCounts:
    counts = AppointmentCounts()
    for appt in appointments:
        counts.total_count += 1
        if appt.status == AppointmentStatus.SCHEDULED:
            counts.scheduled_count += 1
        elif appt.status == AppointmentStatus.PENDING:
            counts.pending_count += 1
        elif appt.status == AppointmentStatus.CANCELLED:
            counts.cancelled_count += 1
        elif appt.status == AppointmentStatus.COMPLETED:
            counts.completed_count += 1
    return counts
