from datetime import datetime
from typing import Dict, Iterable, List, Optional

from .models import Appointment


def _version(appt: Appointment):
    return appt.updated_at or appt.created_at


class AppointmentCache:
    """Per-session view state keyed by appointment id.

    Only records confirmed by the store are ever applied. A refresh merges the
    fetched list into the cache instead of replacing it, so a confirmed write
    that a slower, older fetch does not reflect yet is kept.
    """

    def __init__(self):
        self._appointments: Dict[str, Appointment] = {}

    def __len__(self):
        return len(self._appointments)

    def __contains__(self, appointment_id: str) -> bool:
        return appointment_id in self._appointments

    def get(self, appointment_id: str) -> Optional[Appointment]:
        return self._appointments.get(appointment_id)

    def values(self) -> List[Appointment]:
        return list(self._appointments.values())

    def refresh(self, fetched: Iterable[Appointment],
                fetched_at: Optional[datetime] = None) -> Dict[str, List[str]]:
        """Merge a full fetch. Returns the ids added, changed and removed.

        ``fetched_at`` is when the fetch was issued; entries created after it
        are kept even though the fetch does not contain them.
        """
        fetched_by_id = {appt.id: appt for appt in fetched}
        diff = {"added": [], "changed": [], "removed": []}

        for appointment_id, current in list(self._appointments.items()):
            if fetched_at is not None and current.created_at > fetched_at:
                continue
            if appointment_id not in fetched_by_id:
                del self._appointments[appointment_id]
                diff["removed"].append(appointment_id)

        for appointment_id, appt in fetched_by_id.items():
            current = self._appointments.get(appointment_id)
            if current is None:
                self._appointments[appointment_id] = appt
                diff["added"].append(appointment_id)
            elif current != appt and _version(appt) >= _version(current):
                self._appointments[appointment_id] = appt
                diff["changed"].append(appointment_id)

        return diff

    def apply(self, confirmed: Appointment) -> None:
        """Record the store's copy after a successful write."""
        self._appointments[confirmed.id] = confirmed
