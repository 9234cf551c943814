from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from .models import Doctor, DoctorProfile


DOCTORS = [
    Doctor(image="/assets/images/dr-green.png", name="Siddhartha Mukherjee", password="sid"),
    Doctor(image="/assets/images/dr-cameron.png", name="Sudhansu Bhattacharyya", password="sud"),
    Doctor(image="/assets/images/dr-livingston.png", name="Surbhi Anand – Endodontist", password="sur"),
    Doctor(image="/assets/images/dr-peter.png", name="Ashish Sabharwal- Urologist", password="ash"),
    Doctor(image="/assets/images/dr-powell.png", name="Sanjay Sachdeva – Otorhinolaryngologist", password="san"),
    Doctor(image="/assets/images/dr-remirez.png", name="Aditya Gupta – Neurosurgeon", password="adi"),
    Doctor(image="/assets/images/dr-lee.png", name="H. S. Chhabra – Endoscopic surgeon", password="hs"),
    Doctor(image="/assets/images/dr-cruz.png", name="Gaurav Kharya – Pediatrician", password="gau"),
    Doctor(image="/assets/images/dr-sharma.png", name="Hardik Sharma", password="har"),
]

DEFAULT_AVATAR = "/assets/images/default-avatar.png"


class DoctorDirectory(ABC):
    """Lookup of known doctors by name."""

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[Doctor]:
        ...

    @abstractmethod
    def all(self) -> List[Doctor]:
        ...

    def authenticate(self, name: str, password: str) -> Optional[Doctor]:
        """Plaintext comparison against the roster. Not a security boundary."""
        doctor = self.find_by_name(name)
        if doctor is not None and doctor.password == password:
            return doctor
        return None

    def profiles(self) -> List[DoctorProfile]:
        return [DoctorProfile(name=doc.name, image=doc.image) for doc in self.all()]

    def image_for(self, name: str) -> str:
        doctor = self.find_by_name(name)
        return doctor.image if doctor else DEFAULT_AVATAR


class StaticDoctorDirectory(DoctorDirectory):
    """Fixed roster compiled into the application. Names match exactly."""

    def __init__(self, doctors: Iterable[Doctor] = DOCTORS):
        self._doctors: Dict[str, Doctor] = {doc.name: doc for doc in doctors}

    def find_by_name(self, name: str) -> Optional[Doctor]:
        return self._doctors.get(name)

    def all(self) -> List[Doctor]:
        return list(self._doctors.values())
