"""
In-memory document repositories for the booking service.

They stand in for the document database: every method is a coroutine so the
services above them are written against an async store, and no method awaits
while it mutates, so each call is atomic on the event loop.
"""

from typing import Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

from shared.logging import get_logger
from ..domain.models import (
    ACTIVE_APPOINTMENT_STATUSES,
    Appointment,
    DeletionRequest,
    Doctor,
    Review,
    utcnow,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


class InMemoryRepository(Generic[ModelT]):
    """Dictionary-backed collection keyed by document id."""

    def __init__(self, collection: str):
        self.collection = collection
        self.logger = get_logger(f"booking.repository.{collection}")
        self._documents: Dict[str, ModelT] = {}

    async def get(self, document_id: str) -> Optional[ModelT]:
        return self._documents.get(document_id)

    async def find(self, predicate: Optional[Callable[[ModelT], bool]] = None) -> List[ModelT]:
        documents = list(self._documents.values())
        if predicate is None:
            return documents
        return [document for document in documents if predicate(document)]

    async def find_one(self, predicate: Callable[[ModelT], bool]) -> Optional[ModelT]:
        for document in self._documents.values():
            if predicate(document):
                return document
        return None

    async def count(self, predicate: Optional[Callable[[ModelT], bool]] = None) -> int:
        return len(await self.find(predicate))

    async def insert(self, document: ModelT) -> ModelT:
        self._documents[document.id] = document
        self.logger.debug("Document inserted", id=document.id)
        return document

    async def update(self, document_id: str, changes: Dict) -> Optional[ModelT]:
        """Apply ``changes`` and return the new document, or ``None`` if missing."""
        current = self._documents.get(document_id)
        if current is None:
            return None
        if "updated_at" in type(current).model_fields:
            changes = {**changes, "updated_at": utcnow()}
        updated = type(current).model_validate({**current.model_dump(), **changes})
        self._documents[document_id] = updated
        self.logger.debug("Document updated", id=document_id, fields=sorted(changes))
        return updated

    async def delete(self, document_id: str) -> bool:
        removed = self._documents.pop(document_id, None) is not None
        if removed:
            self.logger.debug("Document deleted", id=document_id)
        return removed

    async def delete_where(self, predicate: Callable[[ModelT], bool]) -> int:
        doomed = [key for key, document in self._documents.items() if predicate(document)]
        for key in doomed:
            del self._documents[key]
        return len(doomed)


class DoctorRepository(InMemoryRepository[Doctor]):
    def __init__(self):
        super().__init__("doctors")


class ReviewRepository(InMemoryRepository[Review]):
    def __init__(self):
        super().__init__("reviews")

    async def for_doctor(self, doctor_id: str) -> List[Review]:
        reviews = await self.find(lambda review: review.doctor_id == doctor_id)
        return sorted(reviews, key=lambda review: review.created_at, reverse=True)


class AppointmentRepository(InMemoryRepository[Appointment]):
    def __init__(self):
        super().__init__("appointments")

    async def find_active_booking(self, doctor_id: str, appointment_date, time_slot: str) -> Optional[Appointment]:
        """The pending or confirmed appointment holding this slot, if any."""
        return await self.find_one(
            lambda appointment: appointment.doctor_id == doctor_id
            and appointment.appointment_date == appointment_date
            and appointment.time_slot == time_slot
            and appointment.status in ACTIVE_APPOINTMENT_STATUSES
        )


class DeletionRequestRepository(InMemoryRepository[DeletionRequest]):
    def __init__(self):
        super().__init__("deletion_requests")


class Repositories:
    """Bundle of every collection the booking service uses."""

    def __init__(self):
        self.doctors = DoctorRepository()
        self.reviews = ReviewRepository()
        self.appointments = AppointmentRepository()
        self.deletion_requests = DeletionRequestRepository()


DEMO_DOCTORS = [
    {
        "id": "doc-alfaz",
        "name": "Dr. Alfaz Ahmed",
        "email": "alfaz@medicare.test",
        "specialization": "Surgeon",
        "ticket_price": 80,
        "is_approved": "approved",
    },
    {
        "id": "doc-saleh",
        "name": "Dr. Saleh Mahmud",
        "email": "saleh@medicare.test",
        "specialization": "Neurologist",
        "ticket_price": 120,
        "is_approved": "approved",
    },
    {
        "id": "doc-farid",
        "name": "Dr. Farid Uddin",
        "email": "farid@medicare.test",
        "specialization": "Dermatologist",
        "ticket_price": 60,
        "is_approved": "pending",
    },
]


async def seed_demo_data(repositories: Repositories) -> int:
    """Insert demo doctors for local development. Returns how many were added."""
    added = 0
    for payload in DEMO_DOCTORS:
        if await repositories.doctors.get(payload["id"]) is None:
            await repositories.doctors.insert(Doctor(**payload))
            added += 1
    return added
