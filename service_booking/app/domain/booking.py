"""
Booking domain services: doctor directory, reviews, appointments and admin views.
"""

from typing import Any, Dict, List, Optional

from shared.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from shared.logging import get_logger
from ..adapters.repositories import Repositories
from .models import (
    Appointment,
    AppointmentCreate,
    AppointmentStatusUpdate,
    DeletionRequest,
    DeletionRequestDecision,
    Doctor,
    DoctorUpdate,
    Review,
    ReviewCreate,
    utcnow,
)


DOCTOR_SORTS = {
    "rating": ("average_rating", True),
    "-rating": ("average_rating", False),
    "-averageRating": ("average_rating", True),
    "price": ("ticket_price", False),
    "-price": ("ticket_price", True),
}
DEFAULT_DOCTOR_SORT = "rating"


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


class DoctorService:
    """Public doctor directory and doctor self-service."""

    def __init__(self, repositories: Repositories):
        self.repositories = repositories
        self.logger = get_logger("booking.doctors")

    async def list_doctors(
        self,
        query: Optional[str] = None,
        specialization: Optional[str] = None,
        sort: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Doctor]:
        """Approved doctors matching the filters, sorted, optionally truncated."""
        sort = sort or DEFAULT_DOCTOR_SORT
        if sort not in DOCTOR_SORTS:
            raise ValidationError("Unsupported sort", {"sort": sort, "allowed": sorted(DOCTOR_SORTS)})
        if limit is not None and limit < 1:
            raise ValidationError("limit must be positive", {"limit": limit})

        def matches(doctor: Doctor) -> bool:
            if doctor.is_approved != "approved":
                return False
            if query and not (_contains(doctor.name, query) or _contains(doctor.specialization, query)):
                return False
            if specialization and not _contains(doctor.specialization, specialization):
                return False
            return True

        doctors = await self.repositories.doctors.find(matches)
        field, descending = DOCTOR_SORTS[sort]
        doctors.sort(key=lambda doctor: getattr(doctor, field), reverse=descending)
        if limit is not None:
            doctors = doctors[:limit]
        return doctors

    async def list_all(self) -> List[Doctor]:
        doctors = await self.repositories.doctors.find()
        return sorted(doctors, key=lambda doctor: doctor.created_at, reverse=True)

    async def get_doctor(self, doctor_id: str) -> Doctor:
        doctor = await self.repositories.doctors.get(doctor_id)
        if doctor is None:
            raise NotFoundError("Doctor", doctor_id)
        return doctor

    async def get_doctor_detail(self, doctor_id: str) -> Dict[str, Any]:
        """Doctor profile with its reviews embedded."""
        doctor = await self.get_doctor(doctor_id)
        reviews = await self.repositories.reviews.for_doctor(doctor_id)
        detail = doctor.model_dump(mode="json")
        detail["reviews"] = [review.model_dump(mode="json") for review in reviews]
        return detail

    async def update_doctor(self, doctor_id: str, update: DoctorUpdate, actor_id: str) -> Doctor:
        if actor_id != doctor_id:
            raise AuthorizationError("Doctors may only update their own profile")
        await self.get_doctor(doctor_id)

        changes = update.model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")

        doctor = await self.repositories.doctors.update(doctor_id, changes)
        self.logger.info("Doctor profile updated", doctor_id=doctor_id, fields=sorted(changes))
        return doctor

    async def request_deletion(self, doctor_id: str, actor_id: str, reason: Optional[str] = None) -> DeletionRequest:
        """Doctors cannot delete themselves; record a request for an admin instead."""
        if actor_id != doctor_id:
            raise AuthorizationError("Doctors may only request deletion of their own profile")
        await self.get_doctor(doctor_id)

        existing = await self.repositories.deletion_requests.find_one(
            lambda request: request.doctor_id == doctor_id and request.status == "pending"
        )
        if existing is not None:
            return existing

        request = await self.repositories.deletion_requests.insert(
            DeletionRequest(doctor_id=doctor_id, requested_by=actor_id, reason=reason)
        )
        self.logger.info("Doctor deletion requested", doctor_id=doctor_id, request_id=request.id)
        return request

    async def pending_deletion_requests(self) -> List[DeletionRequest]:
        return await self.repositories.deletion_requests.find(lambda request: request.status == "pending")

    async def deletion_request_status(self, doctor_id: str) -> DeletionRequest:
        """The doctor's most recent deletion request."""
        requests = await self.repositories.deletion_requests.find(lambda request: request.doctor_id == doctor_id)
        if not requests:
            raise NotFoundError("Deletion request", doctor_id)
        return max(requests, key=lambda request: request.created_at)

    async def process_deletion_request(
        self,
        request_id: str,
        decision: DeletionRequestDecision,
        admin_id: str,
    ) -> DeletionRequest:
        """Approve or reject a pending request. Approval removes the doctor."""
        request = await self.repositories.deletion_requests.get(request_id)
        if request is None:
            raise NotFoundError("Deletion request", request_id)
        if request.status != "pending":
            raise ValidationError(
                f"This request has already been {request.status}",
                {"request_id": request_id, "status": request.status},
            )

        request = await self.repositories.deletion_requests.update(
            request_id,
            {
                "status": decision.status,
                "admin_notes": decision.admin_notes,
                "resolved_by": admin_id,
                "resolved_at": utcnow(),
            },
        )
        if decision.status == "approved" and await self.repositories.doctors.get(request.doctor_id) is not None:
            await self.delete_doctor(request.doctor_id)

        self.logger.info(
            "Deletion request processed",
            request_id=request_id,
            doctor_id=request.doctor_id,
            status=decision.status,
        )
        return request

    async def set_approval(self, doctor_id: str, status: str) -> Doctor:
        doctor = await self.repositories.doctors.update(doctor_id, {"is_approved": status})
        if doctor is None:
            raise NotFoundError("Doctor", doctor_id)
        self.logger.info("Doctor approval changed", doctor_id=doctor_id, status=status)
        return doctor

    async def delete_doctor(self, doctor_id: str) -> None:
        """Remove a doctor with their reviews, and close any deletion request."""
        if not await self.repositories.doctors.delete(doctor_id):
            raise NotFoundError("Doctor", doctor_id)
        removed_reviews = await self.repositories.reviews.delete_where(lambda review: review.doctor_id == doctor_id)
        for request in await self.repositories.deletion_requests.find(
            lambda request: request.doctor_id == doctor_id and request.status == "pending"
        ):
            await self.repositories.deletion_requests.update(request.id, {"status": "approved"})
        self.logger.info("Doctor deleted", doctor_id=doctor_id, removed_reviews=removed_reviews)


class ReviewService:
    """Patient reviews and the doctor rating aggregate they feed."""

    def __init__(self, repositories: Repositories):
        self.repositories = repositories
        self.logger = get_logger("booking.reviews")

    async def list_for_doctor(self, doctor_id: str) -> List[Review]:
        if await self.repositories.doctors.get(doctor_id) is None:
            raise NotFoundError("Doctor", doctor_id)
        return await self.repositories.reviews.for_doctor(doctor_id)

    async def create_review(self, doctor_id: str, user_id: str, payload: ReviewCreate) -> Review:
        if await self.repositories.doctors.get(doctor_id) is None:
            raise NotFoundError("Doctor", doctor_id)

        existing = await self.repositories.reviews.find_one(
            lambda review: review.doctor_id == doctor_id and review.user_id == user_id
        )
        if existing is not None:
            raise ConflictError("You have already reviewed this doctor", {"review_id": existing.id})

        review = await self.repositories.reviews.insert(
            Review(doctor_id=doctor_id, user_id=user_id, rating=payload.rating, review_text=payload.review_text)
        )
        await self.refresh_rating(doctor_id)
        return review

    async def delete_review(self, review_id: str, actor_id: str, actor_role: str) -> None:
        review = await self.repositories.reviews.get(review_id)
        if review is None:
            raise NotFoundError("Review", review_id)
        if actor_role != "admin" and review.user_id != actor_id:
            raise AuthorizationError("You can only delete your own reviews")

        await self.repositories.reviews.delete(review_id)
        await self.refresh_rating(review.doctor_id)

    async def refresh_rating(self, doctor_id: str) -> None:
        """Recompute a doctor's average and count from their reviews."""
        reviews = await self.repositories.reviews.for_doctor(doctor_id)
        total = len(reviews)
        average = round(sum(review.rating for review in reviews) / total, 2) if total else 0
        await self.repositories.doctors.update(doctor_id, {"average_rating": average, "total_rating": total})
        self.logger.debug("Doctor rating refreshed", doctor_id=doctor_id, average_rating=average, total_rating=total)


class AppointmentService:
    """Appointment booking and lifecycle."""

    def __init__(self, repositories: Repositories):
        self.repositories = repositories
        self.logger = get_logger("booking.appointments")

    async def book(self, patient_id: str, payload: AppointmentCreate) -> Appointment:
        doctor = await self.repositories.doctors.get(payload.doctor_id)
        if doctor is None or doctor.is_approved != "approved":
            raise NotFoundError("Doctor", payload.doctor_id)

        clash = await self.repositories.appointments.find_active_booking(
            payload.doctor_id, payload.appointment_date, payload.time_slot
        )
        if clash is not None:
            raise ConflictError(
                "This time slot is already booked",
                {"appointment_date": payload.appointment_date.isoformat(), "time_slot": payload.time_slot},
            )

        appointment = await self.repositories.appointments.insert(
            Appointment(
                doctor_id=doctor.id,
                patient_id=patient_id,
                appointment_date=payload.appointment_date,
                time_slot=payload.time_slot,
                fee=doctor.ticket_price,
                symptoms=payload.symptoms,
                medical_history=payload.medical_history,
                payment_method=payload.payment_method,
            )
        )
        self.logger.info("Appointment booked", appointment_id=appointment.id, doctor_id=doctor.id)
        return appointment

    async def for_patient(self, patient_id: str) -> List[Appointment]:
        appointments = await self.repositories.appointments.find(lambda item: item.patient_id == patient_id)
        return sorted(appointments, key=lambda item: item.appointment_date, reverse=True)

    async def for_doctor(self, doctor_id: str) -> List[Appointment]:
        appointments = await self.repositories.appointments.find(lambda item: item.doctor_id == doctor_id)
        return sorted(appointments, key=lambda item: item.appointment_date, reverse=True)

    async def list_all(self) -> List[Appointment]:
        appointments = await self.repositories.appointments.find()
        return sorted(appointments, key=lambda item: item.appointment_date, reverse=True)

    async def update_status(
        self,
        appointment_id: str,
        update: AppointmentStatusUpdate,
        actor_id: str,
        actor_role: str,
    ) -> Appointment:
        appointment = await self.repositories.appointments.get(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        if actor_role == "doctor" and appointment.doctor_id != actor_id:
            raise AuthorizationError("Doctors may only manage their own appointments")

        changes = update.model_dump(exclude_none=True)
        updated = await self.repositories.appointments.update(appointment_id, changes)
        self.logger.info("Appointment status changed", appointment_id=appointment_id, status=update.status)
        return updated

    async def cancel(self, appointment_id: str, actor_id: str, actor_role: str) -> None:
        appointment = await self.repositories.appointments.get(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        if actor_role != "admin" and actor_id not in (appointment.patient_id, appointment.doctor_id):
            raise AuthorizationError("You can only delete your own appointments")

        await self.repositories.appointments.delete(appointment_id)
        self.logger.info("Appointment deleted", appointment_id=appointment_id)


class AdminService:
    """Aggregates for the admin dashboard."""

    def __init__(self, repositories: Repositories):
        self.repositories = repositories

    async def dashboard(self) -> Dict[str, Any]:
        doctors = await self.repositories.doctors.find()
        appointments = await self.repositories.appointments.find()

        doctors_by_status: Dict[str, int] = {"pending": 0, "approved": 0, "cancelled": 0}
        for doctor in doctors:
            doctors_by_status[doctor.is_approved] += 1

        appointments_by_status: Dict[str, int] = {"pending": 0, "confirmed": 0, "completed": 0, "cancelled": 0}
        for appointment in appointments:
            appointments_by_status[appointment.status] += 1

        revenue = sum(appointment.fee for appointment in appointments if appointment.status == "completed")

        return {
            "total_doctors": len(doctors),
            "doctors_by_status": doctors_by_status,
            "total_appointments": len(appointments),
            "appointments_by_status": appointments_by_status,
            "total_reviews": await self.repositories.reviews.count(),
            "pending_deletion_requests": await self.repositories.deletion_requests.count(
                lambda request: request.status == "pending"
            ),
            "completed_revenue": revenue,
        }
