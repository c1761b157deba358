"""
Booking API service for the Medicare platform.
"""

from typing import Any, Dict, Optional

from fastapi import Body, Depends, Query

from shared.base_service import BaseService
from shared.config import ServiceConfig
from shared.errors import AuthorizationError
from .adapters.repositories import Repositories, seed_demo_data
from .auth.tokens import AuthContext, TokenAuthenticator
from .caching import CacheInterceptor, CacheStore, CacheSweeper, InvalidationTrigger
from .domain.booking import AdminService, AppointmentService, DoctorService, ReviewService
from .domain.models import (
    AppointmentCreate,
    AppointmentStatusUpdate,
    DeletionRequestCreate,
    DeletionRequestDecision,
    DoctorStatusUpdate,
    DoctorUpdate,
    ReviewCreate,
)


API_PREFIX = "/api/v1"
DOCTORS_COLLECTION = f"{API_PREFIX}/doctors"


def _envelope(message: str, data: Any = None, **extra: Any) -> Dict[str, Any]:
    """Standard success body."""
    body: Dict[str, Any] = {"success": True, "message": message}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def _dump(items):
    return [item.model_dump(mode="json") for item in items]


class BookingService(BaseService):
    """Booking API service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        repositories: Optional[Repositories] = None,
        cache_store: Optional[CacheStore] = None,
    ):
        super().__init__("booking", 8000, config=config)

        self.repositories = repositories or Repositories()
        self.doctor_service = DoctorService(self.repositories)
        self.review_service = ReviewService(self.repositories)
        self.appointment_service = AppointmentService(self.repositories)
        self.admin_service = AdminService(self.repositories)

        self.auth = TokenAuthenticator(self.config.jwt_secret, self.config.jwt_algorithm)
        self.require_patient = self.auth.require_roles("patient")
        self.require_doctor = self.auth.require_roles("doctor")
        self.require_admin = self.auth.require_roles("admin")
        self.require_doctor_or_admin = self.auth.require_roles("doctor", "admin")
        self.require_patient_or_admin = self.auth.require_roles("patient", "admin")
        self.require_any_role = self.auth.require_roles("patient", "doctor", "admin")

        # One store per process, handed to every cache collaborator
        self.cache_store = cache_store or CacheStore(default_ttl=self.config.cache_default_ttl_seconds)
        self.cache_interceptor = CacheInterceptor(
            self.cache_store,
            ttl_seconds=self.config.cache_default_ttl_seconds,
            enabled=self.config.cache_enabled,
            metrics=self.metrics,
        )
        self.invalidation = InvalidationTrigger(self.cache_store, metrics=self.metrics)
        self.invalidate_doctors = self.invalidation.dependency(collections=[DOCTORS_COLLECTION])
        self.cache_sweeper = CacheSweeper(
            self.cache_store,
            self.config.cache_sweep_interval_seconds,
            metrics=self.metrics,
        )

        @self.app.on_event("startup")
        async def _startup():
            if self.config.seed_demo_data:
                added = await seed_demo_data(self.repositories)
                self.logger.info("Seeded demo data", doctors=added)
            await self.cache_sweeper.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.cache_sweeper.stop()

        self._setup_booking_routes()
        self._setup_doctor_routes()
        self._setup_review_routes()
        self._setup_appointment_routes()
        self._setup_admin_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.booking_service = self

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "cache": "ok" if self.config.cache_enabled else "disabled",
            "cache_sweeper": "running" if self.cache_sweeper.running else "stopped",
        }

    def _setup_booking_routes(self):
        """Set up service-level routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "booking",
                "message": "HELLO MEDICARE",
                "version": "1.0.0"
            }

    def _setup_doctor_routes(self):
        """Set up public doctor directory and doctor self-service routes."""

        async def list_doctors(
            query: Optional[str] = Query(None, description="Match on name or specialization"),
            specialization: Optional[str] = Query(None),
            sort: Optional[str] = Query(None, description="rating, -rating, price or -price"),
            limit: Optional[int] = Query(None),
        ):
            """List approved doctors."""
            doctors = await self.doctor_service.list_doctors(query, specialization, sort, limit)
            return _envelope("Doctors Found", _dump(doctors))

        async def get_doctor(doctor_id: str):
            """Doctor profile with reviews."""
            detail = await self.doctor_service.get_doctor_detail(doctor_id)
            return _envelope("Doctor Found", detail)

        # Cached reads: list views outlive detail views
        self.app.router.add_api_route(
            DOCTORS_COLLECTION,
            list_doctors,
            methods=["GET"],
            route_class_override=self.cache_interceptor.route_class(self.config.cache_list_ttl_seconds),
        )
        self.app.router.add_api_route(
            f"{DOCTORS_COLLECTION}/{{doctor_id}}",
            get_doctor,
            methods=["GET"],
            route_class_override=self.cache_interceptor.route_class(self.config.cache_detail_ttl_seconds),
        )

        @self.app.put(
            f"{DOCTORS_COLLECTION}/{{doctor_id}}",
            dependencies=[Depends(self.require_doctor), Depends(self.invalidate_doctors)],
        )
        async def update_doctor(
            doctor_id: str,
            update: DoctorUpdate,
            actor: AuthContext = Depends(self.require_doctor),
        ):
            """Update the caller's own doctor profile."""
            doctor = await self.doctor_service.update_doctor(doctor_id, update, actor.subject)
            return _envelope("Successfully updated", doctor.model_dump(mode="json"))

        @self.app.delete(
            f"{DOCTORS_COLLECTION}/{{doctor_id}}",
            dependencies=[Depends(self.require_doctor), Depends(self.invalidate_doctors)],
        )
        async def delete_doctor(
            doctor_id: str,
            payload: Optional[DeletionRequestCreate] = Body(None),
            actor: AuthContext = Depends(self.require_doctor),
        ):
            """Doctors cannot remove themselves; file a deletion request instead."""
            reason = payload.reason if payload else None
            request = await self.doctor_service.request_deletion(doctor_id, actor.subject, reason)
            return _envelope(
                "Please submit a deletion request",
                request.model_dump(mode="json"),
                requires_approval=True,
            )

        @self.app.get(f"{API_PREFIX}/deletion-requests/status")
        async def deletion_request_status(actor: AuthContext = Depends(self.require_doctor)):
            """The caller's most recent deletion request."""
            request = await self.doctor_service.deletion_request_status(actor.subject)
            return _envelope("Deletion request status retrieved", request.model_dump(mode="json"))

    def _setup_review_routes(self):
        """Set up review routes."""

        @self.app.get(f"{DOCTORS_COLLECTION}/{{doctor_id}}/reviews")
        async def list_reviews(doctor_id: str):
            """Reviews for a doctor."""
            reviews = await self.review_service.list_for_doctor(doctor_id)
            return _envelope("Successful", _dump(reviews))

        @self.app.post(
            f"{DOCTORS_COLLECTION}/{{doctor_id}}/reviews",
            status_code=201,
            dependencies=[Depends(self.require_patient), Depends(self.invalidate_doctors)],
        )
        async def create_review(
            doctor_id: str,
            payload: ReviewCreate,
            actor: AuthContext = Depends(self.require_patient),
        ):
            """Review a doctor; ratings feed the cached doctor views."""
            review = await self.review_service.create_review(doctor_id, actor.subject, payload)
            self.metrics.record_business_event("review_created")
            return _envelope("Review submitted", review.model_dump(mode="json"))

        @self.app.delete(
            f"{API_PREFIX}/reviews/{{review_id}}",
            dependencies=[Depends(self.require_patient_or_admin), Depends(self.invalidate_doctors)],
        )
        async def delete_review(
            review_id: str,
            actor: AuthContext = Depends(self.require_patient_or_admin),
        ):
            """Delete a review."""
            await self.review_service.delete_review(review_id, actor.subject, actor.role)
            return _envelope("Review deleted")

    def _setup_appointment_routes(self):
        """Set up appointment routes."""

        @self.app.post(f"{API_PREFIX}/appointments", status_code=201)
        async def create_appointment(
            payload: AppointmentCreate,
            actor: AuthContext = Depends(self.require_patient),
        ):
            """Book an appointment slot."""
            appointment = await self.appointment_service.book(actor.subject, payload)
            self.metrics.record_business_event("appointment_booked")
            return _envelope("Appointment created successfully", appointment.model_dump(mode="json"))

        @self.app.get(f"{API_PREFIX}/appointments/patient")
        async def patient_appointments(actor: AuthContext = Depends(self.require_patient)):
            """The caller's appointments."""
            appointments = await self.appointment_service.for_patient(actor.subject)
            return _envelope("Appointments retrieved", _dump(appointments))

        @self.app.get(f"{API_PREFIX}/appointments/doctor/{{doctor_id}}")
        async def doctor_appointments(doctor_id: str, actor: AuthContext = Depends(self.require_doctor)):
            """Appointments booked with the calling doctor."""
            if actor.subject != doctor_id:
                raise AuthorizationError("Doctors may only view their own appointments")
            appointments = await self.appointment_service.for_doctor(doctor_id)
            return _envelope("Appointments retrieved", _dump(appointments))

        @self.app.put(f"{API_PREFIX}/appointments/{{appointment_id}}/status")
        async def update_appointment_status(
            appointment_id: str,
            update: AppointmentStatusUpdate,
            actor: AuthContext = Depends(self.require_doctor_or_admin),
        ):
            """Move an appointment through its lifecycle."""
            appointment = await self.appointment_service.update_status(
                appointment_id, update, actor.subject, actor.role
            )
            return _envelope("Appointment status updated", appointment.model_dump(mode="json"))

        @self.app.delete(f"{API_PREFIX}/appointments/{{appointment_id}}")
        async def delete_appointment(
            appointment_id: str,
            actor: AuthContext = Depends(self.require_any_role),
        ):
            """Delete an appointment."""
            await self.appointment_service.cancel(appointment_id, actor.subject, actor.role)
            return _envelope("Appointment deleted successfully")

    def _setup_admin_routes(self):
        """Set up admin moderation and cache management routes."""
        admin_prefix = f"{API_PREFIX}/admin"

        @self.app.get(f"{admin_prefix}/dashboard", dependencies=[Depends(self.require_admin)])
        async def dashboard():
            """Dashboard counters."""
            return _envelope("Dashboard stats retrieved", await self.admin_service.dashboard())

        @self.app.get(f"{admin_prefix}/doctors", dependencies=[Depends(self.require_admin)])
        async def all_doctors():
            """Every doctor regardless of approval."""
            return _envelope("Doctors retrieved", _dump(await self.doctor_service.list_all()))

        @self.app.put(
            f"{admin_prefix}/doctors/{{doctor_id}}/status",
            dependencies=[Depends(self.require_admin), Depends(self.invalidate_doctors)],
        )
        async def update_doctor_status(doctor_id: str, update: DoctorStatusUpdate):
            """Approve, reject or reset a doctor."""
            doctor = await self.doctor_service.set_approval(doctor_id, update.status)
            verb = {"approved": "approved", "cancelled": "rejected"}.get(update.status, "status updated")
            return _envelope(f"Doctor {verb}", doctor.model_dump(mode="json"))

        @self.app.delete(
            f"{admin_prefix}/doctors/{{doctor_id}}",
            dependencies=[Depends(self.require_admin), Depends(self.invalidate_doctors)],
        )
        async def remove_doctor(doctor_id: str):
            """Remove a doctor."""
            await self.doctor_service.delete_doctor(doctor_id)
            return _envelope("Doctor deleted successfully")

        @self.app.get(f"{admin_prefix}/appointments", dependencies=[Depends(self.require_admin)])
        async def all_appointments():
            """Every appointment."""
            return _envelope("Appointments retrieved", _dump(await self.appointment_service.list_all()))

        @self.app.get(f"{admin_prefix}/deletion-requests", dependencies=[Depends(self.require_admin)])
        async def deletion_requests():
            """Pending doctor deletion requests."""
            return _envelope("Deletion requests retrieved", _dump(await self.doctor_service.pending_deletion_requests()))

        @self.app.put(
            f"{admin_prefix}/deletion-requests/{{request_id}}",
            dependencies=[Depends(self.require_admin), Depends(self.invalidate_doctors)],
        )
        async def process_deletion_request(
            request_id: str,
            decision: DeletionRequestDecision,
            actor: AuthContext = Depends(self.require_admin),
        ):
            """Approve or reject a deletion request. Approval deletes the doctor."""
            request = await self.doctor_service.process_deletion_request(request_id, decision, actor.subject)
            return _envelope(f"Deletion request {request.status}", request.model_dump(mode="json"))

        @self.app.get(f"{admin_prefix}/cache/stats", dependencies=[Depends(self.require_admin)])
        async def cache_stats():
            """Response cache counters."""
            stats = self.cache_store.stats().to_dict()
            stats["live_keys"] = self.cache_store.size()
            stats["enabled"] = self.config.cache_enabled
            return _envelope("Cache stats retrieved", stats)

        @self.app.delete(f"{admin_prefix}/cache", dependencies=[Depends(self.require_admin)])
        async def flush_cache():
            """Drop every cached response."""
            self.cache_store.flush()
            self.metrics.set_gauge("cache_entries", 0)
            return _envelope("Cache flushed")


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = BookingService(config)
    return service.app


if __name__ == "__main__":
    service = BookingService()
    service.run()
