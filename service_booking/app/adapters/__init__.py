"""
Adapters package for the booking service.

Contains the storage adapters the domain services are written against. The
in-memory repositories keep the document-store shape (ids, partial updates,
predicate queries) so a database-backed adapter can replace them without
touching the services.
"""

from .repositories import (
    AppointmentRepository,
    DeletionRequestRepository,
    DoctorRepository,
    InMemoryRepository,
    Repositories,
    ReviewRepository,
    seed_demo_data,
)

__all__ = [
    "AppointmentRepository",
    "DeletionRequestRepository",
    "DoctorRepository",
    "InMemoryRepository",
    "Repositories",
    "ReviewRepository",
    "seed_demo_data",
]
