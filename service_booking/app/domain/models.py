"""
Booking domain models.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Literal, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field


ApprovalStatus = Literal["pending", "approved", "cancelled"]
AppointmentStatus = Literal["pending", "confirmed", "completed", "cancelled"]
PaymentMethod = Literal["cash", "card", "insurance"]

ACTIVE_APPOINTMENT_STATUSES = ("pending", "confirmed")


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimeSlot(BaseModel):
    """Weekly consulting slot advertised by a doctor."""

    day: str
    starting_time: str
    ending_time: str


class Doctor(BaseModel):
    """Doctor profile as stored and served."""

    id: str = Field(default_factory=new_id)
    name: str
    email: str
    phone: Optional[str] = None
    photo: Optional[str] = None
    specialization: Optional[str] = None
    ticket_price: float = Field(default=0, ge=0)
    qualifications: List[Dict[str, Any]] = Field(default_factory=list)
    experiences: List[Dict[str, Any]] = Field(default_factory=list)
    time_slots: List[TimeSlot] = Field(default_factory=list)
    bio: Optional[str] = Field(default=None, max_length=50)
    about: Optional[str] = None
    average_rating: float = 0
    total_rating: int = 0
    is_approved: ApprovalStatus = "pending"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DoctorUpdate(BaseModel):
    """Fields a doctor may change on their own profile."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    photo: Optional[str] = None
    specialization: Optional[str] = None
    ticket_price: Optional[float] = Field(default=None, ge=0)
    qualifications: Optional[List[Dict[str, Any]]] = None
    experiences: Optional[List[Dict[str, Any]]] = None
    time_slots: Optional[List[TimeSlot]] = None
    bio: Optional[str] = Field(default=None, max_length=50)
    about: Optional[str] = None


class DoctorStatusUpdate(BaseModel):
    status: ApprovalStatus


class Review(BaseModel):
    id: str = Field(default_factory=new_id)
    doctor_id: str
    user_id: str
    rating: int = Field(ge=1, le=5)
    review_text: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class ReviewCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rating: int = Field(ge=1, le=5)
    review_text: Optional[str] = Field(default=None, max_length=1000)


class Appointment(BaseModel):
    id: str = Field(default_factory=new_id)
    doctor_id: str
    patient_id: str
    appointment_date: date
    time_slot: str
    fee: float
    status: AppointmentStatus = "pending"
    symptoms: Optional[str] = None
    medical_history: Optional[str] = None
    prescription: Optional[str] = None
    notes: Optional[str] = None
    is_paid: bool = False
    payment_method: PaymentMethod = "cash"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AppointmentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    doctor_id: str = Field(min_length=1)
    appointment_date: date
    time_slot: str = Field(min_length=1)
    symptoms: Optional[str] = None
    medical_history: Optional[str] = None
    payment_method: PaymentMethod = "cash"


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    notes: Optional[str] = None
    prescription: Optional[str] = None


class DeletionRequest(BaseModel):
    """A doctor's request to have their profile removed, pending admin review."""

    id: str = Field(default_factory=new_id)
    doctor_id: str
    requested_by: str
    reason: Optional[str] = None
    status: Literal["pending", "approved", "rejected"] = "pending"
    admin_notes: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


class DeletionRequestCreate(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class DeletionRequestDecision(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: Literal["approved", "rejected"]
    admin_notes: Optional[str] = Field(default=None, max_length=500)
