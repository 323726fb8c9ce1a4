"""
Orthodontic Practice Backend - Pydantic Schemas for Validation
"""
import re
from datetime import date, datetime, timedelta
from typing import Annotated, Optional, List, Dict, Any

from pydantic import AfterValidator, BaseModel, Field, field_validator

from .models import (
    UserRole, Gender, PlanStatus, Complexity, PhaseStatus, NoteType,
    AppointmentType, AppointmentStatus, PaymentMethod, PaymentStatus, PhotoCategory
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
PHONE_PATTERN = re.compile(r"^(\+30)?[6-7]\d{8}$")
TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


def check_password_strength(value: str) -> str:
    if len(value) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not (re.search(r"[a-z]", value) and re.search(r"[A-Z]", value) and re.search(r"\d", value)):
        raise ValueError(
            "Password must contain at least one lowercase letter, one uppercase letter, and one number"
        )
    return value


StrongPassword = Annotated[str, AfterValidator(check_password_strength)]


def pad_clock_time(value: Optional[str]) -> Optional[str]:
    """"9:05" -> "09:05" so stored times sort as strings"""
    if value is None:
        return None
    hours, minutes = value.split(":")
    return f"{int(hours):02d}:{minutes}"


ClockTime = Annotated[str, Field(pattern=TIME_PATTERN), AfterValidator(pad_clock_time)]


# ==================== Auth Schemas ====================

class UserRegister(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    password: StrongPassword
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.DOCTOR


class LoginRequest(BaseModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: StrongPassword


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN)


class RoleUpdate(BaseModel):
    role: UserRole


class UserResponse(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: UserRole
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== Patient Schemas ====================

class PatientBase(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: Optional[str] = Field(None, pattern=EMAIL_PATTERN, max_length=255)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    address: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=10)
    country: Optional[str] = Field("Greece", max_length=100)
    medical_history: Optional[Dict[str, Any]] = None
    allergies: Optional[str] = Field(None, max_length=500)
    medications: Optional[str] = Field(None, max_length=500)
    emergency_contact: Optional[Dict[str, Any]] = None
    insurance_info: Optional[Dict[str, Any]] = None
    orthodontic_history: Optional[Dict[str, Any]] = None
    referral_source: Optional[str] = Field(None, max_length=200)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, value):
        if value is None:
            return value
        value = value.replace(" ", "")
        if not PHONE_PATTERN.match(value):
            raise ValueError("Invalid Greek phone number format")
        return value


class PatientCreate(PatientBase):
    pass


class PatientUpdate(PatientBase):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    country: Optional[str] = Field(None, max_length=100)


class PatientResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    medical_history: Optional[Dict[str, Any]] = None
    allergies: Optional[str] = None
    medications: Optional[str] = None
    emergency_contact: Optional[Dict[str, Any]] = None
    insurance_info: Optional[Dict[str, Any]] = None
    orthodontic_history: Optional[Dict[str, Any]] = None
    referral_source: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PatientBulkUpdate(BaseModel):
    patient_ids: List[int] = Field(..., min_length=1)
    updates: PatientUpdate


class BookingImportRequest(BaseModel):
    booking_id: str = Field(..., min_length=1, description="Legacy booking id or booking number")


# ==================== Treatment Plan Schemas ====================

class TreatmentPlanCreate(BaseModel):
    patient_id: int
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    diagnosis: str = Field(..., min_length=1, max_length=500)
    treatment_goals: List[str] = Field(default_factory=list)
    estimated_duration: Optional[int] = Field(None, gt=0, description="Months")
    complexity: Complexity = Complexity.MODERATE
    initial_assessment: Dict[str, Any] = Field(default_factory=dict)
    treatment_options: Dict[str, Any] = Field(default_factory=dict)
    selected_option: Optional[str] = Field(None, max_length=200)
    appliances_used: List[str] = Field(default_factory=list)
    materials_list: Optional[Any] = None
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None
    total_cost: Optional[float] = Field(None, gt=0)
    payment_plan: Optional[Dict[str, Any]] = None


class TreatmentPlanUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    diagnosis: Optional[str] = Field(None, min_length=1, max_length=500)
    treatment_goals: Optional[List[str]] = None
    estimated_duration: Optional[int] = Field(None, gt=0)
    complexity: Optional[Complexity] = None
    initial_assessment: Optional[Dict[str, Any]] = None
    treatment_options: Optional[Dict[str, Any]] = None
    selected_option: Optional[str] = Field(None, max_length=200)
    appliances_used: Optional[List[str]] = None
    materials_list: Optional[Any] = None
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None
    total_cost: Optional[float] = Field(None, gt=0)
    payment_plan: Optional[Dict[str, Any]] = None


class PlanStatusUpdate(BaseModel):
    status: PlanStatus
    actual_end_date: Optional[date] = None


class TreatmentPlanResponse(BaseModel):
    id: int
    patient_id: int
    title: str
    description: Optional[str] = None
    diagnosis: str
    treatment_goals: Optional[List[str]] = None
    estimated_duration: Optional[int] = None
    complexity: Complexity
    initial_assessment: Optional[Dict[str, Any]] = None
    treatment_options: Optional[Dict[str, Any]] = None
    selected_option: Optional[str] = None
    appliances_used: Optional[List[str]] = None
    materials_list: Optional[Any] = None
    status: PlanStatus
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    total_cost: Optional[float] = None
    payment_plan: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== Treatment Phase Schemas ====================

class PhaseCreate(BaseModel):
    treatment_plan_id: int
    patient_id: int
    phase_number: int = Field(..., gt=0)
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    objectives: List[str] = Field(default_factory=list)
    appliances: Dict[str, Any] = Field(default_factory=dict)
    instructions: Optional[str] = Field(None, max_length=1000)
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None


class PhaseUpdate(BaseModel):
    phase_number: Optional[int] = Field(None, gt=0)
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    objectives: Optional[List[str]] = None
    appliances: Optional[Dict[str, Any]] = None
    instructions: Optional[str] = Field(None, max_length=1000)
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    progress: Optional[int] = Field(None, ge=0, le=100)


class PhaseStatusUpdate(BaseModel):
    status: PhaseStatus
    progress: Optional[int] = Field(None, ge=0, le=100)
    actual_end_date: Optional[date] = None


class PhaseResponse(BaseModel):
    id: int
    treatment_plan_id: int
    patient_id: int
    phase_number: int
    title: str
    description: Optional[str] = None
    objectives: Optional[List[str]] = None
    appliances: Optional[Dict[str, Any]] = None
    instructions: Optional[str] = None
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    status: PhaseStatus
    progress: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== Clinical Note Schemas ====================

class ClinicalNoteCreate(BaseModel):
    patient_id: int
    treatment_plan_id: Optional[int] = None
    phase_id: Optional[int] = None
    appointment_id: Optional[int] = None
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=10000)
    note_type: NoteType = NoteType.GENERAL
    tags: List[str] = Field(default_factory=list)
    observations: Optional[Dict[str, Any]] = None
    recommendations: Optional[str] = Field(None, max_length=2000)
    next_steps: Optional[str] = Field(None, max_length=2000)


class ClinicalNoteUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1, max_length=10000)
    note_type: Optional[NoteType] = None
    tags: Optional[List[str]] = None
    observations: Optional[Dict[str, Any]] = None
    recommendations: Optional[str] = Field(None, max_length=2000)
    next_steps: Optional[str] = Field(None, max_length=2000)


class ClinicalNoteResponse(BaseModel):
    id: int
    patient_id: int
    treatment_plan_id: Optional[int] = None
    phase_id: Optional[int] = None
    appointment_id: Optional[int] = None
    title: str
    content: str
    note_type: NoteType
    tags: Optional[List[str]] = None
    observations: Optional[Dict[str, Any]] = None
    recommendations: Optional[str] = None
    next_steps: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== Appointment Schemas ====================

class AppointmentCreate(BaseModel):
    patient_id: int
    treatment_plan_id: Optional[int] = None
    phase_id: Optional[int] = None
    appointment_date: date
    appointment_time: ClockTime = Field(..., description="HH:MM")
    duration: int = Field(30, gt=0, le=480)
    appointment_type: AppointmentType = AppointmentType.CONSULTATION
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: Optional[str] = Field(None, max_length=1000)
    reason_for_visit: Optional[str] = Field(None, max_length=500)


class AppointmentUpdate(BaseModel):
    treatment_plan_id: Optional[int] = None
    phase_id: Optional[int] = None
    appointment_date: Optional[date] = None
    appointment_time: Optional[ClockTime] = None
    duration: Optional[int] = Field(None, gt=0, le=480)
    appointment_type: Optional[AppointmentType] = None
    notes: Optional[str] = Field(None, max_length=1000)
    reason_for_visit: Optional[str] = Field(None, max_length=500)
    treatment_performed: Optional[str] = Field(None, max_length=2000)


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus
    treatment_performed: Optional[str] = Field(None, max_length=2000)


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    treatment_plan_id: Optional[int] = None
    phase_id: Optional[int] = None
    appointment_date: date
    appointment_time: str
    duration: int
    appointment_type: AppointmentType
    status: AppointmentStatus
    notes: Optional[str] = None
    reason_for_visit: Optional[str] = None
    treatment_performed: Optional[str] = None
    legacy_booking_id: Optional[str] = None
    booking_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== Payment Schemas ====================

class PaymentCreate(BaseModel):
    patient_id: int
    treatment_plan_id: Optional[int] = None
    amount: float = Field(..., gt=0)
    currency: str = Field("EUR", min_length=3, max_length=3)
    payment_method: PaymentMethod = PaymentMethod.CASH
    status: PaymentStatus = PaymentStatus.PENDING
    description: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[date] = None
    paid_date: Optional[datetime] = None
    transaction_id: Optional[str] = Field(None, max_length=100)
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    discount: float = Field(0, ge=0)


class PaymentUpdate(BaseModel):
    treatment_plan_id: Optional[int] = None
    amount: Optional[float] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    payment_method: Optional[PaymentMethod] = None
    description: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[date] = None
    transaction_id: Optional[str] = Field(None, max_length=100)
    vat_rate: Optional[float] = Field(None, ge=0, le=100)
    discount: Optional[float] = Field(None, ge=0)


class PaymentStatusUpdate(BaseModel):
    status: PaymentStatus
    paid_date: Optional[datetime] = None
    transaction_id: Optional[str] = Field(None, max_length=100)


class MarkPaidRequest(BaseModel):
    transaction_id: Optional[str] = Field(None, max_length=100)
    paid_date: Optional[datetime] = None


class PaymentPlanCreate(BaseModel):
    patient_id: int
    treatment_plan_id: int
    total_amount: float = Field(..., gt=0)
    number_of_payments: int = Field(..., ge=1, le=60)
    first_payment_date: date
    payment_method: PaymentMethod = PaymentMethod.CASH
    currency: str = Field("EUR", min_length=3, max_length=3)


class PaymentResponse(BaseModel):
    id: int
    patient_id: int
    treatment_plan_id: Optional[int] = None
    amount: float
    currency: str
    payment_method: PaymentMethod
    status: PaymentStatus
    description: Optional[str] = None
    notes: Optional[str] = None
    due_date: Optional[date] = None
    paid_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    receipt_number: Optional[str] = None
    vat_rate: Optional[float] = None
    discount: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== Photo Schemas ====================

class PhotoUpdate(BaseModel):
    category: Optional[PhotoCategory] = None
    subcategory: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    tags: Optional[List[str]] = None
    phase_id: Optional[int] = None
    appointment_id: Optional[int] = None


class PhotoBatchItem(PhotoUpdate):
    id: int


class PhotoBatchUpdate(BaseModel):
    updates: List[PhotoBatchItem] = Field(..., min_length=1)


class PhotoBulkDelete(BaseModel):
    photo_ids: List[int] = Field(..., min_length=1)


class BeforeAfterPairRequest(BaseModel):
    before_photo_id: int
    after_photo_id: int


class PhotoResponse(BaseModel):
    id: int
    patient_id: int
    filename: str
    original_name: Optional[str] = None
    cloudinary_id: str
    cloudinary_url: str
    category: PhotoCategory
    subcategory: Optional[str] = None
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    phase_id: Optional[int] = None
    appointment_id: Optional[int] = None
    is_before_after: bool
    before_after_pair_id: Optional[str] = None
    uploaded_by: Optional[int] = None
    uploaded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ==================== Legacy Booking Schemas ====================

class BookingRecord(BaseModel):
    """A row of the legacy booking system's bookings table"""
    id: int
    booking_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = None
    service_type: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("appointment_time", mode="before")
    @classmethod
    def normalize_time(cls, value):
        if value is None:
            return None
        if isinstance(value, str):
            parts = value.strip().split(":")
            value = ":".join(parts[:2]) if len(parts) == 3 else value.strip()
            return pad_clock_time(value) if re.match(TIME_PATTERN, value) else value
        # MySQL TIME columns arrive as timedelta
        if isinstance(value, timedelta):
            minutes = int(value.total_seconds()) // 60
            return f"{minutes // 60:02d}:{minutes % 60:02d}"
        return value.strftime("%H:%M")

    class Config:
        from_attributes = True


class SyncResult(BaseModel):
    success: bool = True
    total_bookings: int = 0
    new_patients: int = 0
    new_appointments: int = 0
    updated_appointments: int = 0
    errors: List[str] = Field(default_factory=list)


# ==================== Assessment Schemas ====================

class MalocclusionMeasurements(BaseModel):
    overjet: Optional[float] = None
    overbite: Optional[float] = Field(None, description="Percent of lower incisor covered")
    upper_space_analysis: Optional[float] = None
    lower_space_analysis: Optional[float] = None
    upper_midline_deviation: Optional[float] = None
    lower_midline_deviation: Optional[float] = None
    anterior_crossbite: bool = False
    posterior_crossbite_right: bool = False
    posterior_crossbite_left: bool = False
    congenitally_missing_teeth: List[str] = Field(default_factory=list)
    impacted_teeth: List[str] = Field(default_factory=list)


class AssessmentCreate(MalocclusionMeasurements):
    patient_id: int
    assessment_date: date = Field(default_factory=date.today)
    angle_class: Optional[str] = Field(None, max_length=20)
    incisor_class: Optional[str] = Field(None, max_length=20)
    canine_class_right: Optional[str] = Field(None, max_length=20)
    canine_class_left: Optional[str] = Field(None, max_length=20)
    treatment_complexity: Optional[Complexity] = None
    notes: Optional[str] = Field(None, max_length=2000)


class AssessmentResponse(AssessmentCreate):
    id: int
    severity_score: int
    severity: str
    congenitally_missing_teeth: Optional[List[str]] = None
    impacted_teeth: Optional[List[str]] = None
    assessed_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
