"""
Orthodontic Practice Backend - Database ORM Models
"""
import enum
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, JSON, Float, Boolean,
    ForeignKey, Numeric, Enum, UniqueConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from .db import Base

# Money columns come back as float so they serialize straight to JSON
Money = Numeric(10, 2, asdecimal=False)


# ==================== Enumerations ====================

class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    DOCTOR = "DOCTOR"
    ASSISTANT = "ASSISTANT"


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"


class PlanStatus(str, enum.Enum):
    PLANNING = "PLANNING"
    ACTIVE = "ACTIVE"
    ON_HOLD = "ON_HOLD"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Complexity(str, enum.Enum):
    SIMPLE = "SIMPLE"
    MODERATE = "MODERATE"
    COMPLEX = "COMPLEX"
    SEVERE = "SEVERE"


class PhaseStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"


class NoteType(str, enum.Enum):
    CONSULTATION = "CONSULTATION"
    EXAMINATION = "EXAMINATION"
    TREATMENT = "TREATMENT"
    FOLLOW_UP = "FOLLOW_UP"
    EMERGENCY = "EMERGENCY"
    GENERAL = "GENERAL"


class AppointmentType(str, enum.Enum):
    CONSULTATION = "CONSULTATION"
    EXAMINATION = "EXAMINATION"
    TREATMENT = "TREATMENT"
    FOLLOW_UP = "FOLLOW_UP"
    EMERGENCY = "EMERGENCY"
    REVIEW = "REVIEW"


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    INSURANCE = "INSURANCE"
    OTHER = "OTHER"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PARTIAL = "PARTIAL"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class PhotoCategory(str, enum.Enum):
    INTRAORAL = "INTRAORAL"
    EXTRAORAL = "EXTRAORAL"
    RADIOGRAPH = "RADIOGRAPH"
    MODELS = "MODELS"
    CLINICAL = "CLINICAL"
    PROGRESS = "PROGRESS"
    FINAL = "FINAL"


# Shared by plans and assessments
ComplexityType = Enum(Complexity, name="complexity")


# ==================== Staff ====================

class User(Base):
    """Practice staff account"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(Enum(UserRole, name="user_role"), nullable=False, default=UserRole.DOCTOR)
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# ==================== Patients ====================

class Patient(Base):
    """Patient demographic and medical information"""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, index=True)
    email = Column(String(255), index=True)  # stored lowercase
    phone = Column(String(30), index=True)
    date_of_birth = Column(Date)
    gender = Column(Enum(Gender, name="gender"))

    address = Column(String(255))
    city = Column(String(100))
    postal_code = Column(String(10))
    country = Column(String(100), default="Greece")

    # Clinical background
    medical_history = Column(JSON)
    allergies = Column(Text)
    medications = Column(Text)
    emergency_contact = Column(JSON)
    insurance_info = Column(JSON)
    orthodontic_history = Column(JSON)

    referral_source = Column(String(200))
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Integer, ForeignKey("users.id"))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    treatment_plans = relationship("TreatmentPlan", back_populates="patient", cascade="all, delete-orphan")
    treatment_phases = relationship("TreatmentPhase", back_populates="patient", cascade="all, delete-orphan")
    clinical_notes = relationship("ClinicalNote", back_populates="patient", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="patient", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="patient", cascade="all, delete-orphan")
    photos = relationship("Photo", back_populates="patient", cascade="all, delete-orphan")
    assessments = relationship("MalocclusionAssessment", back_populates="patient", cascade="all, delete-orphan")

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"


# ==================== Treatment ====================

class TreatmentPlan(Base):
    """Orthodontic treatment plan for a patient"""
    __tablename__ = "treatment_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    description = Column(Text)
    diagnosis = Column(Text, nullable=False)
    treatment_goals = Column(JSON, default=list)
    estimated_duration = Column(Integer)  # months
    complexity = Column(ComplexityType, nullable=False, default=Complexity.MODERATE)

    initial_assessment = Column(JSON, default=dict)
    treatment_options = Column(JSON, default=dict)
    selected_option = Column(String(200))
    appliances_used = Column(JSON, default=list)
    materials_list = Column(JSON)

    status = Column(Enum(PlanStatus, name="plan_status"), nullable=False, default=PlanStatus.PLANNING, index=True)
    start_date = Column(Date)
    estimated_end_date = Column(Date)
    actual_end_date = Column(Date)

    total_cost = Column(Money)
    payment_plan = Column(JSON)
    created_by = Column(Integer, ForeignKey("users.id"))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="treatment_plans")
    phases = relationship(
        "TreatmentPhase", back_populates="treatment_plan",
        cascade="all, delete-orphan", order_by="TreatmentPhase.phase_number"
    )
    clinical_notes = relationship("ClinicalNote", back_populates="treatment_plan", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="treatment_plan")
    payments = relationship("Payment", back_populates="treatment_plan")


class TreatmentPhase(Base):
    """A numbered stage of a treatment plan"""
    __tablename__ = "treatment_phases"
    __table_args__ = (
        UniqueConstraint("treatment_plan_id", "phase_number", name="uq_phase_number_per_plan"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    treatment_plan_id = Column(Integer, ForeignKey("treatment_plans.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)

    phase_number = Column(Integer, nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    objectives = Column(JSON, default=list)
    appliances = Column(JSON, default=dict)
    instructions = Column(Text)

    start_date = Column(Date)
    estimated_end_date = Column(Date)
    actual_end_date = Column(Date)
    status = Column(Enum(PhaseStatus, name="phase_status"), nullable=False, default=PhaseStatus.PLANNED)
    progress = Column(Integer, nullable=False, default=0)  # 0-100

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    treatment_plan = relationship("TreatmentPlan", back_populates="phases")
    patient = relationship("Patient", back_populates="treatment_phases")
    photos = relationship("Photo", back_populates="phase")
    clinical_notes = relationship("ClinicalNote", back_populates="phase")
    appointments = relationship("Appointment", back_populates="phase")


class ClinicalNote(Base):
    """Free-text clinical documentation"""
    __tablename__ = "clinical_notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    treatment_plan_id = Column(Integer, ForeignKey("treatment_plans.id"), index=True)
    phase_id = Column(Integer, ForeignKey("treatment_phases.id"), index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), index=True)

    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    note_type = Column(Enum(NoteType, name="note_type"), nullable=False, default=NoteType.GENERAL)
    tags = Column(JSON, default=list)
    observations = Column(JSON)
    recommendations = Column(Text)
    next_steps = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="clinical_notes")
    treatment_plan = relationship("TreatmentPlan", back_populates="clinical_notes")
    phase = relationship("TreatmentPhase", back_populates="clinical_notes")
    appointment = relationship("Appointment", back_populates="clinical_notes")
    author = relationship("User")


# ==================== Scheduling ====================

class Appointment(Base):
    """Scheduled visit, created in-app or synced from the legacy booking system"""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    treatment_plan_id = Column(Integer, ForeignKey("treatment_plans.id"), index=True)
    phase_id = Column(Integer, ForeignKey("treatment_phases.id"), index=True)

    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(String(5), nullable=False)  # HH:MM
    duration = Column(Integer, nullable=False, default=30)  # minutes
    appointment_type = Column(Enum(AppointmentType, name="appointment_type"), nullable=False,
                              default=AppointmentType.CONSULTATION)
    status = Column(Enum(AppointmentStatus, name="appointment_status"), nullable=False,
                    default=AppointmentStatus.SCHEDULED, index=True)

    notes = Column(Text)
    reason_for_visit = Column(Text)
    treatment_performed = Column(Text)

    # Legacy booking system linkage
    legacy_booking_id = Column(String(50), unique=True, index=True)
    booking_number = Column(String(50), unique=True, index=True)

    created_by = Column(Integer, ForeignKey("users.id"))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    treatment_plan = relationship("TreatmentPlan", back_populates="appointments")
    phase = relationship("TreatmentPhase", back_populates="appointments")
    photos = relationship("Photo", back_populates="appointment")
    clinical_notes = relationship("ClinicalNote", back_populates="appointment")


# ==================== Billing ====================

class Payment(Base):
    """Patient payment or scheduled installment"""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    treatment_plan_id = Column(Integer, ForeignKey("treatment_plans.id"), index=True)

    amount = Column(Money, nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    payment_method = Column(Enum(PaymentMethod, name="payment_method"), nullable=False, default=PaymentMethod.CASH)
    status = Column(Enum(PaymentStatus, name="payment_status"), nullable=False,
                    default=PaymentStatus.PENDING, index=True)

    description = Column(String(500))
    notes = Column(Text)
    due_date = Column(Date)
    paid_date = Column(DateTime(timezone=True))
    transaction_id = Column(String(100))

    # Receipt
    receipt_number = Column(String(50), unique=True)
    vat_rate = Column(Float)
    discount = Column(Money, default=0)

    created_by = Column(Integer, ForeignKey("users.id"))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="payments")
    treatment_plan = relationship("TreatmentPlan", back_populates="payments")


# ==================== Photos ====================

class Photo(Base):
    """Clinical photo stored in Cloudinary"""
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)

    filename = Column(String(255), nullable=False)
    original_name = Column(String(255))
    cloudinary_id = Column(String(255), nullable=False, index=True)
    cloudinary_url = Column(String(1000), nullable=False)

    category = Column(Enum(PhotoCategory, name="photo_category"), nullable=False, index=True)
    subcategory = Column(String(100))
    description = Column(Text)
    tags = Column(JSON, default=list)

    file_size = Column(Integer)
    mime_type = Column(String(50))
    width = Column(Integer)
    height = Column(Integer)

    phase_id = Column(Integer, ForeignKey("treatment_phases.id"), index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), index=True)

    # Before/after pairing
    is_before_after = Column(Boolean, nullable=False, default=False)
    before_after_pair_id = Column(String(64), index=True)

    uploaded_by = Column(Integer, ForeignKey("users.id"))
    uploaded_at = Column(DateTime(timezone=True), default=datetime.now, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="photos")
    phase = relationship("TreatmentPhase", back_populates="photos")
    appointment = relationship("Appointment", back_populates="photos")


# ==================== Assessments ====================

class MalocclusionAssessment(Base):
    """Orthodontic measurements with computed severity"""
    __tablename__ = "malocclusion_assessments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    assessment_date = Column(Date, nullable=False)

    # Classification
    angle_class = Column(String(20))
    incisor_class = Column(String(20))
    canine_class_right = Column(String(20))
    canine_class_left = Column(String(20))

    # Measurements (mm unless noted)
    overjet = Column(Float)
    overbite = Column(Float)  # percent
    upper_space_analysis = Column(Float)
    lower_space_analysis = Column(Float)
    upper_midline_deviation = Column(Float)
    lower_midline_deviation = Column(Float)

    anterior_crossbite = Column(Boolean, default=False)
    posterior_crossbite_right = Column(Boolean, default=False)
    posterior_crossbite_left = Column(Boolean, default=False)

    congenitally_missing_teeth = Column(JSON, default=list)
    impacted_teeth = Column(JSON, default=list)

    severity_score = Column(Integer, nullable=False, default=0)
    severity = Column(String(20), nullable=False)
    treatment_complexity = Column(ComplexityType)
    notes = Column(Text)
    assessed_by = Column(Integer, ForeignKey("users.id"))

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="assessments")


# ==================== Settings ====================

class Setting(Base):
    """Key/value application settings (sync bookkeeping, clinic preferences)"""
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(JSON)
    category = Column(String(50))
    is_public = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
