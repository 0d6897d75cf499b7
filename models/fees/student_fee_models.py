from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, Numeric, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from db import Base
from models.fees.fee_enums import FeeType, FeeFrequency, FeeStatus, DiscountType, ScholarshipStatus


class StudentFee(Base):
    """Per-student ledger entry for one fee structure."""
    __tablename__ = "student_fees"
    __table_args__ = (
        UniqueConstraint("student_id", "fee_structure_id", name="uq_student_fee_structure"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    institution_id = Column(String, nullable=False, index=True)
    student_id = Column(String, nullable=False, index=True)
    fee_structure_id = Column(Integer, ForeignKey("fee_structures.id"), nullable=False, index=True)
    academic_year_id = Column(String, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    scholarship_amount = Column(Numeric(12, 2), nullable=False, default=0)
    final_amount = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    balance_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(Enum(FeeStatus), nullable=False, default=FeeStatus.PENDING, index=True)
    due_date = Column(Date, nullable=True)
    is_overridden = Column(Boolean, nullable=False, default=False)
    override_reason = Column(Text, nullable=True)
    assigned_by = Column(String, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    fee_structure = relationship("FeeStructure")
    components = relationship(
        "StudentFeeComponent",
        back_populates="student_fee",
        cascade="all, delete-orphan",
        order_by="StudentFeeComponent.display_order",
    )
    discounts = relationship("FeeDiscount", back_populates="student_fee", cascade="all, delete-orphan", order_by="FeeDiscount.id")
    scholarships = relationship("FeeScholarship", back_populates="student_fee", cascade="all, delete-orphan", order_by="FeeScholarship.id")
    payments = relationship("Payment", back_populates="student_fee", order_by="Payment.receipt_sequence")

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<StudentFee(id={self.id}, student_id={self.student_id}, status={self.status})>"


class StudentFeeComponent(Base):
    """Snapshot of a structure component inside one ledger, tracked as a sub-balance."""
    __tablename__ = "student_fee_components"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    student_fee_id = Column(Integer, ForeignKey("student_fees.id"), nullable=False, index=True)
    source_component_id = Column(Integer, ForeignKey("fee_components.id"), nullable=True)
    name = Column(String, nullable=False)
    fee_type = Column(Enum(FeeType), nullable=False)
    frequency = Column(Enum(FeeFrequency), nullable=False)
    is_mandatory = Column(Boolean, nullable=False, default=True)
    allow_partial_payment = Column(Boolean, nullable=False, default=True)
    original_amount = Column(Numeric(12, 2), nullable=False, default=0)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    is_custom = Column(Boolean, nullable=False, default=False)
    late_fee_applicable = Column(Boolean, nullable=False, default=False)
    late_fee_amount = Column(Numeric(12, 2), nullable=True)
    late_fee_percentage = Column(Numeric(5, 2), nullable=True)
    late_fee_grace_days = Column(Integer, nullable=False, default=0)
    late_fee_charged = Column(Numeric(12, 2), nullable=False, default=0)
    late_fee_charged_at = Column(DateTime, nullable=True)
    net_amount = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    balance_amount = Column(Numeric(12, 2), nullable=False, default=0)
    display_order = Column(Integer, nullable=False, default=0)

    student_fee = relationship("StudentFee", back_populates="components")

    def __repr__(self):
        return f"<StudentFeeComponent(id={self.id}, name={self.name}, balance={self.balance_amount})>"


class FeeDiscount(Base):
    __tablename__ = "fee_discounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    student_fee_id = Column(Integer, ForeignKey("student_fees.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(Enum(DiscountType), nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False)
    source_component_id = Column(Integer, ForeignKey("fee_components.id"), nullable=True)  # null = whole ledger
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    reason = Column(Text, nullable=False)
    approved_by = Column(String, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    student_fee = relationship("StudentFee", back_populates="discounts")

    def __repr__(self):
        return f"<FeeDiscount(id={self.id}, type={self.discount_type}, value={self.discount_value})>"


class FeeScholarship(Base):
    __tablename__ = "fee_scholarships"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    student_fee_id = Column(Integer, ForeignKey("student_fees.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    scholarship_amount = Column(Numeric(12, 2), nullable=False)
    provider = Column(String, nullable=True)
    status = Column(Enum(ScholarshipStatus), nullable=False, default=ScholarshipStatus.PENDING)
    approved_by = Column(String, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    student_fee = relationship("StudentFee", back_populates="scholarships")

    def __repr__(self):
        return f"<FeeScholarship(id={self.id}, amount={self.scholarship_amount}, status={self.status})>"
