from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Numeric, ForeignKey, Enum, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
from db import Base
from models.fees.fee_enums import PaymentMethod


class Payment(Base):
    """Immutable payment event. Corrections are recorded as PaymentReversal rows."""
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("institution_id", "receipt_sequence", name="uq_payment_receipt_sequence"),
        UniqueConstraint("institution_id", "receipt_number", name="uq_payment_receipt_number"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    institution_id = Column(String, nullable=False, index=True)
    student_fee_id = Column(Integer, ForeignKey("student_fees.id"), nullable=False, index=True)
    student_id = Column(String, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    receipt_sequence = Column(Integer, nullable=False)
    receipt_number = Column(String, nullable=False, index=True)
    component_id = Column(Integer, ForeignKey("student_fee_components.id"), nullable=True)
    transaction_id = Column(String, nullable=True)
    transaction_date = Column(Date, nullable=True)
    reference_number = Column(String, nullable=True)
    bank_name = Column(String, nullable=True)
    branch_name = Column(String, nullable=True)
    remarks = Column(Text, nullable=True)
    collected_by = Column(String, nullable=True)
    ledger_balance_after = Column(Numeric(12, 2), nullable=False, default=0)  # snapshot for the receipt
    paid_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    student_fee = relationship("StudentFee", back_populates="payments")
    allocations = relationship("PaymentAllocation", back_populates="payment", cascade="all, delete-orphan")
    reversals = relationship("PaymentReversal", back_populates="payment", order_by="PaymentReversal.id")

    @property
    def reversed_amount(self):
        return sum((r.amount for r in self.reversals), Decimal("0.00"))

    def __repr__(self):
        return f"<Payment(id={self.id}, receipt_number={self.receipt_number}, amount={self.amount})>"


class PaymentAllocation(Base):
    __tablename__ = "payment_allocations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    student_fee_component_id = Column(Integer, ForeignKey("student_fee_components.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    payment = relationship("Payment", back_populates="allocations")
    component = relationship("StudentFeeComponent")


class PaymentReversal(Base):
    __tablename__ = "payment_reversals"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    institution_id = Column(String, nullable=False, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    student_fee_id = Column(Integer, ForeignKey("student_fees.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(Text, nullable=False)
    allocations = Column(JSON, nullable=True)  # list of {component_id, amount}
    recorded_by = Column(String, nullable=True)
    reversed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    payment = relationship("Payment", back_populates="reversals")

    def __repr__(self):
        return f"<PaymentReversal(id={self.id}, payment_id={self.payment_id}, amount={self.amount})>"


class FinanceSettings(Base):
    """Per-institution receipt sequence."""
    __tablename__ = "finance_settings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    institution_id = Column(String, nullable=False, unique=True)
    receipt_prefix = Column(String, nullable=False, default="RCP")
    current_receipt_number = Column(Integer, nullable=False, default=0)  # last number issued
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<FinanceSettings(institution_id={self.institution_id}, current={self.current_receipt_number})>"
