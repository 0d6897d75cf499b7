from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
from db import Base
from models.fees.fee_enums import FeeType, FeeFrequency


class FeeStructure(Base):
    __tablename__ = "fee_structures"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    institution_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    academic_year_id = Column(String, nullable=False, index=True)
    academic_unit_id = Column(String, nullable=True, index=True)  # null = all classes
    is_active = Column(Boolean, nullable=False, default=True)
    is_locked = Column(Boolean, nullable=False, default=False)
    created_by = Column(String, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    components = relationship(
        "FeeComponent",
        back_populates="fee_structure",
        cascade="all, delete-orphan",
        order_by="FeeComponent.display_order",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<FeeStructure(id={self.id}, name={self.name}, academic_unit_id={self.academic_unit_id})>"


class FeeComponent(Base):
    __tablename__ = "fee_components"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    fee_structure_id = Column(Integer, ForeignKey("fee_structures.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    fee_type = Column(Enum(FeeType), nullable=False)
    description = Column(Text, nullable=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    frequency = Column(Enum(FeeFrequency), nullable=False, default=FeeFrequency.ONE_TIME)
    is_mandatory = Column(Boolean, nullable=False, default=True)
    allow_partial_payment = Column(Boolean, nullable=False, default=True)
    late_fee_applicable = Column(Boolean, nullable=False, default=False)
    late_fee_amount = Column(Numeric(12, 2), nullable=True)
    late_fee_percentage = Column(Numeric(5, 2), nullable=True)
    late_fee_grace_days = Column(Integer, nullable=False, default=0)
    display_order = Column(Integer, nullable=False, default=0)

    fee_structure = relationship("FeeStructure", back_populates="components")

    def __repr__(self):
        return f"<FeeComponent(id={self.id}, name={self.name}, amount={self.amount})>"
