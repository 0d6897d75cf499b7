from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from datetime import datetime
from db import Base


class FinanceAuditLog(Base):
    __tablename__ = "finance_audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    institution_id = Column(String, nullable=False, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    user_id = Column(String, nullable=True)
    new_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<FinanceAuditLog(entity_type={self.entity_type}, entity_id={self.entity_id}, action={self.action})>"
