from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class FinanceSettingsUpdate(BaseModel):
    receipt_prefix: str
    updated_by: Optional[str] = None


class FinanceSettingsOut(BaseModel):
    institution_id: str
    receipt_prefix: str
    current_receipt_number: int
    updated_at: datetime

    class Config:
        from_attributes = True
