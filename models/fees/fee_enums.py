import enum


class FeeType(str, enum.Enum):
    TUITION = "TUITION"
    ADMISSION = "ADMISSION"
    TRANSPORT = "TRANSPORT"
    HOSTEL = "HOSTEL"
    LAB = "LAB"
    LIBRARY = "LIBRARY"
    EXAM = "EXAM"
    SPORTS = "SPORTS"
    UNIFORM = "UNIFORM"
    MISC = "MISC"


class FeeFrequency(str, enum.Enum):
    ONE_TIME = "ONE_TIME"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUAL = "ANNUAL"


class DiscountType(str, enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class ScholarshipStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class FeeStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    OVERDUE = "OVERDUE"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    UPI = "UPI"
    CARD = "CARD"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    DD = "DD"


# Instruments identified by a bank-issued reference, and channels that carry a transaction id
REFERENCE_METHODS = frozenset({PaymentMethod.CHEQUE, PaymentMethod.DD})
TRANSACTION_METHODS = frozenset({PaymentMethod.UPI, PaymentMethod.CARD, PaymentMethod.BANK_TRANSFER})
