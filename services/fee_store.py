"""Transactional storage for the fee ledger.

``FeeStore.with_transaction(fn)`` runs ``fn`` against a fresh ``FeeUnitOfWork``
and commits once. Lost updates (``StaleDataError`` from the version columns),
lock or serialization failures and unique-key races roll the whole unit back
and run it again with exponential backoff, up to a bounded number of attempts.
Any other database error, such as a missing table or bad SQL, rolls back and
propagates untouched.
"""
import logging
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from config import FEES_RECEIPT_PREFIX, FEES_TX_BACKOFF_SECONDS, FEES_TX_MAX_ATTEMPTS
from db import SessionLocal
from models.fees.fee_structure_models import FeeStructure
from models.fees.payment_models import FinanceSettings, Payment
from models.fees.student_fee_models import StudentFee
from services.fee_errors import ConflictError, NotFoundError
from services.receipt_number_generator import generate_receipt_number

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (StaleDataError, OperationalError, IntegrityError)

# PostgreSQL SQLSTATEs for serialization failure, deadlock and lock timeout
RETRYABLE_SQLSTATES = {"40001", "40P01", "55P03"}
UNIQUE_VIOLATION_SQLSTATE = "23505"
SQLITE_LOCK_MESSAGES = ("database is locked", "database table is locked")


def is_retryable_error(exc: Exception) -> bool:
    """True when ``exc`` is a race another attempt can win."""
    if isinstance(exc, StaleDataError):
        return True
    if not isinstance(exc, (OperationalError, IntegrityError)):
        return False
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    message = str(orig if orig is not None else exc).lower()
    if isinstance(exc, IntegrityError):
        return sqlstate == UNIQUE_VIOLATION_SQLSTATE or "unique constraint failed" in message
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    return any(text in message for text in SQLITE_LOCK_MESSAGES)


class FeeUnitOfWork:
    """Storage operations available inside one transaction."""

    def __init__(self, db: Session):
        self.db = db

    def get_fee_structure(self, structure_id: int, for_update: bool = False) -> FeeStructure:
        query = self.db.query(FeeStructure).filter(FeeStructure.id == structure_id)
        if for_update:
            query = query.with_for_update()
        structure = query.first()
        if structure is None:
            raise NotFoundError(f"Fee structure {structure_id} not found", field="fee_structure_id", entity_id=structure_id)
        return structure

    def get_student_fee(self, student_fee_id: int, for_update: bool = False) -> StudentFee:
        query = self.db.query(StudentFee).filter(StudentFee.id == student_fee_id)
        if for_update:
            query = query.with_for_update()
        ledger = query.first()
        if ledger is None:
            raise NotFoundError(f"Student fee {student_fee_id} not found", field="student_fee_id", entity_id=student_fee_id)
        return ledger

    def count_ledgers_for_structure(self, structure_id: int) -> int:
        return self.db.query(StudentFee).filter(StudentFee.fee_structure_id == structure_id).count()

    def get_finance_settings(self, institution_id: str, for_update: bool = False) -> FinanceSettings:
        """The institution's settings row, created with the configured defaults on first use."""
        query = self.db.query(FinanceSettings).filter(FinanceSettings.institution_id == institution_id)
        if for_update:
            query = query.with_for_update()
        settings = query.first()
        if settings is None:
            settings = FinanceSettings(
                institution_id=institution_id,
                receipt_prefix=FEES_RECEIPT_PREFIX,
                current_receipt_number=0,
            )
            self.db.add(settings)
            self.db.flush()
        return settings

    def next_receipt_number(self, institution_id: str):
        """Advance the institution's receipt counter; returns ``(sequence, receipt_number)``.

        The counter row is locked for the rest of the transaction, so a rollback
        hands the number back and concurrent writers queue behind it.
        """
        settings = self.get_finance_settings(institution_id, for_update=True)
        settings.current_receipt_number = (settings.current_receipt_number or 0) + 1
        self.db.flush()
        sequence = settings.current_receipt_number
        return sequence, generate_receipt_number(settings.receipt_prefix, sequence)

    def current_receipt_sequence(self, institution_id: str) -> int:
        settings = self.db.query(FinanceSettings).filter(FinanceSettings.institution_id == institution_id).first()
        return settings.current_receipt_number if settings else 0

    def append_payment(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.flush()
        return payment

    def save_ledger(self, ledger: StudentFee) -> StudentFee:
        self.db.add(ledger)
        self.db.flush()
        return ledger

    def add(self, instance):
        self.db.add(instance)
        self.db.flush()
        return instance

    def delete(self, instance) -> None:
        self.db.delete(instance)
        self.db.flush()


class FeeStore:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        max_attempts: int = FEES_TX_MAX_ATTEMPTS,
        backoff_seconds: float = FEES_TX_BACKOFF_SECONDS,
    ):
        self.session_factory = session_factory
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds

    def with_transaction(self, fn: Callable[[FeeUnitOfWork], T], label: Optional[str] = None) -> T:
        label = label or getattr(fn, "__name__", "transaction")
        for attempt in range(1, self.max_attempts + 1):
            db = self.session_factory()
            try:
                result = fn(FeeUnitOfWork(db))
                db.commit()
                return result
            except RETRYABLE_ERRORS as exc:
                db.rollback()
                if not is_retryable_error(exc):
                    logger.error("%s: database error: %s", label, exc)
                    raise
                if attempt >= self.max_attempts:
                    logger.error("%s: giving up after %d attempts: %s", label, attempt, exc)
                    raise ConflictError(
                        f"Concurrent update detected; gave up after {attempt} attempts",
                        field="transaction",
                    ) from exc
                delay = self.backoff_seconds * (2 ** (attempt - 1))
                logger.warning("%s: conflict on attempt %d, retrying in %.3fs: %s", label, attempt, delay, exc)
                time.sleep(delay)
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()


def get_fee_store() -> FeeStore:
    """FastAPI dependency."""
    return FeeStore(SessionLocal)
