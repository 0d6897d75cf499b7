import os

# the app's module-level engine must never point at a real server during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, datetime  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from db import build_engine, create_tables  # noqa: E402
from schemas.fees.fee_structure_schemas import FeeComponentCreate, FeeStructureCreate  # noqa: E402
from services import fee_ledger_service, fee_structure_service  # noqa: E402
from services.fee_store import FeeStore, get_fee_store  # noqa: E402

INSTITUTION = "inst-1"
YEAR = "2024-25"
DUE = date(2024, 6, 30)
BEFORE_DUE = datetime(2024, 6, 1, 9, 0)
AFTER_DUE = datetime(2024, 7, 15, 9, 0)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'fees.db'}")
    create_tables(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def store(session_factory):
    return FeeStore(session_factory, max_attempts=3, backoff_seconds=0.001)


@pytest.fixture
def client(store):
    from main import app

    app.dependency_overrides[get_fee_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def component(name="Tuition", amount="10000", fee_type="TUITION", **extra):
    return FeeComponentCreate(name=name, fee_type=fee_type, amount=Decimal(amount), **extra)


def make_structure(store, components=None, academic_unit_id=None, name="Annual Fees", **extra):
    payload = FeeStructureCreate(
        institution_id=extra.pop("institution_id", INSTITUTION),
        name=name,
        academic_year_id=extra.pop("academic_year_id", YEAR),
        academic_unit_id=academic_unit_id,
        components=components if components is not None else [component()],
        **extra,
    )
    return fee_structure_service.create_fee_structure(store, payload)


def make_ledger(store, structure, student_id="stu-1", **extra):
    extra.setdefault("due_date", DUE)
    extra.setdefault("now", BEFORE_DUE)
    return fee_ledger_service.create_student_fee(store, student_id, structure.id, **extra)


def sibling_discount(value="10", **extra):
    data = {"name": "Sibling", "discount_type": "PERCENTAGE", "discount_value": value, "reason": "Sibling"}
    data.update(extra)
    return data


def assert_ledger_invariants(ledger):
    expected_final = max(Decimal("0"), ledger.total_amount - ledger.discount_amount - ledger.scholarship_amount)
    assert ledger.final_amount == expected_final
    assert ledger.balance_amount == ledger.final_amount - ledger.paid_amount
    assert ledger.balance_amount >= 0
    assert sum(c.net_amount for c in ledger.components) == ledger.final_amount
    assert sum(c.paid_amount for c in ledger.components) == ledger.paid_amount
    assert sum(c.balance_amount for c in ledger.components) == ledger.balance_amount
