from datetime import datetime
from types import SimpleNamespace

import pytest

from conftest import YEAR, make_structure
from services import fee_structure_service
from services.fee_errors import NotFoundError
from services.structure_resolver import pick_fee_structure


def candidate(id, unit, created_at):
    return SimpleNamespace(id=id, academic_unit_id=unit, created_at=created_at)


def test_section_beats_class_beats_institution_wide():
    jan = datetime(2024, 1, 1)
    candidates = [candidate(1, None, jan), candidate(2, "class-5", jan), candidate(3, "sec-5a", jan)]
    assert pick_fee_structure(candidates, "class-5", "sec-5a").id == 3
    assert pick_fee_structure(candidates, "class-5", None).id == 2
    assert pick_fee_structure(candidates[:1], "class-5", "sec-5a").id == 1


def test_most_recent_wins_a_tie():
    older = candidate(1, "class-5", datetime(2024, 1, 1))
    newer = candidate(2, "class-5", datetime(2024, 3, 1))
    assert pick_fee_structure([newer, older], "class-5").id == 2


def test_other_units_are_ignored():
    assert pick_fee_structure([candidate(1, "class-6", datetime(2024, 1, 1))], "class-5") is None


def test_resolve_against_the_catalog(store):
    make_structure(store, name="All classes")
    class_level = make_structure(store, name="Class 5", academic_unit_id="class-5")
    section_level = make_structure(store, name="Section 5A", academic_unit_id="sec-5a")

    assert fee_structure_service.resolve_fee_structure(store, YEAR, "class-5", "sec-5a").id == section_level.id
    assert fee_structure_service.resolve_fee_structure(store, YEAR, "class-5", "sec-5b").id == class_level.id
    assert fee_structure_service.resolve_fee_structure(store, YEAR, "class-9").name == "All classes"


def test_inactive_structures_are_skipped(store):
    make_structure(store, name="Old", academic_unit_id="class-5", is_active=False)
    fallback = make_structure(store, name="All classes")
    assert fee_structure_service.resolve_fee_structure(store, YEAR, "class-5").id == fallback.id


def test_resolve_filters_by_institution(store):
    make_structure(store, institution_id="inst-2")
    with pytest.raises(NotFoundError):
        fee_structure_service.resolve_fee_structure(store, YEAR, "class-5", institution_id="inst-1")


def test_no_match_is_a_hard_failure(store):
    with pytest.raises(NotFoundError) as exc:
        fee_structure_service.resolve_fee_structure(store, "1999-00", "class-5")
    assert exc.value.kind == "not_found"
