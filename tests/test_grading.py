# tests/test_grading.py
import pytest

from dealflow.models import ALL_GRADES
from dealflow.pipeline.grading import apply_grading, grade, inspection_checklist, shift_grade
from dealflow.pipeline.normalizer import new_device


def _device(condition="Good", description="", title="iPhone 14 128GB", **kw):
    return new_device(condition_normalized=condition, description=description, title=title, **kw)


def test_blacklist_short_circuits():
    result = grade(_device(description="iCloud locked, selling as is"))
    assert result.grade == "BLACKLISTED"
    assert result.flags[0] == "blacklisted"
    assert "icloud_locked" in result.flags
    assert result.notes.startswith("Auto-reject")


def test_negated_blacklist_phrase_is_ignored():
    result = grade(_device(description="not icloud locked, clean imei"))
    assert result.grade == "B"


@pytest.mark.parametrize("description", ["no lowballers icloud locked", "no box icloud locked"])
def test_negator_two_words_back_does_not_clear_blacklist(description):
    result = grade(_device(description=description))
    assert result.grade == "BLACKLISTED"
    assert "icloud_locked" in result.flags


def test_negator_two_words_back_does_not_clear_doa():
    assert grade(_device(description="no lowballers for parts")).grade == "DOA"
    assert grade(_device(description="not for parts, works great")).grade == "B"


def test_non_functional_is_doa():
    assert grade(_device(description="won't turn on")).grade == "DOA"
    assert grade(_device(condition="For Parts")).grade == "DOA"


def test_longer_phrase_claims_its_span():
    # "broken back glass" is a moderate issue, not the DOA keyword "broken"
    result = grade(_device(description="broken back glass, otherwise fine"))
    assert result.grade == "C"
    assert result.flags == ["cracked_back"]


def test_severe_issue_drops_two_grades():
    assert grade(_device(description="cracked screen")).grade == "D"


def test_moderate_issue_counts_once_not_as_minor_too():
    result = grade(_device(condition="Excellent", description="heavy scratches on the back"))
    assert result.grade == "B"
    assert result.flags == ["heavy_scratches"]


@pytest.mark.parametrize("description,expected", [
    ("light scratches", "C"),
    ("light scratches and scuffs", "C"),
    ("light scratches, scuffs and a small dent", "D"),
])
def test_minor_issues_round_up(description, expected):
    assert grade(_device(description=description)).grade == expected


def test_positive_upgrade_only_without_issues():
    assert grade(_device(description="comes with original box")).grade == "B+"
    assert grade(_device(description="original box, light scratches")).grade == "C"


def test_negation_covers_following_words():
    result = grade(_device(condition="Excellent", description="no cracks or scratches"))
    assert result.grade == "B+"
    assert result.flags == []


def test_grade_is_clamped_to_sequence():
    assert grade(_device(condition="Like New", description="sealed in box")).grade == "A"
    assert grade(_device(condition="Poor", description="cracked screen and water damage")).grade == "DOA"
    assert shift_grade("A", -3) == "A"
    assert shift_grade("C", 10) == "DOA"


def test_unrecognized_condition_uses_default():
    result = grade(_device(condition="Unknown"))
    assert result.grade == "B"
    assert "unrecognized" in result.notes


def test_apply_grading_respects_manual_override():
    devices = [_device(manual_grade="A"), _device(description="cracked screen")]
    counts = apply_grading(devices)
    assert devices[0].guessed_grade == "B"
    assert devices[0].final_grade == "A"
    assert "manual override A" in devices[0].notes
    assert devices[1].final_grade == "D"
    assert counts["graded"] == 2
    assert counts["overrides"] == 1
    assert all(d.final_grade in ALL_GRADES for d in devices)


def test_manual_flags_are_scanned():
    devices = [_device(manual_flags="water damage found at pickup")]
    apply_grading(devices)
    assert devices[0].final_grade == "D"
    assert "water_damage" in devices[0].flags


def test_inspection_checklist():
    device = _device(brand="Apple", flags=["cracked_back"])
    items = inspection_checklist(device)
    assert "Check iCloud/FMI status" in items
    assert any("original Apple parts" in i for i in items)
    assert items[-1] == "Verify reported issues: cracked back"
