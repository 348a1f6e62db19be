# dealflow/pipeline/grading.py
"""Grading engine.

Evaluation order for each device:

1. blacklist keywords (iCloud lock, stolen, bad IMEI) -> BLACKLISTED, stop
2. non-functional keywords (broken, dead, not working) -> DOA, stop
3. base grade from the normalized condition (unrecognized -> default grade)
4. issue modifiers: every severe issue drops two grades, every moderate one
   drops one, minor issues drop half a grade each (total rounded up);
   positive indicators lift one grade only when nothing dropped it
5. final grade = operator override when present, else the computed grade
"""
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..models import Device, GRADE_SEQUENCE, BLACKLISTED
from ..settings import GradingRules
from ..utils import logger, utcnow
from .text import KeywordScanner, blob, unique


@dataclass
class GradeResult:
    grade: str
    flags: List[str] = field(default_factory=list)
    notes: str = ""


def build_scanner(rules: GradingRules) -> KeywordScanner:
    return KeywordScanner({
        "blacklist": rules.blacklist_keywords,
        "doa": rules.doa_keywords,
        "severe": rules.severe_issues,
        "moderate": rules.moderate_issues,
        "minor": rules.minor_issues,
        "positive": rules.positive_keywords,
    }, strict_groups=("blacklist", "doa"))


def shift_grade(grade: str, steps: int) -> str:
    """Move along A..DOA; positive steps downgrade, negative upgrade, clamped."""
    index = GRADE_SEQUENCE.index(grade)
    index = max(0, min(len(GRADE_SEQUENCE) - 1, index + steps))
    return GRADE_SEQUENCE[index]


def grade(device: Device, rules: Optional[GradingRules] = None,
          scanner: Optional[KeywordScanner] = None) -> GradeResult:
    rules = rules or GradingRules()
    scanner = scanner or build_scanner(rules)
    text = blob(device.condition_raw, device.title, device.description, device.manual_flags)

    found: Dict[str, List[str]] = {}
    phrases: Dict[str, List[str]] = {}
    for hit in scanner.scan(text):
        found.setdefault(hit.group, []).append(hit.tag)
        phrases.setdefault(hit.group, []).append(hit.phrase)
    found = {group: unique(tags) for group, tags in found.items()}

    if found.get("blacklist"):
        return GradeResult(
            grade=BLACKLISTED,
            flags=["blacklisted"] + found["blacklist"],
            notes="Auto-reject: " + ", ".join(unique(phrases["blacklist"])),
        )
    if found.get("doa"):
        return GradeResult(
            grade="DOA",
            flags=found["doa"],
            notes="Non-functional: " + ", ".join(unique(phrases["doa"])),
        )

    condition = device.condition_normalized or ""
    base = rules.condition_grades.get(condition)
    notes = []
    if base is None:
        base = rules.default_grade if rules.default_grade in GRADE_SEQUENCE else "B"
        notes.append(f"Base {base} (condition '{condition or 'Unknown'}' unrecognized)")
    else:
        notes.append(f"Base {base} ({condition})")
    if base == "DOA":
        return GradeResult(grade="DOA", flags=["for_parts"], notes=notes[0])

    severe = found.get("severe", [])
    moderate = found.get("moderate", [])
    minor = found.get("minor", [])
    positive = found.get("positive", [])

    steps = 2 * len(severe) + len(moderate) + math.ceil(0.5 * len(minor))
    for tags, label in ((severe, "-2"), (moderate, "-1"), (minor, "-0.5")):
        notes.extend(f"{label} {tag.replace('_', ' ')}" for tag in tags)

    if steps:
        result = shift_grade(base, steps)
    elif positive:
        result = shift_grade(base, -1)
        notes.append("+1 " + ", ".join(t.replace("_", " ") for t in positive))
    else:
        result = base

    notes.append(f"=> {result}")
    return GradeResult(grade=result, flags=severe + moderate + minor, notes="; ".join(notes))


def apply_grading(devices: List[Device], rules: Optional[GradingRules] = None) -> Dict[str, int]:
    """Grade every device in place and return summary counts."""
    rules = rules or GradingRules()
    scanner = build_scanner(rules)
    grades = Counter()
    errors = overrides = 0
    for device in devices:
        try:
            result = grade(device, rules, scanner)
        except Exception as e:
            errors += 1
            logger.exception("Grading failed for %s: %s", device.device_id, e)
            continue
        device.guessed_grade = result.grade
        device.flags = result.flags
        notes = result.notes
        if device.manual_grade:
            overrides += 1
            notes = f"{notes}; manual override {device.manual_grade}"
        device.final_grade = device.manual_grade or result.grade
        device.notes = notes
        device.last_updated = utcnow()
        grades[device.final_grade] += 1

    counts = {"graded": sum(grades.values()), "overrides": overrides, "errors": errors}
    counts.update({f"grade_{g}": n for g, n in sorted(grades.items())})
    return counts


def inspection_checklist(device: Device) -> List[str]:
    """Pre-purchase checks to run with the seller before handing over cash."""
    checklist = [
        "Verify IMEI is not blacklisted",
        "Check iCloud/FMI status",
        "Test all buttons (power, volume)",
        "Test touch screen responsiveness",
        "Check for screen cracks/damage",
        "Check for back glass cracks",
        "Test Face ID / Touch ID",
        "Test all cameras (front and back)",
        "Test speakers and microphone",
        "Check battery health percentage",
        "Verify storage capacity",
        "Check for water damage indicators",
        "Test charging port",
        "Verify carrier unlock status",
    ]
    if device.brand == "Apple":
        checklist.append("Verify original Apple parts (no third-party screens)")
    if device.flags:
        issues = ", ".join(f.replace("_", " ") for f in device.flags)
        checklist.append(f"Verify reported issues: {issues}")
    return checklist
