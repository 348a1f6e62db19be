# dealflow/pipeline/matching.py
"""Buyback matching engine.

Every catalog row is scored with additive confidence points and the best
row wins (ties keep the earlier row):

    brand   25  equal or substring either way (required)
    model   40  exact
            30  substring either way
            20  same family once plus/ultra/pro/max are stripped and the
                leading numbers agree
            --  none of the above: the row is skipped
    storage 25  identical text
            20  identical capacity after unit normalization (1TB == 1000GB)
            10  row has no storage (any capacity)
    variant 10  both present and equal

The winning row's price for the device's final grade is the base price;
detected deductions are subtracted and the result floored at zero.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..models import Device, UNKNOWN
from ..schemas import CatalogEntry
from ..settings import DeductionRules
from ..utils import collapse_ws, logger, utcnow
from .normalizer import storage_gb
from .text import KeywordScanner, battery_health, blob

BRAND_POINTS = 25
MODEL_EXACT_POINTS = 40
MODEL_SUBSTRING_POINTS = 30
MODEL_FUZZY_POINTS = 20
STORAGE_EXACT_POINTS = 25
STORAGE_NORMALIZED_POINTS = 20
STORAGE_ANY_POINTS = 10
VARIANT_POINTS = 10

_MODEL_SUFFIXES = {"plus", "ultra", "pro", "max"}
_NUMBER = re.compile(r"\d+")


class ReferenceDataMissing(RuntimeError):
    """The pricing catalog is empty, so nothing can be matched."""


@dataclass
class MatchResult:
    base_price: float = 0.0
    deductions: List[Dict] = field(default_factory=list)
    total_deductions: float = 0.0
    final_value: float = 0.0
    confidence: int = 0
    notes: str = "no match"
    entry: Optional[CatalogEntry] = None

    @property
    def deduction_summary(self):
        return "; ".join(f"{d['reason']} (-${d['amount']:g})" for d in self.deductions)


def _norm(value) -> str:
    return collapse_ws(value).lower()


def _present(value) -> bool:
    return bool(value) and _norm(value) != UNKNOWN.lower()


def model_core(model: str):
    """Leading number of a model name once suffix words are dropped ('15' for 'iPhone 15 Pro Max')."""
    text = _norm(model).replace("+", " plus")
    tokens = [t for t in text.split() if t not in _MODEL_SUFFIXES]
    number = _NUMBER.search(" ".join(tokens))
    return number.group(0) if number else None


def brand_points(device_brand, row_brand) -> int:
    a, b = _norm(device_brand), _norm(row_brand)
    if not _present(a) or not b:
        return 0
    return BRAND_POINTS if a == b or a in b or b in a else 0


def model_points(device_model, row_model) -> int:
    a, b = _norm(device_model), _norm(row_model)
    if not _present(a) or not b:
        return 0
    if a == b:
        return MODEL_EXACT_POINTS
    if a in b or b in a:
        return MODEL_SUBSTRING_POINTS
    core_a, core_b = model_core(a), model_core(b)
    if core_a and core_a == core_b:
        return MODEL_FUZZY_POINTS
    return 0


def storage_points(device_storage, row_storage) -> int:
    if not _present(row_storage):
        return STORAGE_ANY_POINTS
    if not _present(device_storage):
        return 0
    a, b = _norm(device_storage).replace(" ", ""), _norm(row_storage).replace(" ", "")
    if a == b:
        return STORAGE_EXACT_POINTS
    gb_a, gb_b = storage_gb(a), storage_gb(b)
    if gb_a is not None and gb_a == gb_b:
        return STORAGE_NORMALIZED_POINTS
    return 0


def variant_points(device_variant, row_variant) -> int:
    if _present(device_variant) and _present(row_variant) and _norm(device_variant) == _norm(row_variant):
        return VARIANT_POINTS
    return 0


def score_entry(device: Device, entry: CatalogEntry) -> int:
    """Confidence for one row, 0 when brand or model does not match."""
    brand = brand_points(device.brand, entry.brand)
    if not brand:
        return 0
    model = model_points(device.model, entry.model)
    if not model:
        return 0
    return (brand + model
            + storage_points(device.storage, entry.storage)
            + variant_points(device.variant, entry.variant))


def best_entry(device: Device, catalog: Sequence[CatalogEntry]):
    best, best_score = None, 0
    for entry in catalog:
        score = score_entry(device, entry)
        if score > best_score:
            best, best_score = entry, score
    return best, best_score


def build_deduction_scanner(rules: DeductionRules) -> KeywordScanner:
    return KeywordScanner({
        c.key: {phrase: c.key for phrase in c.keywords} for c in rules.categories
    })


def detect_deductions(device: Device, rules: Optional[DeductionRules] = None,
                      scanner: Optional[KeywordScanner] = None) -> List[Dict]:
    """Itemized deductions; each category counts at most once."""
    rules = rules or DeductionRules()
    scanner = scanner or build_deduction_scanner(rules)
    text = blob(device.title, device.description, device.condition_raw,
                device.flags, device.notes, device.manual_flags)
    keys = {hit.tag for hit in scanner.scan(text)}
    health = battery_health(text)
    if health is not None and health < rules.battery_health_floor:
        keys.add(rules.battery_category)
    if device.carrier in rules.locked_carriers:
        keys.add(rules.carrier_category)
    return [
        {"key": c.key, "reason": c.reason, "amount": float(c.amount)}
        for c in rules.categories
        if c.key in keys and c.amount > 0
    ]


def match(device: Device, catalog: Sequence[CatalogEntry],
          rules: Optional[DeductionRules] = None,
          scanner: Optional[KeywordScanner] = None) -> MatchResult:
    if device.is_blacklisted:
        return MatchResult(notes="blacklisted: not priced")

    entry, confidence = best_entry(device, catalog)
    if entry is None:
        return MatchResult(notes="no match")

    label = f"{entry.brand} {entry.model} {entry.storage or 'any'}".strip()
    grade = device.final_grade or device.guessed_grade
    price = entry.price_for(grade) if grade else None
    if price is None:
        return MatchResult(confidence=confidence, entry=entry,
                           notes=f"no match: {label} has no price for grade {grade}")

    deductions = detect_deductions(device, rules, scanner)
    total = sum(d["amount"] for d in deductions)
    return MatchResult(
        base_price=price,
        deductions=deductions,
        total_deductions=total,
        final_value=max(0.0, price - total),
        confidence=confidence,
        notes=f"matched {label} grade {grade} ({confidence} pts)",
        entry=entry,
    )


def apply_matching(devices: List[Device], catalog: Sequence[CatalogEntry],
                   rules: Optional[DeductionRules] = None) -> Dict[str, int]:
    if not catalog:
        raise ReferenceDataMissing("pricing catalog is empty")
    rules = rules or DeductionRules()
    scanner = build_deduction_scanner(rules)
    matched = unmatched = errors = 0
    for device in devices:
        try:
            result = match(device, catalog, rules, scanner)
        except Exception as e:
            errors += 1
            logger.exception("Matching failed for %s: %s", device.device_id, e)
            continue
        device.matched_base_price = result.base_price
        device.applied_deductions = [
            {"reason": d["reason"], "amount": d["amount"]} for d in result.deductions
        ]
        device.deductions_total = result.total_deductions
        device.deduction_summary = result.deduction_summary
        device.matched_buyback_value = result.final_value
        device.match_confidence = result.confidence
        device.match_notes = result.notes
        device.last_updated = utcnow()
        if result.base_price > 0:
            matched += 1
        else:
            unmatched += 1
    return {"matched": matched, "unmatched": unmatched, "errors": errors}
