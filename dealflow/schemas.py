# dealflow/schemas.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Optional, Union
from datetime import datetime

from .models import GRADE_SEQUENCE, ALL_GRADES


class ListingRecord(BaseModel):
    """One scraped or submitted listing, exactly as received."""
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    platform: Optional[str] = None
    listing_url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    asking_price: Optional[Union[float, str]] = None
    raw_location: Optional[str] = None
    raw_condition: Optional[str] = None
    raw_carrier: Optional[str] = None
    seller_name: Optional[str] = None
    seller_contact: Optional[str] = None
    timestamp: Optional[str] = None
    source_channel: Optional[str] = None


class CatalogEntry(BaseModel):
    """A partner buyback price row; `prices` is keyed by grade."""
    model_config = ConfigDict(frozen=True)

    brand: str
    model: str
    variant: Optional[str] = None
    storage: Optional[str] = None
    prices: Dict[str, Optional[float]] = Field(default_factory=dict)
    partner: Optional[str] = None

    @field_validator("prices")
    @classmethod
    def known_grades(cls, v):
        unknown = set(v) - set(GRADE_SEQUENCE)
        if unknown:
            raise ValueError(f"unknown grade columns: {sorted(unknown)}")
        return v

    def price_for(self, grade: str) -> Optional[float]:
        price = self.prices.get(grade)
        if price is None or price <= 0:
            return None
        return float(price)


class DeviceUpdate(BaseModel):
    manual_grade: Optional[str] = None
    manual_flags: Optional[str] = None
    distance_miles: Optional[float] = None
    seller_contact: Optional[str] = None

    @field_validator("manual_grade")
    @classmethod
    def valid_grade(cls, v):
        if v is not None and v not in ALL_GRADES:
            raise ValueError(f"grade must be one of {ALL_GRADES}")
        return v


class DeviceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    device_id: str
    dedupe_key: str
    platform: Optional[str]
    listing_url: Optional[str]
    title: Optional[str]
    brand: Optional[str]
    model: Optional[str]
    variant: Optional[str]
    storage: Optional[str]
    carrier: Optional[str]
    color: Optional[str]
    condition_raw: Optional[str]
    condition_normalized: Optional[str]
    guessed_grade: Optional[str]
    manual_grade: Optional[str]
    final_grade: Optional[str]
    flags: Optional[List[str]]
    notes: Optional[str]
    asking_price: Optional[float]
    matched_base_price: Optional[float]
    applied_deductions: Optional[List[dict]]
    deduction_summary: Optional[str]
    matched_buyback_value: Optional[float]
    match_confidence: Optional[int]
    match_notes: Optional[str]
    mao: Optional[float]
    offer_target: Optional[float]
    expected_profit: Optional[float]
    profit_margin_percent: Optional[float]
    pricing_notes: Optional[str]
    risk_score: Optional[int]
    market_advantage_score: Optional[float]
    hot_seller: Optional[str]
    seller_name: Optional[str]
    seller_contact: Optional[str]
    location: Optional[str]
    zip: Optional[str]
    distance_miles: Optional[float]
    deal_class: Optional[str]
    outreach_status: Optional[str]
    data_quality: Optional[int]
    last_updated: Optional[datetime]


class VerdictOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    rank: int
    composite_score: float
    device_id: str
    title: Optional[str]
    platform: Optional[str]
    final_grade: Optional[str]
    deal_class: Optional[str]
    asking_price: Optional[float]
    offer_target: Optional[float]
    expected_profit: Optional[float]
    profit_margin_percent: Optional[float]
    risk_score: Optional[int]
    hot_seller: Optional[str]
    seller_name: Optional[str]
    seller_contact: Optional[str]
    recommended_action: str
    strategy: Optional[str] = None
    opening_offer: Optional[float] = None
    walk_away_price: Optional[float] = None
    auto_message: Optional[str]
    status: Optional[str]


class DeliveryResult(BaseModel):
    """Outcome reported back by an outreach collaborator (SMS, CRM, e-sign).

    Collaborators never raise across this boundary; they report `success`
    plus a message and, when the remote system issued one, an id.
    """
    success: bool
    message: str = ""
    external_id: Optional[str] = None
    status: str = "CONTACTED"

    @field_validator("status")
    @classmethod
    def known_status(cls, v):
        v = v.upper()
        if v not in ("CONTACTED", "SCHEDULED", "FAILED"):
            raise ValueError("status must be CONTACTED, SCHEDULED or FAILED")
        return v


class AuditOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: Optional[datetime]
    stage: str
    summary: Optional[str]
    counts: Optional[dict]


class StageReport(BaseModel):
    stage: str
    ok: bool = True
    summary: str = ""
    counts: Dict[str, int] = Field(default_factory=dict)


class PipelineReport(BaseModel):
    stages: List[StageReport] = Field(default_factory=list)
    verdicts: int = 0


class PortfolioSummary(BaseModel):
    """Totals over the current worklist."""
    total: int = 0
    actionable: int = 0
    by_action: Dict[str, int] = Field(default_factory=dict)
    by_deal_class: Dict[str, int] = Field(default_factory=dict)
    pipeline_profit: float = 0.0
    total_offers: float = 0.0
    average_margin: float = 0.0
    average_risk: float = 0.0
    hot_sellers: int = 0
    top_device_id: Optional[str] = None
