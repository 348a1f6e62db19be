# dealflow/models.py
"""SQLAlchemy ORM models for persisted entities.

`Device` is the canonical record every pipeline stage reads and updates.
`CatalogRow` holds the partner buyback price table, `Verdict` the ranked
worklist rebuilt on every ranking run, `AuditEntry` the append-only stage log
and `Setting` the key/value settings map.
"""
from sqlalchemy import Column, Integer, Text, Float, JSON, TIMESTAMP, func, Index
from .db import Base

GRADE_SEQUENCE = ["A", "B+", "B", "C", "D", "DOA"]
BLACKLISTED = "BLACKLISTED"
ALL_GRADES = GRADE_SEQUENCE + [BLACKLISTED]

DEAL_CLASSES = ["HOT DEAL", "SOLID DEAL", "MARGINAL", "PASS"]
UNKNOWN = "Unknown"


class Device(Base):
    __tablename__ = "devices"
    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(Text, nullable=False, unique=True, index=True)
    dedupe_key = Column(Text, nullable=False, unique=True, index=True)

    # listing
    platform = Column(Text)
    listing_url = Column(Text)
    title = Column(Text)
    description = Column(Text)
    source_channel = Column(Text)
    listed_at = Column(Text)
    data_quality = Column(Integer)

    # parsed device
    brand = Column(Text)
    model = Column(Text)
    variant = Column(Text)
    storage = Column(Text)
    carrier = Column(Text)
    color = Column(Text)

    # condition
    condition_raw = Column(Text)
    condition_normalized = Column(Text)
    guessed_grade = Column(Text)
    manual_grade = Column(Text)
    final_grade = Column(Text)
    flags = Column(JSON)
    manual_flags = Column(Text)
    notes = Column(Text)

    # commercial
    asking_price = Column(Float)
    matched_base_price = Column(Float)
    applied_deductions = Column(JSON)
    deductions_total = Column(Float)
    deduction_summary = Column(Text)
    matched_buyback_value = Column(Float)
    match_confidence = Column(Integer)
    match_notes = Column(Text)
    mao = Column(Float)
    offer_target = Column(Float)
    expected_profit = Column(Float)
    profit_margin_percent = Column(Float)
    pricing_notes = Column(Text)

    # risk / market
    risk_score = Column(Integer)
    market_advantage_score = Column(Float)
    hot_seller = Column(Text)

    # seller
    seller_name = Column(Text)
    seller_contact = Column(Text)
    location = Column(Text)
    zip = Column(Text)
    distance_miles = Column(Float)

    # lifecycle
    deal_class = Column(Text)
    outreach_status = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    last_updated = Column(TIMESTAMP(timezone=True), server_default=func.now())

    @property
    def is_blacklisted(self):
        return BLACKLISTED in (self.guessed_grade, self.final_grade)

    @property
    def is_hot_seller(self):
        return (self.hot_seller or "").upper() == "YES"

    def __repr__(self):
        return f"<Device {self.device_id} {self.brand} {self.model} {self.final_grade}>"


class CatalogRow(Base):
    __tablename__ = "buyback_catalog"
    id = Column(Integer, primary_key=True, index=True)
    position = Column(Integer, nullable=False)
    brand = Column(Text, nullable=False)
    model = Column(Text, nullable=False)
    variant = Column(Text)
    storage = Column(Text)
    price_a = Column(Float)
    price_b_plus = Column(Float)
    price_b = Column(Float)
    price_c = Column(Float)
    price_d = Column(Float)
    price_doa = Column(Float)
    partner = Column(Text)
    updated_at = Column(TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now())


# grade -> catalog price column
GRADE_COLUMNS = {
    "A": "price_a",
    "B+": "price_b_plus",
    "B": "price_b",
    "C": "price_c",
    "D": "price_d",
    "DOA": "price_doa",
}


class Verdict(Base):
    __tablename__ = "verdicts"
    id = Column(Integer, primary_key=True, index=True)
    rank = Column(Integer, nullable=False)
    composite_score = Column(Float)
    device_id = Column(Text, nullable=False, index=True)
    title = Column(Text)
    platform = Column(Text)
    listing_url = Column(Text)
    final_grade = Column(Text)
    deal_class = Column(Text)
    asking_price = Column(Float)
    mao = Column(Float)
    offer_target = Column(Float)
    expected_profit = Column(Float)
    profit_margin_percent = Column(Float)
    risk_score = Column(Integer)
    market_advantage_score = Column(Float)
    hot_seller = Column(Text)
    seller_name = Column(Text)
    seller_contact = Column(Text)
    recommended_action = Column(Text)
    strategy = Column(Text)
    opening_offer = Column(Float)
    walk_away_price = Column(Float)
    auto_message = Column(Text)
    status = Column(Text)
    external_id = Column(Text)
    status_message = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())


class AuditEntry(Base):
    __tablename__ = "audit_log"
    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(TIMESTAMP(timezone=True), server_default=func.now())
    stage = Column(Text, nullable=False)
    summary = Column(Text)
    counts = Column(JSON)


class Setting(Base):
    __tablename__ = "settings"
    key = Column(Text, primary_key=True)
    value = Column(Text)
    description = Column(Text)

Index("idx_devices_deal_class", Device.deal_class)
Index("idx_devices_seller_contact", Device.seller_contact)
Index("idx_verdicts_rank", Verdict.rank)
