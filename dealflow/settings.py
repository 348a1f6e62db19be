# dealflow/settings.py
"""Pipeline configuration.

The pipeline consumes a plain settings map (string key -> string/number). This
module turns that map into frozen configuration structs that are passed
explicitly into every stage, so tests can hand in fixtures instead of touching
module state. Missing or unparseable values always fall back to the defaults
below; nothing here raises on bad configuration.
"""
import os
from typing import Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .utils import logger


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class GradingRules(_Frozen):
    # phrase -> machine tag
    blacklist_keywords: Dict[str, str] = Field(default_factory=lambda: {
        "icloud locked": "icloud_locked",
        "icloud lock": "icloud_locked",
        "locked to icloud": "icloud_locked",
        "activation lock": "icloud_locked",
        "activation locked": "icloud_locked",
        "find my iphone on": "icloud_locked",
        "fmi on": "icloud_locked",
        "reported stolen": "reported_stolen",
        "stolen": "reported_stolen",
        "lost mode": "reported_stolen",
        "blacklisted": "bad_imei",
        "bad imei": "bad_imei",
        "bad esn": "bad_imei",
        "imei blocked": "bad_imei",
        "blocked imei": "bad_imei",
        "unpaid balance": "financed",
        "not paid off": "financed",
    })
    doa_keywords: Dict[str, str] = Field(default_factory=lambda: {
        "broken": "broken",
        "dead": "dead",
        "not working": "not_working",
        "doesn't work": "not_working",
        "does not work": "not_working",
        "won't turn on": "no_power",
        "wont turn on": "no_power",
        "does not turn on": "no_power",
        "doesn't turn on": "no_power",
        "no power": "no_power",
        "shattered screen": "shattered_screen",
        "screen shattered": "shattered_screen",
        "for parts": "for_parts",
        "parts only": "for_parts",
    })
    condition_grades: Dict[str, str] = Field(default_factory=lambda: {
        "Like New": "A",
        "Excellent": "B+",
        "Good": "B",
        "Fair": "C",
        "Poor": "D",
        "For Parts": "DOA",
    })
    default_grade: str = "B"
    severe_issues: Dict[str, str] = Field(default_factory=lambda: {
        "cracked screen": "cracked_screen",
        "screen cracked": "cracked_screen",
        "cracked display": "cracked_screen",
        "screen is cracked": "cracked_screen",
        "water damage": "water_damage",
        "water damaged": "water_damage",
        "liquid damage": "water_damage",
        "lcd bleed": "display_defect",
        "dead pixels": "display_defect",
        "lines on screen": "display_defect",
        "green line": "display_defect",
        "bent frame": "bent_frame",
        "frame is bent": "bent_frame",
    })
    moderate_issues: Dict[str, str] = Field(default_factory=lambda: {
        "cracked back": "cracked_back",
        "back glass cracked": "cracked_back",
        "back is cracked": "cracked_back",
        "broken back glass": "cracked_back",
        "cracked lens": "cracked_lens",
        "camera lens cracked": "cracked_lens",
        "heavy scratches": "heavy_scratches",
        "deep scratches": "heavy_scratches",
        "heavy wear": "heavy_scratches",
        "dents": "dents",
        "dented": "dents",
        "burn in": "screen_burn",
        "burn-in": "screen_burn",
        "screen burn": "screen_burn",
        "ghost touch": "ghost_touch",
        "face id not working": "biometrics_disabled",
        "face id disabled": "biometrics_disabled",
        "no face id": "biometrics_disabled",
        "touch id not working": "biometrics_disabled",
        "needs new battery": "battery_degraded",
        "battery service": "battery_degraded",
        "speaker not working": "speaker_fault",
        "button not working": "button_fault",
    })
    minor_issues: Dict[str, str] = Field(default_factory=lambda: {
        "light scratches": "light_scratches",
        "minor scratches": "light_scratches",
        "scratches": "light_scratches",
        "scratched": "light_scratches",
        "scuffs": "scuffs",
        "scuffed": "scuffs",
        "scuff": "scuffs",
        "small dent": "small_dent",
        "dings": "small_dent",
        "ding": "small_dent",
        "chipped": "chip",
        "chipped corner": "chip",
        "signs of wear": "wear",
        "normal wear": "wear",
    })
    positive_keywords: Dict[str, str] = Field(default_factory=lambda: {
        "pristine": "pristine",
        "flawless": "pristine",
        "with box": "with_box",
        "original box": "with_box",
        "in box": "with_box",
        "sealed": "sealed",
        "warranty": "warranty",
        "applecare": "warranty",
        "apple care": "warranty",
    })


class DeductionCategory(_Frozen):
    key: str
    reason: str
    amount: float
    keywords: Tuple[str, ...] = ()


def _default_categories():
    return (
        DeductionCategory(key="CRACKED_BACK", reason="Cracked back glass", amount=180,
                          keywords=("cracked back", "back glass cracked", "back is cracked",
                                    "broken back glass", "cracked back glass")),
        DeductionCategory(key="CRACKED_LENS", reason="Cracked camera lens", amount=60,
                          keywords=("cracked lens", "camera lens cracked", "lens is cracked",
                                    "cracked camera")),
        DeductionCategory(key="CARRIER_LOCKED", reason="Carrier locked (Cricket)", amount=100,
                          keywords=("cricket", "cricket wireless")),
        DeductionCategory(key="DEMO_UNIT", reason="Demo/display unit", amount=70,
                          keywords=("demo unit", "demo", "display unit", "store display",
                                    "retail display")),
        DeductionCategory(key="MISSING_STYLUS", reason="Missing stylus", amount=40,
                          keywords=("missing stylus", "no stylus", "missing s pen", "no s pen",
                                    "without s pen", "s pen missing", "stylus missing")),
        DeductionCategory(key="HEAVY_SCRATCHES", reason="Heavy scratches", amount=40,
                          keywords=("heavy scratches", "deep scratches", "heavily scratched")),
        DeductionCategory(key="BATTERY_DEGRADED", reason="Battery health below 80%", amount=30,
                          keywords=("battery degraded", "degraded battery", "bad battery",
                                    "needs new battery", "battery service", "poor battery")),
        DeductionCategory(key="BIOMETRICS_DISABLED", reason="Face ID / Touch ID not working", amount=80,
                          keywords=("face id not working", "face id disabled", "no face id",
                                    "face id unavailable", "touch id not working",
                                    "biometrics disabled")),
    )


class DeductionRules(_Frozen):
    categories: Tuple[DeductionCategory, ...] = Field(default_factory=_default_categories)
    battery_health_floor: int = 80
    battery_category: str = "BATTERY_DEGRADED"
    locked_carriers: Tuple[str, ...] = ("Cricket",)
    carrier_category: str = "CARRIER_LOCKED"


class PricingSettings(_Frozen):
    target_margin: float = 0.25
    offer_to_mao_ratio: float = 0.85
    low_risk_threshold: int = 3
    high_risk_threshold: int = 7
    medium_risk_threshold: int = 5
    max_acceptable_risk: int = 8
    low_risk_bonus: float = 1.05
    high_risk_penalty: float = 0.90
    hot_seller_bonus: float = 1.05
    market_advantage_threshold: float = 60
    market_advantage_bonus: float = 1.03
    hot_deal_margin: float = 0.35
    hot_deal_min_profit: float = 100
    solid_deal_margin: float = 0.25
    solid_deal_min_profit: float = 50
    marginal_deal_margin: float = 0.15
    marginal_deal_min_profit: float = 25
    problem_carriers: Tuple[str, ...] = ("Cricket", "Metro", "Boost")
    medium_distance_miles: float = 25
    far_distance_miles: float = 50
    offer_cap_trigger: float = 0.95
    offer_cap_ratio: float = 0.90


class SellerSettings(_Frozen):
    hot_seller_min_deals: int = 3


DEFAULT_MESSAGE_TEMPLATE = (
    "Hi! I saw your {title} listing. I can pay ${offer} cash today "
    "and meet wherever is easy for you. Still available?"
)


class VerdictSettings(_Frozen):
    weight_profit: float = 0.25
    weight_margin: float = 0.30
    weight_risk: float = 0.20
    weight_market: float = 0.15
    weight_hot_seller: float = 0.10
    profit_ceiling: float = 200
    margin_ceiling: float = 0.50
    message_template: str = DEFAULT_MESSAGE_TEMPLATE

    def weights(self) -> Dict[str, float]:
        raw = {
            "profit": self.weight_profit,
            "margin": self.weight_margin,
            "risk": self.weight_risk,
            "market": self.weight_market,
            "hot_seller": self.weight_hot_seller,
        }
        total = sum(raw.values())
        if total <= 0:
            return VerdictSettings().weights()
        return {k: v / total for k, v in raw.items()}


class PipelineSettings(_Frozen):
    grading: GradingRules = Field(default_factory=GradingRules)
    deductions: DeductionRules = Field(default_factory=DeductionRules)
    pricing: PricingSettings = Field(default_factory=PricingSettings)
    sellers: SellerSettings = Field(default_factory=SellerSettings)
    verdict: VerdictSettings = Field(default_factory=VerdictSettings)
    rerun_pricing_after_sellers: bool = True
    data_retention_days: int = 90

    @classmethod
    def from_map(cls, values: Optional[Mapping[str, object]] = None) -> "PipelineSettings":
        values = values or {}
        reader = _Reader(values)

        p = PricingSettings()
        pricing = PricingSettings(
            target_margin=reader.ratio("TARGET_MARGIN", p.target_margin),
            offer_to_mao_ratio=reader.ratio("OFFER_TO_MAO_RATIO", p.offer_to_mao_ratio),
            low_risk_threshold=reader.integer("LOW_RISK_THRESHOLD", p.low_risk_threshold),
            high_risk_threshold=reader.integer("HIGH_RISK_THRESHOLD", p.high_risk_threshold),
            medium_risk_threshold=reader.integer("MEDIUM_RISK_THRESHOLD", p.medium_risk_threshold),
            max_acceptable_risk=reader.integer("MAX_ACCEPTABLE_RISK", p.max_acceptable_risk),
            low_risk_bonus=reader.number("LOW_RISK_BONUS", p.low_risk_bonus),
            high_risk_penalty=reader.number("HIGH_RISK_PENALTY", p.high_risk_penalty),
            hot_seller_bonus=reader.number("HOT_SELLER_BONUS", p.hot_seller_bonus),
            market_advantage_threshold=reader.number("MARKET_ADVANTAGE_THRESHOLD", p.market_advantage_threshold),
            market_advantage_bonus=reader.number("MARKET_ADVANTAGE_BONUS", p.market_advantage_bonus),
            hot_deal_margin=reader.ratio("HOT_DEAL_MIN_MARGIN", p.hot_deal_margin),
            hot_deal_min_profit=reader.number("HOT_DEAL_MIN_PROFIT", p.hot_deal_min_profit),
            solid_deal_margin=reader.ratio("SOLID_DEAL_MIN_MARGIN", p.solid_deal_margin),
            solid_deal_min_profit=reader.number("SOLID_DEAL_MIN_PROFIT", p.solid_deal_min_profit),
            marginal_deal_margin=reader.ratio("MARGINAL_DEAL_MIN_MARGIN", p.marginal_deal_margin),
            marginal_deal_min_profit=reader.number("MARGINAL_DEAL_MIN_PROFIT", p.marginal_deal_min_profit),
            problem_carriers=reader.csv("PROBLEM_CARRIERS", p.problem_carriers),
            medium_distance_miles=reader.number("MEDIUM_DISTANCE_MILES", p.medium_distance_miles),
            far_distance_miles=reader.number("FAR_DISTANCE_MILES", p.far_distance_miles),
        )

        base = DeductionRules()
        categories = tuple(
            c.model_copy(update={"amount": reader.number(f"DEDUCTION_{c.key}", c.amount)})
            for c in base.categories
        )
        deductions = DeductionRules(
            categories=categories,
            battery_health_floor=reader.integer("BATTERY_HEALTH_FLOOR", base.battery_health_floor),
        )

        v = VerdictSettings()
        verdict = VerdictSettings(
            weight_profit=reader.ratio("WEIGHT_PROFIT", v.weight_profit),
            weight_margin=reader.ratio("WEIGHT_MARGIN", v.weight_margin),
            weight_risk=reader.ratio("WEIGHT_RISK", v.weight_risk),
            weight_market=reader.ratio("WEIGHT_MARKET", v.weight_market),
            weight_hot_seller=reader.ratio("WEIGHT_HOT_SELLER", v.weight_hot_seller),
            message_template=reader.text("MESSAGE_TEMPLATE", v.message_template),
        )

        g = GradingRules()
        grading = g.model_copy(update={
            "default_grade": reader.text("DEFAULT_GRADE", g.default_grade),
        })

        return cls(
            grading=grading,
            deductions=deductions,
            pricing=pricing,
            sellers=SellerSettings(
                hot_seller_min_deals=reader.integer("HOT_SELLER_MIN_DEALS", 3),
            ),
            verdict=verdict,
            rerun_pricing_after_sellers=reader.boolean("RERUN_PRICING_AFTER_SELLERS", True),
            data_retention_days=reader.integer("DATA_RETENTION_DAYS", 90),
        )


class _Reader:
    """Typed lookups over a settings map with default fallback."""

    def __init__(self, values: Mapping[str, object]):
        self.values = values

    def _raw(self, key):
        value = self.values.get(key)
        if value is None:
            return None
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
        return value

    def number(self, key, default: float) -> float:
        value = self._raw(key)
        if value is None:
            return default
        try:
            return float(str(value).replace("$", "").replace(",", "").rstrip("%"))
        except ValueError:
            logger.debug("Setting %s=%r is not numeric, using default %s", key, value, default)
            return default

    def integer(self, key, default: int) -> int:
        return int(round(self.number(key, default)))

    def ratio(self, key, default: float) -> float:
        # accepts 0.25, 25 or "25%"
        value = self.number(key, default)
        return value / 100 if value > 1 else value

    def boolean(self, key, default: bool) -> bool:
        value = self._raw(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        return str(value).upper() in ("TRUE", "YES", "1", "Y")

    def text(self, key, default: str) -> str:
        value = self._raw(key)
        return default if value is None else str(value)

    def csv(self, key, default: Tuple[str, ...]) -> Tuple[str, ...]:
        value = self._raw(key)
        if value is None:
            return default
        return tuple(part.strip() for part in str(value).split(",") if part.strip())


# key, default value, description (seeded into the settings table)
DEFAULT_SETTINGS = [
    ("TARGET_MARGIN", "0.25", "Margin kept below buyback value when computing MAO"),
    ("OFFER_TO_MAO_RATIO", "0.85", "First offer as a fraction of MAO"),
    ("LOW_RISK_THRESHOLD", "3", "Risk at or below this earns the low-risk bonus"),
    ("HIGH_RISK_THRESHOLD", "7", "Risk at or above this takes the high-risk penalty"),
    ("MEDIUM_RISK_THRESHOLD", "5", "Highest risk still eligible for HOT DEAL"),
    ("MAX_ACCEPTABLE_RISK", "8", "Risk above this is always PASS"),
    ("LOW_RISK_BONUS", "1.05", "MAO multiplier for low-risk devices"),
    ("HIGH_RISK_PENALTY", "0.90", "MAO multiplier for high-risk devices"),
    ("HOT_SELLER_BONUS", "1.05", "MAO multiplier for hot sellers"),
    ("MARKET_ADVANTAGE_THRESHOLD", "60", "Market advantage needed for the market bonus"),
    ("MARKET_ADVANTAGE_BONUS", "1.03", "MAO multiplier for strong market advantage"),
    ("HOT_DEAL_MIN_MARGIN", "0.35", "Minimum margin for HOT DEAL"),
    ("HOT_DEAL_MIN_PROFIT", "100", "Minimum profit ($) for HOT DEAL"),
    ("SOLID_DEAL_MIN_MARGIN", "0.25", "Minimum margin for SOLID DEAL"),
    ("SOLID_DEAL_MIN_PROFIT", "50", "Minimum profit ($) for SOLID DEAL"),
    ("MARGINAL_DEAL_MIN_MARGIN", "0.15", "Minimum margin for MARGINAL"),
    ("MARGINAL_DEAL_MIN_PROFIT", "25", "Minimum profit ($) for MARGINAL"),
    ("PROBLEM_CARRIERS", "Cricket,Metro,Boost", "Carriers that add risk"),
    ("HOT_SELLER_MIN_DEALS", "3", "Qualifying deals that make a seller hot"),
    ("RERUN_PRICING_AFTER_SELLERS", "TRUE", "Re-price after hot sellers are flagged"),
    ("DATA_RETENTION_DAYS", "90", "Age in days after which devices may be purged"),
    ("MESSAGE_TEMPLATE", DEFAULT_MESSAGE_TEMPLATE, "Outreach message; {title} {offer} {name}"),
] + [
    (f"DEDUCTION_{c.key}", f"{c.amount:g}", f"Deduction ($): {c.reason}")
    for c in _default_categories()
]

SETTING_KEYS = [key for key, _, _ in DEFAULT_SETTINGS] + [
    "MEDIUM_DISTANCE_MILES", "FAR_DISTANCE_MILES", "BATTERY_HEALTH_FLOOR", "DEFAULT_GRADE",
    "WEIGHT_PROFIT", "WEIGHT_MARGIN", "WEIGHT_RISK", "WEIGHT_MARKET", "WEIGHT_HOT_SELLER",
]


def env_settings() -> Dict[str, str]:
    """Known setting keys present in the process environment (.env included)."""
    return {key: os.environ[key] for key in SETTING_KEYS if key in os.environ}
