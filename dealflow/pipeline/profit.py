# dealflow/pipeline/profit.py
"""Profit & risk engine: risk score, MAO, first offer, profit and deal class.

The hot-seller flag lowers risk and lifts MAO, which raises the offer and so
shrinks profit. Seller qualification is therefore judged on the class a deal
holds without the flag (`base_deal_class`), and a flagged device is never
priced into a lower class than that; flags and classes settle after one
seller pass.
"""
import math
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..models import DEAL_CLASSES, Device, UNKNOWN
from ..settings import PricingSettings
from ..utils import clamp, logger, round_half_up, utcnow

NEUTRAL_RISK = 5
GRADE_RISK = {"A": -2, "B+": -1, "B": 0, "C": 1, "D": 2, "DOA": 3}

HOT_DEAL, SOLID_DEAL, MARGINAL, PASS = DEAL_CLASSES
CLASS_RANK = {PASS: 0, MARGINAL: 1, SOLID_DEAL: 2, HOT_DEAL: 3}

NO_ASKING_PRICE = "no asking price: no offer made"
HOT_BONUS_WITHHELD = "hot-seller bonus withheld: it would lower the deal class"


@dataclass
class PricingResult:
    risk_score: int
    market_advantage: float
    mao: int
    offer_target: int
    expected_profit: float
    margin: float
    deal_class: str
    note: str = ""


@dataclass
class Negotiation:
    strategy: str
    opening_offer: int
    walk_away: int
    ideal: int


def risk_score(device: Device, settings: Optional[PricingSettings] = None,
               hot_seller: Optional[bool] = None) -> int:
    s = settings or PricingSettings()
    if device.is_blacklisted:
        return 10
    hot = device.is_hot_seller if hot_seller is None else hot_seller
    score = float(NEUTRAL_RISK)
    score += GRADE_RISK.get(device.final_grade, 0)
    score += min(2, len(device.applied_deductions or []) // 2)
    score += round_half_up(min(2.0, 0.5 * len(device.flags or [])))
    carrier = device.carrier or UNKNOWN
    if carrier == UNKNOWN:
        score += 1
    elif carrier in s.problem_carriers:
        score += 1
    if not device.matched_base_price:
        score += 3
    if hot:
        score -= 1
    if device.distance_miles is not None:
        if device.distance_miles > s.far_distance_miles:
            score += 2
        elif device.distance_miles > s.medium_distance_miles:
            score += 1
    return int(clamp(round_half_up(score), 1, 10))


def market_advantage(buyback_value: float, asking_price: float) -> float:
    """0-100; how far below buyback value the asking price sits (doubled)."""
    if buyback_value <= 0 or asking_price <= 0:
        return 0.0
    return clamp((buyback_value - asking_price) / buyback_value * 100 * 2, 0.0, 100.0)


def compute_mao(buyback_value: float, risk: int, hot_seller: bool, advantage: float,
                settings: Optional[PricingSettings] = None) -> int:
    s = settings or PricingSettings()
    mao = buyback_value * (1 - s.target_margin)
    if risk <= s.low_risk_threshold:
        mao *= s.low_risk_bonus
    elif risk >= s.high_risk_threshold:
        mao *= s.high_risk_penalty
    if hot_seller:
        mao *= s.hot_seller_bonus
    if advantage >= s.market_advantage_threshold:
        mao *= s.market_advantage_bonus
    return max(0, round_half_up(mao))


def compute_offer(mao: int, asking_price: float, settings: Optional[PricingSettings] = None) -> int:
    """First offer; never above the asking price, and 0 when there is none."""
    s = settings or PricingSettings()
    if asking_price <= 0:
        return 0
    offer = round_half_up(mao * s.offer_to_mao_ratio)
    # near the asking price the offer drops to 90% of it so the full MAO is not shown
    if offer > asking_price * s.offer_cap_trigger:
        offer = min(offer, math.floor(asking_price * s.offer_cap_ratio))
    return max(0, offer)


def classify(risk: int, margin: float, profit: float, settings: Optional[PricingSettings] = None) -> str:
    s = settings or PricingSettings()
    if risk > s.max_acceptable_risk:
        return PASS
    if margin >= s.hot_deal_margin and profit >= s.hot_deal_min_profit and risk <= s.medium_risk_threshold:
        return HOT_DEAL
    if margin >= s.solid_deal_margin and profit >= s.solid_deal_min_profit:
        return SOLID_DEAL
    if margin >= s.marginal_deal_margin and profit >= s.marginal_deal_min_profit:
        return MARGINAL
    return PASS


def _price(device: Device, s: PricingSettings, hot: bool) -> PricingResult:
    buyback = 0.0 if device.is_blacklisted else float(device.matched_buyback_value or 0)
    asking = float(device.asking_price or 0)

    risk = risk_score(device, s, hot)
    advantage = market_advantage(buyback, asking)
    mao = compute_mao(buyback, risk, hot, advantage, s)
    if asking <= 0:
        return PricingResult(risk_score=risk, market_advantage=0.0, mao=mao, offer_target=0,
                             expected_profit=0.0, margin=0.0, deal_class=PASS,
                             note=NO_ASKING_PRICE if buyback > 0 else "")
    offer = compute_offer(mao, asking, s)
    profit = buyback - offer
    margin = profit / buyback if buyback > 0 else 0.0
    deal_class = PASS if buyback <= 0 else classify(risk, margin, profit, s)
    return PricingResult(
        risk_score=risk,
        market_advantage=round(advantage, 1),
        mao=mao,
        offer_target=offer,
        expected_profit=round(profit, 2),
        margin=round(margin, 4),
        deal_class=deal_class,
    )


def price_device(device: Device, settings: Optional[PricingSettings] = None,
                 hot_seller: Optional[bool] = None) -> PricingResult:
    s = settings or PricingSettings()
    hot = device.is_hot_seller if hot_seller is None else hot_seller
    result = _price(device, s, hot)
    if hot:
        base = _price(device, s, False)
        if CLASS_RANK[result.deal_class] < CLASS_RANK[base.deal_class]:
            base.note = HOT_BONUS_WITHHELD
            return base
    return result


def base_deal_class(device: Device, settings: Optional[PricingSettings] = None) -> str:
    """Deal class the device earns on its own, ignoring any hot-seller flag."""
    return price_device(device, settings, hot_seller=False).deal_class


def negotiation(device: Device) -> Negotiation:
    """Talking points for a priced device: where to open, where to walk away."""
    offer = int(device.offer_target or 0)
    mao = int(device.mao or 0)
    asking = float(device.asking_price or 0)
    opening = max(offer - 50, offer * 0.85) if offer > 0 else 0
    opening = int(math.floor(opening / 5) * 5)

    deal_class = device.deal_class
    if deal_class not in (HOT_DEAL, SOLID_DEAL, MARGINAL):
        strategy = "PASS - not profitable at asking price"
    elif deal_class == HOT_DEAL:
        strategy = "STRONG BUY - exceptional margin, move fast"
    elif deal_class == SOLID_DEAL:
        strategy = "BUY - strong margin, negotiate gently"
    elif asking <= offer:
        strategy = "BUY NOW - asking price at or below target"
    elif mao > 0 and asking / mao < 1.1:
        strategy = "NEGOTIATE - asking close to MAO, aim 10-15% lower"
    elif mao > 0 and asking / mao < 1.3:
        strategy = "NEGOTIATE - asking high, aim 20-30% lower"
    else:
        strategy = "WATCH - asking too high, wait for a price drop"
    return Negotiation(strategy=strategy, opening_offer=opening, walk_away=mao, ideal=offer)


def apply_pricing(devices: List[Device], settings: Optional[PricingSettings] = None) -> Dict[str, int]:
    s = settings or PricingSettings()
    classes = Counter()
    errors = 0
    for device in devices:
        try:
            result = price_device(device, s)
        except Exception as e:
            errors += 1
            logger.exception("Pricing failed for %s: %s", device.device_id, e)
            continue
        device.risk_score = result.risk_score
        device.market_advantage_score = result.market_advantage
        device.mao = float(result.mao)
        device.offer_target = float(result.offer_target)
        device.expected_profit = result.expected_profit
        device.profit_margin_percent = result.margin
        device.deal_class = result.deal_class
        device.pricing_notes = result.note
        device.last_updated = utcnow()
        classes[result.deal_class] += 1
    counts = {"priced": sum(classes.values()), "errors": errors}
    counts.update({cls.lower().replace(" ", "_"): n for cls, n in classes.items()})
    return counts
