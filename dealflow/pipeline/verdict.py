# dealflow/pipeline/verdict.py
"""Verdict ranker: composite score, rank, recommended action and outreach message."""
import re
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..models import Device, Verdict
from ..settings import VerdictSettings
from ..utils import clamp, collapse_ws
from .profit import HOT_DEAL, MARGINAL, PASS, SOLID_DEAL, negotiation

CALL = "CALL"
TEXT = "TEXT"
HOLD = "HOLD"

HOT_SELLER_POINTS = 100.0
_GREETING = re.compile(r"^\s*(hi|hello|hey)\b[\s,!.]*", re.IGNORECASE)


@dataclass
class ScoreParts:
    profit: float
    margin: float
    risk: float
    market: float
    hot_seller: float


def score_parts(device: Device, settings: VerdictSettings) -> ScoreParts:
    profit = float(device.expected_profit or 0)
    margin = float(device.profit_margin_percent or 0)
    risk = device.risk_score if device.risk_score is not None else 5
    return ScoreParts(
        profit=clamp(profit / settings.profit_ceiling * 100, 0.0, 100.0) if settings.profit_ceiling > 0 else 0.0,
        margin=clamp(margin / settings.margin_ceiling * 100, 0.0, 100.0) if settings.margin_ceiling > 0 else 0.0,
        risk=clamp((10 - risk) / 9 * 100, 0.0, 100.0),
        market=clamp(float(device.market_advantage_score or 0), 0.0, 100.0),
        hot_seller=HOT_SELLER_POINTS if device.is_hot_seller else 0.0,
    )


def composite_score(device: Device, settings: Optional[VerdictSettings] = None) -> float:
    settings = settings or VerdictSettings()
    parts = score_parts(device, settings)
    weights = settings.weights()
    total = sum(getattr(parts, name) * weight for name, weight in weights.items())
    return round(total, 2)


def recommended_action(device: Device, low_risk_threshold: int = 3) -> str:
    has_contact = bool(collapse_ws(device.seller_contact))
    deal_class = device.deal_class
    if deal_class == HOT_DEAL:
        return CALL if has_contact else TEXT
    if deal_class == SOLID_DEAL:
        return CALL if device.is_hot_seller else TEXT
    if deal_class == MARGINAL:
        low_risk = (device.risk_score or 10) <= low_risk_threshold
        return TEXT if device.is_hot_seller and low_risk else HOLD
    return PASS


def first_name(seller_name) -> str:
    name = collapse_ws(seller_name)
    return name.split(" ")[0] if name else ""


def render_message(device: Device, template: str) -> str:
    """Fill {title}, {offer} and {name}; hot sellers are greeted by first name."""
    name = first_name(device.seller_name)
    offer = f"{float(device.offer_target or 0):.0f}"
    message = (template
               .replace("{title}", collapse_ws(device.title) or "phone")
               .replace("{offer}", offer)
               .replace("{name}", name or "there"))
    if device.is_hot_seller and name:
        greeting = f"Hi {name}, "
        if _GREETING.match(message):
            message = _GREETING.sub(greeting, message, count=1)
        else:
            message = greeting + message
    return message


def build_verdict(device: Device, rank: int, score: float, settings: VerdictSettings,
                  low_risk_threshold: int = 3) -> Verdict:
    plan = negotiation(device)
    return Verdict(
        rank=rank,
        composite_score=score,
        device_id=device.device_id,
        title=device.title,
        platform=device.platform,
        listing_url=device.listing_url,
        final_grade=device.final_grade,
        deal_class=device.deal_class,
        asking_price=device.asking_price,
        mao=device.mao,
        offer_target=device.offer_target,
        expected_profit=device.expected_profit,
        profit_margin_percent=device.profit_margin_percent,
        risk_score=device.risk_score,
        market_advantage_score=device.market_advantage_score,
        hot_seller=device.hot_seller,
        seller_name=device.seller_name,
        seller_contact=device.seller_contact,
        recommended_action=recommended_action(device, low_risk_threshold),
        strategy=plan.strategy,
        opening_offer=float(plan.opening_offer),
        walk_away_price=float(plan.walk_away),
        auto_message=render_message(device, settings.message_template),
        status=device.outreach_status or "NEW",
    )


def rank_devices(devices: List[Device], settings: Optional[VerdictSettings] = None,
                 low_risk_threshold: int = 3) -> Tuple[List[Verdict], Dict[str, int]]:
    """Build the full ranked worklist; blacklisted devices are left out.

    Python's sort is stable, so equal scores keep device store order.
    """
    settings = settings or VerdictSettings()
    scored = [(composite_score(d, settings), d) for d in devices if not d.is_blacklisted]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    verdicts = [
        build_verdict(device, rank, score, settings, low_risk_threshold)
        for rank, (score, device) in enumerate(scored, start=1)
    ]
    counts = {"ranked": len(verdicts), "excluded": len(devices) - len(verdicts)}
    for v in verdicts:
        key = v.recommended_action.lower()
        counts[key] = counts.get(key, 0) + 1
    return verdicts, counts


def summarize(verdicts: Sequence[Verdict]) -> Dict:
    """Portfolio view of a worklist.

    Profit and offer totals cover only the actionable verdicts (CALL or TEXT);
    averages and class counts cover every ranked device.
    """
    ranked = sorted(verdicts, key=lambda v: v.rank)
    actionable = [v for v in ranked if v.recommended_action in (CALL, TEXT)]
    total = len(ranked)
    return {
        "total": total,
        "actionable": len(actionable),
        "by_action": dict(Counter(v.recommended_action for v in ranked)),
        "by_deal_class": dict(Counter(v.deal_class for v in ranked)),
        "pipeline_profit": round(sum(float(v.expected_profit or 0) for v in actionable), 2),
        "total_offers": round(sum(float(v.offer_target or 0) for v in actionable), 2),
        "average_margin": round(sum(float(v.profit_margin_percent or 0) for v in ranked) / total, 4) if total else 0.0,
        "average_risk": round(sum(v.risk_score or 0 for v in ranked) / total, 2) if total else 0.0,
        "hot_sellers": sum(1 for v in ranked if (v.hot_seller or "").upper() == "YES"),
        "top_device_id": ranked[0].device_id if ranked else None,
    }
