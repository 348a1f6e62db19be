# dealflow/pipeline/sellers.py
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..models import Device
from ..utils import collapse_ws, utcnow
from ..settings import PricingSettings
from .profit import PASS, base_deal_class

_DIGITS = re.compile(r"\D")


@dataclass
class SellerAggregate:
    seller_key: str
    qualifying_deals: int = 0
    device_count: int = 0
    hot: bool = False


def seller_key(device: Device) -> str:
    """Normalized contact (phone digits or e-mail), else normalized name, else ''."""
    contact = collapse_ws(device.seller_contact).lower()
    if contact:
        digits = _DIGITS.sub("", contact)
        if "@" not in contact and len(digits) >= 7:
            return "tel:" + digits[-10:]
        return "contact:" + contact.replace(" ", "")
    name = collapse_ws(device.seller_name).lower()
    return "name:" + name if name else ""


def is_qualifying(device: Device, pricing: Optional[PricingSettings] = None) -> bool:
    """A deal counts toward its seller on the class it earns without the hot flag."""
    if device.is_blacklisted or not device.matched_buyback_value:
        return False
    return base_deal_class(device, pricing) != PASS


def aggregate_sellers(devices: List[Device], min_deals: int = 3,
                      pricing: Optional[PricingSettings] = None) -> Dict[str, SellerAggregate]:
    sellers: Dict[str, SellerAggregate] = {}
    for device in devices:
        key = seller_key(device)
        if not key:
            continue
        agg = sellers.setdefault(key, SellerAggregate(seller_key=key))
        agg.device_count += 1
        if is_qualifying(device, pricing):
            agg.qualifying_deals += 1
    for agg in sellers.values():
        agg.hot = agg.qualifying_deals >= min_deals
    return sellers


def apply_seller_flags(devices: List[Device], min_deals: int = 3,
                       pricing: Optional[PricingSettings] = None) -> Dict[str, int]:
    """Write the hot-seller flag onto every device of every keyed seller.

    Returns counts including `changed`, the number of devices whose flag
    flipped, so the caller can decide whether pricing needs another pass.
    """
    sellers = aggregate_sellers(devices, min_deals, pricing)
    changed = 0
    for device in devices:
        key = seller_key(device)
        flag = "YES" if key and sellers[key].hot else "NO"
        if (device.hot_seller or "NO") != flag:
            changed += 1
            device.hot_seller = flag
            device.last_updated = utcnow()
    return {
        "sellers": len(sellers),
        "hot_sellers": sum(1 for s in sellers.values() if s.hot),
        "changed": changed,
    }
