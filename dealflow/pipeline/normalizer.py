# dealflow/pipeline/normalizer.py
"""Record normalizer: one raw listing in, one canonical Device out.

Parsing is best effort. Anything that cannot be inferred is set to the
"Unknown" sentinel so the gap stays visible downstream; a listing is never
rejected here.
"""
import re
import secrets
import string
from datetime import datetime
from typing import Optional, Tuple

from ..models import Device, UNKNOWN
from ..schemas import ListingRecord
from ..utils import collapse_ws, utcnow

DEDUPE_TITLE_CHARS = 50
MAX_TEXT_LENGTH = 5000

PLATFORMS = [
    ("facebook", "Facebook Marketplace"),
    ("offerup", "OfferUp"),
    ("craigslist", "Craigslist"),
    ("ebay", "eBay"),
    ("mercari", "Mercari"),
    ("letgo", "5miles/LetGo"),
    ("5miles", "5miles/LetGo"),
]

_SUFFIXES = {"promax": "Pro Max", "pro": "Pro", "plus": "Plus", "mini": "Mini",
             "max": "Max", "ultra": "Ultra", "fe": "FE", "proxl": "Pro XL",
             "a": "a", "t": "T"}


def _suffix(raw: Optional[str]) -> str:
    if not raw:
        return ""
    key = re.sub(r"\s+", "", raw).lower()
    if key == "+":
        return "+"
    return " " + _SUFFIXES.get(key, raw.title())


def _iphone(m):
    return f"iPhone {m.group(1)}{_suffix(m.group(2))}"


def _iphone_x(m):
    name = collapse_ws(m.group(1)).upper().replace("MAX", "Max")
    return f"iPhone {name}"


def _iphone_se(m):
    gen = m.group(1)
    return f"iPhone SE {gen}" if gen else "iPhone SE"


def _galaxy_s(m):
    return f"Galaxy S{m.group(1)}{_suffix(m.group(2))}"


def _galaxy_z(m):
    return f"Galaxy Z {m.group(1).title()} {m.group(2)}"


def _galaxy_note(m):
    return f"Galaxy Note {m.group(1)}{_suffix(m.group(2))}"


def _galaxy_a(m):
    return f"Galaxy A{m.group(1)}"


def _pixel(m):
    if (m.group(2) or "").lower() == "a":
        return f"Pixel {m.group(1)}a"
    return f"Pixel {m.group(1)}{_suffix(m.group(2))}"


def _oneplus(m):
    return f"OnePlus {m.group(1)}{_suffix(m.group(2))}"


# Specific model patterns, checked in order before the generic brand rules.
MODEL_RULES = [
    (re.compile(r"\biphone\s*(1[0-9]|[5-9])\s*(pro\s*max|pro|plus|mini|max)?\b", re.I), "Apple", _iphone),
    (re.compile(r"\biphone\s*(xs\s*max|xs|xr|x)\b", re.I), "Apple", _iphone_x),
    (re.compile(r"\biphone\s*se\b(?:\s*\(?\s*(\d)(?:st|nd|rd|th)?(?:\s*gen(?:eration)?)?\)?)?", re.I), "Apple", _iphone_se),
    (re.compile(r"(?:\b(?:samsung\s+)?galaxy\s*s\s?|\bsamsung\s+s\s?|\bs)(1\d|2\d)\s*(ultra|plus|\+|fe)?(?![\w+])", re.I), "Samsung", _galaxy_s),
    (re.compile(r"\b(?:galaxy\s*)?z\s*(fold|flip)\s*(\d)\b", re.I), "Samsung", _galaxy_z),
    (re.compile(r"\bgalaxy\s*note\s*(\d{1,2})\s*(ultra|plus|\+)?(?![\w+])", re.I), "Samsung", _galaxy_note),
    (re.compile(r"\bgalaxy\s*a(\d{2})\b", re.I), "Samsung", _galaxy_a),
    (re.compile(r"\bpixel\s*(\d{1,2})\s*(pro\s*xl|pro|a)?\b", re.I), "Google", _pixel),
    (re.compile(r"\boneplus\s*(\d{1,2})\s*(pro|t)?\b", re.I), "OnePlus", _oneplus),
]

# Generic brand rules when no specific model pattern matched.
BRAND_RULES = [
    (re.compile(r"\b(?:iphone|apple)\b", re.I), "Apple"),
    (re.compile(r"\b(?:samsung|galaxy)\b", re.I), "Samsung"),
    (re.compile(r"\b(?:google|pixel)\b", re.I), "Google"),
    (re.compile(r"\boneplus\b", re.I), "OnePlus"),
    (re.compile(r"\b(?:motorola|moto\s*g)\b", re.I), "Motorola"),
    (re.compile(r"\blg\b", re.I), "LG"),
]

# Order matters: "metro by t-mobile" must resolve to Metro.
CARRIER_RULES = [
    (re.compile(r"\bunlocked\b", re.I), "Unlocked"),
    (re.compile(r"\bverizon\b", re.I), "Verizon"),
    (re.compile(r"\bat\s*&\s*t\b|\batt\b", re.I), "AT&T"),
    (re.compile(r"\bcricket\b", re.I), "Cricket"),
    (re.compile(r"\bmetro\s*(?:pcs|by)?\b", re.I), "Metro"),
    (re.compile(r"\bboost\b", re.I), "Boost"),
    (re.compile(r"\bt\s*-?\s*mobile\b", re.I), "T-Mobile"),
    (re.compile(r"\bsprint\b", re.I), "Sprint"),
    (re.compile(r"\bus\s*cellular\b", re.I), "US Cellular"),
]

VARIANT_RULES = [
    (re.compile(r"\bdual[\s-]*sim\b", re.I), "Dual SIM"),
    (re.compile(r"\be-?sim\s*only\b|\besim\b", re.I), "eSIM"),
    (re.compile(r"\b5g\b", re.I), "5G"),
    (re.compile(r"\blte\b|\b4g\b", re.I), "LTE"),
]

COLORS = [
    "Rose Gold", "Space Gray", "Space Grey", "Sierra Blue", "Alpine Green",
    "Natural Titanium", "Blue Titanium", "Black Titanium", "White Titanium",
    "Graphite", "Midnight", "Starlight", "Titanium", "Phantom Black",
    "Black", "White", "Silver", "Gold", "Red", "Blue", "Green", "Purple",
    "Yellow", "Pink", "Cream", "Lavender",
]

CONDITION_KEYWORDS = {
    "For Parts": ["for parts", "parts only", "not working", "doesn't work", "won't turn on"],
    "Like New": ["like new", "mint", "brand new", "new condition", "new in box",
                 "sealed", "flawless", "open box", "perfect condition"],
    "Excellent": ["excellent", "near mint", "great condition", "pristine", "very good"],
    "Good": ["good", "minor wear", "light scratches", "normal wear", "gently used"],
    "Fair": ["fair", "moderate wear", "visible wear", "scratches", "worn"],
    "Poor": ["poor", "heavy wear", "rough", "cracked", "damaged"],
}
# longest phrase first, so "near mint" wins over "mint"
_CONDITION_PHRASES = sorted(
    ((re.compile(r"(?<!\w)" + re.escape(p) + r"(?!\w)"), p, cond)
     for cond, phrases in CONDITION_KEYWORDS.items() for p in phrases),
    key=lambda e: len(e[1]), reverse=True,
)

_STORAGE = re.compile(r"\b(\d{1,4})\s*(gb|tb)\b", re.I)
_ZIP = re.compile(r"\b(\d{5})(?:-\d{4})?\b")
_CITY_STATE = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*),\s*([A-Z]{2})\b")
_PRICE = re.compile(r"(\d+(?:\.\d+)?)")
_STORAGE_SIZES_GB = {16, 32, 64, 128, 256, 512, 1000, 2000}


def clean_text(text) -> str:
    return collapse_ws(text)[:MAX_TEXT_LENGTH]


def clean_platform(platform) -> str:
    if not platform:
        return "Other"
    lowered = str(platform).lower()
    for needle, name in PLATFORMS:
        if needle in lowered:
            return name
    return clean_text(platform)


def parse_price(value) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return max(0.0, float(value))
    cleaned = str(value).replace("$", "").replace(",", "").strip()
    m = _PRICE.search(cleaned)
    return float(m.group(1)) if m else 0.0


def parse_model(text: str) -> Tuple[str, str]:
    for pattern, brand, build in MODEL_RULES:
        m = pattern.search(text)
        if m:
            return brand, build(m)
    for pattern, brand in BRAND_RULES:
        if pattern.search(text):
            return brand, UNKNOWN
    return UNKNOWN, UNKNOWN


def storage_gb(value) -> Optional[int]:
    """'256GB' -> 256, '1TB' -> 1000; None when not a capacity."""
    if not value:
        return None
    m = _STORAGE.search(str(value).replace(" ", ""))
    if not m:
        return None
    size = int(m.group(1))
    return size * 1000 if m.group(2).lower() == "tb" else size


def format_storage(gb: int) -> str:
    if gb >= 1000 and gb % 1000 == 0:
        return f"{gb // 1000}TB"
    return f"{gb}GB"


def parse_storage(text: str) -> str:
    sizes = []
    for m in _STORAGE.finditer(text):
        size = int(m.group(1))
        gb = size * 1000 if m.group(2).lower() == "tb" else size
        # "8GB RAM" is not storage
        if gb in _STORAGE_SIZES_GB:
            sizes.append(gb)
    return format_storage(max(sizes)) if sizes else UNKNOWN


def parse_carrier(text: str) -> str:
    for pattern, carrier in CARRIER_RULES:
        if pattern.search(text):
            return carrier
    return UNKNOWN


def parse_variant(text: str) -> str:
    for pattern, variant in VARIANT_RULES:
        if pattern.search(text):
            return variant
    return UNKNOWN


def parse_color(text: str) -> str:
    lowered = text.lower()
    for color in COLORS:
        if re.search(r"(?<!\w)" + re.escape(color.lower()) + r"(?!\w)", lowered):
            return color
    return UNKNOWN


def infer_condition(text: str) -> str:
    lowered = collapse_ws(text).lower()
    for pattern, _, condition in _CONDITION_PHRASES:
        if pattern.search(lowered):
            return condition
    return UNKNOWN


def parse_location(text: str) -> Tuple[str, str]:
    """Return (location, zip) from a combined location string."""
    zip_match = _ZIP.search(text or "")
    zip_code = zip_match.group(1) if zip_match else UNKNOWN
    city = _CITY_STATE.search(text or "")
    location = f"{city.group(1)}, {city.group(2)}" if city else UNKNOWN
    return location, zip_code


def dedupe_key(platform, listing_url, title) -> str:
    parts = [
        collapse_ws(platform).lower(),
        collapse_ws(listing_url).lower(),
        collapse_ws(title)[:DEDUPE_TITLE_CHARS].lower(),
    ]
    return "|".join(parts)


def data_quality(listing: ListingRecord) -> int:
    score = 100
    if not clean_text(listing.title):
        score -= 20
    if parse_price(listing.asking_price) <= 0:
        score -= 20
    if len(clean_text(listing.description)) < 20:
        score -= 10
    if not clean_text(listing.raw_location):
        score -= 10
    if not clean_text(listing.listing_url):
        score -= 10
    if not clean_text(listing.seller_name):
        score -= 5
    return score


def new_device_id(platform: str, when: Optional[datetime] = None) -> str:
    when = when or utcnow()
    code = (re.sub(r"[^A-Za-z]", "", platform)[:2] or "XX").upper()
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(6))
    return f"{code}-{when:%Y%m%d}-{suffix}"


def new_device(**fields) -> Device:
    """A Device with every analysis field at its starting value."""
    now = utcnow()
    values = dict(
        platform="Other", listing_url="", title="", description="",
        source_channel="", listed_at="", data_quality=0,
        brand=UNKNOWN, model=UNKNOWN, variant=UNKNOWN, storage=UNKNOWN,
        carrier=UNKNOWN, color=UNKNOWN,
        condition_raw="", condition_normalized=UNKNOWN,
        guessed_grade=None, manual_grade=None, final_grade=None,
        flags=[], manual_flags="", notes="",
        asking_price=0.0, matched_base_price=0.0, applied_deductions=[],
        deductions_total=0.0, deduction_summary="", matched_buyback_value=0.0,
        match_confidence=0, match_notes="", mao=0.0, offer_target=0.0,
        expected_profit=0.0, profit_margin_percent=0.0, pricing_notes="",
        risk_score=5, market_advantage_score=0.0, hot_seller="NO",
        seller_name="", seller_contact="", location=UNKNOWN, zip=UNKNOWN,
        distance_miles=None, deal_class="NEW", outreach_status="NEW",
        created_at=now, last_updated=now,
    )
    values.update(fields)
    if "device_id" not in values:
        values["device_id"] = new_device_id(values["platform"], now)
    if "dedupe_key" not in values:
        values["dedupe_key"] = dedupe_key(values["platform"], values["listing_url"], values["title"])
    return Device(**values)


def normalize(listing: ListingRecord) -> Device:
    platform = clean_platform(listing.platform)
    title = clean_text(listing.title)
    description = clean_text(listing.description)
    text = f"{title} {description}"

    brand, model = parse_model(text)
    carrier = parse_carrier(listing.raw_carrier) if clean_text(listing.raw_carrier) else UNKNOWN
    if carrier == UNKNOWN:
        carrier = parse_carrier(text)

    condition_raw = clean_text(listing.raw_condition)
    condition = infer_condition(condition_raw) if condition_raw else UNKNOWN
    if condition == UNKNOWN:
        condition = infer_condition(description)

    location, zip_code = parse_location(f"{clean_text(listing.raw_location)} {description}")
    if location == UNKNOWN and clean_text(listing.raw_location):
        location = clean_text(listing.raw_location)

    return new_device(
        platform=platform,
        listing_url=clean_text(listing.listing_url),
        title=title,
        description=description,
        source_channel=clean_text(listing.source_channel),
        listed_at=clean_text(listing.timestamp),
        data_quality=data_quality(listing),
        brand=brand,
        model=model,
        variant=parse_variant(text),
        storage=parse_storage(text),
        carrier=carrier,
        color=parse_color(text),
        condition_raw=condition_raw,
        condition_normalized=condition,
        asking_price=parse_price(listing.asking_price),
        seller_name=clean_text(listing.seller_name),
        seller_contact=clean_text(listing.seller_contact),
        location=location,
        zip=zip_code,
        dedupe_key=dedupe_key(platform, listing.listing_url, title),
    )
