# tests/test_normalizer.py
import re

from dealflow.pipeline import normalizer
from dealflow.pipeline.normalizer import (
    clean_platform, dedupe_key, infer_condition, normalize, parse_carrier,
    parse_location, parse_model, parse_price, parse_storage, storage_gb,
)
from dealflow.schemas import ListingRecord


def test_parse_price():
    assert parse_price("$1,200") == 1200.0
    assert parse_price("asking 450 obo") == 450.0
    assert parse_price(375) == 375.0
    assert parse_price("call me") == 0.0
    assert parse_price(None) == 0.0


def test_clean_platform():
    assert clean_platform("facebook") == "Facebook Marketplace"
    assert clean_platform("OfferUp app") == "OfferUp"
    assert clean_platform("") == "Other"
    assert clean_platform("Swappa") == "Swappa"


def test_parse_model_specific_patterns():
    assert parse_model("Apple iPhone 15 Pro Max 256GB") == ("Apple", "iPhone 15 Pro Max")
    assert parse_model("iphone 13 mini") == ("Apple", "iPhone 13 Mini")
    assert parse_model("Samsung Galaxy S23 Ultra") == ("Samsung", "Galaxy S23 Ultra")
    assert parse_model("Google Pixel 8a like new") == ("Google", "Pixel 8a")


def test_parse_model_falls_back_to_brand_then_unknown():
    assert parse_model("apple phone, works great") == ("Apple", "Unknown")
    assert parse_model("nice phone") == ("Unknown", "Unknown")


def test_storage():
    assert parse_storage("256GB storage, 8GB RAM") == "256GB"
    assert parse_storage("1 TB model") == "1TB"
    assert parse_storage("no capacity given") == "Unknown"
    assert storage_gb("1TB") == 1000
    assert storage_gb("128 GB") == 128


def test_parse_carrier_order():
    assert parse_carrier("Metro by T-Mobile") == "Metro"
    assert parse_carrier("works on AT&T") == "AT&T"
    assert parse_carrier("factory unlocked") == "Unlocked"
    assert parse_carrier("no carrier info") == "Unknown"


def test_infer_condition_longest_phrase_wins():
    assert infer_condition("near mint, barely used") == "Excellent"
    assert infer_condition("mint, sealed in box") == "Like New"
    assert infer_condition("good condition") == "Good"
    assert infer_condition("") == "Unknown"


def test_parse_location():
    assert parse_location("Austin, TX 78701") == ("Austin, TX", "78701")
    assert parse_location("somewhere") == ("Unknown", "Unknown")


def test_dedupe_key_ignores_case_whitespace_and_long_title_tail():
    title = "iPhone 14 128GB unlocked, excellent shape, comes with case"
    a = dedupe_key("OfferUp", "https://x/1", title)
    b = dedupe_key("offerup", "HTTPS://X/1 ", "  " + title.upper()[:52] + " and charger")
    assert a == b
    assert dedupe_key("OfferUp", "https://x/2", title) != a


def test_normalize_full_listing():
    listing = ListingRecord(
        platform="facebook",
        listing_url="https://fb.example/item/1",
        title="iPhone 14 128GB Unlocked Blue",
        description="Selling my phone, always in a case.",
        asking_price="$450",
        raw_location="Austin, TX 78701",
        raw_condition="Excellent",
        seller_name="Maria Lopez",
        seller_contact="512-555-0100",
    )
    device = normalize(listing)
    assert device.platform == "Facebook Marketplace"
    assert (device.brand, device.model, device.storage) == ("Apple", "iPhone 14", "128GB")
    assert device.carrier == "Unlocked"
    assert device.color == "Blue"
    assert device.condition_normalized == "Excellent"
    assert device.asking_price == 450.0
    assert (device.location, device.zip) == ("Austin, TX", "78701")
    assert device.deal_class == "NEW"
    assert device.hot_seller == "NO"
    assert re.match(r"^FA-\d{8}-[A-Z0-9]{6}$", device.device_id)
    assert device.data_quality == 100


def test_normalize_prefers_raw_carrier():
    listing = ListingRecord(title="iPhone 13 unlocked", raw_carrier="Verizon")
    assert normalize(listing).carrier == "Verizon"


def test_normalize_never_rejects_empty_listing():
    device = normalize(ListingRecord())
    assert device.platform == "Other"
    assert device.brand == normalizer.UNKNOWN
    assert device.asking_price == 0.0
    assert device.data_quality < 50
