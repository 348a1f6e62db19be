# tests/test_ingestion.py
from dealflow.pipeline.ingestion import ingest


def _listing(url="https://offerup.example/1", title="iPhone 14 128GB"):
    return {"platform": "offerup", "listing_url": url, "title": title, "asking_price": "300"}


def test_in_batch_duplicates_are_counted():
    result = ingest([_listing(), _listing(), _listing(url="https://offerup.example/2")], set())
    assert result.counts == {"added": 2, "duplicates": 1, "failed": 0}


def test_existing_keys_are_skipped():
    first = ingest([_listing()], set())
    keys = {d.dedupe_key for d in first.added}
    second = ingest([_listing(title="  IPHONE 14 128gb ")], keys)
    assert second.counts == {"added": 0, "duplicates": 1, "failed": 0}


def test_bad_record_does_not_abort_batch():
    bad = {"title": "broken record", "asking_price": {"amount": 1}}
    result = ingest([bad, _listing()], set())
    assert result.failed == 1
    assert len(result.added) == 1


def test_existing_key_set_is_not_mutated():
    keys = set()
    ingest([_listing()], keys)
    assert keys == set()


def test_numeric_text_fields_are_accepted():
    record = {"platform": "craigslist", "listing_url": "https://cl.example/3", "title": 2024,
              "asking_price": 300, "seller_contact": 5125550100, "timestamp": 1700000000}
    result = ingest([record], set())
    assert result.counts == {"added": 1, "duplicates": 0, "failed": 0}
    device = result.added[0]
    assert device.title == "2024"
    assert device.seller_contact == "5125550100"
    assert device.asking_price == 300
