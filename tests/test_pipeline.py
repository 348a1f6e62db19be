# tests/test_pipeline.py
from dealflow import crud, services
from dealflow.schemas import CatalogEntry, DeliveryResult


def _listing(n, title, description="", condition="", price=700, seller="Alex Kim",
             contact="", platform="offerup"):
    return {
        "platform": platform,
        "listing_url": f"https://{platform}.example/item/{n}",
        "title": title,
        "description": description,
        "asking_price": price,
        "raw_condition": condition,
        "raw_location": "Austin, TX 78701",
        "seller_name": seller,
        "seller_contact": contact,
    }


def _devices_by_title(db):
    return {d.title: d for d in crud.get_all_devices(db)}


def test_mint_listing_becomes_solid_deal(db, catalog):
    crud.replace_catalog(db, catalog)
    report = services.run_pipeline(db, [
        _listing(1, "iPhone 15 Pro Max 256GB Unlocked", "Works perfectly.", "mint, sealed in box"),
    ])
    assert all(stage.ok for stage in report.stages)
    device = _devices_by_title(db)["iPhone 15 Pro Max 256GB Unlocked"]
    assert device.final_grade == "A"
    assert device.risk_score == 3
    assert device.mao == 669
    assert device.offer_target == 569
    assert device.expected_profit == 281
    assert device.deal_class == "SOLID DEAL"
    verdicts = crud.list_verdicts(db)
    assert len(verdicts) == 1
    assert verdicts[0].recommended_action == "TEXT"


def test_icloud_locked_listing_is_rejected_and_not_ranked(db, catalog):
    crud.replace_catalog(db, catalog)
    services.run_pipeline(db, [
        _listing(1, "iPhone 14 128GB", "icloud locked, no password", "good"),
        _listing(2, "iPhone 14 128GB Unlocked", "clean phone", "good", price=250),
    ])
    locked = _devices_by_title(db)["iPhone 14 128GB"]
    assert locked.final_grade == "BLACKLISTED"
    assert locked.matched_buyback_value == 0
    assert locked.deal_class == "PASS"
    assert [v.title for v in crud.list_verdicts(db)] == ["iPhone 14 128GB Unlocked"]


def test_duplicate_listing_is_discarded(db, catalog):
    crud.replace_catalog(db, catalog)
    listing = _listing(1, "iPhone 14 128GB", condition="good")
    report = services.run_pipeline(db, [listing, dict(listing, asking_price=650)])
    assert report.stages[0].counts == {"added": 1, "duplicates": 1, "failed": 0}
    assert len(crud.get_all_devices(db)) == 1

    # re-ingesting the same batch leaves the store size unchanged
    services.run_pipeline(db, [listing])
    assert len(crud.get_all_devices(db)) == 1


def test_repeat_seller_is_flagged_on_all_devices(db, catalog):
    crud.replace_catalog(db, catalog)
    contact = "512-555-0100"
    services.run_pipeline(db, [
        _listing(1, "iPhone 14 128GB unlocked", condition="excellent", price=250, contact=contact),
        _listing(2, "iPhone 14 128GB unlocked blue", condition="excellent", price=250, contact=contact),
        _listing(3, "iPhone 14 128GB unlocked black", condition="excellent", price=250, contact=contact),
        _listing(4, "iPhone 14 128GB", "stolen, selling cheap", "good", price=100, contact=contact),
        _listing(5, "iPhone 14 128GB unlocked red", condition="excellent", price=250,
                 seller="Other Seller", contact="737-555-0199"),
    ])
    devices = _devices_by_title(db)
    assert devices["iPhone 14 128GB"].deal_class == "PASS"
    for title in ("iPhone 14 128GB unlocked", "iPhone 14 128GB unlocked blue",
                  "iPhone 14 128GB unlocked black", "iPhone 14 128GB"):
        assert devices[title].hot_seller == "YES"
    assert devices["iPhone 14 128GB unlocked red"].hot_seller == "NO"


def test_pricing_is_rerun_when_hot_flags_change(db, catalog):
    crud.replace_catalog(db, catalog)
    contact = "512-555-0100"
    report = services.run_pipeline(db, [
        _listing(n, f"iPhone 14 128GB unlocked #{n}", condition="excellent", price=250, contact=contact)
        for n in range(3)
    ])
    stages = [s.stage for s in report.stages]
    assert stages == ["ingestion", "grading", "matching", "pricing", "sellers", "pricing", "verdicts"]
    # risk picks up the hot-seller credit in the same run
    assert all(d.risk_score == 3 for d in crud.get_all_devices(db))

    again = services.run_pipeline(db)
    assert [s.stage for s in again.stages].count("pricing") == 1


def test_pricing_rerun_can_be_disabled(db, catalog):
    crud.replace_catalog(db, catalog)
    crud.set_settings(db, {"RERUN_PRICING_AFTER_SELLERS": "FALSE"})
    contact = "512-555-0100"
    report = services.run_pipeline(db, [
        _listing(n, f"iPhone 14 128GB unlocked #{n}", condition="excellent", price=250, contact=contact)
        for n in range(3)
    ])
    assert [s.stage for s in report.stages].count("pricing") == 1
    assert all(d.risk_score == 4 for d in crud.get_all_devices(db))


def test_grade_without_catalog_price_is_no_match(db, catalog):
    crud.replace_catalog(db, catalog)
    services.run_pipeline(db, [
        _listing(1, "iPhone 15 Pro Max 256GB Unlocked", "cracked screen", "good"),
    ])
    device = crud.get_all_devices(db)[0]
    assert device.final_grade == "D"
    assert device.matched_buyback_value == 0
    assert device.match_notes.startswith("no match")
    assert device.deal_class == "PASS"


def test_empty_catalog_skips_matching_but_runs_other_stages(db):
    report = services.run_pipeline(db, [_listing(1, "iPhone 14 128GB", condition="good")])
    by_stage = {s.stage: s for s in report.stages}
    assert by_stage["matching"].ok is False
    assert by_stage["grading"].ok and by_stage["pricing"].ok and by_stage["verdicts"].ok
    device = crud.get_all_devices(db)[0]
    assert device.final_grade == "B"
    assert device.deal_class == "PASS"
    audit = crud.list_audit(db, stage="matching")
    assert audit[0].summary.startswith("matching skipped")


def test_every_stage_is_audited(db, catalog):
    crud.replace_catalog(db, catalog)
    services.run_pipeline(db, [_listing(1, "iPhone 14 128GB", condition="good")])
    stages = {a.stage for a in crud.list_audit(db)}
    assert {"ingestion", "grading", "matching", "pricing", "sellers", "verdicts"} <= stages


def test_manual_grade_override_is_kept_across_runs(db, catalog):
    crud.replace_catalog(db, catalog)
    services.run_pipeline(db, [_listing(1, "iPhone 14 128GB unlocked", condition="good", price=250)])
    device = crud.get_all_devices(db)[0]
    crud.update_device(db, device.device_id, {"manual_grade": "A"})
    services.run_pipeline(db)
    device = crud.get_device(db, device.device_id)
    assert device.guessed_grade == "B"
    assert device.final_grade == "A"
    assert device.matched_base_price == 500


def test_record_outreach_marks_verdict_and_device(db, catalog):
    crud.replace_catalog(db, catalog)
    services.run_pipeline(db, [_listing(1, "iPhone 14 128GB unlocked", condition="good", price=250)])
    verdict = crud.list_verdicts(db)[0]

    updated = services.record_outreach(db, verdict.id, DeliveryResult(success=True, external_id="sms-1"))
    assert updated.status == "CONTACTED"
    assert updated.external_id == "sms-1"
    assert crud.get_device(db, verdict.device_id).outreach_status == "CONTACTED"

    failed = services.record_outreach(db, verdict.id, DeliveryResult(success=False, message="bounced"))
    assert failed.status == "FAILED"
    assert services.record_outreach(db, 9999, DeliveryResult(success=True)) is None

    # the next ranking run keeps the device's outreach status
    services.run_pipeline(db)
    assert crud.list_verdicts(db)[0].status == "FAILED"


def test_hot_flag_and_deal_class_are_stable_across_runs(db):
    # the hot-seller bonus would push these thin deals to PASS
    crud.replace_catalog(db, [
        CatalogEntry(brand="Apple", model="iPhone 11", storage="64GB", prices={"B+": 80}),
    ])
    contact = "512-555-0100"
    listings = [
        _listing(n, f"iPhone 11 64GB unlocked #{n}", condition="excellent", price=500, contact=contact)
        for n in range(3)
    ]
    states = []
    for batch in (listings, None, None):
        services.run_pipeline(db, batch)
        states.append(sorted(
            (d.deal_class, d.hot_seller, d.expected_profit, d.offer_target)
            for d in crud.get_all_devices(db)
        ))
    assert states[0] == [("MARGINAL", "YES", 29, 51)] * 3
    assert states[0] == states[1] == states[2]
    assert all(d.pricing_notes.startswith("hot-seller bonus withheld") for d in crud.get_all_devices(db))
