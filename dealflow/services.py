# dealflow/services.py
"""Pipeline orchestration over the device store.

Each stage reads every device, runs over all of them and commits once. A stage
that raises is rolled back, logged as a warning and audited; the following
stages still run against whatever the store holds.
"""
import threading
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from . import crud
from .models import Device
from .pipeline.grading import apply_grading
from .pipeline.ingestion import ingest
from .pipeline.matching import apply_matching
from .pipeline.profit import apply_pricing
from .pipeline.sellers import apply_seller_flags
from .pipeline.verdict import rank_devices, summarize
from .schemas import DeliveryResult, PipelineReport, PortfolioSummary, StageReport
from .settings import PipelineSettings, env_settings
from .utils import logger

_run_lock = threading.Lock()

SUMMARIES = {
    "ingestion": "Ingested {added}, duplicates {duplicates}, failed {failed}",
    "grading": "Graded {graded} devices ({overrides} manual overrides)",
    "matching": "Matched {matched}, unmatched {unmatched}",
    "pricing": "Priced {priced} devices",
    "sellers": "Sellers {sellers}, hot {hot_sellers}, flags changed {changed}",
    "verdicts": "Ranked {ranked} devices, excluded {excluded}",
}


def _summary(stage: str, counts: Dict[str, int]) -> str:
    template = SUMMARIES.get(stage)
    try:
        text = template.format(**counts) if template else stage
    except KeyError:
        text = stage
    if counts.get("errors"):
        text += f", errors {counts['errors']}"
    return text


def load_settings(db: Session) -> PipelineSettings:
    """Environment values overlaid by the settings table, then defaulted."""
    values = env_settings()
    values.update({k: v for k, v in crud.get_settings_map(db).items() if v not in (None, "")})
    return PipelineSettings.from_map(values)


def ingest_batch(db: Session, listings: Iterable) -> StageReport:
    result = ingest(listings, crud.get_dedupe_keys(db))
    if result.added:
        crud.add_devices(db, result.added)
    counts = result.counts
    summary = _summary("ingestion", counts)
    logger.info(summary)
    crud.append_audit(db, "ingestion", summary, counts)
    return StageReport(stage="ingestion", summary=summary, counts=counts)


def run_stage(db: Session, stage: str, fn: Callable[[List[Device]], Dict[str, int]]) -> StageReport:
    devices = crud.get_all_devices(db)
    try:
        counts = fn(devices)
        crud.put_devices(db, devices)
    except Exception as e:
        db.rollback()
        summary = f"{stage} skipped: {e}"
        logger.warning("Stage %s failed, store left unchanged: %s", stage, e)
        crud.append_audit(db, stage, summary, {"devices": len(devices)})
        return StageReport(stage=stage, ok=False, summary=summary)
    summary = _summary(stage, counts)
    logger.info(summary)
    crud.append_audit(db, stage, summary, counts)
    return StageReport(stage=stage, summary=summary, counts=counts)


def run_pipeline(db: Session, listings: Optional[Iterable] = None) -> PipelineReport:
    """Optionally ingest a batch, then run every analysis stage in order."""
    with _run_lock:
        report = PipelineReport()
        if listings is not None:
            report.stages.append(ingest_batch(db, listings))

        # settings and catalog are read once per run
        settings = load_settings(db)
        catalog = crud.load_catalog(db)

        def verdicts(devices):
            rows, counts = rank_devices(devices, settings.verdict, settings.pricing.low_risk_threshold)
            crud.replace_verdicts(db, rows)
            report.verdicts = len(rows)
            return counts

        report.stages.append(run_stage(db, "grading", lambda d: apply_grading(d, settings.grading)))
        report.stages.append(run_stage(db, "matching", lambda d: apply_matching(d, catalog, settings.deductions)))
        report.stages.append(run_stage(db, "pricing", lambda d: apply_pricing(d, settings.pricing)))
        sellers = run_stage(db, "sellers",
                            lambda d: apply_seller_flags(d, settings.sellers.hot_seller_min_deals,
                                                             settings.pricing))
        report.stages.append(sellers)
        if settings.rerun_pricing_after_sellers and sellers.counts.get("changed"):
            report.stages.append(run_stage(db, "pricing", lambda d: apply_pricing(d, settings.pricing)))
        report.stages.append(run_stage(db, "verdicts", verdicts))
        return report


def purge(db: Session, older_than_days: Optional[int] = None) -> int:
    days = older_than_days if older_than_days is not None else load_settings(db).data_retention_days
    removed = crud.purge_devices(db, days)
    summary = f"Purged {removed} devices older than {days} days"
    logger.info(summary)
    crud.append_audit(db, "purge", summary, {"removed": removed, "older_than_days": days})
    return removed


def portfolio_summary(db: Session) -> PortfolioSummary:
    return PortfolioSummary(**summarize(crud.all_verdicts(db)))


def record_outreach(db: Session, verdict_id: int, result: DeliveryResult):
    """Mark a verdict (and its device) with the outcome of an outreach attempt."""
    verdict = crud.get_verdict(db, verdict_id)
    if verdict is None:
        return None
    status = result.status if result.success else "FAILED"
    verdict.status = status
    verdict.status_message = result.message
    if result.external_id:
        verdict.external_id = result.external_id
    device = crud.get_device(db, verdict.device_id)
    if device is not None:
        device.outreach_status = status
    db.commit()
    db.refresh(verdict)
    crud.append_audit(db, "outreach", f"Verdict {verdict_id} for {verdict.device_id}: {status}",
                      {"verdict_id": verdict_id})
    return verdict
