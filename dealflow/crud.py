# dealflow/crud.py
"""Store operations for devices, the buyback catalog, settings, verdicts and
the audit log.

Pipeline stages only ever see plain lists: `get_all_devices` reads the whole
device store and `put_devices` writes a stage's changes back in one commit.
"""
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from .models import AuditEntry, CatalogRow, Device, GRADE_COLUMNS, Setting, Verdict
from .schemas import CatalogEntry
from .settings import DEFAULT_SETTINGS
from .utils import logger, retry, utcnow


# --- devices -----------------------------------------------------------------

def get_all_devices(db: Session) -> List[Device]:
    return db.query(Device).order_by(Device.id).all()


def put_devices(db: Session, devices: Iterable[Device]):
    """Persist a stage's changes in a single commit.

    Not retried: a rollback expires the in-memory changes, so the caller
    rolls back and reports the stage instead.
    """
    for device in devices:
        db.add(device)
    db.commit()


@retry(OperationalError)
def add_devices(db: Session, devices: List[Device]):
    try:
        db.add_all(devices)
        db.commit()
    except OperationalError:
        db.rollback()
        raise
    return devices


def get_dedupe_keys(db: Session) -> Set[str]:
    return set(db.scalars(select(Device.dedupe_key)).all())


def get_device(db: Session, device_id: str) -> Optional[Device]:
    return db.query(Device).filter(Device.device_id == device_id).first()


def list_devices(db: Session, skip: int = 0, limit: int = 50, filters: Dict = None):
    q = db.query(Device)
    if filters:
        conds = []
        if filters.get("deal_class"):
            conds.append(Device.deal_class == filters["deal_class"])
        if filters.get("final_grade"):
            conds.append(Device.final_grade == filters["final_grade"])
        if filters.get("brand"):
            conds.append(Device.brand.ilike(f"%{filters['brand']}%"))
        if filters.get("hot_seller"):
            conds.append(Device.hot_seller == filters["hot_seller"].upper())
        if filters.get("min_profit") is not None:
            conds.append(Device.expected_profit >= filters["min_profit"])
        if conds:
            q = q.filter(and_(*conds))
    total = q.count()
    items = q.order_by(Device.id).offset(skip).limit(limit).all()
    return {"total": total, "items": items}


def update_device(db: Session, device_id: str, updates: Dict[str, Any]):
    obj = get_device(db, device_id)
    if not obj:
        return None
    for k, v in updates.items():
        setattr(obj, k, v)
    obj.last_updated = utcnow()
    db.commit()
    db.refresh(obj)
    return obj


def purge_devices(db: Session, older_than_days: int) -> int:
    cutoff = utcnow() - timedelta(days=older_than_days)
    stmt = delete(Device).where(Device.created_at < cutoff).execution_options(synchronize_session="fetch")
    result = db.execute(stmt)
    db.commit()
    return result.rowcount or 0


# --- catalog -----------------------------------------------------------------

def replace_catalog(db: Session, entries: List[CatalogEntry]) -> int:
    db.execute(delete(CatalogRow))
    for position, entry in enumerate(entries):
        row = CatalogRow(
            position=position,
            brand=entry.brand,
            model=entry.model,
            variant=entry.variant,
            storage=entry.storage,
            partner=entry.partner,
        )
        for grade, column in GRADE_COLUMNS.items():
            setattr(row, column, entry.prices.get(grade))
        db.add(row)
    db.commit()
    logger.info("Catalog replaced with %d rows", len(entries))
    return len(entries)


def load_catalog(db: Session) -> List[CatalogEntry]:
    """Snapshot of the catalog in its original order."""
    rows = db.query(CatalogRow).order_by(CatalogRow.position).all()
    return [
        CatalogEntry(
            brand=row.brand,
            model=row.model,
            variant=row.variant,
            storage=row.storage,
            partner=row.partner,
            prices={grade: getattr(row, column) for grade, column in GRADE_COLUMNS.items()},
        )
        for row in rows
    ]


# --- settings ----------------------------------------------------------------

def get_settings_map(db: Session) -> Dict[str, str]:
    return {s.key: s.value for s in db.query(Setting).all()}


def set_settings(db: Session, values: Dict[str, Any]) -> Dict[str, str]:
    for key, value in values.items():
        key = key.strip().upper()
        obj = db.get(Setting, key)
        if obj is None:
            obj = Setting(key=key)
            db.add(obj)
        obj.value = None if value is None else str(value)
    db.commit()
    return get_settings_map(db)


def init_settings(db: Session) -> int:
    """Seed documented defaults for keys not present yet."""
    existing = set(get_settings_map(db))
    added = 0
    for key, value, description in DEFAULT_SETTINGS:
        if key not in existing:
            db.add(Setting(key=key, value=value, description=description))
            added += 1
    db.commit()
    return added


# --- verdicts ----------------------------------------------------------------

@retry(OperationalError)
def replace_verdicts(db: Session, verdicts: List[Verdict]):
    try:
        db.execute(delete(Verdict))
        db.add_all(verdicts)
        db.commit()
    except OperationalError:
        db.rollback()
        raise


def list_verdicts(db: Session, skip: int = 0, limit: int = 50, action: Optional[str] = None):
    q = db.query(Verdict)
    if action:
        q = q.filter(Verdict.recommended_action == action.upper())
    return q.order_by(Verdict.rank).offset(skip).limit(limit).all()


def all_verdicts(db: Session) -> List[Verdict]:
    return db.query(Verdict).order_by(Verdict.rank).all()


def get_verdict(db: Session, verdict_id: int) -> Optional[Verdict]:
    return db.get(Verdict, verdict_id)


# --- audit -------------------------------------------------------------------

def append_audit(db: Session, stage: str, summary: str, counts: Optional[Dict] = None) -> AuditEntry:
    entry = AuditEntry(stage=stage, summary=summary, counts=counts or {}, timestamp=utcnow())
    db.add(entry)
    db.commit()
    return entry


def list_audit(db: Session, limit: int = 100, stage: Optional[str] = None):
    q = db.query(AuditEntry)
    if stage:
        q = q.filter(AuditEntry.stage == stage)
    return q.order_by(AuditEntry.id.desc()).limit(limit).all()
