# dealflow/api/routes.py
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, List
from .. import crud, schemas, services
from ..db import get_db
from ..pipeline.grading import inspection_checklist
from ..utils import logger

router = APIRouter()

@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/listings", response_model=schemas.StageReport)
def add_listings(listings: List[schemas.ListingRecord], db: Session = Depends(get_db)):
    return services.ingest_batch(db, listings)


@router.get("/devices", response_model=List[schemas.DeviceOut])
def devices(
    skip: int = 0,
    limit: int = 50,
    deal_class: str | None = Query(None),
    final_grade: str | None = Query(None),
    brand: str | None = Query(None),
    hot_seller: str | None = Query(None),
    min_profit: float | None = Query(None),
    db: Session = Depends(get_db)
):
    filters = {
        "deal_class": deal_class,
        "final_grade": final_grade,
        "brand": brand,
        "hot_seller": hot_seller,
        "min_profit": min_profit,
    }
    res = crud.list_devices(db, skip=skip, limit=limit, filters=filters)
    return res["items"]


@router.get("/devices/{device_id}", response_model=schemas.DeviceOut)
def get_device(device_id: str, db: Session = Depends(get_db)):
    obj = crud.get_device(db, device_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Device not found")
    return obj


@router.patch("/devices/{device_id}", response_model=schemas.DeviceOut)
def update_device(device_id: str, payload: schemas.DeviceUpdate, db: Session = Depends(get_db)):
    obj = crud.update_device(db, device_id, updates=payload.model_dump(exclude_unset=True))
    if not obj:
        raise HTTPException(status_code=404, detail="Device not found")
    return obj


@router.get("/devices/{device_id}/checklist")
def checklist(device_id: str, db: Session = Depends(get_db)):
    obj = crud.get_device(db, device_id)
    if not obj:
        raise HTTPException(status_code=404, detail="Device not found")
    return {"device_id": device_id, "checklist": inspection_checklist(obj)}


@router.delete("/devices")
def purge_devices(older_than_days: int | None = Query(None, ge=0), db: Session = Depends(get_db)):
    removed = services.purge(db, older_than_days)
    return {"status": "deleted", "removed": removed}


@router.get("/catalog", response_model=List[schemas.CatalogEntry])
def get_catalog(db: Session = Depends(get_db)):
    return crud.load_catalog(db)


@router.put("/catalog")
def put_catalog(entries: List[schemas.CatalogEntry], db: Session = Depends(get_db)):
    count = crud.replace_catalog(db, entries)
    return {"status": "ok", "rows": count}


@router.get("/settings")
def get_settings(db: Session = Depends(get_db)):
    return crud.get_settings_map(db)


@router.put("/settings")
def put_settings(values: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    return crud.set_settings(db, values)


@router.post("/pipeline/run", response_model=schemas.PipelineReport)
def run_pipeline(db: Session = Depends(get_db)):
    try:
        return services.run_pipeline(db)
    except Exception as e:
        logger.exception("Pipeline run failed: %s", e)
        raise HTTPException(status_code=500, detail="Pipeline run failed")


@router.get("/verdicts", response_model=List[schemas.VerdictOut])
def verdicts(skip: int = 0, limit: int = 50, action: str | None = Query(None), db: Session = Depends(get_db)):
    return crud.list_verdicts(db, skip=skip, limit=limit, action=action)


@router.get("/summary", response_model=schemas.PortfolioSummary)
def summary(db: Session = Depends(get_db)):
    return services.portfolio_summary(db)


@router.post("/verdicts/{verdict_id}/status", response_model=schemas.VerdictOut)
def verdict_status(verdict_id: int, payload: schemas.DeliveryResult, db: Session = Depends(get_db)):
    obj = services.record_outreach(db, verdict_id, payload)
    if not obj:
        raise HTTPException(status_code=404, detail="Verdict not found")
    return obj


@router.get("/audit", response_model=List[schemas.AuditOut])
def audit(limit: int = 100, stage: str | None = Query(None), db: Session = Depends(get_db)):
    return crud.list_audit(db, limit=limit, stage=stage)
