import os
from fastapi import FastAPI
from dealflow.db import Base, SessionLocal, engine
import dealflow.models  # noqa: F401 ensure models are imported so tables are known
from dealflow import crud
from dealflow.api.routes import router as api_router
from dealflow.utils import logger

# create FastAPI instance
app = FastAPI(title="dealflow")
app.include_router(api_router)


@app.on_event("startup")
def on_startup():
    # Ensure database tables exist and default settings are seeded
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        added = crud.init_settings(db)
        if added:
            logger.info("Seeded %d default settings", added)
    finally:
        db.close()

    if os.getenv("SCHEDULER_ENABLED", "false").lower() in ("1", "true", "yes"):
        from dealflow.scheduler import start_scheduler
        start_scheduler()


@app.on_event("shutdown")
def on_shutdown():
    from dealflow.scheduler import stop_scheduler
    stop_scheduler()
