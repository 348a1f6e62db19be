# dealflow/scheduler.py
import os
from apscheduler.schedulers.background import BackgroundScheduler
from .db import SessionLocal
from .services import run_pipeline
from .utils import logger

scheduler = BackgroundScheduler()


def scheduled_run():
    db = SessionLocal()
    try:
        report = run_pipeline(db)
        logger.info("Scheduled run finished, %d verdicts", report.verdicts)
    except Exception as e:
        logger.exception("Scheduled run failed: %s", e)
    finally:
        db.close()


def start_scheduler():
    minutes = int(os.getenv("PIPELINE_INTERVAL_MINUTES", 60))
    scheduler.add_job(scheduled_run, 'interval', minutes=minutes, id="pipeline",
                      max_instances=1, replace_existing=True)
    if not scheduler.running:
        scheduler.start()
    logger.info("Scheduler started, pipeline every %d minutes", minutes)


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
