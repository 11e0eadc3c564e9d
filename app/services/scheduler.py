import logging
from datetime import datetime, timedelta

from flask_apscheduler import APScheduler

logger = logging.getLogger(__name__)

# Create global scheduler instance
scheduler = APScheduler()


def init_scheduler(app):
    """Initialize the scheduler with Flask app"""
    if not app.config.get('SCHEDULER_ENABLED', True):
        logger.info("Scheduler disabled; upload sweep will only run on demand")
        return None

    scheduler.init_app(app)
    scheduler.start()

    scheduler.add_job(
        id='reap_upload_sessions',
        func=lambda: reap_upload_sessions_with_context(app),
        trigger='interval',
        minutes=app.config['REAPER_INTERVAL_MINUTES'],
        replace_existing=True
    )

    scheduler.add_job(
        id='reap_upload_sessions_startup',
        func=lambda: reap_upload_sessions_with_context(app),
        trigger='date',
        run_date=datetime.utcnow() + timedelta(seconds=app.config['REAPER_STARTUP_DELAY_SECONDS']),
        replace_existing=True
    )

    logger.info("Flask-APScheduler started, upload sweep every %s minutes", app.config['REAPER_INTERVAL_MINUTES'])
    return scheduler


def reap_upload_sessions_with_context(app):
    """Run the upload sweep with proper app context"""
    with app.app_context():
        return reap_upload_sessions()


def reap_upload_sessions():
    """Expire stale upload sessions and reclaim their storage"""
    from app import db
    from app.services.reaper import build_reaper

    try:
        return build_reaper().sweep()
    except Exception:
        logger.exception("Upload sweep failed")
        db.session.rollback()
        return None
