"""Background scheduler for the periodic license expiry sweep"""
from apscheduler.schedulers.background import BackgroundScheduler
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def init_scheduler(app):
    """Initialize APScheduler with Flask app context"""
    global scheduler

    if scheduler is not None:
        return  # Already initialized

    scheduler = BackgroundScheduler()
    scheduler.configure(
        jobstores={'default': {'type': 'memory'}},
        job_defaults={'coalesce': True, 'max_instances': 1}
    )

    scheduler.add_job(
        expire_overdue_licenses,
        'interval',
        hours=app.config.get('EXPIRY_SWEEP_HOURS', 6),
        args=[app],
        id='expire_licenses',
        name='Mark past-due licenses expired',
        replace_existing=True
    )

    if not scheduler.running:
        scheduler.start()
        logger.info("Background scheduler started")


def expire_overdue_licenses(app, now=None):
    """Transition active licenses past their expiry date to 'expired'.

    Returns the number of licenses changed.
    """
    with app.app_context():
        from poslicense.errors import PersistenceError
        from poslicense.services.risk import assess_risk

        services = app.extensions['poslicense']
        repository = services['repository']
        now = now or datetime.utcnow()

        try:
            licenses = repository.expired_but_active(now)
            for license in licenses:
                services['activation'].expire(license)
        except PersistenceError as e:
            logger.error(f"Error during expiry sweep: {e}")
            return 0

        high_risk = sum(1 for license in repository.all_licenses()
                        if assess_risk(license, now).risk_level == 'high')
        logger.info(f"Expiry sweep complete: {len(licenses)} license(s) expired, {high_risk} high-risk")
        return len(licenses)


def shutdown_scheduler():
    """Shutdown the scheduler gracefully"""
    global scheduler

    if scheduler and scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped")
    scheduler = None
