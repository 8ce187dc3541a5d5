"""
Maintenance worker: sweeps expired sessions and prunes the audit log.

Every SESSION_SWEEP_INTERVAL_SECONDS it deletes sessions whose expiry has
passed and purges audit entries older than AUDIT_RETENTION_DAYS. A failed
cycle is logged and the loop carries on; nothing is retried within a cycle.

Usage:
    python -m tidegate.worker
"""

import logging
import threading
from typing import Optional

from .core.config import settings
from .core.logging_config import setup_logging
from .database import SessionLocal
from .exceptions import TideGateException
from .services import AuditLogger, SessionManager

logger = logging.getLogger(__name__)


def sweep_expired_sessions() -> int:
    """Delete every expired session. Returns the count, 0 on failure."""
    db = SessionLocal()
    try:
        return SessionManager(db).delete_expired()
    except TideGateException as e:
        logger.error(f"Expired session sweep failed: {e.message}")
        return 0
    finally:
        db.close()


def purge_audit_log(days: Optional[int] = None) -> int:
    """Apply audit retention. Returns the count, 0 when disabled or on failure."""
    days = settings.audit_retention_days if days is None else days
    if days <= 0:
        return 0
    db = SessionLocal()
    try:
        return AuditLogger(db).purge_old_entries(days)
    except TideGateException as e:
        logger.error(f"Audit log purge failed: {e.message}")
        return 0
    finally:
        db.close()


def run_once() -> dict[str, int]:
    sessions = sweep_expired_sessions()
    audit = purge_audit_log()
    if sessions or audit:
        logger.info(
            "Maintenance cycle finished",
            extra={"sessions_deleted": sessions, "audit_entries_deleted": audit},
        )
    return {"sessions_deleted": sessions, "audit_entries_deleted": audit}


def main(stop_event: Optional[threading.Event] = None, max_cycles: Optional[int] = None) -> None:
    """Run maintenance cycles until interrupted, *stop_event* is set or *max_cycles* ran."""
    stop_event = stop_event or threading.Event()
    interval = settings.session_sweep_interval_seconds
    logger.info(f"Maintenance worker started, sweeping every {interval}s")

    cycles = 0
    while not stop_event.is_set():
        try:
            run_once()
        except KeyboardInterrupt:
            logger.info("Worker shutting down")
            break
        except Exception:
            logger.exception("Maintenance cycle failed; retrying next interval")
        cycles += 1
        if max_cycles is not None and cycles >= max_cycles:
            break
        stop_event.wait(interval)


def cli() -> None:
    """Console entry point: configure logging, then loop until interrupted."""
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)
    main()


if __name__ == "__main__":
    cli()
