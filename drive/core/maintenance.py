"""
Periodic cleanup: expired sessions and blob/metadata drift.

Uploads write the blob before the metadata row and deletes remove the row
before the blob, so a crash or a storage error can leave a blob with no row
(orphan) or, more rarely, a file row with no blob (dangling). Orphans older
than the grace period are removed; dangling rows are only reported.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List

from sqlalchemy.orm import Session

from drive.core.storage import BlobNotFound, BlobStorage, BlobStorageError
from drive.models import crud
from drive.models.database import SessionLocal, utcnow

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    removed_blobs: Dict[int, List[str]] = field(default_factory=dict)
    dangling_rows: Dict[int, List[str]] = field(default_factory=dict)
    expired_sessions: int = 0


def reconcile_storage(db: Session, storage: BlobStorage, grace_seconds: int, report: ReconcileReport) -> None:
    cutoff = utcnow() - timedelta(seconds=grace_seconds)

    for user_id in crud.list_user_ids(db):
        known_keys = set(crud.list_file_keys(db, user_id))
        try:
            blobs = storage.list_blobs(user_id)
        except BlobStorageError as e:
            logger.warning("Could not list blobs for user %s: %s", user_id, e)
            continue

        stored_keys = {key for key, _ in blobs}

        for key, modified in blobs:
            # Blobs still inside the grace period may belong to an upload in flight
            if key in known_keys or modified > cutoff:
                continue
            try:
                storage.delete(user_id, key)
            except BlobNotFound:
                continue
            except BlobStorageError as e:
                logger.warning("Could not remove orphaned blob %s of user %s: %s", key, user_id, e)
                continue
            report.removed_blobs.setdefault(user_id, []).append(key)
            logger.info("Removed orphaned blob %s of user %s", key, user_id)

        missing = sorted(known_keys - stored_keys)
        if missing:
            report.dangling_rows[user_id] = missing
            logger.warning("User %s has %d file rows without a blob: %s", user_id, len(missing), missing)


def run_maintenance(db: Session, storage: BlobStorage, grace_seconds: int) -> ReconcileReport:
    report = ReconcileReport()
    report.expired_sessions = crud.purge_expired_sessions(db)
    if report.expired_sessions:
        logger.info("Purged %d expired sessions", report.expired_sessions)
    reconcile_storage(db, storage, grace_seconds, report)
    return report


def maintenance_job(storage: BlobStorage, grace_seconds: int) -> None:
    """Scheduler entry point, opens its own DB session."""
    db = SessionLocal()
    try:
        logger.info("Running maintenance job...")
        run_maintenance(db, storage, grace_seconds)
    except Exception as e:
        db.rollback()
        logger.error("Error during maintenance: %s", e, exc_info=True)
    finally:
        db.close()
