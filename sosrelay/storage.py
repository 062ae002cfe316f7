import logging
import time
from typing import Generator, List

from sqlalchemy import create_engine, text, inspect
from sqlalchemy.orm import sessionmaker, Session, declarative_base

from sosrelay.config import settings

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args,
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

REQUIRED_TABLES = ("safe_bases", "sos_events", "alert_log")

DEFAULT_SAFE_BASES = [
    {"id": "BASE_SHOLI", "name": "Sholinganallur Safe Base", "lat": 12.8296, "lon": 80.2270, "capacity": 100, "filled": 10},
    {"id": "BASE_SATHYA", "name": "Sathyabama University", "lat": 13.0520, "lon": 80.2043, "capacity": 80, "filled": 70},
]


def init_db() -> None:
    """
    Create all tables and, when enabled, seed the default safe bases.
    Called during command service startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from sosrelay import models  # noqa: F401

        Base.metadata.create_all(bind=engine)
        if settings.SEED_SAFE_BASES:
            with SessionLocal() as db:
                seed_safe_bases(db)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """Return True if the database is reachable and every table exists."""
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
        existing = set(inspect(engine).get_table_names())
        missing = [t for t in REQUIRED_TABLES if t not in existing]
        if missing:
            logger.error(f"Database schema not applied, missing tables: {missing}")
            return False
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def _now_ms() -> int:
    return int(time.time() * 1000)


# =============================================================================
# Resource Directory
# =============================================================================

def seed_safe_bases(db: Session, bases: List[dict] = None) -> int:
    """
    Insert the given safe bases if the directory is empty.

    Returns:
        Number of bases inserted (0 when the directory already had rows)
    """
    from sosrelay.models import SafeBase

    if db.query(SafeBase).count() > 0:
        return 0

    bases = DEFAULT_SAFE_BASES if bases is None else bases
    for b in bases:
        db.add(SafeBase(**b))
    db.commit()
    logger.info(f"Seeded {len(bases)} safe bases")
    return len(bases)


def upsert_safe_base(db: Session, id: str, name: str, lat: float, lon: float, capacity: int, filled: int):
    """
    Create or replace a safe base record.

    The service itself never updates occupancy; this is for operator
    scripts and tests that set up a directory.
    """
    from sosrelay.models import SafeBase

    base = db.get(SafeBase, id)
    if base is None:
        base = SafeBase(id=id)
        db.add(base)
    base.name = name
    base.lat = lat
    base.lon = lon
    base.capacity = capacity
    base.filled = filled
    db.commit()
    return base


def list_safe_bases(db: Session) -> list:
    """All safe bases, ordered by id."""
    from sosrelay.models import SafeBase

    return db.query(SafeBase).order_by(SafeBase.id.asc()).all()


# =============================================================================
# Alert Log & SOS Events
# =============================================================================

def append_alert_log(db: Session, raw_message: str):
    """
    Append a raw payload to the alert log and commit immediately, so the
    entry survives any later failure in the same request.
    """
    from sosrelay.models import AlertLog

    entry = AlertLog(raw_message=raw_message, received_at=_now_ms())
    db.add(entry)
    db.commit()
    logger.debug(f"Alert log entry {entry.id} written ({len(raw_message)} chars)")
    return entry


def create_sos_event(db: Session, device_id: str, lat: float, lon: float, type: str, time: str, commit: bool = True):
    """
    Persist a parsed alert with status "received".

    With commit=False the row is only flushed, so the caller can still roll
    it back if a later step of the same request fails.
    """
    from sosrelay.models import SosEvent

    event = SosEvent(
        device_id=device_id,
        lat=lat,
        lon=lon,
        type=type,
        time=time,
        status="received",
    )
    db.add(event)
    if commit:
        db.commit()
    else:
        db.flush()
    logger.info(f"SOS event stored: id={event.id}, device={device_id}, type={type}")
    return event


def get_recent_events(db: Session, limit: int = 100) -> list:
    """Latest SOS events, most recent first."""
    from sosrelay.models import SosEvent

    return db.query(SosEvent).order_by(SosEvent.id.desc()).limit(limit).all()


def count_alert_log(db: Session) -> int:
    """Number of alert log entries. Used by tests and operator checks."""
    from sosrelay.models import AlertLog

    return db.query(AlertLog).count()
