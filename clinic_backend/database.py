from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_backend.core import config


engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked: set[str] = set()
_appointment_schema_checked: set[str] = set()

ACTIVE_APPOINTMENT_INDEX_SQL = (
    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_range '
    "ON appointments(doctor_id, appointment_date, start_time, end_time) WHERE status <> 'CANCELLED'"
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _ensure_table_schema(
    bind: Engine,
    table_name: str,
    checked: set[str],
    added_columns: dict[str, str],
    index_statements: list[str],
) -> None:
    """Adds missing columns and indexes to a table created by an older release.

    Runs once per database URL; tables that do not exist yet are left to
    ``create_all``.
    """
    key = str(bind.url)
    if key in checked:
        return

    with _schema_lock:
        if key in checked:
            return

        inspector = inspect(bind)
        if table_name in inspector.get_table_names():
            existing_columns = {column['name'] for column in inspector.get_columns(table_name)}
            with bind.begin() as connection:
                for column_name, column_ddl in added_columns.items():
                    if column_name not in existing_columns:
                        connection.execute(text(f'ALTER TABLE {table_name} ADD COLUMN {column_name} {column_ddl}'))
                for statement in index_statements:
                    connection.execute(text(statement))

        checked.add(key)


def ensure_availability_schema(bind: Engine | None = None) -> None:
    _ensure_table_schema(
        bind or engine,
        'doctor_availability',
        _availability_schema_checked,
        {'is_active': 'BOOLEAN NOT NULL DEFAULT TRUE', 'updated_at': 'TIMESTAMP'},
        [
            'CREATE INDEX IF NOT EXISTS idx_availability_doctor_day '
            'ON doctor_availability(doctor_id, day_of_week, start_time)',
        ],
    )


def ensure_appointment_schema(bind: Engine | None = None) -> None:
    _ensure_table_schema(
        bind or engine,
        'appointments',
        _appointment_schema_checked,
        {'notes': 'VARCHAR', 'cancellation_reason': 'VARCHAR'},
        [
            ACTIVE_APPOINTMENT_INDEX_SQL,
            'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_date '
            'ON appointments(doctor_id, appointment_date, start_time)',
            'CREATE INDEX IF NOT EXISTS idx_appointments_patient_date '
            'ON appointments(patient_id, appointment_date, start_time)',
        ],
    )


def init_db(bind: Engine | None = None) -> None:
    # Registers every table on Base.metadata before create_all.
    from clinic_backend.models import appointment, availability, schedule  # noqa: F401

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    ensure_availability_schema(bind)
    ensure_appointment_schema(bind)
