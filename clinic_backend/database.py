from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from clinic_backend.core import config


def _connect_args(url: str) -> dict:
    if url.startswith('sqlite'):
        return {'check_same_thread': False}
    return {}


engine = create_engine(
    config.DATABASE_URL,
    echo=config.DB_ECHO,
    pool_pre_ping=True,
    connect_args=_connect_args(config.DATABASE_URL),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_slot_schema_checked = False


def ensure_slot_schema() -> None:
    """Add the lookup indexes the slot engine relies on to older deployments."""
    global _slot_schema_checked

    if _slot_schema_checked:
        return

    with _schema_lock:
        if _slot_schema_checked:
            return

        inspector = inspect(engine)
        table_names = set(inspector.get_table_names())

        if 'slots' not in table_names:
            _slot_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('doctors')}
        migration_steps = [
            ('has_license', 'ALTER TABLE doctors ADD COLUMN has_license BOOLEAN NOT NULL DEFAULT FALSE'),
            ('schedule_configured_at', 'ALTER TABLE doctors ADD COLUMN schedule_configured_at TIMESTAMP'),
            ('slots_generated_from', 'ALTER TABLE doctors ADD COLUMN slots_generated_from DATE'),
            ('slots_generated_to', 'ALTER TABLE doctors ADD COLUMN slots_generated_to DATE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_slots_doctor_date_status ON slots(clinic_id, doctor_id, date, status)')
            )
            if 'appointments' in table_names:
                connection.execute(
                    text(
                        'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_status_start '
                        'ON appointments(clinic_id, doctor_id, status, starts_at)'
                    )
                )

        _slot_schema_checked = True


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
