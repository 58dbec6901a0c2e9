import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from clinic_backend.core import config
from clinic_backend.core.logging import configure_logging
from clinic_backend.database import Base, engine, ensure_slot_schema
from clinic_backend.models import registry
from clinic_backend.routes import admin_slot_routes, appointment_routes, doctor_schedule_routes, slot_routes

app = FastAPI(title='Clinic Scheduling API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    configure_logging(config.LOG_LEVEL)
    config.validate_runtime_config()
    logger.debug('Registered model modules: %s', len(registry.MODEL_MODULES))

    try:
        Base.metadata.create_all(bind=engine)
        ensure_slot_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.get('/')
def root():
    return {'status': 'Clinic Scheduling API Running'}


app.include_router(doctor_schedule_routes.router, prefix='/v1')
app.include_router(slot_routes.router, prefix='/v1')
app.include_router(appointment_routes.router, prefix='/v1')
app.include_router(admin_slot_routes.router, prefix='/admin/clinics')
