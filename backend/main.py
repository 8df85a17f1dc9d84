import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.core.errors import register_exception_handlers
from backend.core.rate_limit import limiter
from backend.database import create_tables
from backend.routes import admin_routes, appointment_routes, auth_routes, doctor_routes, user_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(title='Doctor Appointment API')
app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.CLIENT_URL],
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PATCH', 'DELETE', 'OPTIONS'],
    allow_headers=['Content-Type', 'Authorization'],
)

register_exception_handlers(app)


@app.on_event('startup')
def initialize() -> None:
    config.validate_runtime_config()
    try:
        create_tables()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Doctor Appointment API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(doctor_routes.router, prefix='/api/doctors')
app.include_router(appointment_routes.router, prefix='/api/appointments')
app.include_router(user_routes.router, prefix='/api/users')
app.include_router(admin_routes.router, prefix='/api/admin')


if __name__ == '__main__':
    import uvicorn

    logger.info('Starting server on %s:%s (%s)', config.HOST, config.PORT, config.APP_ENV)
    uvicorn.run('backend.main:app', host=config.HOST, port=config.PORT)
