import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from medcenter.core import config
from medcenter.core.responses import http_exception_handler, validation_exception_handler
from medcenter.database import check_database, init_db
from medcenter.routes import (
    appointment_routes,
    auth_routes,
    dashboard_routes,
    specialist_routes,
    user_routes,
)

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

logger = logging.getLogger(__name__)

config.validate_runtime_config()

app = FastAPI(title='Medical Center API', debug=config.DEBUG)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {
        'success': True,
        'message': 'Medical Center API Running',
        'data': {'database': 'ok' if check_database() else 'unavailable'},
    }


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(user_routes.router, prefix='/users')
app.include_router(specialist_routes.router, prefix='/specialists')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(dashboard_routes.router, prefix='/dashboard')
