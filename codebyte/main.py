import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from codebyte.core import config
from codebyte.core.errors import error_payload
from codebyte.database import init_db
from codebyte.routes import (
    auth_routes,
    category_routes,
    course_routes,
    documentation_routes,
    payment_routes,
    purchase_routes,
    search_routes,
)

logging.basicConfig(level=config.LOG_LEVEL)

app = FastAPI(title='CodeByte API')

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
    config.validate_runtime_config()
    try:
        init_db()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(exc.detail, getattr(exc, 'message', None)),
        headers=getattr(exc, 'headers', None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = '.'.join(str(part) for part in error.get('loc', ()) if part != 'body')
        messages.append(f'{location}: {error.get("msg")}' if location else error.get('msg', ''))
    return JSONResponse(status_code=400, content=error_payload('Validation failed', ', '.join(messages)))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_payload('Internal server error'))


@app.get('/')
def root():
    return {'success': True, 'message': 'CodeByte API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(category_routes.router, prefix='/categories')
app.include_router(course_routes.router, prefix='/courses')
app.include_router(documentation_routes.router, prefix='/documentation')
app.include_router(search_routes.router, prefix='/search')
app.include_router(payment_routes.router, prefix='/payments')
app.include_router(purchase_routes.router, prefix='/user')
