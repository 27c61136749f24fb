import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dormguard.core import config
from dormguard.core.middleware import CSRFMiddleware, RequestLoggingMiddleware, SecurityHeadersMiddleware
from dormguard.database import SessionLocal, init_schema, wait_for_database
from dormguard.routes import auth_routes, page_routes, stats_routes, user_routes, violation_routes
from dormguard.seed import seed_default_admin

logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

logger = logging.getLogger(__name__)

app = FastAPI(title='Dormitory Violation Records')

# Added innermost first: requests pass logging -> CORS -> headers -> CSRF -> routes.
app.add_middleware(CSRFMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={'error': exc.detail},
        headers=getattr(exc, 'headers', None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    fields = ', '.join(str(error['loc'][-1]) for error in exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'error': f'参数错误: {fields}' if fields else '参数错误'},
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception('Unhandled database error on %s %s', request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={'error': '系统错误'},
    )


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    wait_for_database()
    init_schema()
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)

    db = SessionLocal()
    try:
        seed_default_admin(db)
    finally:
        db.close()


@app.get('/health')
def health():
    return {'status': 'Dormitory Violation API Running'}


app.include_router(auth_routes.router, prefix='/api')
app.include_router(violation_routes.router, prefix='/api/violations')
app.include_router(user_routes.router, prefix='/api/users')
app.include_router(stats_routes.router, prefix='/api/stats')
app.include_router(page_routes.router)


if __name__ == '__main__':
    import uvicorn

    uvicorn.run(app, host='0.0.0.0', port=config.PORT)
