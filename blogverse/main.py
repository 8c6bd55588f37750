from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .routes import router
from .core import kafka_startup, redis_startup, init_metrics, shutdown_connections, setup_logging
from .errors import FollowError
from .workers import WorkerManager

# setup structured logging
logger = setup_logging()

app = FastAPI(title="BlogVerse API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(router, prefix="/api")

worker_manager = WorkerManager()

@app.get('/healthz')
async def healthz():
    return {'status': 'ok'}

@app.exception_handler(FollowError)
async def follow_error_handler(request: Request, exc: FollowError):
    logger.info({'msg': 'follow_rejected', 'code': exc.code, 'path': request.url.path})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.middleware('http')
async def log_requests(request: Request, call_next):
    logger.info({'msg':'request_start','method':request.method,'path':request.url.path})
    response = await call_next(request)
    logger.info({'msg':'request_end','status': response.status_code})
    return response

@app.on_event("startup")
async def startup():
    # Best-effort init, don't block app from starting if a dependency fails
    try:
        await redis_startup()
    except Exception as e:
        logger.warning({'msg': 'redis_start_failed', 'error': str(e)})
    try:
        await kafka_startup()
    except Exception as e:
        logger.warning({'msg': 'kafka_start_failed', 'error': str(e)})
    try:
        init_metrics()
    except Exception as e:
        logger.warning({'msg': 'metrics_init_failed', 'error': str(e)})
    await worker_manager.start_all()

@app.on_event("shutdown")
async def shutdown():
    await worker_manager.stop_all()
    await shutdown_connections()
