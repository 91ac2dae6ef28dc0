import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from .config import settings
from .database import engine
from .errors import LoungeError
from .models.generated import Base
from .redis_client import redis_client
from .routers import availability, bookings, customers, razorpay, slot_blocks, stations

# Body fields echoed as `required` when a request fails schema validation
REQUIRED_FIELDS_BY_PATH = {
    "/availability/check": availability.REQUIRED_FIELDS,
    "/bookings/": bookings.REQUIRED_FIELDS,
}

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ready")
    yield


app = FastAPI(title="Gaming Lounge Booking API", lifespan=lifespan)


@app.exception_handler(LoungeError)
async def lounge_error_handler(request: Request, exc: LoungeError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} → {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    content = {
        "ok": False,
        "error": "Invalid request body",
        "errors": jsonable_encoder(exc.errors()),
        "received": jsonable_encoder(exc.body),
    }
    required = REQUIRED_FIELDS_BY_PATH.get(request.url.path)
    if required:
        content["required"] = required
    return JSONResponse(status_code=400, content=content)


app.include_router(availability.router)
app.include_router(slot_blocks.router)
app.include_router(razorpay.router)
app.include_router(bookings.router)
app.include_router(stations.router)
app.include_router(customers.router)


@app.get("/health")
def health():
    try:
        redis_ok = bool(redis_client.ping())
    except RedisError:
        redis_ok = False
    return {"ok": True, "redis": redis_ok}
