import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from wallet_ledger.config import settings
from wallet_ledger.core.redis import create_redis
from wallet_ledger.routers import onramp, profile, wallet, webhooks
from wallet_ledger.services.circle_client import CircleClient

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.circle = CircleClient(
        settings.CIRCLE_API_KEY,
        base_url=settings.CIRCLE_API_BASE_URL,
        timeout=settings.CIRCLE_TIMEOUT_SECONDS,
    )
    app.state.redis = await create_redis(settings.REDIS_URL)
    if app.state.redis is None:
        logger.info("REDIS_URL not set; Circle public keys will not be cached")
    yield
    await app.state.circle.close()
    if app.state.redis is not None:
        await app.state.redis.aclose()

app = FastAPI(title="Wallet Ledger API", lifespan=lifespan)

_allowed_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] or ["http://localhost:3000"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request parameters", "details": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


app.include_router(webhooks.router)
app.include_router(wallet.router)
app.include_router(profile.router)
app.include_router(onramp.router)

@app.get("/health")
async def health():
    return {"status": "ok"}
