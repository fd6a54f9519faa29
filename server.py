from fastapi import FastAPI, APIRouter, Request
from starlette.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from raidergo.core.config import settings
from raidergo.core.exceptions import PaymentError
from raidergo.db.session import close_mongo_connection, db
from raidergo.routers import payments
from raidergo.routers.payments import error_response
from raidergo.services.purchase import ensure_indexes

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    missing = settings.missing_providers()
    if missing:
        logger.warning(f"Payment integrations not configured, they will fail closed: {', '.join(missing)}")
    await ensure_indexes(db)
    yield
    close_mongo_connection()

app = FastAPI(title="RaiderGO Payments API", lifespan=lifespan)

# Create a router with the /api prefix
api_router = APIRouter(prefix="/api")

@api_router.get("/health")
async def health():
    return {"status": "ok"}

api_router.include_router(payments.router, tags=["Payments"])

@app.exception_handler(PaymentError)
async def payment_error_handler(request: Request, exc: PaymentError):
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return error_response(exc)

# Include the router in the main app
app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
