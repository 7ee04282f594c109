from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio
import logging

from database import Base, engine, SessionLocal, get_settings
from core.round_manager import RoundManager
from services.oracle_service import get_oracle_client
from services.payout_service import get_payout_executor
from services.upkeep_service import upkeep_loop
from api import lottery, oracle, accounts

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 建立資料庫表，初始化唯一的 Round
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        RoundManager.initialize(db, settings)
    finally:
        db.close()

    upkeep_task = None
    if settings.automation_enabled:
        upkeep_task = asyncio.create_task(upkeep_loop(
            SessionLocal,
            get_oracle_client(),
            get_payout_executor(),
            settings.automation_interval_seconds,
            local_oracle_enabled=settings.local_oracle_enabled
        ))

    yield

    # Shutdown: 停止背景輪詢
    if upkeep_task is not None:
        upkeep_task.cancel()
        try:
            await upkeep_task
        except asyncio.CancelledError:
            logger.info("Upkeep loop stopped")


app = FastAPI(
    title="Stake Lottery API",
    description="Fixed-stake lottery rounds settled by an external randomness oracle",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(lottery.router)
app.include_router(oracle.router)
app.include_router(accounts.router)


@app.get("/")
def root():
    return {"message": "Stake Lottery API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
