from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import config
from database import Base, engine
from error_handlers import register_error_handlers
from logger import get_logger
from middleware import add_request_id_and_process_time
from routers import router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        logger.info("Creating database tables...")
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()
    logger.info("Application shutdown complete.")


app = FastAPI(lifespan=lifespan, title="Country Currency & Exchange Cache API", version="1.0.0")

app.middleware('http')(add_request_id_and_process_time)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
)
register_error_handlers(app)


@app.get("/")
def root():
    logger.info("Root endpoint called")
    return {"message": "Welcome to the Country Currency & Exchange Cache API"}


app.include_router(router, tags=["Countries"])
