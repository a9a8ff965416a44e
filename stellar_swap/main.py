from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import health, pool, transactions
from .config import settings
from .logging_config import setup_logging
from .session import Session


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    session = Session(settings)
    app.state.session = session
    await session.start()
    try:
        yield
    finally:
        await session.close()


# Create FastAPI app
app = FastAPI(
    title="Stellar Swap API",
    description="Cached reads, quotes and transaction tracking for a Soroban constant-product pool",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(transactions.router, tags=["Transactions"])
app.include_router(pool.router, tags=["Pool"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "Stellar Swap API",
        "version": "0.1.0",
        "network": settings.network,
        "docs": "/docs",
        "health": "/healthz"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "stellar_swap.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower()
    )
