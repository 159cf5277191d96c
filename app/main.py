from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import sync_engine, Base

# Import middleware
from app.common.middleware import TenantMiddleware, SecurityHeadersMiddleware

# Import routers
from app.modules.organizations.router import organizations_router
from app.modules.customers.router import customers_router
from app.modules.catalog.router import items_router
from app.modules.taxes.router import taxes_router
from app.modules.sequences.router import router as sequences_router
from app.modules.invoices.router import router as invoices_router
from app.modules.settlements.router import settlements_router, transactions_router
from app.modules.gst_returns.router import gst_router

# Import models for table creation
import app.modules.organizations.models
import app.modules.customers.models
import app.modules.catalog.models
import app.modules.sequences.models
import app.modules.invoices.models
import app.modules.settlements.models
import app.modules.gst_returns.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Saral GST API",
    description="GST invoicing, document numbering, payment reconciliation and period returns",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Add your frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(organizations_router)
app.include_router(customers_router)
app.include_router(items_router)
app.include_router(taxes_router)
app.include_router(sequences_router)
app.include_router(invoices_router)
app.include_router(settlements_router)
app.include_router(transactions_router)
app.include_router(gst_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=sync_engine)

@app.get("/")
async def read_root():
    return {
        "message": "Saral GST API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}

@app.on_event("startup")
async def startup_event():
    logger.info("Saral GST API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Saral GST API shutting down...")
