from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from circuito.database.database import sync_engine, Base

# Import middleware
from circuito.common.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

# Import routers
from circuito.modules.customers.router import customers_router
from circuito.modules.treasury.router import treasury_router
from circuito.modules.quotes.router import quotes_router
from circuito.modules.delivery_notes.router import delivery_notes_router
from circuito.modules.invoices.router import invoices_router
from circuito.modules.receipts.router import receipts_router
from circuito.modules.purchase_invoices.router import purchase_invoices_router

# Import models for table creation
import circuito.modules.workflow.models
import circuito.modules.customers.models
import circuito.modules.treasury.models
import circuito.modules.accounting.models
import circuito.modules.quotes.models
import circuito.modules.delivery_notes.models
import circuito.modules.invoices.models
import circuito.modules.receipts.models
import circuito.modules.purchase_invoices.models

from circuito.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="Circuito de Ventas API",
    description="Cotizaciones, remitos, facturas y recibos de cobranza",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(customers_router)
app.include_router(treasury_router)
app.include_router(quotes_router)
app.include_router(delivery_notes_router)
app.include_router(invoices_router)
app.include_router(receipts_router)
app.include_router(purchase_invoices_router)

# Create database tables (only for development - use migrations in production)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
def read_root():
    return {
        "message": "Circuito de Ventas API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Circuito de Ventas API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Circuito de Ventas API shutting down...")
