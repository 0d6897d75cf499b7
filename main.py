import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import LOG_LEVEL
from db import create_tables
from routes.fees import (
    fee_structure_routes,
    finance_settings_routes,
    payment_routes,
    report_routes,
    student_fee_routes,
)
from services.fee_errors import ConflictError, FeeError, NotFoundError, StateError, ValidationError

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Fee Ledger API",
    description="Fee structures, student fee ledgers, discounts, scholarships and payments",
    version="1.0.0"
)

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    ValidationError: 422,
    NotFoundError: 404,
    ConflictError: 409,
    StateError: 400,
}


@app.exception_handler(FeeError)
def fee_error_handler(request: Request, exc: FeeError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Health check endpoint
@app.get("/health", tags=["Health"])
def health_check():
    return {
        "status": "healthy",
        "message": "Server is running successfully"
    }


# Register routers
app.include_router(fee_structure_routes.router)
app.include_router(student_fee_routes.router)
app.include_router(payment_routes.router)
app.include_router(report_routes.router)
app.include_router(finance_settings_routes.router)


# Create database tables on startup
@app.on_event("startup")
def on_startup():
    logger.info("Creating database tables...")
    create_tables()
    logger.info("Database tables created successfully!")


# Root endpoint
@app.get("/", tags=["Root"])
def read_root():
    return {
        "message": "Welcome to the Fee Ledger API",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
