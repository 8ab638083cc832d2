import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from huvr_export.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="HUVR data aggregation and spreadsheet export API",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Starting {settings.APP_NAME} v{settings.VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    if not settings.huvr_configured:
        logger.warning("HUVR credentials not set; export and snapshot endpoints will return 503")

    # Create template table (non-blocking: app starts even if DB is unreachable)
    from sqlalchemy.exc import OperationalError
    from huvr_export.db.session import engine, Base
    import huvr_export.models  # noqa: F401 - Import models to register them

    logger.info("Creating database tables...")
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created.")
    except OperationalError as e:
        logger.warning(
            "Database unreachable at startup (tables not created). "
            "Check DATABASE_URL. Error: %s",
            e,
        )


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down application")
    from huvr_export.db.huvr import reset_huvr_client
    reset_huvr_client()


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": settings.VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT
    }


# Import and include routers
from huvr_export.api import entities, exports, media, snapshots, templates

app.include_router(entities.router, prefix="/api", tags=["Entities"])
app.include_router(exports.router, prefix="/api", tags=["Exports"])
app.include_router(snapshots.router, prefix="/api", tags=["Snapshots"])
app.include_router(media.router, prefix="/api", tags=["Media"])
app.include_router(templates.router, prefix="/api/templates", tags=["Templates"])
