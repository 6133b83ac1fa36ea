"""
FastAPI application for the content engine.

Sets up the app with the AI job, webhook and admin routers, CORS, the
global error handler, and (optionally) an in-process AI job worker.
"""

import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from content_engine import __version__
from content_engine.config import config
from content_engine.routes.admin import router as admin_router
from content_engine.routes.ai_jobs import router as ai_jobs_router
from content_engine.routes.webhooks import router as webhooks_router
from content_engine.utils.logging import api_logger as logger, configure_logging

configure_logging(config.LOG_LEVEL)

# Create FastAPI app
app = FastAPI(
    title="Content Engine API",
    description="AI job processing pipeline: content generation, optimization and images",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ai_jobs_router)
app.include_router(webhooks_router)
app.include_router(admin_router)


# ===== Root Endpoint =====

@app.get("/api")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Content Engine API",
        "version": __version__,
        "status": "operational",
        "docs": "/docs",
        "endpoints": {
            "create_job": "POST /api/ai/jobs",
            "job_status": "GET /api/ai/jobs/{job_id}",
            "queue_stats": "GET /api/ai/queue-stats",
            "image_webhook": "POST /api/webhooks/image-provider",
            "logs": "GET /api/admin/logs",
        }
    }


# ===== Health Check =====

@app.get("/health")
async def health_check():
    """Health check endpoint - must be fast and never touch external services."""
    return {
        "status": "healthy",
        "version": __version__,
        "supabase_configured": config.supabase_configured,
        "worker_enabled": config.ENABLE_AI_WORKER,
    }


# ===== Error Handlers =====

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler."""
    logger.error(f"Unhandled error on {request.url.path}: {exc}", type=type(exc).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if config.DEBUG else "An error occurred",
            "type": type(exc).__name__
        }
    )


# ===== Startup Event =====

@app.on_event("startup")
async def startup_event():
    """Report configuration and start the in-process worker if enabled."""
    print("=" * 60)
    print("Content Engine API Starting...")
    print("=" * 60)
    print(f"Environment: {config.ENVIRONMENT}")
    print(f"Debug Mode: {config.DEBUG}")

    print("\nSecurity Status:")
    if not config.auth_required:
        print("   DEV MODE: Authentication BYPASSED (no API keys configured)")
    else:
        print(f"   Authentication: ENABLED ({len(config.api_keys_list)} API key(s) configured)")
    if "*" in config.allowed_origins_list:
        print("   CORS: All origins allowed (configure ALLOWED_ORIGINS for production)")
    print(f"   Webhook token: {'required' if config.WEBHOOK_SECRET else 'not configured'}")

    print("\nServices:")
    print(f"   Supabase: {'Configured' if config.supabase_configured else 'NOT CONFIGURED'}")
    print(f"   Redis: {'Configured' if config.REDIS_URL else 'NOT CONFIGURED'}")
    print(f"   Text generation: {'Configured' if config.can_generate_text else 'NOT CONFIGURED'}")
    print(f"   Image generation: {'Configured' if config.can_generate_images else 'NOT CONFIGURED'}")
    print(f"   BunnyCDN: {'Configured' if config.bunny_configured else 'NOT CONFIGURED'}")
    print(f"   Asset transfers: {config.ASSET_TRANSFER_BACKEND}")

    if config.ENABLE_AI_WORKER:
        try:
            from content_engine.jobs.worker import start_ai_worker
            await start_ai_worker()
            print("\nIn-process AI job worker started")
        except Exception as e:
            logger.error(f"Error starting AI job worker: {e}")
    else:
        print("\nIn-process AI job worker disabled (run content_engine.jobs.run_worker)")

    api_port = os.getenv("PORT", str(config.API_PORT))
    print("=" * 60)
    print(f"API available at: http://{config.API_HOST}:{api_port}")
    print("=" * 60)


# ===== Shutdown Event =====

@app.on_event("shutdown")
async def shutdown_event():
    """Stop the worker, let pending transfers finish, close Redis."""
    from content_engine.jobs.assets import BackgroundTransferDispatcher, get_transfer_dispatcher
    from content_engine.jobs.worker import stop_ai_worker
    from content_engine.queue.connection import close_redis_connections

    await stop_ai_worker()

    dispatcher = get_transfer_dispatcher()
    if isinstance(dispatcher, BackgroundTransferDispatcher):
        await dispatcher.drain()

    await close_redis_connections()
    print("Content Engine API stopped")
