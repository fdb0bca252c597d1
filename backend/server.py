"""
CRM - API Backend

Start with:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
import logging

import config
from services.errors import CRMError

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("crm")

app = FastAPI(
    title="CRM",
    description="Leads, clients, tasks and team administration",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ERROR MAPPING ====================

@app.exception_handler(CRMError)
async def crm_error_handler(request: Request, exc: CRMError):
    """Rejected operation: nothing was written"""
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.reason})


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    logger.error(f"[STORE] {request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=503, content={"detail": f"Store error: {exc}"})


# ==================== ROUTES ====================

from routes import auth, tasks, leads, clients, financials, team, event_log

app.include_router(auth.router, prefix="/api")
app.include_router(tasks.router, prefix="/api")
app.include_router(leads.router, prefix="/api")
app.include_router(clients.router, prefix="/api")
app.include_router(financials.router, prefix="/api")
app.include_router(team.router, prefix="/api")
app.include_router(event_log.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": "CRM API",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs"
    }


# ==================== STARTUP ====================

@app.on_event("startup")
async def startup():
    logger.info("CRM API starting")

    db = config.db

    await db.profiles.create_index("id", unique=True)
    await db.profiles.create_index("email", unique=True)
    await db.profiles.create_index("role")
    await db.sessions.create_index("token")
    await db.sessions.create_index("expires_at")
    await db.tasks.create_index("id", unique=True)
    await db.tasks.create_index("assigned_to")
    await db.tasks.create_index([("acceptance_status", 1), ("next_reminder_at", 1)])
    await db.task_comments.create_index("task_id")
    await db.leads.create_index("id", unique=True)
    await db.leads.create_index("status")
    await db.leads.create_index("next_follow_up")
    await db.clients.create_index("id", unique=True)
    await db.clients.create_index("lead_id")
    await db.income_records.create_index("client_id")
    await db.income_records.create_index("delivery_date")
    await db.invitations.create_index("token", unique=True)
    await db.join_requests.create_index([("email", 1), ("status", 1)])
    await db.promotion_requests.create_index(
        "user_id",
        unique=True,
        partialFilterExpression={"status": "pending"},
        name="one_pending_promotion_per_user"
    )
    await db.promotion_approvals.create_index([("request_id", 1), ("admin_id", 1)], unique=True)
    await db.event_log.create_index("created_at")
    await db.event_log.create_index("entity_id")

    logger.info("MongoDB indexes created")

    if config.SCHEDULER_ENABLED:
        from scheduler_service import task_scheduler
        task_scheduler.start()


@app.on_event("shutdown")
async def shutdown():
    if config.SCHEDULER_ENABLED:
        from scheduler_service import task_scheduler
        task_scheduler.stop()
    config.client.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
