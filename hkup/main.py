import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ✅ Import All API Routes
from hkup.api.routes import health, plans, subscriptions, payments_webhook
from hkup.core import config
from hkup.core.logging_config import setup_logging

setup_logging(config.LOG_LEVEL)
logger = logging.getLogger(__name__)

if config.RUN_MIGRATIONS:
    from hkup.db.migrate import run_migrations

    run_migrations()


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="Hkup API")

# ✅ CORS LOCKDOWN: ONLY ALLOW THE CLIENT
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type"],
)


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(health.router)
app.include_router(plans.router)
app.include_router(subscriptions.router)
app.include_router(payments_webhook.router)


# ============================================
# ✅ HEALTH CHECK ROOT ENDPOINT
# ============================================

@app.get("/")
def root():
    return {"status": "Hkup API running"}
