from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
import logging
from datetime import datetime

from billing_webhooks import __version__
from billing_webhooks.core.config import settings
from billing_webhooks.core.middleware import setup_exception_handlers
from billing_webhooks.core.responses import success_response
from billing_webhooks.routers import paypal_router, subscription_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

if not settings.PAYPAL_WEBHOOK_ID:
    logger.warning("[PAYPAL] PAYPAL_WEBHOOK_ID is not set; webhook signatures will NOT be verified")

app = FastAPI(
    title="PayPal Billing Webhooks",
    description="Subscription and payout reconciliation for PayPal webhook events",
    version=__version__,
    debug=settings.DEBUG
)

setup_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(paypal_router.router)
app.include_router(subscription_router.router)


@app.get("/health")
async def health_check():
    return success_response(
        data={
            "timestamp": datetime.now().isoformat(),
            "version": __version__,
            "signature_verification": bool(settings.PAYPAL_WEBHOOK_ID),
            "environment": "development" if settings.DEBUG else "production"
        },
        message="ok"
    )


def run():
    uvicorn.run(
        "billing_webhooks.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
