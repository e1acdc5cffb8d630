# Routers package
from . import (
    paypal_router,
    subscription_router,
)

__all__ = [
    "paypal_router",
    "subscription_router",
]
