# API Routes Module
from app.api.routes import (
    admin,
    subscriptions,
    webhooks,
)

__all__ = [
    "admin",
    "subscriptions",
    "webhooks",
]
