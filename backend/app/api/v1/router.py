"""
API v1 router aggregation.

WHAT: Combine all v1 endpoint routers
WHY: Single place to register all API routes
HOW: Include routers from endpoints with prefixes; the WebSocket stays at /ws
"""

from fastapi import APIRouter

from .endpoints import (
    admin, auth, chat, contact, notifications, offers, orders,
    payments, products, realtime, status, stories, users,
)

# Create main v1 router
api_router = APIRouter()

# (router, tag) pairs mounted under /api/v1
_versioned = [
    (status.router, "status"),
    (auth.router, "auth"),
    (users.router, "users"),
    (products.router, "products"),
    (orders.router, "orders"),
    (offers.router, "offers"),
    (chat.router, "chat"),
    (notifications.router, "notifications"),
    (stories.router, "stories"),
    (payments.router, "payments"),
    (admin.router, "admin"),
    (contact.router, "contact"),
]

for router, tag in _versioned:
    api_router.include_router(router, prefix="/api/v1", tags=[tag])

# Unversioned: /ws for the socket, /health and /status for probes
api_router.include_router(realtime.router, tags=["realtime"])
api_router.include_router(status.router, tags=["status"])
