# leadsync/routes/__init__.py
"""
API route handlers organized by domain.
"""

from leadsync.routes.campaigns import router as campaigns_router
from leadsync.routes.health import router as health_router
from leadsync.routes.leads import router as leads_router
from leadsync.routes.live import router as live_router
from leadsync.routes.webhooks import router as webhooks_router

__all__ = [
    "campaigns_router",
    "health_router",
    "leads_router",
    "live_router",
    "webhooks_router",
]
