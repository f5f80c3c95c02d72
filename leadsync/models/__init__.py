# leadsync/models/__init__.py
"""
SQLAlchemy ORM models for database entities.
"""

from leadsync.models.ad_account import AdAccount
from leadsync.models.campaign import Campaign
from leadsync.models.lead import Lead
from leadsync.models.page import Page

__all__ = [
    "AdAccount",
    "Campaign",
    "Lead",
    "Page",
]
