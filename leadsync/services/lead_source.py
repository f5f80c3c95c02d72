# leadsync/services/lead_source.py
"""
Meta Graph API client for Lead Ads.

Handles:
- Form listing and cursor-paginated lead listing per form
- Single lead lookup for webhook deliveries
- Campaign listing and page webhook subscription
- Classification of Graph errors into transient and throttling failures
"""
from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol

import aiohttp

from leadsync.core.config import settings
from leadsync.core.logging import get_structlog_logger
from leadsync.services.lead_store import PageRecord

logger = get_structlog_logger(__name__)

LEAD_FIELDS = "id,created_time,field_data,campaign_id,ad_id,form_id"

# Graph signals throttling either through these error codes or the
# lead-retrieval specific subcode.
THROTTLE_ERROR_CODES = frozenset({4, 17, 32, 613})
THROTTLE_ERROR_SUBCODES = frozenset({80005})


class LeadSourceError(Exception):
    def __init__(self, code: str, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status = status


class LeadSourceRateLimited(LeadSourceError):
    """The remote source asked us to back off."""


@dataclass(frozen=True)
class FormRef:
    id: str
    name: Optional[str] = None


@dataclass(frozen=True)
class RemoteLead:
    id: Optional[str]
    created_time: Optional[str] = None
    field_data: List[Any] = field(default_factory=list)
    campaign_id: Optional[str] = None
    form_id: Optional[str] = None
    ad_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "RemoteLead":
        if not isinstance(payload, Mapping):
            raise LeadSourceError("malformed_payload", "lead payload is not an object")

        field_data = payload.get("field_data")
        return cls(
            id=_optional_str(payload.get("id")),
            created_time=_optional_str(payload.get("created_time")),
            field_data=list(field_data) if isinstance(field_data, list) else [],
            campaign_id=_optional_str(payload.get("campaign_id")),
            form_id=_optional_str(payload.get("form_id")),
            ad_id=_optional_str(payload.get("ad_id")),
        )


@dataclass(frozen=True)
class LeadBatch:
    items: List[RemoteLead]
    next_cursor: Optional[str] = None


class LeadSource(Protocol):
    async def list_forms(self, page: PageRecord) -> List[FormRef]: ...

    async def list_leads(
        self,
        form_id: str,
        page: PageRecord,
        cursor: Optional[str] = None,
        limit: int = 100,
    ) -> LeadBatch: ...

    async def get_lead(self, lead_id: str, page: PageRecord) -> RemoteLead: ...


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_graph_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse Meta's timestamp format (2025-12-15T12:00:00+0000) to an aware datetime; naive values are UTC."""
    if not value:
        return None

    for fmt in (
        "%Y-%m-%dT%H:%M:%S%z",
        "%Y-%m-%dT%H:%M:%S.%f%z",
        "%Y-%m-%dT%H:%M:%S",
    ):
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    return None


def classify_graph_error(status: int, body: Any) -> LeadSourceError:
    """Map an error response to LeadSourceError or LeadSourceRateLimited."""
    error = body.get("error") if isinstance(body, Mapping) else None

    if isinstance(error, Mapping):
        code = error.get("code")
        subcode = error.get("error_subcode")
        message = str(error.get("message") or f"Graph API error {code}")
        if subcode in THROTTLE_ERROR_SUBCODES or code in THROTTLE_ERROR_CODES:
            return LeadSourceRateLimited("rate_limited", message, status=status)
        return LeadSourceError("graph_error", message, status=status)

    if status == 429:
        return LeadSourceRateLimited("rate_limited", "HTTP 429", status=status)

    return LeadSourceError("http_error", f"HTTP {status}", status=status)


def compute_appsecret_proof(access_token: str, app_secret: Optional[str]) -> Optional[str]:
    """HMAC-SHA256 of the access token keyed with the app secret."""
    if not app_secret:
        return None
    return hmac.new(app_secret.encode(), access_token.encode(), hashlib.sha256).hexdigest()


class GraphLeadSource:
    """LeadSource implementation over the Graph API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        app_secret: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or settings.graph_base_url()).rstrip("/")
        self.app_secret = app_secret if app_secret is not None else settings.meta_app_secret
        self.timeout_seconds = timeout_seconds or settings.meta_leads_timeout_seconds

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        query = {key: str(value) for key, value in (params or {}).items() if value is not None}
        query["access_token"] = access_token
        proof = compute_appsecret_proof(access_token, self.app_secret)
        if proof:
            query["appsecret_proof"] = proof

        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        url = f"{self.base_url}/{path.lstrip('/')}"

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(method, url, params=query) as response:
                    try:
                        body = await response.json(content_type=None)
                    except (json.JSONDecodeError, UnicodeDecodeError):
                        body = None

                    if response.status >= 400 or (isinstance(body, dict) and "error" in body):
                        raise classify_graph_error(response.status, body)
        except asyncio.TimeoutError as e:
            raise LeadSourceError("timeout", f"Graph API timeout on {path}") from e
        except aiohttp.ClientError as e:
            raise LeadSourceError("transport_error", str(e)) from e

        if not isinstance(body, dict):
            raise LeadSourceError("malformed_payload", f"unexpected response body from {path}")

        return body

    async def list_forms(self, page: PageRecord) -> List[FormRef]:
        body = await self._request(
            "GET",
            f"{page.page_id}/leadgen_forms",
            page.access_token,
            {"fields": "id,name"},
        )
        return [
            FormRef(id=str(item["id"]), name=item.get("name"))
            for item in body.get("data") or []
            if isinstance(item, dict) and item.get("id")
        ]

    async def list_leads(
        self,
        form_id: str,
        page: PageRecord,
        cursor: Optional[str] = None,
        limit: int = 100,
    ) -> LeadBatch:
        body = await self._request(
            "GET",
            f"{form_id}/leads",
            page.access_token,
            {"fields": LEAD_FIELDS, "limit": limit, "after": cursor},
        )
        data = body.get("data")
        if data is None:
            data = []
        if not isinstance(data, list):
            raise LeadSourceError("malformed_payload", f"leads for form {form_id} is not a list")

        paging = body.get("paging")
        next_cursor = None
        # Graph keeps returning an "after" cursor on the last page; "next" is only present when more remain.
        if isinstance(paging, dict) and paging.get("next"):
            cursors = paging.get("cursors") or {}
            next_cursor = _optional_str(cursors.get("after"))

        return LeadBatch(
            items=[RemoteLead.from_payload(item) for item in data],
            next_cursor=next_cursor,
        )

    async def get_lead(self, lead_id: str, page: PageRecord) -> RemoteLead:
        body = await self._request("GET", lead_id, page.access_token, {"fields": LEAD_FIELDS})
        return RemoteLead.from_payload(body)

    async def list_campaigns(self, ad_account_id: str, access_token: str) -> List[Dict[str, Any]]:
        body = await self._request(
            "GET",
            f"{ad_account_id}/campaigns",
            access_token,
            {"fields": "id,name,status,objective", "limit": 100},
        )
        return [item for item in body.get("data") or [] if isinstance(item, dict) and item.get("id")]

    async def subscribe_page(self, page: PageRecord) -> bool:
        body = await self._request(
            "POST",
            f"{page.page_id}/subscribed_apps",
            page.access_token,
            {"subscribed_fields": "leadgen"},
        )
        return bool(body.get("success"))
