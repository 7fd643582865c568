"""Leads table access.

The leads table lives in Supabase and is treated as an opaque row store:
insert a row, find rows by phone, delete a row by id. An in-memory store
is used when Supabase is not configured.
"""
import uuid
from abc import ABC, abstractmethod
from typing import Any
import httpx
import structlog
from ..config import get_settings
from ..errors import RelayError

log = structlog.get_logger()

LEADS_TABLE = "leads"


class LeadStoreError(RelayError):
    """The leads table could not be read or written."""

    status_code = 500


class LeadStore(ABC):
    """Abstract row store for leads."""

    @abstractmethod
    async def insert(self, lead: dict[str, Any]) -> dict[str, Any]:
        """Insert a lead and return the stored row (with its id)."""
        pass

    @abstractmethod
    async def find_by_phone(self, phone: str) -> list[dict[str, Any]]:
        """Leads with this phone, newest first."""
        pass

    @abstractmethod
    async def delete(self, lead_id: Any) -> bool:
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass


class InMemoryLeadStore(LeadStore):
    """Process-local lead rows."""

    def __init__(self):
        self._rows: list[dict[str, Any]] = []

    async def insert(self, lead: dict[str, Any]) -> dict[str, Any]:
        row = {"id": str(uuid.uuid4()), **lead}
        self._rows.append(row)
        return row

    async def find_by_phone(self, phone: str) -> list[dict[str, Any]]:
        rows = [r for r in self._rows if r.get("phone") == phone]
        return sorted(rows, key=lambda r: r.get("created_at") or "", reverse=True)

    async def delete(self, lead_id: Any) -> bool:
        before = len(self._rows)
        self._rows = [r for r in self._rows if r["id"] != lead_id]
        return len(self._rows) < before

    async def health_check(self) -> bool:
        return True

    def all(self) -> list[dict[str, Any]]:
        return list(self._rows)


class SupabaseLeadStore(LeadStore):
    """Leads table over the Supabase PostgREST API."""

    def __init__(
        self,
        url: str | None = None,
        service_role_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self.url = (url or settings.SUPABASE_URL or "").rstrip("/")
        self.service_role_key = service_role_key or settings.SUPABASE_SERVICE_ROLE_KEY
        self._transport = transport

    @property
    def table_url(self) -> str:
        return f"{self.url}/rest/v1/{LEADS_TABLE}"

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.service_role_key or "",
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        error_message: str,
        extra_headers: dict[str, str] | None = None,
        **kwargs,
    ) -> httpx.Response:
        headers = {**self._headers(), **(extra_headers or {})}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=10) as client:
                response = await client.request(method, self.table_url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            log.error("supabase.request_failed", method=method, error=str(e))
            raise LeadStoreError("Supabase connection error", details=str(e))

        if not response.is_success:
            log.error("supabase.request_rejected", method=method, status=response.status_code, body=response.text)
            raise LeadStoreError(error_message, details=response.text)
        return response

    async def insert(self, lead: dict[str, Any]) -> dict[str, Any]:
        response = await self._request(
            "POST",
            "Error saving lead to Supabase",
            extra_headers={"Prefer": "return=representation"},
            json=[lead],
        )
        rows = response.json()
        return rows[0] if rows else dict(lead)

    async def find_by_phone(self, phone: str) -> list[dict[str, Any]]:
        response = await self._request(
            "GET",
            "Error reading leads from Supabase",
            params={
                "select": "id,form_type,name,email,company",
                "phone": f"eq.{phone}",
                "order": "created_at.desc",
            },
        )
        return response.json()

    async def delete(self, lead_id: Any) -> bool:
        await self._request("DELETE", "Error deleting lead from Supabase", params={"id": f"eq.{lead_id}"})
        return True

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "Supabase connection error", params={"select": "id", "limit": "1"})
            return True
        except LeadStoreError:
            return False


def _create_default_lead_store() -> LeadStore:
    settings = get_settings()
    if settings.SUPABASE_URL and settings.SUPABASE_SERVICE_ROLE_KEY:
        log.info("lead_store.selected", type="supabase")
        return SupabaseLeadStore()

    log.warning("lead_store.selected", type="memory", reason="Supabase not configured")
    return InMemoryLeadStore()


lead_store = _create_default_lead_store()


def get_lead_store() -> LeadStore:
    return lead_store
