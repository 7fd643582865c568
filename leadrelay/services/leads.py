"""Lead intake: validation, scoring, storage, CRM forwarding and tracking."""
import uuid
from datetime import datetime, timezone
from typing import Any
import structlog
from .gateways import AnalyticsGateway, ga4_gateway, meta_gateway
from .hashing import hash_data
from .lead_scoring import score_lead, score_to_monetary_value
from .lead_store import LeadStore, lead_store
from .webhook import WebhookDispatcher, redact_url
from ..config import get_settings
from ..errors import InvalidRequestError
from ..logging import mask_value
from ..metrics import get_metrics

log = structlog.get_logger()

BASIC_FORM = "formulario_whatsapp"
COMPLETE_FORM = "formulario_reuniao_whatsapp"

# Columns of the leads table
LEAD_FIELDS = (
    "name", "email", "phone", "company", "sales_team_size", "monthly_revenue",
    "segment", "message", "source", "country_code", "page_url", "form_type",
    "facebook_pixel_id", "site", "lead_score", "qualified", "qualification_reason",
)

# Extra attribution fields forwarded to the CRM only
CRM_TRACKING_FIELDS = (
    "referrer", "utm_source", "utm_medium", "utm_campaign", "utm_term",
    "utm_content", "gclid", "fbclid", "fbc", "fbp",
)

DEFAULT_PAGE_URL = "https://vendas.agenciavfx.com.br/"
WEBHOOK_DISABLED_MESSAGE = "Webhook is disabled. Simulating a successful delivery."


def format_phone(phone: str | None, country_code: str) -> str:
    """E.164-ish phone for the CRM: +<country><digits>."""
    digits = "".join(ch for ch in str(phone or "") if ch.isdigit())
    return f"+{digits}" if digits.startswith(country_code) else f"+{country_code}{digits}"


def build_crm_payload(data: dict[str, Any], country_code: str) -> dict[str, Any]:
    """Flat CRM webhook payload built from the submitted form and score."""
    payload = {
        "phone": format_phone(data.get("phone"), country_code),
        "name": data.get("name") or "",
        "email": data.get("email") or "",
        "company": data.get("company") or "",
        "sales_team_size": data.get("sales_team_size") or "",
        "monthly_revenue": data.get("monthly_revenue") or "",
        "segment": data.get("segment") or "",
        "message": data.get("message") or "",
        "site": data.get("site") or "",
        "lead_score": data.get("lead_score") or 0,
        # CRM custom fields only accept strings
        "qualified": "Sim" if data.get("qualified") else "Não",
        "qualification_reason": data.get("qualification_reason") or "",
        "source": data.get("source") or "Website",
        "form_type": data.get("form_type") or "",
        "page_url": data.get("page_url") or DEFAULT_PAGE_URL,
        "external_id": data.get("event_id") or f"lead_{uuid.uuid4().hex[:12]}",
    }
    for field in CRM_TRACKING_FIELDS:
        payload[field] = data.get(field) or ""
    return payload


class LeadIntake:
    """
    Processes one form submission.

    Storage failures fail the request; CRM delivery and tracking are best
    effort and only reported back.
    """

    def __init__(
        self,
        store: LeadStore | None = None,
        dispatcher: WebhookDispatcher | None = None,
        gateways: list[AnalyticsGateway] | None = None,
    ):
        self.settings = get_settings()
        self.store = store or lead_store
        self.dispatcher = dispatcher or WebhookDispatcher()
        self.gateways = gateways if gateways is not None else [meta_gateway, ga4_gateway]

    async def submit(self, data: dict[str, Any], tracking: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Validate, score, store and forward a lead.

        Args:
            data: Submitted form fields, optionally with ``webhookUrl``
            tracking: Request context (ip, ua, fbc, fbp, external id)

        Returns:
            Summary of what happened to the lead

        Raises:
            InvalidRequestError: If form_type or source is missing
            LeadStoreError: If the lead could not be stored
        """
        if not data.get("form_type") or not data.get("source"):
            log.warning(
                "leads.missing_fields",
                has_form_type=bool(data.get("form_type")),
                has_source=bool(data.get("source")),
            )
            raise InvalidRequestError("Missing required fields")

        submission = dict(data)
        webhook_url = submission.pop("webhookUrl", None)

        log.info(
            "leads.received",
            form_type=submission.get("form_type"),
            source=submission.get("source"),
            phone=mask_value(str(submission.get("phone") or "")),
            has_email=bool(submission.get("email")),
            has_webhook=bool(webhook_url),
        )

        if submission.get("segment") and submission.get("lead_score") is None:
            result = score_lead(
                submission.get("segment") or "",
                submission.get("monthly_revenue") or "",
                submission.get("sales_team_size") or "",
            )
            submission["lead_score"] = result.score
            submission["qualified"] = result.is_qualified
            submission["qualification_reason"] = result.reason
            get_metrics().record_lead_scored(result.is_qualified)
            log.info(
                "leads.scored",
                score=result.score,
                qualified=result.is_qualified,
                adjustments=result.log_details.adjustments,
            )

        lead = {k: submission[k] for k in LEAD_FIELDS if k in submission}
        lead["created_at"] = datetime.now(timezone.utc).isoformat()
        lead["facebook_pixel_id"] = self.settings.FACEBOOK_PIXEL_ID

        removed_previous = False
        if lead.get("form_type") == COMPLETE_FORM and lead.get("phone") and lead.get("name") and lead.get("email"):
            removed_previous = await self._delete_previous_basic_leads(lead["phone"])

        saved = await self.store.insert(lead)
        log.info("leads.saved", lead_id=saved.get("id"), form_type=lead.get("form_type"))

        webhook_status = None
        if webhook_url:
            webhook_status = await self._forward_to_crm(webhook_url, submission)

        if submission.get("qualified") is False:
            log.info("leads.tracking_skipped", reason="disqualified", score=submission.get("lead_score"))
        else:
            await self._track(submission, tracking or {})

        return {
            "leadSaved": True,
            "leadId": saved.get("id"),
            "previousLeadsRemoved": removed_previous,
            "webhook": webhook_status,
            "leadScore": submission.get("lead_score"),
            "qualified": submission.get("qualified"),
        }

    async def _delete_previous_basic_leads(self, phone: str) -> bool:
        """Drop earlier basic-form leads superseded by a complete form."""
        try:
            rows = await self.store.find_by_phone(phone)
        except Exception as e:
            log.error("leads.previous_lookup_failed", error=str(e))
            return False

        basic = [row for row in rows if row.get("form_type") == BASIC_FORM]
        if not basic:
            return False

        for row in basic:
            try:
                await self.store.delete(row["id"])
                log.info("leads.previous_deleted", lead_id=row["id"])
            except Exception as e:
                log.error("leads.previous_delete_failed", lead_id=row["id"], error=str(e))
        return True

    async def _forward_to_crm(self, webhook_url: str, submission: dict[str, Any]) -> str:
        if not self.settings.WEBHOOK_ENABLED:
            log.info("leads.webhook_disabled", message=WEBHOOK_DISABLED_MESSAGE)
            return "simulated"

        payload = build_crm_payload(submission, self.settings.DEFAULT_COUNTRY_CODE)
        result = await self.dispatcher.dispatch(webhook_url, payload)
        if result.success:
            log.info("leads.crm_delivered", webhook=redact_url(webhook_url), form_type=submission.get("form_type"))
            return "delivered"

        log.error(
            "leads.crm_failed",
            webhook=redact_url(webhook_url),
            form_type=submission.get("form_type"),
            error=result.error,
        )
        return "failed"

    async def _track(self, submission: dict[str, Any], tracking: dict[str, Any]) -> None:
        """Mirror the conversion to the analytics gateways (best effort)."""
        identifier = submission.get("phone") or submission.get("email") or "default"
        score = submission.get("lead_score") or 0
        params = {
            "value": score_to_monetary_value(score),
            "currency": "BRL",
            "form_type": submission.get("form_type"),
        }
        if submission.get("page_url"):
            params["event_source_url"] = submission["page_url"]

        user_data = {
            "email": submission.get("email"),
            "phone": submission.get("phone"),
            "name": submission.get("name"),
            "client_ip_address": tracking.get("ip"),
            "client_user_agent": tracking.get("ua"),
            "fbc": submission.get("fbc") or tracking.get("fbc"),
            "fbp": submission.get("fbp") or tracking.get("fbp"),
            "external_id": hash_data(tracking.get("external_id")),
        }
        user_data = {k: v for k, v in user_data.items() if v}

        for gateway in self.gateways:
            event_name = "QualifiedLead" if gateway.name == "ga4" and submission.get("qualified") else "Lead"
            gateway_user = user_data
            # GA4 client id never goes into Meta user_data
            if gateway.name == "ga4" and submission.get("client_id"):
                gateway_user = {**user_data, "client_id": submission["client_id"]}
            outcome = await gateway.track_event(event_name, params, identifier=identifier, user_data=gateway_user)
            log.debug("leads.tracked", gateway=gateway.name, event_name=event_name, ok=outcome.ok, result=outcome.value)


def get_lead_intake() -> LeadIntake:
    return LeadIntake()
