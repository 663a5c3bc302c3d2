"""
Notification service: turns ApprovalEvents into emails.

Recipient emails are resolved DURING the request (while the DB session is
open); delivery runs afterwards via BackgroundTasks and never affects the
outcome of the approval operation that produced the event.
"""

import logging
from typing import Iterable, List, Optional

import httpx
from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
import structlog

from approval_engine.config import settings
from approval_engine.models.user import User
from approval_engine.services.approval_request_service import ApprovalEvent

logger = structlog.get_logger()
_std_logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"

TEMPLATES = {
    "approval_requested": {
        "subject": "[Approvals] {title}: your approval is required",
        "html": (
            "<h2>Approval Required</h2>"
            "<p><strong>{title}</strong> ({approval_type}) is waiting for your decision.</p>"
            "<p>Request: {request_id}</p>"
        ),
    },
    "approval_delegated": {
        "subject": "[Approvals] {title}: delegated to you",
        "html": (
            "<h2>Approval Delegated</h2>"
            "<p>An approval for <strong>{title}</strong> has been delegated to you.</p>"
            "<p><strong>Reason:</strong> {reason}</p>"
        ),
    },
    "approval_completed": {
        "subject": "[Approvals] {title}: {status}",
        "html": (
            "<h2>Approval {status}</h2>"
            "<p>Your request <strong>{title}</strong> has been {status}.</p>"
        ),
    },
    "approval_cancelled": {
        "subject": "[Approvals] {title}: cancelled",
        "html": (
            "<h2>Approval Cancelled</h2>"
            "<p><strong>{title}</strong> no longer needs your decision.</p>"
            "<p><strong>Reason:</strong> {reason}</p>"
        ),
    },
    "approval_sla_warning": {
        "subject": "[Approvals] {title}: response due soon",
        "html": (
            "<h2>Approval Due Soon</h2>"
            "<p><strong>{title}</strong> is due by {due_at}.</p>"
        ),
    },
    "approval_sla_breached": {
        "subject": "[Approvals] {title}: overdue",
        "html": (
            "<h2>Approval Overdue</h2>"
            "<p><strong>{title}</strong> passed its due time ({due_at}).</p>"
        ),
    },
}

# Events whose recipients hold an assignment that becomes "notified" once queued
ASSIGNMENT_EVENTS = ("requested", "delegated")

_http_client: Optional[httpx.AsyncClient] = None


def get_http_client() -> httpx.AsyncClient:
    global _http_client
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0))
    return _http_client


class _RetryableDeliveryError(Exception):
    """5xx or network failure talking to the mail provider."""


@retry(
    retry=retry_if_exception_type(_RetryableDeliveryError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    before_sleep=before_sleep_log(_std_logger, logging.WARNING),
    reraise=True,
)
async def _post_email(payload: dict) -> httpx.Response:
    headers = {
        "accept": "application/json",
        "api-key": settings.BREVO_API_KEY or "",
        "content-type": "application/json",
    }
    try:
        response = await get_http_client().post(BREVO_API_URL, headers=headers, json=payload)
    except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
        raise _RetryableDeliveryError(str(exc)) from exc
    if response.status_code >= 500:
        raise _RetryableDeliveryError(f"mail provider returned {response.status_code}")
    return response


async def deliver_email(to_emails: List[str], subject: str, html_content: str) -> bool:
    """Send through Brevo. Returns True if accepted; failures are logged, not raised."""
    if not settings.BREVO_API_KEY:
        logger.warning("email_provider_not_configured", subject=subject)
        return False
    if not to_emails:
        return False

    payload = {
        "sender": {"name": settings.APP_NAME, "email": settings.EMAIL_FROM_ADDRESS},
        "to": [{"email": email} for email in to_emails],
        "subject": subject,
        "htmlContent": html_content,
    }
    try:
        response = await _post_email(payload)
    except _RetryableDeliveryError as exc:
        logger.error("email_delivery_exhausted", error=str(exc), to=to_emails, subject=subject)
        return False

    if response.status_code in (200, 201, 202):
        logger.info("email_sent", to=to_emails, subject=subject)
        return True
    logger.error(
        "email_rejected",
        status_code=response.status_code,
        response=response.text[:500],
        to=to_emails,
    )
    return False


def render(template_id: str, context: dict) -> Optional[tuple[str, str]]:
    template = TEMPLATES.get(template_id)
    if not template:
        logger.warning("notification_template_not_found", template_id=template_id)
        return None
    values = {k: ("" if v is None else v) for k, v in context.items()}
    try:
        return template["subject"].format(**values), template["html"].format(**values)
    except KeyError as e:
        logger.error("notification_template_render_error", template_id=template_id, missing_key=str(e))
        return None


async def send_notification(template_id: str, recipient_emails: List[str], context: dict) -> bool:
    rendered = render(template_id, context)
    if rendered is None:
        return False
    subject, html = rendered
    result = await deliver_email(recipient_emails, subject, html)
    logger.info(
        "notification_sent",
        template_id=template_id,
        recipients=len(recipient_emails),
        success=result,
    )
    return result


async def resolve_user_emails(session: AsyncSession, user_ids: Iterable) -> list[str]:
    ids = list({str(u) for u in user_ids})
    if not ids:
        return []
    result = await session.execute(
        select(User.email).where(User.id.in_(ids), User.is_active == True)  # noqa: E712
    )
    return [row[0] for row in result.all()]


async def queue_event_notifications(
    session: AsyncSession,
    events: Iterable[ApprovalEvent],
    background_tasks: BackgroundTasks,
) -> list[ApprovalEvent]:
    """
    Resolve recipients and queue one email per event.

    Returns the queued events that carry assignments, so the caller can
    flag those assignments as notified.
    """
    queued: list[ApprovalEvent] = []
    for event in events:
        emails = await resolve_user_emails(session, event.recipient_ids)
        if not emails:
            logger.warning("notification_no_recipients", kind=event.kind, request_id=str(event.request_id))
            continue
        context = {"request_id": str(event.request_id), "reason": None, **event.data}
        background_tasks.add_task(send_notification, f"approval_{event.kind}", emails, context)
        if event.kind in ASSIGNMENT_EVENTS and event.assignment_ids:
            queued.append(event)
    return queued


async def close_http_client() -> None:
    global _http_client
    if _http_client is not None and not _http_client.is_closed:
        await _http_client.aclose()
    _http_client = None
