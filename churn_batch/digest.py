"""
Digest notification of the highest-risk customers.

Strictly best-effort: every failure (missing profile, template error,
provider outage, timeout) is logged and swallowed as a DigestError so the
batch result already computed is never affected.
"""

import asyncio
import html
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import httpx

from .aggregator import top_risks
from .config import PipelineSettings
from .errors import DigestError
from .models import Prediction

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class OwnerProfile:
    email: str
    company_name: str = "Your Company"


class ProfileDirectory(ABC):
    @abstractmethod
    def get_profile(self, owner_id: str) -> OwnerProfile:
        """
        Raises:
            DigestError: If the owner has no profile or email
        """
        pass


class StaticProfileDirectory(ProfileDirectory):
    def __init__(self, profiles: Dict[str, OwnerProfile]):
        self.profiles = dict(profiles)

    def get_profile(self, owner_id: str) -> OwnerProfile:
        profile = self.profiles.get(owner_id)
        if profile is None or not profile.email:
            raise DigestError(f"Could not fetch profile for owner {owner_id}")
        return profile


class EmailSender(ABC):
    @abstractmethod
    async def send(self, to: str, subject: str, html_body: str) -> None:
        pass


class ResendEmailSender(EmailSender):
    """Transactional email through the Resend HTTP API."""

    def __init__(self, api_key: Optional[str], sender: str,
                 http_client: Optional[httpx.AsyncClient] = None,
                 api_url: str = RESEND_API_URL):
        self.api_key = api_key
        self.sender = sender
        self.http_client = http_client
        self.api_url = api_url

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if not self.api_key:
            raise DigestError("RESEND_API_KEY not configured")
        message = {"from": self.sender, "to": [to], "subject": subject, "html": html_body}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            if self.http_client is not None:
                response = await self.http_client.post(self.api_url, json=message, headers=headers)
            else:
                async with httpx.AsyncClient() as http:
                    response = await http.post(self.api_url, json=message, headers=headers)
        except httpx.HTTPError as e:
            raise DigestError(f"Email provider unreachable: {e}") from e
        if response.is_error:
            raise DigestError(f"Resend API error: {response.status_code} {response.text}")


class RecordingEmailSender(EmailSender):
    """Keeps messages in memory instead of sending them."""

    def __init__(self):
        self.sent: List[dict] = []

    async def send(self, to: str, subject: str, html_body: str) -> None:
        self.sent.append({"to": to, "subject": subject, "html": html_body})


def build_email_sender(settings: PipelineSettings) -> EmailSender:
    """Resend when an API key is configured, otherwise an in-memory recorder."""
    if settings.resend_api_key:
        return ResendEmailSender(settings.resend_api_key, settings.email_from)
    logger.info("No Resend API key configured; digests are recorded, not sent")
    return RecordingEmailSender()


_TIER_COLORS = {"high": "#dc2626", "medium": "#f59e0b", "low": "#10b981"}


def render_digest(company_name: str, predictions: Sequence[Prediction],
                  dashboard_url: str) -> Tuple[str, str]:
    """Subject line and HTML body for a list of top-risk predictions."""
    high_risk = sum(1 for p in predictions if p.risk_level == "high")
    subject = f"Cancel-Intent Alerts: {high_risk} Users At Risk"

    items = []
    for rank, p in enumerate(predictions, start=1):
        reasons = ", ".join(p.contributing_factors[:2]) or "Low engagement detected"
        actions = ", ".join(p.recommended_actions[:2]) or "Send reactivation email"
        items.append(
            f'<div style="margin: 15px 0; padding: 12px; border-left: 4px solid '
            f'{_TIER_COLORS[p.risk_level]};">'
            f"<h4>{rank}. Customer ID: {html.escape(p.customer_id)}</h4>"
            f"<p><strong>Cancel Probability:</strong> {p.probability * 100:.1f}%</p>"
            f"<p><strong>Reason:</strong> {html.escape(reasons)}</p>"
            f"<p><strong>Suggested Action:</strong> {html.escape(actions)}</p>"
            f"<p><strong>Monthly Revenue:</strong> ${p.monthly_revenue:.2f}</p>"
            f"</div>"
        )

    body = (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h2>Cancel-Intent Alert for {html.escape(company_name)}</h2>"
        f"<p>We detected <strong>{len(predictions)}</strong> customers at risk of "
        f"canceling. These need attention first:</p>"
        + "".join(items)
        + "<ul>"
        "<li><strong>High Risk (70%+):</strong> Reach out within 24 hours with personalized offers</li>"
        "<li><strong>Medium Risk (40-70%):</strong> Send targeted retention campaigns this week</li>"
        "<li><strong>Low Risk (&lt;40%):</strong> Monitor and include in general engagement flows</li>"
        "</ul>"
        f'<p><a href="{html.escape(dashboard_url)}">View Full Dashboard</a></p>'
        "</div>"
    )
    return subject, body


class DigestReporter:
    """
    Sends the top-N digest after a batch completes.

    Usage:
        reporter = DigestReporter(profiles, ResendEmailSender(key, sender))
        sent = await reporter.send_digest(owner_id, analysis_id, predictions)
    """

    def __init__(self, profiles: ProfileDirectory, sender: EmailSender,
                 top_n: int = 5, timeout_seconds: float = 10.0,
                 dashboard_url: str = "http://localhost:8000/dashboard"):
        self.profiles = profiles
        self.sender = sender
        self.top_n = top_n
        self.timeout_seconds = timeout_seconds
        self.dashboard_url = dashboard_url

    async def _deliver(self, owner_id: str, top: List[Prediction]) -> None:
        profile = self.profiles.get_profile(owner_id)
        subject, body = render_digest(profile.company_name, top, self.dashboard_url)
        await self.sender.send(profile.email, subject, body)

    async def send_digest(self, owner_id: str, analysis_id: str,
                          predictions: Sequence[Prediction]) -> bool:
        """
        Best-effort send. Returns True when the provider accepted the message.
        """
        if not predictions:
            logger.info("No predictions for analysis %s; digest skipped", analysis_id)
            return False

        top = top_risks(predictions, self.top_n)
        try:
            await asyncio.wait_for(self._deliver(owner_id, top), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error("Digest for analysis %s timed out after %.1fs",
                         analysis_id, self.timeout_seconds)
            return False
        except Exception as e:
            error = e if isinstance(e, DigestError) else DigestError(str(e))
            logger.error("Failed to send digest for analysis %s: %s", analysis_id, error)
            return False

        logger.info("Digest sent for analysis %s (%d customers)", analysis_id, len(top))
        return True
