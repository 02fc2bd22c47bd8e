"""
Email delivery with interchangeable transports.

EMAIL_BACKEND selects the transport once, when the dispatcher is built at startup:
  - "smtp": any SMTP relay (Gmail app password, Brevo, custom host) via smtplib
  - "resend": Resend transactional HTTP API
  - "log" (default): writes the email to the log
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import uuid
from dataclasses import dataclass, field
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import List, Optional, Protocol, Sequence

import httpx

from app.core.config import Settings
from app.core.exceptions import EmailNotConfiguredError

logger = logging.getLogger(__name__)

NOT_CONFIGURED = "not configured"


@dataclass
class OutgoingEmail:
    to: str
    subject: str
    html: str
    text: str
    priority: str = "normal"  # normal | high


@dataclass
class EmailResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BulkSendResult:
    sent: int = 0
    failed: int = 0
    errors: List[dict] = field(default_factory=list)


class EmailTransport(Protocol):
    name: str

    async def deliver(self, email: OutgoingEmail) -> Optional[str]:
        """Send one email and return the provider message id. Raises on failure."""
        ...


class LogTransport:
    name = "log"

    async def deliver(self, email: OutgoingEmail) -> Optional[str]:
        logger.info(
            "EMAIL [to=%s priority=%s] subject=%s\n%s",
            email.to, email.priority, email.subject, email.text,
        )
        return f"log-{uuid.uuid4().hex}"


class SMTPTransport:
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        from_address: Optional[str] = None,
        from_name: str = "Acadence LMS",
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        if not username or not password:
            raise EmailNotConfiguredError("SMTP_USERNAME and SMTP_PASSWORD are required for the smtp backend")
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address or username
        self.from_name = from_name
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, email: OutgoingEmail) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = email.subject
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = email.to
        msg["Message-ID"] = make_msgid(domain=self.from_address.split("@")[-1])
        if email.priority == "high":
            msg["X-Priority"] = "1"
            msg["Importance"] = "high"
        msg.attach(MIMEText(email.text, "plain"))
        msg.attach(MIMEText(email.html, "html"))
        return msg

    def _send_sync(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            smtp.login(self.username, self.password)
            smtp.send_message(msg)

    async def deliver(self, email: OutgoingEmail) -> Optional[str]:
        msg = self.build_message(email)
        # smtplib blocks; keep it off the event loop
        await asyncio.to_thread(self._send_sync, msg)
        return msg["Message-ID"]


class ResendTransport:
    name = "resend"
    API_URL = "https://api.resend.com/emails"

    def __init__(
        self,
        api_key: Optional[str],
        from_address: Optional[str] = None,
        from_name: str = "Acadence LMS",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        if not api_key:
            raise EmailNotConfiguredError("RESEND_API_KEY is required for the resend backend")
        self.api_key = api_key
        self.from_address = from_address or "onboarding@resend.dev"
        self.from_name = from_name
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def deliver(self, email: OutgoingEmail) -> Optional[str]:
        payload = {
            "from": formataddr((self.from_name, self.from_address)),
            "to": [email.to],
            "subject": email.subject,
            "html": email.html,
            "text": email.text,
        }
        if email.priority == "high":
            payload["headers"] = {"X-Priority": "1", "Importance": "high"}
        response = await self._client.post(
            self.API_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        response.raise_for_status()
        return response.json().get("id")

    async def aclose(self) -> None:
        await self._client.aclose()


def build_transport(settings: Settings) -> EmailTransport:
    """Build the configured transport. Raises EmailNotConfiguredError on missing credentials."""
    backend = (settings.email_backend or "").lower()
    if backend == "smtp":
        return SMTPTransport(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_address=settings.email_from,
            from_name=settings.email_from_name,
            use_tls=settings.smtp_use_tls,
            timeout=settings.http_timeout_seconds,
        )
    if backend == "resend":
        return ResendTransport(
            api_key=settings.resend_api_key,
            from_address=settings.email_from,
            from_name=settings.email_from_name,
            timeout=settings.http_timeout_seconds,
        )
    if backend == "log":
        return LogTransport()
    raise EmailNotConfiguredError(f"Unknown EMAIL_BACKEND: {settings.email_backend!r}")


class EmailDispatcher:
    """Uniform send() over a transport chosen at startup. Delivery failures never raise."""

    def __init__(self, transport: Optional[EmailTransport], send_delay: float = 0.1) -> None:
        self._transport = transport
        self.send_delay = send_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailDispatcher":
        try:
            transport = build_transport(settings)
        except EmailNotConfiguredError as e:
            logger.warning("Email disabled: %s", e.message)
            transport = None
        else:
            logger.info("Email transport: %s", transport.name)
        return cls(transport, send_delay=max(settings.email_send_delay_seconds, 0.1))

    @property
    def is_configured(self) -> bool:
        return self._transport is not None

    @property
    def transport_name(self) -> Optional[str]:
        return self._transport.name if self._transport else None

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
        priority: str = "normal",
    ) -> EmailResult:
        if self._transport is None:
            logger.info("Email not configured; skipping message to %s", to)
            return EmailResult(success=False, error=NOT_CONFIGURED)
        email = OutgoingEmail(to=to, subject=subject, html=html, text=text, priority=priority)
        try:
            message_id = await self._transport.deliver(email)
        except Exception as e:
            logger.error("Email to %s via %s failed: %s", to, self._transport.name, e)
            return EmailResult(success=False, error=str(e) or e.__class__.__name__)
        logger.info("Email sent to %s via %s (%s)", to, self._transport.name, message_id)
        return EmailResult(success=True, message_id=message_id)

    async def send_bulk(self, emails: Sequence[OutgoingEmail]) -> BulkSendResult:
        """Send sequentially with a pause between messages to respect provider rate limits."""
        result = BulkSendResult()
        for index, email in enumerate(emails):
            sent = await self.send(email.to, email.subject, email.html, email.text, email.priority)
            if sent.success:
                result.sent += 1
            else:
                result.failed += 1
                result.errors.append({"email": email.to, "error": sent.error})
            if index < len(emails) - 1:
                await asyncio.sleep(self.send_delay)
        return result

    async def aclose(self) -> None:
        close = getattr(self._transport, "aclose", None)
        if close is not None:
            await close()
