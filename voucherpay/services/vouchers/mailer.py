"""SMTP delivery of issued vouchers."""

import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path

from voucherpay.common.config import Settings


class SmtpMailer:
    """Sends one HTML mail with an optional PDF attachment per call."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self.settings.smtp_host)

    def _tls_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        if self.settings.smtp_allow_self_signed:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        encryption = s.smtp_encryption.lower()
        if encryption in ("ssl", "smtps"):
            return smtplib.SMTP_SSL(
                s.smtp_host, s.smtp_port or 465, timeout=s.smtp_timeout_seconds, context=self._tls_context()
            )
        client = smtplib.SMTP(s.smtp_host, s.smtp_port or 25, timeout=s.smtp_timeout_seconds)
        if encryption in ("tls", "starttls"):
            client.starttls(context=self._tls_context())
        return client

    def send(
        self,
        to_address: str,
        subject: str,
        html_body: str,
        attachment: Path | None = None,
        attachment_name: str | None = None,
    ) -> None:
        message = EmailMessage()
        message["From"] = formataddr((self.settings.smtp_from_name, self.settings.smtp_from))
        message["To"] = to_address
        message["Subject"] = subject
        message.set_content("Your purchase is confirmed. Open this message in an HTML-capable client.")
        message.add_alternative(html_body, subtype="html")
        if attachment is not None:
            message.add_attachment(
                attachment.read_bytes(),
                maintype="application",
                subtype="pdf",
                filename=attachment_name or attachment.name,
            )

        with self._connect() as client:
            if self.settings.smtp_user:
                client.login(self.settings.smtp_user, self.settings.smtp_password)
            client.send_message(message)
