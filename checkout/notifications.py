"""
Buyer and seller emails sent once an entry is paid.

The buyer's address and the deliverable file come from the WordPress
entry lookup endpoint. Delivery is best-effort: failures are logged and
never reach the request that triggered them.
"""
import logging
import mimetypes
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from pathlib import PurePosixPath
from typing import List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from checkout.exceptions import DependencyFailure

logger = logging.getLogger(__name__)


@dataclass
class EntryContact:
    email: str
    file_url: Optional[str] = None


@dataclass
class Attachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class EntryLookupClient:
    def __init__(self, url: str, username: Optional[str], password: Optional[str], http: httpx.Client):
        self.url = url
        self.auth = (username, password) if username and password else None
        self.http = http

    def fetch_contact(self, entry_id: int) -> EntryContact:
        try:
            response = self.http.get(self.url, params={"entry_id": entry_id}, auth=self.auth)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DependencyFailure(f"Entry lookup failed for entry {entry_id}: {exc}") from exc

        email = (body or {}).get("email")
        if not email:
            raise DependencyFailure(f"No email on record for entry {entry_id}")
        return EntryContact(email=email, file_url=body.get("file_url"))

    def fetch_file(self, file_url: str) -> Attachment:
        try:
            response = self.http.get(file_url, auth=self.auth)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise DependencyFailure(f"Could not download {file_url}: {exc}") from exc

        filename = PurePosixPath(urlparse(file_url).path).name or "translation"
        content_type = (
            response.headers.get("content-type", "").split(";")[0].strip()
            or mimetypes.guess_type(filename)[0]
            or "application/octet-stream"
        )
        return Attachment(filename=filename, content=response.content, content_type=content_type)


class Mailer:
    """Sends one message per SMTP connection."""

    def __init__(self, host: str, port: int, username: Optional[str] = None,
                 password: Optional[str] = None, use_ssl: bool = False, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_ssl = use_ssl
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.use_ssl:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
        conn = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        conn.ehlo()
        if conn.has_extn("starttls"):
            conn.starttls(context=context)
            conn.ehlo()
        return conn

    def send(self, message: EmailMessage) -> None:
        with self._connect() as conn:
            if self.username and self.password:
                conn.login(self.username, self.password)
            conn.send_message(message)


def build_message(sender: str, recipient: str, subject: str, body: str,
                  attachment: Optional[Attachment] = None) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = recipient
    message["Subject"] = subject
    message.set_content(body)
    if attachment is not None:
        maintype, _, subtype = attachment.content_type.partition("/")
        message.add_attachment(
            attachment.content,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=attachment.filename,
        )
    return message


class NotificationDispatcher:
    def __init__(self, lookup: EntryLookupClient, mailer: Mailer, sender: Optional[str], seller_email: Optional[str]):
        self.lookup = lookup
        self.mailer = mailer
        self.sender = sender
        self.seller_email = seller_email

    def _send(self, kind: str, message: EmailMessage) -> bool:
        try:
            self.mailer.send(message)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send %s email to %s", kind, message["To"])
            return False
        logger.info("Sent %s email to %s", kind, message["To"])
        return True

    def notify_paid(self, entry_id: int, transaction_id: Optional[str]) -> List[Tuple[str, bool]]:
        """Email buyer and seller about a paid entry.

        Returns (kind, delivered) pairs for the emails attempted.
        """
        try:
            contact = self.lookup.fetch_contact(entry_id)
        except DependencyFailure:
            logger.exception("Skipping notifications for entry %s", entry_id)
            return []

        attachment = None
        if contact.file_url:
            try:
                attachment = self.lookup.fetch_file(contact.file_url)
            except DependencyFailure:
                logger.exception("Seller email for entry %s goes out without its attachment", entry_id)

        sender = self.sender or self.seller_email or "no-reply@localhost"
        results = []

        buyer = build_message(
            sender, contact.email,
            "Payment received for your translation order",
            f"Thank you! We received your payment for order #{entry_id}.\n"
            f"PayPal transaction: {transaction_id or 'n/a'}\n",
        )
        results.append(("buyer", self._send("buyer", buyer)))

        if self.seller_email:
            seller = build_message(
                sender, self.seller_email,
                f"New paid translation order #{entry_id}",
                f"Entry {entry_id} has been paid by {contact.email}.\n"
                f"PayPal transaction: {transaction_id or 'n/a'}\n",
                attachment=attachment,
            )
            results.append(("seller", self._send("seller", seller)))
        else:
            logger.warning("SELLER_EMAIL is not set; seller notification for entry %s skipped", entry_id)

        return results
