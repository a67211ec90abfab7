"""
Send notification emails via SMTP (Google Gmail or other).
Set SMTP_USER, SMTP_PASSWORD (and optionally NOTIFY_FROM) in .env. Use a Gmail App Password (not your normal password).

One SmtpTransport = one authenticated TLS session for one consumer invocation:

    with transport_from_settings() as transport:
        transport.send(to, subject, html)

The session opens lazily on the first send and is closed on exit. If it cannot be opened,
every send in that invocation raises DeliveryError with the same message.
"""
import html as html_lib
import logging
import re
import smtplib
import ssl
import threading
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from noted.config import settings
from noted.core.errors import DeliveryError

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"[ \t]+")


def _from_address(user: str, notify_from: str = "") -> str:
    if (notify_from or "").strip():
        return notify_from.strip()
    user = (user or "").strip()
    if user:
        return f"Noted <{user}>"
    return "Noted <noreply@localhost>"


def html_to_plain_text(html_body: str) -> str:
    """Rough plain-text fallback for clients that do not render HTML."""
    text = re.sub(r"(?i)<br\s*/?>|</p>|</tr>|</h1>", "\n", html_body or "")
    text = html_lib.unescape(_TAG_RE.sub("", text))
    lines = [_SPACE_RE.sub(" ", line).strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def build_message(from_addr: str, to_email: str, subject: str, html_body: str) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg.attach(MIMEText(html_to_plain_text(html_body), "plain", "utf-8"))
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    return msg


class SmtpTransport:
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        *,
        from_address: str | None = None,
        use_ssl: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = (username or "").strip()
        self.password = (password or "").strip()
        self.from_address = from_address or _from_address(self.username)
        self.use_ssl = use_ssl
        self.timeout = timeout
        self._server: smtplib.SMTP | None = None
        self._connect_error: str | None = None
        self._lock = threading.Lock()
        self.sent_count = 0

    def __enter__(self) -> "SmtpTransport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _open(self) -> smtplib.SMTP:
        if not self.username or not self.password:
            raise DeliveryError("SMTP credentials are not configured (SMTP_USER / SMTP_PASSWORD)")
        context = ssl.create_default_context()
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            if not self.use_ssl:
                server.starttls(context=context)
            server.login(self.username, self.password)
        except Exception:
            server.close()
            raise
        logger.info("SMTP session opened to %s:%s as %s", self.host, self.port, self.username)
        return server

    def _session(self) -> smtplib.SMTP:
        if self._server is not None:
            return self._server
        if self._connect_error is not None:
            raise DeliveryError(self._connect_error)
        try:
            self._server = self._open()
        except DeliveryError as e:
            self._connect_error = str(e)
            raise
        except (smtplib.SMTPException, OSError) as e:
            self._connect_error = f"SMTP connection failed: {e}"
            logger.warning("Could not open SMTP session to %s:%s: %s", self.host, self.port, e)
            raise DeliveryError(self._connect_error) from e
        return self._server

    def send(self, to_email: str, subject: str, html_body: str) -> None:
        """Send one message. Raises DeliveryError on connection, auth or send failure."""
        to_email = (to_email or "").strip()
        if not to_email:
            raise DeliveryError("Recipient email is empty")
        msg = build_message(self.from_address, to_email, subject, html_body)
        with self._lock:
            server = self._session()
            try:
                server.sendmail(self.username, [to_email], msg.as_string())
            except (smtplib.SMTPException, OSError) as e:
                raise DeliveryError(str(e) or e.__class__.__name__) from e
            self.sent_count += 1
        logger.info("Email sent to %s: %s", to_email, subject)

    def close(self) -> None:
        with self._lock:
            server, self._server = self._server, None
        if server is None:
            return
        try:
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.debug("SMTP quit failed (ignored): %s", e)
            server.close()


def transport_from_settings() -> SmtpTransport:
    return SmtpTransport(
        settings.smtp_host,
        settings.smtp_port,
        settings.smtp_user,
        settings.smtp_password,
        from_address=_from_address(settings.smtp_user, settings.notify_from),
        use_ssl=settings.smtp_use_ssl,
        timeout=settings.smtp_timeout_seconds,
    )
