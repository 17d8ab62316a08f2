# school_notify/services/email_service.py
import asyncio
import html
import logging
import re
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional, Tuple

from school_notify import config
from school_notify.exceptions import NotificationError
from school_notify.infra.recipients import RecipientDirectory, create_recipient_directory
from school_notify.models.notification import Notification, NotificationType
from school_notify.models.recipient import Recipient
from school_notify.services.notification_handler import resolve_type

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

# tipo -> (asunto, encabezado, cierre, (texto del link, ruta) o None)
EMAIL_TEMPLATES = {
    NotificationType.GRADE_INPUT: (
        "Nilai Baru Telah Diinput", "Nilai Baru",
        "Login untuk melihat detail nilai Anda.", ("Lihat Nilai", "/academic/grades"),
    ),
    NotificationType.ATTENDANCE_INPUT: (
        "Absensi Telah Dicatat", "Absensi Dicatat",
        "Login untuk melihat rekap absensi.", ("Lihat Absensi", "/academic/attendance"),
    ),
    NotificationType.ASSIGNMENT_CREATED: (
        "Tugas Baru Tersedia", "Tugas Baru",
        "Login untuk mengerjakan tugas.", ("Lihat Tugas", "/academic/assignments"),
    ),
    NotificationType.ASSIGNMENT_SUBMITTED: (
        "Tugas Telah Dikumpulkan", "Tugas Dikumpulkan",
        "Login untuk memeriksa tugas.", ("Lihat Pengumpulan", "/academic/assignments"),
    ),
    NotificationType.PASSWORD_RESET: (
        "Password Akun Direset", "Password Direset",
        "Jika Anda tidak merasa melakukan reset password, segera hubungi administrator.", None,
    ),
}


def render_email(notification: Notification, recipient: Recipient,
                 frontend_url: str = None) -> Tuple[str, str]:
    """Asunto y HTML del e-mail según el tipo de la notificación."""
    frontend_url = (frontend_url or config.FRONTEND_URL).rstrip("/")
    template = EMAIL_TEMPLATES.get(resolve_type(notification.type))
    if template is None:
        template = (
            notification.title, notification.title,
            "Login untuk melihat detail notifikasi.", ("Lihat Notifikasi", "/notifications"),
        )
    subject, heading, closing, link = template

    parts = [
        f"<h2>{html.escape(heading)}</h2>",
        f"<p>Halo {html.escape(recipient.fullName or '')},</p>",
        f"<p>{html.escape(notification.message)}</p>",
        f"<p>{html.escape(closing)}</p>",
    ]
    if link is not None:
        text, path = link
        parts.append(f'<a href="{html.escape(frontend_url + path)}">{html.escape(text)}</a>')
    return subject, "\n".join(parts)


class EmailService:
    """Envío por SMTP. Sin SMTP_HOST queda deshabilitado."""

    def __init__(self, host: str = None, port: int = None, user: str = None,
                 password: str = None, use_tls: bool = None, from_email: str = None,
                 from_name: str = None):
        self.smtp_host = host if host is not None else config.SMTP_HOST
        self.smtp_port = port or config.SMTP_PORT
        self.smtp_user = user if user is not None else config.SMTP_USER
        self.smtp_password = password if password is not None else config.SMTP_PASS
        self.use_tls = config.SMTP_USE_TLS if use_tls is None else use_tls
        self.from_email = from_email or config.SMTP_FROM
        self.from_name = from_name or config.SCHOOL_NAME

    @property
    def enabled(self) -> bool:
        return bool(self.smtp_host)

    def send_email(self, to_email: str, subject: str, html_content: str) -> bool:
        """
        Envía un e-mail HTML con su versión en texto plano.
        Lanza ValueError si la dirección no es válida y
        smtplib.SMTPException si falla el servidor.
        """
        if not EMAIL_PATTERN.match(to_email or ""):
            raise ValueError(f"Invalid email address: {to_email}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = to_email
        msg.attach(MIMEText(html_to_plain(html_content), "plain", "utf-8"))
        msg.attach(MIMEText(html_content, "html", "utf-8"))

        with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
            if self.use_tls:
                server.starttls()
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)

        logger.info("E-mail enviado a %s: %s", to_email, subject)
        return True


def html_to_plain(content: str) -> str:
    text = re.sub(r"<[^>]+>", "", content)
    text = html.unescape(text)
    text = re.sub(r"\n\s*\n", "\n\n", text)
    return text.strip()


class EmailNotifier:
    """
    Paso de e-mail del ingest: una notificación nueva -> un e-mail a su dueño,
    salvo que haya desactivado los e-mails o no tenga dirección.
    Es best-effort: un fallo se loguea y la notificación ya guardada sigue su curso.
    """

    def __init__(self, service: EmailService, recipients: RecipientDirectory,
                 frontend_url: str = None):
        self.service = service
        self.recipients = recipients
        self.frontend_url = frontend_url

    async def notify(self, notification: Notification) -> bool:
        if not self.service.enabled:
            return False
        try:
            recipient: Optional[Recipient] = await asyncio.to_thread(
                self.recipients.get, notification.userId
            )
            if recipient is None or not recipient.email:
                logger.debug("User %s sin e-mail registrado", notification.userId)
                return False
            if not recipient.emailNotifications:
                logger.debug("User %s desactivó los e-mails", notification.userId)
                return False
            subject, content = render_email(notification, recipient, self.frontend_url)
            return await asyncio.to_thread(
                self.service.send_email, recipient.email, subject, content
            )
        # SMTPException hereda de OSError
        except (NotificationError, OSError, ValueError) as e:
            logger.warning("No se pudo enviar el e-mail de %s: %s", notification.id, e)
            return False


def create_email_notifier(recipients: RecipientDirectory = None) -> EmailNotifier:
    return EmailNotifier(EmailService(), recipients or create_recipient_directory())
