import smtplib
import ssl
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from pathlib import Path
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader, select_autoescape

from circuito.core.config import settings

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


class EmailService:
    """
    Envío de correos a clientes (cotizaciones y confirmaciones de cobro).

    Se usa solo desde tareas de Celery: nunca dentro de la transacción que
    cambia el estado de un documento. La configuración SMTP se lee en cada
    envío.
    """

    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html"]),
        )

    @property
    def enabled(self) -> bool:
        return settings.EMAIL_ENABLED

    @property
    def sender(self) -> str:
        return f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM}>"

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        return self.jinja_env.get_template(template_name).render(**context)

    def build_message(self, to_emails: List[str], subject: str, html_content: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = ", ".join(to_emails)
        message.attach(MIMEText(html_content, "html", "utf-8"))
        return message

    def _connect(self) -> smtplib.SMTP:
        if settings.EMAIL_USE_TLS:
            server = smtplib.SMTP(settings.EMAIL_SMTP_SERVER, settings.EMAIL_SMTP_PORT)
            server.starttls(context=ssl.create_default_context())
        else:
            server = smtplib.SMTP_SSL(settings.EMAIL_SMTP_SERVER, settings.EMAIL_SMTP_PORT)
        if settings.EMAIL_USERNAME:
            server.login(settings.EMAIL_USERNAME, settings.EMAIL_PASSWORD)
        return server

    def send_template_email(
        self,
        to_emails: List[str],
        subject: str,
        template_name: str,
        context: Dict[str, Any],
    ) -> None:
        """
        Renderiza el template y lo envía.

        Los errores de SMTP se propagan para que la tarea pueda reintentar.
        """
        message = self.build_message(to_emails, subject, self.render_template(template_name, context))
        with self._connect() as server:
            server.sendmail(settings.EMAIL_FROM, to_emails, message.as_string())
        logger.info(f"Email '{subject}' enviado a {', '.join(to_emails)}")


email_service = EmailService()
