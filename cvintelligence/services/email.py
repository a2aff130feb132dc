# ============================================================================
# services/email.py - Email Service (SMTP / SendGrid)
# ============================================================================

import asyncio
import html
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional
import sendgrid
from sendgrid.helpers.mail import Mail
from cvintelligence.core.config import settings
from cvintelligence.services.settings_store import SettingsStore

logger = logging.getLogger(__name__)

SMTP_KEYS = (
    "EMAIL_SMTP_HOST",
    "EMAIL_SMTP_PORT",
    "EMAIL_SMTP_USER",
    "EMAIL_SMTP_PASSWORD",
    "EMAIL_FROM_ADDRESS",
)


class EmailService:
    """Best-effort transactional email.

    Configuration is read from the settings store on every call. Missing
    configuration and delivery errors are logged; send() never raises.
    """

    def __init__(self, store: SettingsStore):
        self.store = store

    async def send(self, to: str, subject: str, html_body: str) -> bool:
        sendgrid_key = await self.store.resolve("SENDGRID_API_KEY")
        if sendgrid_key:
            return await self._send_sendgrid(sendgrid_key, to, subject, html_body)

        config = {key: await self.store.resolve(key) for key in SMTP_KEYS}
        missing = [key for key, value in config.items() if not value]
        if missing:
            logger.error(f"Incomplete SMTP settings ({', '.join(missing)}). Email to {to} not sent.")
            return False
        try:
            port = int(config["EMAIL_SMTP_PORT"])
        except ValueError:
            logger.error(f"Invalid EMAIL_SMTP_PORT {config['EMAIL_SMTP_PORT']!r}. Email to {to} not sent.")
            return False

        try:
            message = self._build_message(config["EMAIL_FROM_ADDRESS"], to, subject, html_body)
            await asyncio.to_thread(
                self._deliver_smtp,
                config["EMAIL_SMTP_HOST"],
                port,
                config["EMAIL_SMTP_USER"],
                config["EMAIL_SMTP_PASSWORD"],
                message,
            )
        except (smtplib.SMTPException, OSError, ValueError) as e:
            # ValueError: malformed header values or non-ASCII SMTP credentials
            logger.error(f"Error sending email to {to}: {e}")
            return False
        logger.info(f"Email sent to {to}: {subject}")
        return True

    @staticmethod
    def _build_message(from_address: str, to: str, subject: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = f"{settings.EMAIL_FROM_NAME} <{from_address}>"
        message["To"] = to
        message.set_content("Este e-mail requer um cliente com suporte a HTML.")
        message.add_alternative(html_body, subtype="html")
        return message

    @staticmethod
    def _deliver_smtp(host: str, port: int, user: str, password: str, message: EmailMessage) -> None:
        timeout = settings.EMAIL_SMTP_TIMEOUT_SECONDS
        if port == 465:
            with smtplib.SMTP_SSL(host, port, timeout=timeout) as server:
                server.login(user, password)
                server.send_message(message)
        else:
            with smtplib.SMTP(host, port, timeout=timeout) as server:
                server.starttls()
                server.login(user, password)
                server.send_message(message)

    async def _send_sendgrid(self, api_key: str, to: str, subject: str, html_body: str) -> bool:
        from_address = await self.store.resolve("EMAIL_FROM_ADDRESS")
        if not from_address:
            logger.error(f"EMAIL_FROM_ADDRESS not set. Email to {to} not sent.")
            return False
        message = Mail(
            from_email=(from_address, settings.EMAIL_FROM_NAME),
            to_emails=to,
            subject=subject,
            html_content=html_body,
        )
        try:
            client = sendgrid.SendGridAPIClient(api_key=api_key)
            await asyncio.to_thread(client.send, message)
        except Exception as e:
            logger.error(f"Error sending email to {to} via SendGrid: {e}")
            return False
        logger.info(f"Email sent to {to} via SendGrid: {subject}")
        return True

    async def send_welcome(self, email: str, first_name: Optional[str]) -> bool:
        return await self.send(
            email,
            "Bem-vindo ao CVIntelligence!",
            f"""
            <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2 style="color: #3b82f6;">Olá, {html.escape(first_name or 'tudo bem')}!</h2>
                <p>Sua conta foi criada e você já tem {settings.STARTING_CREDITS} créditos
                   para analisar seu currículo.</p>
                <p>Envie seu CV em PDF, DOC ou DOCX e receba uma avaliação completa.</p>
            </div>
            """,
        )

    async def send_test(self, email: str) -> bool:
        return await self.send(
            email,
            "CVIntelligence - e-mail de teste",
            """
            <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <h2 style="color: #3b82f6;">Configuração de e-mail funcionando!</h2>
                <p>Se você recebeu esta mensagem, as configurações de SMTP estão corretas.</p>
            </div>
            """,
        )
