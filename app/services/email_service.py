"""Email notification service using SendGrid."""

import asyncio
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from app.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Email service for sending notifications."""

    def __init__(self):
        """Initialize email service."""
        self.api_key = settings.SENDGRID_API_KEY
        self.from_email = settings.SENDGRID_FROM_EMAIL
        self.from_name = settings.SENDGRID_FROM_NAME

        if not self.api_key:
            logger.warning("SENDGRID_API_KEY not configured. Emails will not be sent.")
            self.client = None
            self.enabled = False
        else:
            self.client = SendGridAPIClient(self.api_key)
            self.enabled = True
            logger.info("Email service initialized successfully")

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        plain_body: Optional[str] = None,
    ) -> bool:
        """
        Send an email.

        Args:
            to: Recipient email address
            subject: Email subject
            html_body: HTML body content
            plain_body: Plain text body (optional)

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.enabled:
            logger.info("Email service disabled. Would have sent to %s: %s", to, subject)
            return False

        try:
            message = Mail(
                from_email=(self.from_email, self.from_name),
                to_emails=to,
                subject=subject,
                html_content=html_body,
            )

            if plain_body:
                message.plain_text_content = plain_body

            response = await asyncio.to_thread(self.client.send, message)

            if 200 <= response.status_code < 300:
                logger.info("Email sent successfully to %s: %s", to, subject)
                return True
            logger.error("Failed to send email to %s: %s %s", to, response.status_code, response.body)
            return False

        except Exception as e:
            logger.error("Error sending email to %s: %s", to, e)
            return False

    async def send_invoice_ready_email(
        self,
        client_email: str,
        client_name: str,
        service_names: str,
        appointment_date: str,
        total_price: str,
    ) -> bool:
        """
        Tell the client their completed appointment is ready to be invoiced.

        Returns:
            True if sent successfully, False otherwise
        """
        subject = f"Your invoice from {self.from_name}"

        html_body = f"""
        <html>
            <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
                <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                    <h2 style="color: #4A90E2;">Thank you for your visit</h2>

                    <p>Hi {client_name},</p>

                    <p>Your appointment has been completed and your invoice is being prepared.</p>

                    <div style="background-color: #f5f5f5; padding: 15px; border-radius: 5px; margin: 20px 0;">
                        <p><strong>Date:</strong> {appointment_date}</p>
                        <p><strong>Services:</strong> {service_names}</p>
                        <p><strong>Total:</strong> R{total_price}</p>
                    </div>

                    <p style="color: #666; font-size: 14px; margin-top: 40px;">
                        If you have any questions about this invoice, please contact us.
                    </p>
                </div>
            </body>
        </html>
        """

        plain_body = f"""
        Thank you for your visit

        Hi {client_name},

        Your appointment has been completed and your invoice is being prepared.

        Date: {appointment_date}
        Services: {service_names}
        Total: R{total_price}

        If you have any questions about this invoice, please contact us.
        """

        return await self.send_email(client_email, subject, html_body, plain_body)


# Global email service instance
email_service = EmailService()
