# ===== app/services/email/email_service.py =====
import html
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Any, Dict, List, Optional, Tuple
import logging

from app.config.settings import settings

logger = logging.getLogger(__name__)

# heading, header gradient, intro line
BOOKING_TEMPLATES = {
    "booking_pending": (
        "Booking Received",
        "#667eea 0%, #764ba2 100%",
        "Thanks for booking a strategy call! We've received your request and will confirm it shortly.",
    ),
    "booking_confirmed": (
        "Booking Confirmed!",
        "#43e97b 0%, #38f9d7 100%",
        "Great news, your strategy call is confirmed.",
    ),
    "booking_completed": (
        "Thanks For Your Time",
        "#4facfe 0%, #00f2fe 100%",
        "Thanks for meeting with us. We'll follow up with next steps soon.",
    ),
    "booking_cancelled": (
        "Booking Cancelled",
        "#f093fb 0%, #f5576c 100%",
        "Your strategy call has been cancelled. You're welcome to book another time whenever suits.",
    ),
    "booking_no_show": (
        "We Missed You",
        "#fa709a 0%, #fee140 100%",
        "We didn't manage to connect at your scheduled time. Reply to this email and we'll find another time.",
    ),
    "booking_reminder": (
        "Your Call Is Coming Up",
        "#667eea 0%, #764ba2 100%",
        "Just a reminder that your strategy call is coming up soon.",
    ),
    "meeting_reminder": (
        "Meeting Reminder",
        "#667eea 0%, #764ba2 100%",
        "Just a reminder that your next scheduled meeting is coming up soon.",
    ),
    "meeting_calendar_fallback": (
        "Your Meeting Details",
        "#fa709a 0%, #fee140 100%",
        "We couldn't add your upcoming meeting to our calendar, but it is still going ahead.",
    ),
}


class EmailService:
    """Service for sending emails via SMTP"""

    @staticmethod
    def _get_smtp_connection():
        """Create and return SMTP connection"""
        try:
            if settings.EMAIL_USE_TLS:
                server = smtplib.SMTP(settings.EMAIL_HOST, settings.EMAIL_PORT)
                server.starttls()
            else:
                server = smtplib.SMTP_SSL(settings.EMAIL_HOST, settings.EMAIL_PORT)

            if settings.EMAIL_USERNAME and settings.EMAIL_PASSWORD:
                server.login(settings.EMAIL_USERNAME, settings.EMAIL_PASSWORD)

            return server
        except Exception as e:
            logger.error(f"Failed to connect to SMTP server: {e}")
            raise

    @staticmethod
    def send_email(
            to_email: str,
            subject: str,
            html_content: str,
            plain_text: Optional[str] = None,
            cc: Optional[List[str]] = None,
            bcc: Optional[List[str]] = None
    ) -> bool:
        """
        Send an email using SMTP

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML content of the email
            plain_text: Plain text version (fallback for non-HTML clients)
            cc: List of CC email addresses
            bcc: List of BCC email addresses

        Returns:
            bool: True if email sent successfully
        """
        try:
            msg = MIMEMultipart('alternative')
            msg['Subject'] = subject
            msg['From'] = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_ADDRESS}>"
            msg['To'] = to_email

            if cc:
                msg['Cc'] = ', '.join(cc)

            if plain_text:
                msg.attach(MIMEText(plain_text, 'plain'))
            msg.attach(MIMEText(html_content, 'html'))

            recipients = [to_email]
            if cc:
                recipients.extend(cc)
            if bcc:
                recipients.extend(bcc)

            with EmailService._get_smtp_connection() as server:
                server.sendmail(settings.EMAIL_FROM_ADDRESS, recipients, msg.as_string())

            logger.info(f"Email sent successfully to {to_email}")
            return True

        except Exception as e:
            logger.error(f"Failed to send email to {to_email}: {e}")
            raise

    @staticmethod
    def render_booking_email(template_key: str, context: Dict[str, Any]) -> Tuple[str, str, str]:
        """Subject, HTML and plain text for a booking status email"""
        if template_key not in BOOKING_TEMPLATES:
            raise ValueError(f"Unknown email template: {template_key}")
        heading, gradient, intro = BOOKING_TEMPLATES[template_key]

        name = html.escape(context.get("customer_name") or "there")
        business = html.escape(context.get("business_name") or "")
        when = html.escape(f"{context.get('preferred_date', '')} {context.get('preferred_time_slot', '')}".strip())
        meeting_link = context.get("meeting_link")
        instructions = context.get("fallback_instructions")

        details = f"""
                <div style="background-color: #f8f9fa; padding: 20px; border-radius: 8px; margin: 25px 0;">
                    <p style="margin: 0; color: #666;"><strong>Business:</strong> {business}</p>
                    <p style="margin: 5px 0 0 0; color: #666;"><strong>Date & Time:</strong> {when} ({settings.BUSINESS_TIMEZONE})</p>
                </div>"""

        if meeting_link:
            details += f"""
                <div style="text-align: center; margin: 30px 0;">
                    <a href="{html.escape(meeting_link)}"
                       style="background: linear-gradient(135deg, {gradient});
                              color: white;
                              padding: 14px 40px;
                              text-decoration: none;
                              border-radius: 5px;
                              font-weight: bold;
                              display: inline-block;">
                        Join Meeting
                    </a>
                </div>"""
        elif instructions:
            details += f"""
                <pre style="white-space: pre-wrap; font-family: Arial, sans-serif; font-size: 14px; color: #333;">{html.escape(instructions)}</pre>"""

        html_content = f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="UTF-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
            <div style="background: linear-gradient(135deg, {gradient}); padding: 30px; text-align: center; border-radius: 10px 10px 0 0;">
                <h1 style="color: white; margin: 0; font-size: 28px;">{heading}</h1>
            </div>

            <div style="background-color: #ffffff; padding: 30px; border: 1px solid #e0e0e0; border-top: none; border-radius: 0 0 10px 10px;">
                <h2 style="color: #333; margin-top: 0;">Hi {name},</h2>
                <p style="font-size: 16px; color: #555;">{intro}</p>
                {details}
                <hr style="border: none; border-top: 1px solid #e0e0e0; margin: 30px 0;">
                <p style="font-size: 12px; color: #999; margin: 0;">
                    This is an automated message about your booking.
                </p>
            </div>
        </body>
        </html>
        """

        plain_lines = [heading, "", f"Hi {context.get('customer_name') or 'there'},", "", intro, ""]
        plain_lines.append(f"Date & Time: {when} ({settings.BUSINESS_TIMEZONE})")
        if meeting_link:
            plain_lines.append(f"Join the meeting: {meeting_link}")
        elif instructions:
            plain_lines.extend(["", instructions])

        return f"{heading} - {settings.APP_NAME}", html_content, "\n".join(plain_lines)

    @staticmethod
    def send_booking_status_email(template_key: str, email: str, context: Dict[str, Any]) -> bool:
        subject, html_content, plain_text = EmailService.render_booking_email(template_key, context)
        return EmailService.send_email(
            to_email=email,
            subject=subject,
            html_content=html_content,
            plain_text=plain_text
        )

    @staticmethod
    def send_admin_calendar_alert(operation: str, subject_id: str, error_summary: Dict[str, Any]) -> bool:
        """Plain alert for the administrator; no customer data beyond the record id"""
        rows = "".join(
            f"<tr><td style=\"padding: 4px 8px; font-weight: bold;\">{html.escape(str(key))}</td>"
            f"<td style=\"padding: 4px 8px;\">{html.escape(str(value))}</td></tr>"
            for key, value in error_summary.items()
        )
        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif; color: #333;">
            <h2>Calendar {html.escape(operation)} failed</h2>
            <p>Record <strong>{html.escape(subject_id)}</strong> needs manual calendar follow-up.</p>
            <table style="border-collapse: collapse;">{rows}</table>
        </body>
        </html>
        """
        plain_text = "\n".join(
            [f"Calendar {operation} failed for {subject_id}", ""]
            + [f"{key}: {value}" for key, value in error_summary.items()]
        )
        return EmailService.send_email(
            to_email=settings.ADMIN_ALERT_EMAIL,
            subject=f"[{settings.APP_NAME}] Calendar {operation} failed",
            html_content=html_content,
            plain_text=plain_text
        )
