import os
from dotenv import load_dotenv
import logging
from html import escape
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

load_dotenv()

logger = logging.getLogger(__name__)

# SendGrid configuration
SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY')
SENDER_EMAIL = os.getenv('SENDER_EMAIL')
# Seconds before a SendGrid call is abandoned
SENDGRID_TIMEOUT = float(os.getenv('SENDGRID_TIMEOUT', 5))

def verify_sendgrid_credentials():
    """Verify SendGrid credentials are properly configured"""
    if not SENDGRID_API_KEY:
        logger.warning("SendGrid API key not found in environment variables")
        return False

    if not SENDER_EMAIL:
        logger.warning("Sender email not found in environment variables")
        return False

    return True

def send_email(receiver_email, subject, html_content):
    """Send one email through SendGrid.

    Returns True on success. Every failure is logged and reported as False;
    callers treat notification as best effort and never retry.
    """
    if not receiver_email:
        return False

    if not verify_sendgrid_credentials():
        logger.warning(f"Email '{subject}' to {receiver_email} skipped: SendGrid is not configured")
        return False

    try:
        sg = SendGridAPIClient(SENDGRID_API_KEY)
        sg.client.timeout = SENDGRID_TIMEOUT
        message = Mail(
            from_email=Email(SENDER_EMAIL),
            to_emails=To(receiver_email),
            subject=subject,
            html_content=Content("text/html", html_content)
        )

        logger.info(f"Sending email '{subject}' to: {receiver_email}")
        response = sg.send(message)
        logger.info(f"Email sent successfully. Status code: {response.status_code}")
        return True
    except Exception as e:
        logger.error(f"Error sending email to {receiver_email}: {str(e)}")
        return False

def _wrap(body):
    return f"""
    <html>
        <body style="font-family: Arial, sans-serif; padding: 20px; max-width: 600px; margin: 0 auto;">
            {body}
            <hr style="border: 1px solid #eee; margin: 20px 0;">
            <p style="color: #666; font-size: 12px;">This is an automated message, please do not reply.</p>
        </body>
    </html>
    """

def notify_request_approved(slot_request):
    user = slot_request.user
    body = f"""
        <h2 style="color: #333;">Parking Slot Approved</h2>
        <p>Dear {escape(user.name)},</p>
        <p>Your parking slot request for vehicle <strong>{escape(slot_request.vehicle.plate_number)}</strong> has been approved.</p>
        <div style="background-color: #f4f4f4; padding: 15px; border-radius: 5px; text-align: center; font-size: 24px; margin: 20px 0;">
            Slot <strong>{escape(slot_request.assigned_slot_number)}</strong>
        </div>
        <p>Location: {escape(slot_request.slot.location) if slot_request.slot else 'N/A'}</p>
    """
    return send_email(user.email, 'Parking Slot Approved!', _wrap(body))

def notify_request_rejected(slot_request, reason=None):
    user = slot_request.user
    reason_html = f"<p><strong>Reason:</strong> {escape(reason)}</p>" if reason else ""
    body = f"""
        <h2 style="color: #333;">Parking Slot Request Rejected</h2>
        <p>Dear {escape(user.name)},</p>
        <p>We regret to inform you that your parking slot request for vehicle <strong>{escape(slot_request.vehicle.plate_number)}</strong> has been rejected.</p>
        {reason_html}
        <p>Please contact support if you have any questions.</p>
    """
    return send_email(user.email, 'Parking Slot Request Rejected', _wrap(body))
