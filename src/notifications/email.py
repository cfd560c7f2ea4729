"""
Email alerts via the Resend API.

Sends an HTML message when a coin gets a new actionable signal or its
decision flips into LONG/SHORT. Delivery problems are logged and reported
to the caller as False; they never propagate.
"""

import html
from typing import Optional, Sequence, TYPE_CHECKING, Union

import httpx
import structlog
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.strategy.models import Decision

if TYPE_CHECKING:
    from src.state.database import Database

logger = structlog.get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

DECISION_COLORS = {
    Decision.LONG: "#10b981",
    Decision.SHORT: "#ef4444",
    Decision.WAIT: "#6b7280",
}

DECISION_LABELS = {
    Decision.LONG: "BULLISH (LONG)",
    Decision.SHORT: "BEARISH (SHORT)",
    Decision.WAIT: "WAIT",
}


def format_signal_subject(coin_symbol: str, decision: Decision, score: int) -> str:
    return f"[SIGNAL] {coin_symbol.upper()} - {DECISION_LABELS[decision]} ({score}/100)"


def format_signal_html(
    coin_symbol: str,
    decision: Decision,
    score: int,
    price: float,
    justification: str,
) -> str:
    """Render the alert body. Justification text is HTML-escaped."""
    color = DECISION_COLORS[decision]
    label = DECISION_LABELS[decision]
    symbol = html.escape(coin_symbol.upper())
    return (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; '
        'border: 1px solid #e5e7eb; border-radius: 8px;">'
        f'<h2 style="color: {color}; margin-top: 0;">New signal detected for {symbol}</h2>'
        '<div style="background-color: #f9fafb; padding: 15px; border-radius: 6px; margin-bottom: 20px;">'
        f'<p style="margin: 5px 0;"><strong>Decision:</strong> '
        f'<span style="color: {color}; font-weight: bold;">{label}</span></p>'
        f'<p style="margin: 5px 0;"><strong>Confidence score:</strong> {score}/100</p>'
        f'<p style="margin: 5px 0;"><strong>Price:</strong> ${price:,.8g}</p>'
        "</div>"
        '<div style="margin-bottom: 20px;">'
        '<h3 style="font-size: 16px; margin-bottom: 10px;">Analysis summary</h3>'
        f'<p style="color: #4b5563; line-height: 1.5;">{html.escape(justification)}</p>'
        "</div>"
        '<hr style="border: 0; border-top: 1px solid #e5e7eb; margin: 20px 0;" />'
        '<p style="font-size: 12px; color: #9ca3af; text-align: center;">'
        "This email was sent automatically by the signal engine.</p>"
        "</div>"
    )


class EmailNotifier:
    """
    Signal alert emails through Resend.

    Setup:
    1. Create an API key at resend.com
    2. Verify the sending domain
    3. Set RESEND_API_KEY, ALERT_FROM_EMAIL and ALERT_RECIPIENTS in .env
    """

    RETRY_EXCEPTIONS = (httpx.TransportError,)

    def __init__(
        self,
        api_key: Optional[str],
        from_email: str,
        enabled: bool = True,
        db: Optional["Database"] = None,
        client: Optional[httpx.Client] = None,
        timeout: float = 15.0,
    ):
        """
        Initialize email notifier.

        Args:
            api_key: Resend API key
            from_email: Sender address ("Name <addr@domain>")
            enabled: Whether alerts are sent at all
            db: Optional database for recording delivered alerts
            client: Optional pre-configured httpx client
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.from_email = from_email
        self.enabled = enabled and bool(api_key)
        self._db = db
        self._client = client or httpx.Client(timeout=timeout)

        if self.enabled:
            logger.info("email_notifier_initialized", sender=from_email)
        else:
            logger.warning("email_notifier_disabled")

    def _save_to_dashboard(self, title: str, message: str, coin_symbol: str, recipients: int) -> None:
        """Record a delivered alert for dashboard display."""
        if self._db:
            try:
                self._db.save_notification(
                    type="signal_alert",
                    title=title,
                    message=message,
                    coin_symbol=coin_symbol,
                    recipients=recipients,
                )
            except Exception as e:
                logger.error("notification_save_failed", error=str(e))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(RETRY_EXCEPTIONS),
    )
    def _post(self, payload: dict) -> httpx.Response:
        return self._client.post(
            RESEND_API_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    def send_email(self, to: Union[str, Sequence[str]], subject: str, html_body: str) -> bool:
        """
        Send one email.

        Returns:
            True if Resend accepted the message
        """
        if not self.enabled:
            logger.debug("email_skipped", reason="disabled")
            return False

        recipients = [to] if isinstance(to, str) else list(to)
        if not recipients:
            logger.debug("email_skipped", reason="no_recipients")
            return False

        payload = {
            "from": self.from_email,
            "to": recipients,
            "subject": subject,
            "html": html_body,
        }

        try:
            response = self._post(payload)
        except RetryError as e:
            logger.error("email_send_failed", error=str(e.last_attempt.exception()))
            return False
        except httpx.HTTPError as e:
            logger.error("email_send_failed", error=str(e))
            return False

        if response.status_code >= 400:
            logger.error("email_rejected", status=response.status_code, error=response.text[:500])
            return False

        logger.info("email_sent", subject=subject, recipients=len(recipients))
        return True

    def send_signal_alert(
        self,
        recipients: Union[str, Sequence[str]],
        coin_symbol: str,
        decision: Union[str, Decision],
        score: int,
        price: float,
        justification: str,
    ) -> bool:
        """
        Format and send a signal alert.

        Args:
            recipients: One address or a list of addresses
            coin_symbol: Coin symbol (e.g., "BTC")
            decision: LONG / SHORT / WAIT
            score: Signal score (0-100)
            price: Price at calculation time
            justification: Engine explanation text

        Returns:
            True if the alert was delivered
        """
        decision = Decision(decision)
        subject = format_signal_subject(coin_symbol, decision, score)
        body = format_signal_html(coin_symbol, decision, score, price, justification)

        sent = self.send_email(recipients, subject, body)
        if sent:
            count = 1 if isinstance(recipients, str) else len(recipients)
            self._save_to_dashboard(subject, justification, coin_symbol, count)
        return sent

    def close(self) -> None:
        self._client.close()
