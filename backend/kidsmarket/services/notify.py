import logging
from typing import Any, Dict, Optional

from ..config import get_server_secret

log = logging.getLogger("uvicorn.error")


# --- SendGrid Email ---
def sendgrid_enabled() -> bool:
    return bool(get_server_secret("SENDGRID_API_KEY") and get_server_secret("SENDGRID_FROM"))


def send_email_sync(to: str, subject: str, content_text: Optional[str] = None, content_html: Optional[str] = None) -> None:
    if not sendgrid_enabled():
        raise RuntimeError("SendGrid not configured: set SENDGRID_API_KEY and SENDGRID_FROM")
    # Lazy import; install the "notify" extra to send mail
    from sendgrid import SendGridAPIClient  # type: ignore
    from sendgrid.helpers.mail import Mail, Email, To, Content  # type: ignore

    from_email = Email(get_server_secret("SENDGRID_FROM"))
    to_email = To(to)
    # prefer HTML if provided
    if content_html:
        content = Content("text/html", content_html)
    else:
        content = Content("text/plain", content_text or "")

    mail = Mail(from_email, to_email, subject, content)
    sg = SendGridAPIClient(get_server_secret("SENDGRID_API_KEY"))
    sg.send(mail)


def _format_amount(amount: Any, currency: Optional[str]) -> str:
    try:
        return f"{float(amount):.2f} {(currency or '').upper()}".strip()
    except (TypeError, ValueError):
        return str(amount)


def send_sale_notifications(listing: Dict[str, Any], txn: Dict[str, Any]) -> None:
    """Email the buyer a receipt and the seller a sold notice. Runs as a background task."""
    if not sendgrid_enabled():
        return
    title = listing.get("title") or "your item"
    amount = _format_amount(txn.get("amount"), txn.get("currency"))
    messages = []
    buyer_email = txn.get("buyerEmail")
    if buyer_email:
        messages.append((buyer_email, f"Purchase confirmed: {title}", f"You bought \"{title}\" for {amount}. The seller has been notified."))
    # listings store the seller's email as their display name
    seller_email = listing.get("seller")
    if seller_email and "@" in seller_email:
        messages.append((seller_email, f"Sold: {title}", f"\"{title}\" was just sold for {amount}."))
    for to, subject, body in messages:
        try:
            send_email_sync(to, subject, content_text=body)
        except Exception:
            # notification is best-effort; the sale itself is already recorded
            log.exception("Sale notification to %s failed for listing %s", to, listing.get("_id"))
