"""Best-effort email notifications.

Sending is advisory: failures are logged and swallowed so that the state
change that triggered a notification is never rolled back because of it.
"""

import logging
from typing import Iterable, List, Optional, Union

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.db import transaction

logger = logging.getLogger(__name__)

Recipients = Union[str, Iterable[Optional[str]], None]


def normalize_recipients(recipients: Recipients) -> List[str]:
    if not recipients:
        return []
    if isinstance(recipients, str):
        values = recipients.split(",")
    else:
        values = list(recipients)
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


def send_email(recipients: Recipients, subject: str, body: str) -> bool:
    """Send a plain-text email; return ``True`` only if it was handed off."""

    to = normalize_recipients(recipients)
    if not to:
        logger.warning("send_email called without any recipients: %s", subject)
        return False
    try:
        send_mail(
            subject=subject.strip(),
            message=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=to,
        )
    except Exception:
        logger.exception("Failed to send email '%s' to %s", subject, ", ".join(to))
        return False
    logger.info("Email '%s' sent to %s", subject, ", ".join(to))
    return True


def send_email_on_commit(recipients: Recipients, subject: str, body: str) -> None:
    """Queue an email to be sent once the surrounding transaction commits."""

    transaction.on_commit(lambda: send_email(recipients, subject, body))


def recipients_for_roles(roles: Iterable[str]) -> List[str]:
    """Emails of active users whose staff role is one of ``roles``."""

    wanted = {r.lower() for r in roles}
    if not wanted:
        return []
    User = get_user_model()
    users = (
        User.objects.filter(is_active=True, staff_profile__isnull=False)
        .exclude(email="")
        .select_related("staff_profile")
    )
    return sorted(
        {u.email for u in users if (u.staff_profile.role or "").lower() in wanted}
    )


def procurement_recipients() -> List[str]:
    return recipients_for_roles(settings.PROCUREMENT_NOTIFICATION_ROLES)
