from unittest.mock import patch

import pytest
from django.core import mail

from procurement.services import notification_service


def test_normalize_recipients_splits_and_drops_blanks():
    assert notification_service.normalize_recipients("a@x.com, ,b@x.com") == [
        "a@x.com",
        "b@x.com",
    ]
    assert notification_service.normalize_recipients(["a@x.com", None, " "]) == ["a@x.com"]
    assert notification_service.normalize_recipients(None) == []


def test_send_email_without_recipients_is_skipped(mailoutbox):
    assert not notification_service.send_email([], "Subject", "Body")
    assert mailoutbox == []


def test_send_email_delivers(mailoutbox):
    assert notification_service.send_email("ops@example.com", " Subject ", "Body")
    assert mailoutbox[0].subject == "Subject"
    assert mailoutbox[0].to == ["ops@example.com"]


def test_send_email_failure_is_swallowed(caplog):
    with patch(
        "procurement.services.notification_service.send_mail",
        side_effect=OSError("smtp down"),
    ):
        assert not notification_service.send_email(["ops@example.com"], "S", "B")
    assert "Failed to send email" in caplog.text


@pytest.mark.django_db
def test_send_email_on_commit_waits_for_commit(django_capture_on_commit_callbacks):
    with django_capture_on_commit_callbacks() as callbacks:
        notification_service.send_email_on_commit(["ops@example.com"], "S", "B")
    assert len(mail.outbox) == 0
    assert len(callbacks) == 1
    callbacks[0]()
    assert len(mail.outbox) == 1


@pytest.mark.django_db
def test_recipients_for_roles(user_factory):
    user_factory("buyer", role="ProcurementSpecialist")
    user_factory("chief", role="scm")
    user_factory("nomail", role="SCM", email="")
    user_factory("nurse", role="Nurse")
    assert notification_service.procurement_recipients() == [
        "buyer@example.com",
        "chief@example.com",
    ]
