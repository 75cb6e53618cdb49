import sys
from unittest.mock import patch

import pytest
from django.db.utils import OperationalError

from core import readiness


@pytest.fixture(autouse=True)
def clean_readiness():
    readiness.reset()
    yield
    readiness.reset()


def test_wsgi_runs_schema_phase_once():
    sys.modules.pop("procurement_app.wsgi", None)
    with patch("core.readiness.call_command") as call, patch(
        "django.core.wsgi.get_wsgi_application"
    ):
        import procurement_app.wsgi  # noqa: F401

        assert readiness.ensure_schema()

    call.assert_called_once_with("migrate", interactive=False, verbosity=0)
    assert readiness.is_ready()


def test_unavailable_database_leaves_process_not_ready():
    with patch(
        "core.readiness.call_command", side_effect=OperationalError("no database")
    ):
        assert not readiness.ensure_schema()
    assert not readiness.is_ready()


def test_schema_phase_can_be_disabled(settings):
    settings.PROCUREMENT_RUN_MIGRATIONS_ON_STARTUP = False
    with patch("core.readiness.call_command") as call:
        assert readiness.ensure_schema()
    call.assert_not_called()


def test_health_check_reports_readiness(client):
    assert client.get("/healthz").status_code == 503
    readiness.mark_ready()
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.content == b"ok"
