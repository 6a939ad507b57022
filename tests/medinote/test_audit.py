import json
import logging

from src.medinote.services.audit.service import AuditService


def test_audit_event_is_logged_as_json(caplog):
    service = AuditService()
    with caplog.at_level(logging.INFO, logger="audit"):
        event = service.log_event(
            action="finalize_session",
            resource_type="recording_session",
            resource_id="s-1",
            subject="alice@example.com",
            extra={"chunk_count": 2},
        )

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["action"] == "finalize_session"
    assert payload["subject"] == "alice@example.com"
    assert payload["extra"] == {"chunk_count": 2}
    assert event.resource_id == "s-1"


def test_unserializable_extra_is_dropped(caplog):
    with caplog.at_level(logging.INFO, logger="audit"):
        AuditService().log_event(action="x", resource_type="y", extra={"bad": object()})

    payload = json.loads(caplog.records[-1].getMessage())
    assert payload["extra"] is None
