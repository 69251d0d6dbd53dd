from structlog.testing import capture_logs

from clinicscribe.core.logging import AuditLogger


def test_record_change_event():
    audit = AuditLogger(enabled=True)

    with capture_logs() as logs:
        audit.log_record_change("doctor-1", "session-1", "updated", fields=["summary"])

    (entry,) = logs
    assert entry["event"] == "record_change"
    assert entry["action"] == "updated"
    assert entry["fields"] == ["summary"]
    assert "timestamp" in entry


def test_error_event_uses_error_level():
    audit = AuditLogger(enabled=True)

    with capture_logs() as logs:
        audit.log_error("req-1", "upstream_error", "Failed to upload file to storage.")

    assert logs[0]["log_level"] == "error"


def test_disabled_audit_logger_emits_nothing():
    audit = AuditLogger(enabled=False)

    with capture_logs() as logs:
        audit.log_api_request("req-1", "/api/sessions", "GET", 200, 5)
        audit.log_external_api_call("storage", "put_object", True, 12)

    assert logs == []
