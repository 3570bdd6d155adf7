"""Unit tests for the logging helpers."""

import structlog

from kag.utils.logging import add_severity, bind_scope, clear_scope


class TestLoggingHelpers:
    def test_add_severity_uppercases_method_name(self):
        event = add_severity(None, "warning", {"event": "x"})
        assert event == {"event": "x", "severity": "WARNING"}

    def test_bind_scope_sets_and_clear_scope_removes_context(self):
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request="r-1")

        bind_scope("proj-1", "acct-1")
        assert structlog.contextvars.get_contextvars() == {
            "request": "r-1",
            "project_id": "proj-1",
            "account_scope_id": "acct-1",
        }

        clear_scope()
        assert structlog.contextvars.get_contextvars() == {"request": "r-1"}
        structlog.contextvars.clear_contextvars()
