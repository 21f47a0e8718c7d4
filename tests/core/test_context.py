"""Tests for request context binding and log redaction."""

from uuid import uuid4

from src.core.context import (
    RequestContext,
    clear_context,
    get_context,
    get_request_id,
    set_request_id,
)
from src.core.logging import filter_sensitive_data


class TestRequestContext:
    def setup_method(self) -> None:
        clear_context()

    def teardown_method(self) -> None:
        clear_context()

    def test_keeps_current_request_id(self) -> None:
        set_request_id("req-1")
        learner_id = uuid4()

        with RequestContext(user_id=learner_id, course_id="c1"):
            context = get_context()

        assert context["request_id"] == "req-1"
        assert context["user_id"] == str(learner_id)
        assert context["course_id"] == "c1"

    def test_restores_previous_values(self) -> None:
        set_request_id("req-1")

        with RequestContext(user_id="u1"):
            pass

        assert get_context() == {"request_id": "req-1"}

    def test_generates_request_id_outside_requests(self) -> None:
        with RequestContext(course_id="c1"):
            assert get_request_id()
        assert get_request_id() == ""


class TestFilterSensitiveData:
    def test_answers_are_counted_not_logged(self) -> None:
        event = filter_sensitive_data(
            None, "info", {"event": "quiz_submitted", "answers": [0, "x", 2]}
        )
        assert event["answers"] == "<3 items>"

    def test_submission_text_redacted(self) -> None:
        event = filter_sensitive_data(None, "info", {"submission_text": "my essay"})
        assert event["submission_text"] == "<redacted>"

    def test_token_masked(self) -> None:
        event = filter_sensitive_data(None, "info", {"access_token": "abcdefghij"})
        assert event["access_token"] == "ab******ij"

    def test_nested_values(self) -> None:
        event = filter_sensitive_data(
            None, "info", {"payload": {"password": "x", "score": 85}}
        )
        assert event["payload"] == {"password": "***", "score": 85}
