import pytest
from freezegun import freeze_time

from jmap_engine.application.services.error_classifier import (
    ErrorClassifier, exit_code, parse_retry_after)
from jmap_engine.domain.enums import ErrorClass, ExitCode
from jmap_engine.domain.exceptions import (AuthenticationRequiredError,
                                           MethodFailure, ProtocolViolation,
                                           RequestRejected,
                                           SafetyRejectedError,
                                           TransportFailure)
from jmap_engine.domain.value_objects import ErrorClassification

FROZEN_TIME = "2024-03-01T12:00:00Z"


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier()


class TestMethodErrors:
    @pytest.mark.parametrize(
        "error_type,expected",
        [
            ("serverUnavailable", ErrorClass.RETRYABLE),
            ("serverPartialFail", ErrorClass.RETRYABLE),
            ("rateLimit", ErrorClass.RETRYABLE),
            ("serverFail", ErrorClass.PERMANENT),
            ("invalidArguments", ErrorClass.PERMANENT),
            ("cannotCalculateChanges", ErrorClass.PERMANENT),
            ("stateMismatch", ErrorClass.PERMANENT),
            ("somethingNew", ErrorClass.PERMANENT),
        ],
    )
    def test_method_error_table(self, classifier, error_type, expected):
        assert classifier.classify_method(error_type).error_class == expected

    def test_account_errors_request_session_refresh(self, classifier):
        """
        GIVEN an accountNotFound method error
        WHEN classified
        THEN it is permanent but hints that the cached session is outdated.
        """
        classification = classifier.classify_method("accountNotFound")

        assert classification.error_class == ErrorClass.PERMANENT
        assert classification.refresh_session is True

    def test_rate_limit_carries_retry_after(self, classifier):
        classification = classifier.classify_method("rateLimit", {"retryAfter": 12})

        assert classification.retry_after == 12.0
        assert classification.is_retryable

    def test_invalidating_errors(self):
        assert ErrorClassifier.invalidates_state("cannotCalculateChanges")
        assert ErrorClassifier.invalidates_state("tooManyChanges")
        assert not ErrorClassifier.invalidates_state("serverFail")


class TestObjectErrors:
    @pytest.mark.parametrize("error_type", ["forbiddenFrom", "forbiddenToSend", "forbiddenMailFrom"])
    def test_sending_refusals_are_safety_relevant(self, classifier, error_type):
        assert classifier.classify_object(error_type).error_class == ErrorClass.SAFETY

    def test_unknown_object_error_is_permanent(self, classifier):
        assert classifier.classify_object("overQuota").error_class == ErrorClass.PERMANENT


class TestRaisedErrors:
    def test_unauthorized_requires_reauthentication(self, classifier):
        classification = classifier.classify(AuthenticationRequiredError())

        assert classification.error_class == ErrorClass.REAUTHENTICATE
        assert exit_code(classification) == ExitCode.TRANSIENT_ERROR

    def test_transport_failure_is_retryable(self, classifier):
        classification = classifier.classify(TransportFailure("boom", status_code=503, retry_after=5))

        assert classification.error_class == ErrorClass.RETRYABLE
        assert classification.error_type == "http503"
        assert classification.retry_after == 5

    def test_request_rejected_is_permanent(self, classifier):
        error = RequestRejected("urn:ietf:params:jmap:error:limit", "too many calls", 400, "maxCallsInRequest")

        classification = classifier.classify(error)

        assert classification.error_class == ErrorClass.PERMANENT
        assert exit_code(classification) == ExitCode.PERMANENT_ERROR

    def test_method_failure_is_classified_by_type(self, classifier):
        error = MethodFailure("serverUnavailable", "Email/get", "c0")

        assert classifier.classify(error).error_class == ErrorClass.RETRYABLE

    def test_protocol_violation_is_never_retried(self, classifier):
        classification = classifier.classify(ProtocolViolation("mismatch"))

        assert classification.error_class == ErrorClass.PERMANENT
        assert not classification.is_retryable

    def test_safety_rejection_maps_to_exit_code_3(self, classifier):
        classification = classifier.classify(SafetyRejectedError())

        assert exit_code(classification) == ExitCode.SAFETY_REJECTED
        assert int(exit_code(classification)) == 3

    def test_foreign_exception_is_not_classified(self, classifier):
        with pytest.raises(TypeError):
            classifier.classify(KeyError("x"))


class TestRetryAfter:
    def test_delta_seconds(self):
        assert parse_retry_after("120") == 120.0
        assert parse_retry_after(3) == 3.0

    def test_absent_or_garbage(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("soon") is None

    @freeze_time(FROZEN_TIME)
    def test_http_date(self):
        """
        GIVEN a Retry-After HTTP-date 90 seconds in the future
        WHEN parsed at a frozen time
        THEN 90 seconds are returned.
        """
        assert parse_retry_after("Fri, 01 Mar 2024 12:01:30 GMT") == 90.0

    @freeze_time(FROZEN_TIME)
    def test_http_date_in_the_past_is_zero(self):
        assert parse_retry_after("Fri, 01 Mar 2024 11:00:00 GMT") == 0.0


def test_exit_code_for_success():
    assert exit_code(None) == ExitCode.SUCCESS
    assert str(ExitCode.SAFETY_REJECTED) == "safety_rejected"


def test_exit_code_table():
    assert exit_code(ErrorClassification(ErrorClass.RETRYABLE, "x")) == ExitCode.TRANSIENT_ERROR
