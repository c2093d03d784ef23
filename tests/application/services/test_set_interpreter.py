from concurrent.futures import ThreadPoolExecutor

import pytest

from jmap_engine.application.services.set_interpreter import (
    SetOutcomeInterpreter, TempIdResolver)
from jmap_engine.domain.entities import MethodResult
from jmap_engine.domain.enums import ErrorClass, ResultStatus
from jmap_engine.domain.exceptions import (NotYetCreatedError,
                                           ProtocolViolation)
from jmap_engine.domain.value_objects import ResultReference


@pytest.fixture
def interpreter() -> SetOutcomeInterpreter:
    return SetOutcomeInterpreter()


def _set_result(payload: dict, name: str = "Email/set") -> MethodResult:
    return MethodResult(name=name, client_id="c0", status=ResultStatus.SUCCESS, payload=payload)


class TestSetOutcomeInterpreter:
    def test_partial_failure_is_isolated_per_object(self, interpreter):
        """
        GIVEN a set call creating two objects where one is rejected
        WHEN the result is interpreted
        THEN the success and the failure are reported independently.
        """
        payload = {
            "accountId": "u1",
            "oldState": "s1",
            "newState": "s2",
            "created": {"k1": {"id": "M1", "blobId": "B1"}},
            "notCreated": {"k2": {"type": "invalidProperties", "properties": ["subject"]}},
        }

        outcome = interpreter.interpret(_set_result(payload))

        assert outcome.created["k1"].id == "M1"
        assert outcome.created["k1"].get("blobId") == "B1"
        failure = outcome.not_created["k2"]
        assert failure.error_type == "invalidProperties"
        assert failure.properties == ("subject",)
        assert failure.classification.error_class == ErrorClass.PERMANENT
        assert outcome.new_state == "s2"
        assert outcome.created_ids() == {"k1": "M1"}

    def test_updates_and_destroys(self, interpreter):
        payload = {
            "accountId": "u1",
            "newState": "s3",
            "updated": {"M1": None, "M2": {"size": 10}},
            "notUpdated": {"M3": {"type": "notFound"}},
            "destroyed": ["M4"],
            "notDestroyed": {"M5": {"type": "forbidden", "description": "read-only"}},
        }

        outcome = interpreter.interpret(_set_result(payload))

        assert outcome.updated["M1"] is None
        assert outcome.updated["M2"].get("size") == 10
        assert outcome.destroyed == ["M4"]
        assert outcome.not_destroyed["M5"].description == "read-only"
        assert {f.id for f in outcome.failures()} == {"M3", "M5"}

    def test_submission_errors_are_safety_classified(self, interpreter):
        payload = {"accountId": "u1", "notCreated": {"send": {"type": "forbiddenToSend"}}}

        outcome = interpreter.interpret(_set_result(payload, "EmailSubmission/set"))

        assert outcome.not_created["send"].classification.error_class == ErrorClass.SAFETY

    def test_rate_limited_object_carries_retry_after(self, interpreter):
        payload = {"accountId": "u1", "notCreated": {"k1": {"type": "rateLimit", "retryAfter": 30}}}

        outcome = interpreter.interpret(_set_result(payload))

        classification = outcome.not_created["k1"].classification
        assert classification.error_class == ErrorClass.RETRYABLE
        assert classification.retry_after == 30.0
        assert outcome.not_created["k1"].extra == {"retryAfter": 30}

    def test_id_in_both_maps_is_a_violation(self, interpreter):
        """
        GIVEN a payload reporting the same id as destroyed and not destroyed
        WHEN interpreted
        THEN ProtocolViolation is raised.
        """
        payload = {"accountId": "u1", "destroyed": ["M1"], "notDestroyed": {"M1": {"type": "notFound"}}}

        with pytest.raises(ProtocolViolation):
            interpreter.interpret(_set_result(payload))

    def test_created_entry_without_id_is_a_violation(self, interpreter):
        payload = {"accountId": "u1", "created": {"k1": {"blobId": "B1"}}}

        with pytest.raises(ProtocolViolation):
            interpreter.interpret(_set_result(payload))

    def test_applies_to_set_like_methods(self):
        assert SetOutcomeInterpreter.applies_to("Mailbox/set")
        assert SetOutcomeInterpreter.applies_to("Email/copy")
        assert SetOutcomeInterpreter.applies_to("Email/import")
        assert not SetOutcomeInterpreter.applies_to("Email/get")


class TestTempIdResolver:
    def test_resolves_registered_creation_id(self):
        """
        GIVEN a creation id confirmed by the server
        WHEN resolved with or without the reference prefix
        THEN the permanent id is returned.
        """
        resolver = TempIdResolver()
        resolver.register("k1", "M1")

        assert resolver.resolve_temp_id("k1") == "M1"
        assert resolver.resolve_temp_id("#k1") == "M1"

    def test_unconfirmed_creation_id_fails(self):
        with pytest.raises(NotYetCreatedError):
            TempIdResolver().resolve_temp_id("#k9")

    def test_conflicting_registration_is_a_violation(self):
        resolver = TempIdResolver()
        resolver.register("k1", "M1")

        with pytest.raises(ProtocolViolation):
            resolver.register("k1", "M2")

    def test_rewrite_replaces_known_creation_ids_only(self):
        """
        GIVEN k1 confirmed as M1
        WHEN arguments referring to #k1 and #k2 are rewritten
        THEN #k1 becomes M1 in values and map keys, and #k2 is left for the server.
        """
        resolver = TempIdResolver()
        resolver.register("k1", "M1")
        reference = ResultReference("c0", "Email/query", "/ids")
        arguments = {
            "accountId": "u1",
            "update": {"#k1": {"mailboxIds/#k2": True}},
            "emailIds": ["#k1", "#k2", "plain"],
            "ids": reference,
        }

        rewritten = resolver.rewrite(arguments)

        assert rewritten["update"] == {"M1": {"mailboxIds/#k2": True}}
        assert rewritten["emailIds"] == ["M1", "#k2", "plain"]
        assert rewritten["ids"] is reference
        assert arguments["emailIds"][0] == "#k1"

    def test_as_created_ids(self):
        resolver = TempIdResolver()
        resolver.register_all({"k1": "M1", "k2": "M2"})

        assert resolver.as_created_ids() == {"k1": "M1", "k2": "M2"}
        assert "k1" in resolver

    def test_concurrent_register_and_rewrite(self):
        """
        GIVEN creation ids registered from several threads
        WHEN arguments are rewritten while registration is under way
        THEN each reference is either untouched or its confirmed id, and no
             registration is lost.
        """
        resolver = TempIdResolver()
        creation_ids = [f"k{i}" for i in range(200)]
        arguments = {"emailIds": [f"#{creation_id}" for creation_id in creation_ids]}

        with ThreadPoolExecutor(max_workers=4) as pool:
            registered = [pool.submit(resolver.register, cid, f"M{cid}") for cid in creation_ids]
            rewritten = [pool.submit(resolver.rewrite, arguments) for _ in range(20)]

        for future in rewritten:
            for cid, value in zip(creation_ids, future.result()["emailIds"]):
                assert value in (f"#{cid}", f"M{cid}")
        assert all(future.exception() is None for future in registered)
        assert len(resolver) == len(creation_ids)
        assert "k199" in resolver
