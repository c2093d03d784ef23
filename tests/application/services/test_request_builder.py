import json

import pytest

from jmap_engine.application.services.request_builder import (BatchRequest,
                                                              RequestBuilder)
from jmap_engine.application.services.type_registry import (
    TypeRegistry, UnsupportedMethodError)
from jmap_engine.domain.entities import MethodCall
from jmap_engine.domain.enums import Capability
from jmap_engine.domain.exceptions import (DuplicateClientIdError,
                                           InvalidResultReferenceError,
                                           RequestTooLargeError)
from jmap_engine.domain.value_objects import ResultReference


@pytest.fixture
def builder() -> RequestBuilder:
    return RequestBuilder(registry=TypeRegistry(), max_calls=16)


def _flatten(batches: list[BatchRequest]) -> list[MethodCall]:
    return [call for batch in batches for call in batch.calls]


class TestClientIds:
    def test_add_assigns_sequential_ids(self, builder: RequestBuilder):
        """
        GIVEN an empty builder
        WHEN three calls are added without client ids
        THEN they are numbered c0, c1, c2 in order.
        """
        calls = [builder.add("Mailbox/get", {"accountId": "u1", "ids": None}) for _ in range(3)]

        assert [call.client_id for call in calls] == ["c0", "c1", "c2"]

    def test_add_skips_ids_the_caller_already_used(self, builder: RequestBuilder):
        """
        GIVEN a call added with the explicit client id "c0"
        WHEN another call is added without an id
        THEN the generated id skips "c0".
        """
        builder.add("Mailbox/get", {"accountId": "u1"}, client_id="c0")

        call = builder.add("Mailbox/get", {"accountId": "u1"})

        assert call.client_id == "c1"

    def test_add_rejects_duplicate_id(self, builder: RequestBuilder):
        builder.add("Mailbox/get", {"accountId": "u1"}, client_id="a")

        with pytest.raises(DuplicateClientIdError):
            builder.add("Email/get", {"accountId": "u1"}, client_id="a")

    def test_build_rejects_duplicate_ids_before_transmission(self, builder: RequestBuilder):
        """
        GIVEN two prebuilt calls sharing a client id
        WHEN the sequence is built
        THEN DuplicateClientIdError is raised and no batch is produced.
        """
        calls = [
            MethodCall("Mailbox/get", {"accountId": "u1"}, "x"),
            MethodCall("Email/get", {"accountId": "u1"}, "x"),
        ]

        with pytest.raises(DuplicateClientIdError) as exc_info:
            builder.build(calls)

        assert exc_info.value.details["client_id"] == "x"

    def test_build_ids_are_unique(self, builder: RequestBuilder):
        """
        GIVEN a mix of calls with and without ids
        WHEN built
        THEN every emitted client id is unique.
        """
        calls = [
            MethodCall("Mailbox/get", {"accountId": "u1"}, "c1"),
            MethodCall("Mailbox/get", {"accountId": "u1"}),
            MethodCall("Mailbox/get", {"accountId": "u1"}),
            MethodCall("Mailbox/get", {"accountId": "u1"}, "c0x"),
        ]

        ids = [call.client_id for call in _flatten(builder.build(calls))]

        assert len(ids) == len(set(ids)) == 4
        assert ids[0] == "c1"
        assert ids[3] == "c0x"

    def test_unknown_method_is_rejected(self, builder: RequestBuilder):
        with pytest.raises(UnsupportedMethodError):
            builder.add("Thread/set", {"accountId": "u1"})


class TestResultReferences:
    def test_backward_reference_is_emitted_with_prefix(self, builder: RequestBuilder):
        """
        GIVEN Email/query followed by Email/get referencing its ids
        WHEN the batch is serialized
        THEN the get carries "#ids" with resultOf, name and path.
        """
        query = builder.add("Email/query", {"accountId": "u1"})
        builder.add("Email/get", {"accountId": "u1", "ids": query.ref("/ids")})

        [batch] = builder.build()
        wire = batch.to_wire()

        assert wire["methodCalls"][1] == [
            "Email/get",
            {"accountId": "u1", "#ids": {"resultOf": "c0", "name": "Email/query", "path": "/ids"}},
            "c1",
        ]

    def test_forward_reference_is_rejected(self, builder: RequestBuilder):
        """
        GIVEN a call that references a later call
        WHEN built
        THEN InvalidResultReferenceError names the forward reference.
        """
        calls = [
            MethodCall("Email/get", {"accountId": "u1", "ids": ResultReference("q", "Email/query", "/ids")}, "g"),
            MethodCall("Email/query", {"accountId": "u1"}, "q"),
        ]

        with pytest.raises(InvalidResultReferenceError) as exc_info:
            builder.build(calls)

        assert exc_info.value.details["reason"] == "refers to a later call"

    def test_dangling_reference_is_rejected(self, builder: RequestBuilder):
        calls = [
            MethodCall("Email/get", {"accountId": "u1", "ids": ResultReference("nope", "Email/query", "/ids")}, "g"),
        ]

        with pytest.raises(InvalidResultReferenceError):
            builder.build(calls)

    def test_reference_must_name_the_source_method(self, builder: RequestBuilder):
        """
        GIVEN a reference whose name differs from the referenced call's method
        WHEN built
        THEN it is rejected before transmission.
        """
        calls = [
            MethodCall("Email/query", {"accountId": "u1"}, "q"),
            MethodCall("Email/get", {"accountId": "u1", "ids": ResultReference("q", "Mailbox/query", "/ids")}, "g"),
        ]

        with pytest.raises(InvalidResultReferenceError):
            builder.build(calls)

    def test_self_reference_is_rejected(self, builder: RequestBuilder):
        calls = [
            MethodCall("Email/get", {"accountId": "u1", "ids": ResultReference("g", "Email/get", "/ids")}, "g"),
        ]

        with pytest.raises(InvalidResultReferenceError):
            builder.build(calls)


class TestCapabilities:
    def test_using_is_core_plus_union_in_first_seen_order(self, builder: RequestBuilder):
        calls = [
            MethodCall("Identity/get", {"accountId": "u1"}),
            MethodCall("Email/get", {"accountId": "u1"}),
            MethodCall("Mailbox/get", {"accountId": "u1"}),
        ]

        [batch] = builder.build(calls)

        assert batch.using == [Capability.CORE.value, Capability.SUBMISSION.value, Capability.MAIL.value]

    def test_capability_union_is_idempotent(self, builder: RequestBuilder):
        """
        GIVEN the same data type used many times
        WHEN the capability set is computed
        THEN each capability appears exactly once and core is always present.
        """
        calls = [MethodCall("Email/get", {"accountId": "u1"}) for _ in range(5)]

        using = builder.capabilities_for(calls)

        assert using == [Capability.CORE.value, Capability.MAIL.value]
        assert builder.capabilities_for(calls + calls) == using

    def test_core_only_batch(self, builder: RequestBuilder):
        [batch] = builder.build([MethodCall("Core/echo", {"hello": True})])

        assert batch.using == [Capability.CORE.value]


class TestChunking:
    def test_sequence_within_limit_is_one_batch(self, builder: RequestBuilder):
        calls = [MethodCall("Mailbox/get", {"accountId": "u1"}) for _ in range(16)]

        batches = builder.build(calls)

        assert len(batches) == 1
        assert len(batches[0].calls) == 16

    def test_chunks_preserve_order_and_never_cut_a_reference(self):
        """
        GIVEN seven calls where c2 references c1 and c5 references c3
        WHEN chunked with a limit of three
        THEN the concatenated chunks equal the input and each reference
             lands in the same chunk as its source.
        """
        builder = RequestBuilder(max_calls=3)
        a = builder.add("Mailbox/get", {"accountId": "u1"})
        q1 = builder.add("Email/query", {"accountId": "u1"})
        builder.add("Email/get", {"accountId": "u1", "ids": q1.ref("/ids")})
        q2 = builder.add("Email/query", {"accountId": "u1"})
        builder.add("Mailbox/get", {"accountId": "u1"})
        builder.add("Email/get", {"accountId": "u1", "ids": q2.ref("/ids")})
        builder.add("Identity/get", {"accountId": "u1"})

        batches = builder.build()

        assert [call.client_id for call in _flatten(batches)] == [f"c{i}" for i in range(7)]
        assert all(len(batch.calls) <= 3 for batch in batches)
        for batch in batches:
            ids = set(batch.client_ids)
            for call in batch.calls:
                for reference in call.references():
                    assert reference.result_of in ids
        assert batches[0].client_ids[0] == a.client_id

    def test_latest_legal_cut_is_chosen(self):
        """
        GIVEN four calls where c3 references c2
        WHEN chunked with a limit of three
        THEN the cut falls before c2, not between c2 and c3.
        """
        builder = RequestBuilder(max_calls=3)
        builder.add("Mailbox/get", {"accountId": "u1"})
        builder.add("Mailbox/get", {"accountId": "u1"})
        q = builder.add("Email/query", {"accountId": "u1"})
        builder.add("Email/get", {"accountId": "u1", "ids": q.ref("/ids")})

        batches = builder.build()

        assert [batch.client_ids for batch in batches] == [["c0", "c1"], ["c2", "c3"]]

    def test_linked_run_larger_than_limit_is_rejected(self):
        """
        GIVEN a chain of four calls each referencing the previous one
        WHEN chunked with a limit of three
        THEN RequestTooLargeError reports the run length.
        """
        builder = RequestBuilder(max_calls=3)
        previous = builder.add("Email/query", {"accountId": "u1"})
        for _ in range(3):
            previous = builder.add("Email/query", {"accountId": "u1", "anchor": previous.ref("/ids/0")})

        with pytest.raises(RequestTooLargeError) as exc_info:
            builder.build()

        assert exc_info.value.details == {"max_calls": 3, "required": 4}

    def test_each_chunk_declares_its_own_capabilities(self):
        builder = RequestBuilder(max_calls=1)
        builder.add("Core/echo", {})
        builder.add("Identity/get", {"accountId": "u1"})

        batches = builder.build()

        assert batches[0].using == [Capability.CORE.value]
        assert batches[1].using == [Capability.CORE.value, Capability.SUBMISSION.value]


class TestWireShape:
    def test_to_bytes_is_compact_json(self, builder: RequestBuilder):
        builder.add("Mailbox/get", {"accountId": "u1", "ids": None})

        [batch] = builder.build()
        document = json.loads(batch.to_bytes())

        assert document == {
            "using": [Capability.CORE.value, Capability.MAIL.value],
            "methodCalls": [["Mailbox/get", {"accountId": "u1", "ids": None}, "c0"]],
        }

    def test_created_ids_are_included_when_set(self):
        batch = BatchRequest(using=[Capability.CORE.value], calls=[], created_ids={"k1": "M123"})

        assert batch.to_wire()["createdIds"] == {"k1": "M123"}

    def test_empty_sequence_builds_nothing(self, builder: RequestBuilder):
        assert builder.build([]) == []
