"""
Response demultiplexer.

Maps each entry of ``methodResponses`` back to the call that produced it
and attaches a status and classification to every call of the batch.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Iterator

from pydantic import ValidationError

from jmap_engine.application.services.error_classifier import ErrorClassifier
from jmap_engine.application.services.request_builder import BatchRequest
from jmap_engine.domain.entities import MethodResult
from jmap_engine.domain.enums import ErrorClass, ResultStatus
from jmap_engine.domain.exceptions import (MethodFailure, ProtocolViolation,
                                           RequestRejected)
from jmap_engine.domain.value_objects import ErrorClassification
from jmap_engine.schemas import ProblemDetails
from jmap_engine.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

ERROR_RESPONSE = "error"


@dataclass
class DemuxedResponse:
    """All call results of one batch, in call order"""

    results: dict[str, MethodResult] = field(default_factory=dict)
    session_state: str | None = None
    created_ids: dict[str, str] = field(default_factory=dict)

    def __getitem__(self, client_id: str) -> MethodResult:
        return self.results[client_id]

    def __iter__(self) -> Iterator[MethodResult]:
        return iter(self.results.values())

    def __len__(self) -> int:
        return len(self.results)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results.values())

    def failures(self) -> list[MethodResult]:
        return [result for result in self.results.values() if not result.ok]


class ResponseDemultiplexer:
    """Correlates a response document with the batch that was sent"""

    def __init__(self, classifier: ErrorClassifier | None = None):
        self.classifier = classifier or ErrorClassifier()

    def parse(self, raw: bytes) -> dict[str, Any]:
        """
        Decode a response body.

        Raises:
            ProtocolViolation: The body is not a JSON object
            RequestRejected: The body is a request-level problem document
        """
        try:
            document = json.loads(raw)
        except ValueError as e:
            raise ProtocolViolation(f"Response is not JSON: {e}") from e
        if not isinstance(document, dict):
            raise ProtocolViolation("Response document is not an object")

        if "methodResponses" not in document and "type" in document:
            try:
                problem = ProblemDetails.model_validate(document)
            except ValidationError as e:
                raise ProtocolViolation(f"Malformed problem document: {e}") from e
            raise RequestRejected(problem.type, problem.detail, problem.status, problem.limit)
        return document

    def demux(self, batch: BatchRequest, document: dict[str, Any]) -> DemuxedResponse:
        """
        Build one MethodResult per call of ``batch``.

        Raises:
            ProtocolViolation: Responses are malformed, unknown, out of order,
                mismatched, or missing before the first method error
        """
        responses = document.get("methodResponses")
        if not isinstance(responses, list):
            raise ProtocolViolation("Response has no methodResponses array")

        positions = {call.client_id: index for index, call in enumerate(batch.calls)}
        results: dict[str, MethodResult] = {}
        last_index = -1

        for entry in responses:
            name, arguments, client_id = self._unpack(entry)
            index = positions.get(client_id)
            if index is None:
                raise ProtocolViolation(f"Response for unknown client id {client_id!r}", client_id=client_id)
            if index < last_index:
                raise ProtocolViolation(
                    f"Response for {client_id} arrived after a later call's response", client_id=client_id
                )
            last_index = index

            if client_id in results:
                # Additional responses for the same call, e.g. Email/copy's implicit Email/set
                if not isinstance(arguments, dict):
                    raise ProtocolViolation(f"Implicit {name} for {client_id} has non-object arguments")
                results[client_id].implicit.append((name, arguments))
                continue

            call = batch.calls[index]
            if name != call.name and name != ERROR_RESPONSE:
                raise ProtocolViolation(
                    f"Response {name} does not match call {call.name} [{client_id}]",
                    client_id=client_id,
                    expected=call.name,
                    received=name,
                )
            results[client_id] = self._result(call.name, client_id, name, arguments)

        ordered = self._fill_missing(batch, results)

        session_state = document.get("sessionState")
        created_ids = document.get("createdIds") or {}
        if not isinstance(created_ids, dict):
            raise ProtocolViolation("createdIds is not an object")

        return DemuxedResponse(
            results=ordered,
            session_state=session_state if isinstance(session_state, str) else None,
            created_ids=dict(created_ids),
        )

    @staticmethod
    def _unpack(entry: Any) -> tuple[str, Any, str]:
        if not isinstance(entry, list) or len(entry) != 3:
            raise ProtocolViolation(f"Malformed invocation: {entry!r}")
        name, arguments, client_id = entry
        if not isinstance(name, str) or not isinstance(client_id, str):
            raise ProtocolViolation(f"Malformed invocation: {entry!r}")
        return name, arguments, client_id

    def _result(self, method: str, client_id: str, name: str, arguments: Any) -> MethodResult:
        if not isinstance(arguments, dict):
            logger.warning("Response to %s [%s] has non-object arguments", method, client_id)
            return MethodResult(
                name=method,
                client_id=client_id,
                status=ResultStatus.MALFORMED,
                error=MethodFailure("malformed", method, client_id, "arguments are not an object"),
                classification=ErrorClassification(ErrorClass.PERMANENT, "malformed"),
            )

        if name == ERROR_RESPONSE:
            error_type = arguments.get("type")
            if not isinstance(error_type, str):
                raise ProtocolViolation(f"Error response for {client_id} has no type", client_id=client_id)
            failure = MethodFailure(error_type, method, client_id, arguments.get("description"), arguments)
            logger.info("Method error: %s", failure.message)
            return MethodResult(
                name=method,
                client_id=client_id,
                status=ResultStatus.METHOD_ERROR,
                payload=arguments,
                error=failure,
                classification=self.classifier.classify_method(error_type, arguments),
            )

        return MethodResult(name=method, client_id=client_id, status=ResultStatus.SUCCESS, payload=arguments)

    @staticmethod
    def _fill_missing(batch: BatchRequest, results: dict[str, MethodResult]) -> dict[str, MethodResult]:
        first_error = next(
            (
                index
                for index, call in enumerate(batch.calls)
                if call.client_id in results and results[call.client_id].status == ResultStatus.METHOD_ERROR
            ),
            None,
        )

        ordered: dict[str, MethodResult] = {}
        for index, call in enumerate(batch.calls):
            result = results.get(call.client_id)
            if result is None:
                if first_error is None or index < first_error:
                    raise ProtocolViolation(f"No response for {call.name} [{call.client_id}]", client_id=call.client_id)
                result = MethodResult(
                    name=call.name,
                    client_id=call.client_id,
                    status=ResultStatus.SKIPPED,
                    error=MethodFailure("skipped", call.name, call.client_id, "not executed after an earlier error"),
                    classification=ErrorClassification(ErrorClass.PERMANENT, "skipped"),
                )
            ordered[call.client_id] = result
        return ordered
