"""
Shared enumerations for the JMAP protocol engine.
"""

from enum import Enum


class Capability(str, Enum):
    """Capability URIs known to the engine"""

    CORE = "urn:ietf:params:jmap:core"
    MAIL = "urn:ietf:params:jmap:mail"
    SUBMISSION = "urn:ietf:params:jmap:submission"
    VACATION_RESPONSE = "urn:ietf:params:jmap:vacationresponse"
    BLOB = "urn:ietf:params:jmap:blob"
    PRINCIPALS = "urn:ietf:params:jmap:principals"
    QUOTA = "urn:ietf:params:jmap:quota"
    MASKED_EMAIL = "https://www.fastmail.com/dev/maskedemail"

    @classmethod
    def values(cls) -> list[str]:
        """Get all valid values"""
        return [capability.value for capability in cls]


class Operation(str, Enum):
    """Standard per-type methods (RFC 8620 section 5)"""

    GET = "get"
    CHANGES = "changes"
    QUERY = "query"
    QUERY_CHANGES = "queryChanges"
    SET = "set"
    COPY = "copy"

    @classmethod
    def values(cls) -> list[str]:
        """Get all valid values"""
        return [operation.value for operation in cls]


class DataType(str, Enum):
    """Data types the engine can address"""

    CORE = "Core"
    EMAIL = "Email"
    MAILBOX = "Mailbox"
    THREAD = "Thread"
    SEARCH_SNIPPET = "SearchSnippet"
    IDENTITY = "Identity"
    EMAIL_SUBMISSION = "EmailSubmission"
    VACATION_RESPONSE = "VacationResponse"
    BLOB = "Blob"
    PRINCIPAL = "Principal"
    SHARE_NOTIFICATION = "ShareNotification"
    QUOTA = "Quota"
    MASKED_EMAIL = "MaskedEmail"

    @classmethod
    def values(cls) -> list[str]:
        """Get all valid values"""
        return [data_type.value for data_type in cls]


class ResultStatus(str, Enum):
    """Outcome of one method call slot in a batch"""

    SUCCESS = "success"
    METHOD_ERROR = "method_error"
    MALFORMED = "malformed"
    SKIPPED = "skipped"


class SyncStatus(str, Enum):
    """Incremental sync state per (account, data type)"""

    UNSYNCED = "unsynced"
    UP_TO_DATE = "up_to_date"
    SYNCING = "syncing"


class ErrorClass(str, Enum):
    """Recovery policy for a classified failure"""

    RETRYABLE = "retryable"
    PERMANENT = "permanent"
    REAUTHENTICATE = "reauthenticate"
    SAFETY = "safety"


class ExitCode(int, Enum):
    """Process exit codes derived from the error taxonomy"""

    SUCCESS = 0
    TRANSIENT_ERROR = 1
    PERMANENT_ERROR = 2
    SAFETY_REJECTED = 3

    def __str__(self) -> str:
        return self.name.lower()
