class RelayError(Exception):
    """Base class for failures surfaced at the relay boundary."""

    kind = "relay_error"
    status_code = 500


class InvalidInput(RelayError):
    kind = "invalid_input"
    status_code = 400


class InvalidCode(RelayError):
    kind = "invalid_code"
    status_code = 400


class NotFound(RelayError):
    kind = "not_found"
    status_code = 404


class CodeConflict(RelayError):
    kind = "code_conflict"
    status_code = 409


class StoreFailure(RelayError):
    """Backing store unreachable or transaction aborted; safe to retry."""

    kind = "store_failure"
    status_code = 503
