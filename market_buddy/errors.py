from __future__ import annotations


class OracleError(RuntimeError):
    """Base class for failures of an external text-understanding service."""


class OracleUnavailable(OracleError):
    """Network error, timeout, or non-2xx answer from an oracle."""


class OracleResponseMalformed(OracleError):
    """Oracle answered, but not with the JSON shape we asked for."""


class SessionError(RuntimeError):
    pass


class InvalidSelection(SessionError):
    pass


class PendingSelectionsRemain(SessionError):
    pass


class SessionClosed(SessionError):
    pass
