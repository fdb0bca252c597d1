"""
CRM - Error taxonomy

Every rejected operation raises one of these before any write happens.
server.py maps them to HTTP status codes.
"""


class CRMError(Exception):
    """Base error, carries a human-readable reason"""
    status_code = 400

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class InvalidInputError(CRMError):
    """Missing or malformed field (e.g. empty comment)"""
    status_code = 400


class PermissionDeniedError(CRMError):
    """Actor is neither admin nor the assignee"""
    status_code = 403


class NotFoundError(CRMError):
    status_code = 404


class InvalidStateError(CRMError):
    """Wrong source state for a transition"""
    status_code = 409


class ConflictError(CRMError):
    """Duplicate of something that must be unique (e.g. pending promotion)"""
    status_code = 409
