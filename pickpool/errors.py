"""
Error taxonomy for the pick pool.

Scoring itself never fails: an unfinished game is a ``pending`` outcome, not
an error. The classes below cover everything that can go wrong around it.
"""


class PickPoolError(Exception):
    """Base class for all pick pool errors"""

    status_code = 500

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self):
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PickPoolError):
    """A pick set or admin combination that cannot be scored as submitted"""

    status_code = 422


class NotFoundError(PickPoolError):
    """A referenced game, participant or pick set does not exist"""

    status_code = 404


class ConflictError(PickPoolError):
    """Precedence cannot be resolved without an admin decision"""

    status_code = 409


class TransientStorageError(PickPoolError):
    """A storage read/write failed during recompute and may be retried"""

    status_code = 503
