"""Election error taxonomy.

Every error carries a machine-readable ``kind`` and the HTTP status category
the views answer with. Messages are safe to show to the submitting user;
``PersistenceError`` carries no internal detail.
"""


class ElectionError(Exception):
    kind: str = "ElectionError"
    status_code: int = 400


class ElectionUnavailableError(ElectionError):
    kind = "ElectionUnavailable"
    status_code = 403


class AlreadyVotedError(ElectionError):
    kind = "AlreadyVoted"
    status_code = 409


class NoZoneAssignedError(ElectionError):
    kind = "NoZoneAssigned"
    status_code = 403


class ZoneMismatchError(ElectionError):
    kind = "ZoneMismatch"


class InvalidCandidateError(ElectionError):
    kind = "InvalidCandidate"


class DuplicateSelectionError(ElectionError):
    kind = "DuplicateSelection"


class TooManySelectionsError(ElectionError):
    kind = "TooManySelections"


class MalformedBallotError(ElectionError):
    """Raised when a ballot payload does not have the expected shape at all."""

    kind = "MalformedBallot"


class VoterNotFoundError(ElectionError):
    kind = "VoterNotFound"
    status_code = 404


class AmbiguousVoterIdError(ElectionError):
    kind = "AmbiguousVoterId"


class OfflineVoteAlreadyExistsError(ElectionError):
    kind = "OfflineVoteAlreadyExists"
    status_code = 409


class OfflineVoteAlreadyMergedError(ElectionError):
    kind = "OfflineVoteAlreadyMerged"
    status_code = 409


class AlreadyVotedOnlineError(ElectionError):
    kind = "AlreadyVotedOnline"
    status_code = 409


class ElectionStateError(ElectionError):
    """Raised for lifecycle transitions that are not allowed from the current status."""

    kind = "ElectionState"
    status_code = 409


class PersistenceError(ElectionError):
    kind = "PersistenceError"
    status_code = 500


__all__ = [
    "AlreadyVotedError",
    "AlreadyVotedOnlineError",
    "AmbiguousVoterIdError",
    "DuplicateSelectionError",
    "ElectionError",
    "ElectionStateError",
    "ElectionUnavailableError",
    "InvalidCandidateError",
    "MalformedBallotError",
    "NoZoneAssignedError",
    "OfflineVoteAlreadyExistsError",
    "OfflineVoteAlreadyMergedError",
    "PersistenceError",
    "TooManySelectionsError",
    "VoterNotFoundError",
    "ZoneMismatchError",
]
