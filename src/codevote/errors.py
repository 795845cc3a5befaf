"""Error taxonomy for the ballot engine.

Every rejected action raises a subclass of :class:`VotingError`. Each carries
a short machine-readable ``kind``, the HTTP status the API answers with and a
human-readable message the voter can act on.
"""


class VotingError(Exception):
    kind = "voting_error"
    status = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self):
        return {"error": self.kind, "detail": self.message}


class InvalidCode(VotingError):
    kind = "invalid_code"
    status = 404


class NoActiveElections(VotingError):
    kind = "no_active_elections"
    status = 404


class CodeAlreadyUsed(VotingError):
    kind = "code_already_used"
    status = 409


class AlreadyVoted(VotingError):
    kind = "already_voted"
    status = 409


class NotAccessible(VotingError):
    kind = "not_accessible"
    status = 403


class SelectionCountMismatch(VotingError):
    kind = "selection_count_mismatch"
    status = 400


class SelectionLimitExceeded(VotingError):
    kind = "selection_limit_exceeded"
    status = 400


class UnknownCandidate(VotingError):
    kind = "unknown_candidate"
    status = 400


class DuplicateVote(VotingError):
    kind = "duplicate_vote"
    status = 409


class StoreFailure(VotingError):
    """A database operation failed; the whole submission was rolled back."""

    kind = "store_failure"
    status = 503


class ElectionNotFound(VotingError):
    kind = "election_not_found"
    status = 404


class InvalidCriteria(VotingError):
    kind = "invalid_criteria"
    status = 400


class CodeInUse(VotingError):
    kind = "code_in_use"
    status = 409


class InvalidRequest(VotingError):
    kind = "invalid_request"
    status = 400


class AdminTokenRequired(VotingError):
    kind = "admin_token_required"
    status = 403
