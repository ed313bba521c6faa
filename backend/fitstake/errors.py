from __future__ import annotations


class FitstakeError(Exception):
    """Base for every outcome the core reports to its callers.

    `status_code` is the HTTP status the API layer renders; `code` is the
    stable machine-readable name clients switch on.
    """
    status_code = 500
    code = "error"

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.code)
        self.detail = detail or self.code


# ---------- validation ----------

class ValidationFailed(FitstakeError):
    status_code = 400
    code = "validation_failed"

class InvalidAmount(ValidationFailed):
    code = "invalid_amount"

class InvalidScore(ValidationFailed):
    code = "invalid_score"

class VideoTooLong(ValidationFailed):
    code = "video_too_long"

class ChallengeNotOpen(ValidationFailed):
    code = "challenge_not_open"


# ---------- not found ----------

class NotFound(FitstakeError):
    status_code = 404
    code = "not_found"

class AccountNotFound(NotFound):
    code = "account_not_found"

class ChallengeNotFound(NotFound):
    code = "challenge_not_found"

class SubmissionNotFound(NotFound):
    code = "submission_not_found"

class PayoutNotFound(NotFound):
    code = "payout_not_found"


# ---------- conflicts (expected under retries / races) ----------

class Conflict(FitstakeError):
    status_code = 409
    code = "conflict"

class AlreadyJoined(Conflict):
    code = "already_joined"

class AlreadySettled(Conflict):
    code = "already_settled"

class AlreadyReviewed(Conflict):
    code = "already_reviewed"

class AlreadyProcessed(Conflict):
    code = "already_processed"

class AlreadyCancelled(Conflict):
    code = "already_cancelled"

class DuplicateSubmission(Conflict):
    code = "duplicate_submission"


# ---------- business rules ----------

class BusinessRuleRejected(FitstakeError):
    status_code = 400
    code = "rejected"

class InsufficientFunds(BusinessRuleRejected):
    status_code = 402
    code = "insufficient_funds"

class ChallengeFull(BusinessRuleRejected):
    code = "challenge_full"

class ChallengeEnded(BusinessRuleRejected):
    code = "challenge_ended"

class NotEnded(BusinessRuleRejected):
    code = "not_ended"

class NotAParticipant(BusinessRuleRejected):
    code = "not_a_participant"

class AccountDisabled(BusinessRuleRejected):
    status_code = 403
    code = "account_disabled"


# ---------- integrity ----------

class LedgerIntegrityError(FitstakeError):
    """Money invariant broken. Never corrected in place; the unit aborts."""
    status_code = 500
    code = "ledger_integrity"
