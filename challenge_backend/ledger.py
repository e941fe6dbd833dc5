"""
Submission ledger: one submission per (user, question), a bounded number of
file replacements, and admin point assignment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from challenge_backend.db import DbClient, SubmissionRecord
from challenge_backend.types import FieldError

logger = logging.getLogger(__name__)

MAX_UPDATES = 3


def max_updates_error() -> FieldError:
    return FieldError(
        field="Max Submissions",
        message="You have exceeded the max number of submissions.",
    )


def not_found_error() -> FieldError:
    return FieldError(field="Update Submissions", message="Submission not found.")


@dataclass
class ExistingSubmission:
    existing: bool
    id: Optional[int] = None
    creator_id: Optional[int] = None
    updates: Optional[int] = None
    file_key: Optional[str] = None
    errors: List[FieldError] = field(default_factory=list)


@dataclass
class SubmissionOptions:
    question: str
    file_key: str
    existing: bool = False
    id: Optional[int] = None
    creator_id: Optional[int] = None
    updates: Optional[int] = None


@dataclass
class SubmissionOutcome:
    submission: Optional[SubmissionRecord] = None
    success: List[FieldError] = field(default_factory=list)
    errors: List[FieldError] = field(default_factory=list)


class SubmissionLedger:
    def __init__(self, db: DbClient, max_updates: int = MAX_UPDATES):
        self.db = db
        self.max_updates = max_updates

    def list_for_user(self, user_id: int) -> List[SubmissionRecord]:
        return self.db.list_submissions(user_id)

    def find_for_user(self, user_id: int, question: str) -> Optional[SubmissionRecord]:
        return self.db.find_submission(user_id, question)

    def is_linked(self, file_key: str) -> bool:
        """True while some submission still points at ``file_key``."""
        return self.db.find_submission_by_file_key(file_key) is not None

    def check_existing(self, user_id: int, question: str) -> ExistingSubmission:
        """
        Report whether the user already submitted for `question`.

        A capped submission is reported as existing with an error and without
        its identity, so callers have nothing to build an update from.
        """
        submission = self.db.find_submission(user_id, question)
        if submission is None:
            return ExistingSubmission(existing=False)
        if submission.updates >= self.max_updates:
            return ExistingSubmission(existing=True, errors=[max_updates_error()])
        return ExistingSubmission(
            existing=True,
            id=submission.id,
            creator_id=submission.creator_id,
            updates=submission.updates,
            file_key=submission.file_key,
        )

    def record_or_update(
        self, user_id: int, options: SubmissionOptions
    ) -> SubmissionOutcome:
        """
        Link an uploaded file to the user's submission for a question.

        With `existing` and `updates` set, the identified row is moved to the
        new file and its update count incremented. Otherwise the submission
        is created, or counted as an update if one already exists for the
        question. New rows always belong to `user_id`.
        """
        if options.existing and options.updates is not None:
            if options.id is None or (
                options.creator_id is not None and options.creator_id != user_id
            ):
                return SubmissionOutcome(errors=[not_found_error()])
            record = self.db.update_submission(
                options.id,
                user_id,
                options.question,
                options.file_key,
                max_updates=self.max_updates,
            )
        else:
            record = self.db.upsert_submission(
                user_id,
                options.question,
                options.file_key,
                max_updates=self.max_updates,
            )

        if record is None:
            return SubmissionOutcome(errors=[self._rejection(user_id, options)])

        if record.updates == 0:
            logger.info(
                "User %s created submission %s for %r", user_id, record.id, record.question
            )
            return SubmissionOutcome(submission=record)

        logger.info(
            "User %s updated submission %s (%s/%s)",
            user_id,
            record.id,
            record.updates,
            self.max_updates,
        )
        return SubmissionOutcome(
            submission=record,
            success=[
                FieldError(
                    field="Update Submissions",
                    message="Existing submission successfully updated.",
                )
            ],
        )

    def _rejection(self, user_id: int, options: SubmissionOptions) -> FieldError:
        current = self.db.find_submission(user_id, options.question)
        if current is None or (options.id is not None and current.id != options.id):
            return not_found_error()
        if current.updates >= self.max_updates:
            return max_updates_error()
        return not_found_error()

    def bulk_update_points(self, rows: Sequence[Tuple[str, int]]) -> FieldError:
        """
        Set points on every submission whose file key contains each fragment.

        Reports one aggregate outcome for the batch, not per-row status.
        """
        if not rows:
            return FieldError(
                field="Update Scores Fail",
                message="Failed to update scores: no rows supplied",
            )
        try:
            affected = self.db.apply_points(rows)
        except Exception as exc:
            logger.exception("Bulk point update failed (%s rows)", len(rows))
            return FieldError(
                field="Update Scores Fail", message=f"Failed to update scores: {exc}"
            )
        if not affected:
            return FieldError(
                field="Update Scores Fail",
                message="Failed to update scores: No rows updated",
            )
        logger.info("Bulk point update touched %s submissions", affected)
        return FieldError(
            field="Update Scores Success", message="Successfully updated user scores"
        )
