# -*- coding: utf-8 -*-
"""
Review and approval status

Review status is the verification lifecycle of an award-linked movie's
external identifier. Every change goes through ``transition`` so that a
finished human review can never be overwritten by an automated verdict
without being reset to PENDING first.
"""

import logging
from enum import Enum
from typing import Dict, FrozenSet


logger = logging.getLogger(__name__)


# =============================================================================
# STATUS CONSTANTS
# =============================================================================

class ReviewStatus(str, Enum):
    PENDING = 'pending'
    AUTO_VERIFIED = 'auto_verified'
    NEEDS_MANUAL_REVIEW = 'needs_manual_review'
    MANUALLY_REVIEWED = 'manually_reviewed'


class ApprovalStatus(str, Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REMOVED = 'removed'


# Statuses shown in the review queue when the caller does not ask for others
REVIEW_QUEUE_DEFAULT = (ReviewStatus.NEEDS_MANUAL_REVIEW, ReviewStatus.PENDING)


# Allowed targets per source status (same-status moves are always allowed)
ALLOWED_TRANSITIONS: Dict[ReviewStatus, FrozenSet[ReviewStatus]] = {
    ReviewStatus.PENDING: frozenset([
        ReviewStatus.AUTO_VERIFIED,
        ReviewStatus.NEEDS_MANUAL_REVIEW,
        ReviewStatus.MANUALLY_REVIEWED,
    ]),
    ReviewStatus.AUTO_VERIFIED: frozenset([
        ReviewStatus.PENDING,
        ReviewStatus.MANUALLY_REVIEWED,
    ]),
    ReviewStatus.NEEDS_MANUAL_REVIEW: frozenset([
        ReviewStatus.PENDING,
        ReviewStatus.MANUALLY_REVIEWED,
    ]),
    ReviewStatus.MANUALLY_REVIEWED: frozenset([
        ReviewStatus.PENDING,
    ]),
}


class InvalidTransition(ValueError):
    """Raised when a review-status change is not allowed."""

    def __init__(self, current: ReviewStatus, target: ReviewStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move review status from {current.value} to {target.value}")


# =============================================================================
# TRANSITION FUNCTION
# =============================================================================

def transition(current, target) -> ReviewStatus:
    """
    Validate a review-status change and return the new status.

    Rules:

    1. Automated verdicts (AUTO_VERIFIED, NEEDS_MANUAL_REVIEW) only leave PENDING
    2. Any non-terminal status may be confirmed by a human (MANUALLY_REVIEWED)
    3. Any status may be reset to PENDING; resetting a MANUALLY_REVIEWED
       movie is a forced re-verification and is logged
    4. Staying in the same status is a no-op

    Args:
        current: Current status (enum or its string value)
        target: Requested status (enum or its string value)

    Returns:
        The target status as a ReviewStatus

    Raises:
        InvalidTransition: if the change is not allowed
        ValueError: if either value is not a review status
    """
    current = ReviewStatus(current)
    target = ReviewStatus(target)

    if current == target:
        return target

    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(current, target)

    if current == ReviewStatus.MANUALLY_REVIEWED and target == ReviewStatus.PENDING:
        logger.info("Forced re-verification: manually reviewed movie reset to pending")

    return target


def is_verified(status) -> bool:
    """True for statuses that count as verified in review statistics."""
    return ReviewStatus(status) in (ReviewStatus.AUTO_VERIFIED, ReviewStatus.MANUALLY_REVIEWED)
