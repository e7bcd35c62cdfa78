"""
Bid validation rules.

Given a team's projected state and a candidate amount, decide whether the
bid is legal. Rules are checked in order and the first failure wins:

1. The amount is a positive multiple of the bid increment.
2. The amount leaves enough balance to reach the minimum roster.
3. In round 1 only, a capped-category bid fits the team's cap budget.
4. The team still has a free roster slot.

Validation has no side effects; the caller decides whether to commit.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ValidationRejected
from .models import AuctionConfig
from .projector import TeamState


class RejectReason(str, Enum):
    NOT_A_MULTIPLE = 'NotAMultiple'
    EXCEEDS_RESERVE = 'ExceedsReserve'
    EXCEEDS_CAP_BUDGET = 'ExceedsCapBudget'
    ROSTER_FULL = 'RosterFull'


@dataclass(frozen=True)
class BidDecision:
    """Outcome of validating a bid."""

    accepted: bool
    reason: Optional[RejectReason] = None
    message: str = ''
    suggested_amount: Optional[int] = None  # Nearest valid multiple for NOT_A_MULTIPLE
    limit: Optional[int] = None             # The ceiling that was exceeded

    def raise_for_rejection(self) -> None:
        """
        Raises:
            ValidationRejected: If the bid was rejected
        """
        if not self.accepted:
            raise ValidationRejected(self.reason, self.message, self.suggested_amount)


ACCEPTED = BidDecision(accepted=True)


def snap_to_increment(amount: int, increment: int) -> int:
    """Round to the nearest multiple of the increment (never below one increment)."""
    snapped = int(math.floor(amount / increment + 0.5)) * increment
    return max(increment, snapped)


def validate_bid(
    team_state: TeamState,
    amount: int,
    is_capped: bool,
    round_number: int,
    config: AuctionConfig
) -> BidDecision:
    """
    Decide whether a bid is legal.

    Args:
        team_state: Projected state of the bidding team
        amount: Bid amount in units
        is_capped: Whether the player belongs to the capped category
        round_number: Current round (cap only applies in round 1)
        config: Auction parameters

    Returns:
        BidDecision (accepted, or rejected with a reason)
    """
    increment = config.bid_increment

    if amount <= 0 or amount % increment != 0:
        suggested = snap_to_increment(amount, increment)
        return BidDecision(
            accepted=False,
            reason=RejectReason.NOT_A_MULTIPLE,
            message=f"Bid must be a positive multiple of {increment}. Snap to {suggested}?",
            suggested_amount=suggested
        )

    if amount > team_state.max_bid:
        return BidDecision(
            accepted=False,
            reason=RejectReason.EXCEEDS_RESERVE,
            message=(
                f"Bid exceeds maximum allowed for {team_state.name} ({team_state.max_bid}). "
                f"Reduce by {amount - team_state.max_bid}"
            ),
            limit=team_state.max_bid
        )

    if is_capped and round_number == 1:
        cap_left = team_state.cap_budget - team_state.cap_spent
        if amount > cap_left:
            return BidDecision(
                accepted=False,
                reason=RejectReason.EXCEEDS_CAP_BUDGET,
                message=(
                    f"Cap exceeded for {team_state.name}: max capped bid {max(0, cap_left)} "
                    f"({config.cap_budget_percent}% rule)"
                ),
                limit=max(0, cap_left)
            )

    if team_state.acquired_count >= config.max_players_per_team:
        return BidDecision(
            accepted=False,
            reason=RejectReason.ROSTER_FULL,
            message=f"{team_state.name} already has {team_state.acquired_count} players",
            limit=config.max_players_per_team
        )

    return ACCEPTED
