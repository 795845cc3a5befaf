"""Result aggregation and winner determination.

This module provides:
- WinningCriteria: the per-election rule (plurality, absolute majority or a
  percentage of attended/issued codes)
- resolve_winners: a pure function from tallies and criteria to the elected,
  the confirmed and the tied candidates
- rank_candidates: display ranks for a standings table
- participation / election_results: the same computations fed from the stores

Ties and unmet thresholds are reported, never broken: the caller decides
whether to hold a runoff round.
"""

from __future__ import annotations

import logging
import math
from collections import namedtuple
from fractions import Fraction
from typing import Any, Dict, List, Optional, Sequence

from . import errors
from .helpers import dense_ranks, sorted_by_tally
from .stores import BallotLedger, CodeStore, ElectionStore
from .models import Village, db


logger = logging.getLogger(__name__)

PLURALITY = "plurality"
ABSOLUTE_MAJORITY = "absolute_majority"
PERCENTAGE = "percentage"
CRITERIA_TYPES = (PLURALITY, ABSOLUTE_MAJORITY, PERCENTAGE)
BASES = ("attended", "issued")


Tally = namedtuple("Tally", ["candidate_id", "name", "vote_count"])


class WinningCriteria:
    """How many votes the leading candidate needs to be validly elected.

    :param kind: ``plurality``, ``absolute_majority`` or ``percentage``.
    :param percentage: Required share in percent, in (0, 100]; only for
        ``percentage``.
    :param base: ``attended`` (codes that logged in) or ``issued`` (all codes
        giving access to the election); only for ``percentage``.
    """

    def __init__(self, kind: str = PLURALITY, percentage: Optional[float] = None, base: Optional[str] = None):
        if kind not in CRITERIA_TYPES:
            raise errors.InvalidCriteria(f"Unknown winning criteria '{kind}'.")
        if kind == PERCENTAGE:
            if not isinstance(percentage, (int, float)) or isinstance(percentage, bool):
                raise errors.InvalidCriteria("Percentage must be a number.")
            if not 0 < percentage <= 100:
                raise errors.InvalidCriteria("Percentage must be greater than 0 and at most 100.")
            # thresholds are taken to hundredths of a vote, finer percentages would round away
            if (Fraction(str(percentage)) * 100).denominator != 1:
                raise errors.InvalidCriteria("Percentage can have at most two decimals.")
            if base not in BASES:
                raise errors.InvalidCriteria("Percentage base must be 'attended' or 'issued'.")
        else:
            percentage = base = None
        self.kind = kind
        self.percentage = percentage
        self.base = base

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WinningCriteria":
        if not data:
            return cls(PLURALITY)
        if not isinstance(data, dict):
            raise errors.InvalidCriteria("Winning criteria must be an object.")
        return cls(data.get("type", PLURALITY), data.get("percentage"), data.get("base"))

    def to_dict(self) -> Dict[str, Any]:
        if self.kind == PERCENTAGE:
            return {"type": self.kind, "percentage": self.percentage, "base": self.base}
        return {"type": self.kind}

    def __eq__(self, other):
        return isinstance(other, WinningCriteria) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"WinningCriteria({self.to_dict()!r})"


class WinnerResolution:
    def __init__(
        self,
        winners: List[Any],
        has_tie: bool,
        meets_threshold: bool,
        required_votes: Optional[int],
        confirmed_winners: List[Any],
        tied_candidates: List[Any],
        max_selections: int,
    ):
        self.winners = winners
        self.has_tie = has_tie
        self.meets_threshold = meets_threshold
        self.required_votes = required_votes
        self.confirmed_winners = confirmed_winners
        self.tied_candidates = tied_candidates
        self.max_selections = max_selections

    @property
    def remaining_seats(self) -> int:
        """Seats left to fill among the tied candidates."""
        if not self.has_tie:
            return 0
        return self.max_selections - len(self.confirmed_winners)

    @property
    def oversubscribed(self) -> bool:
        return len(self.winners) > self.max_selections

    def to_dict(self) -> Dict[str, Any]:
        def _ids(cands):
            return [_candidate_id(c) for c in cands]

        return {
            "winners": _ids(self.winners),
            "has_tie": self.has_tie,
            "meets_threshold": self.meets_threshold,
            "required_votes": self.required_votes,
            "confirmed_winners": _ids(self.confirmed_winners),
            "tied_candidates": _ids(self.tied_candidates),
            "remaining_seats": self.remaining_seats,
            "oversubscribed": self.oversubscribed,
        }


def _candidate_id(cand):
    if isinstance(cand, Tally):
        return cand.candidate_id
    return cand.id


## --- threshold -------------------------------------------------------------


def required_votes(criteria: WinningCriteria, attended_codes: int, total_codes: int) -> Optional[int]:
    """Minimum tally for the leading candidate, or None when there is none."""
    if criteria.kind == PLURALITY:
        return None
    if criteria.kind == ABSOLUTE_MAJORITY:
        base = attended_codes if attended_codes > 0 else total_codes
        return base // 2 + 1
    if criteria.base == "attended" and attended_codes > 0:
        base = attended_codes
    else:
        base = total_codes
    # percentages carry two decimals, so the product is taken to hundredths of a vote
    exact = Fraction(str(criteria.percentage)) * base / 100
    return math.ceil(Fraction(round(exact * 100), 100))


def _meets_threshold(criteria: WinningCriteria, leading: int, required: Optional[int]) -> bool:
    if criteria.kind == PLURALITY:
        return True
    # for absolute majority this is "more than half the base"
    return leading >= required


## --- winner resolution -----------------------------------------------------


def resolve_winners(
    candidates: Sequence[Any],
    max_selections: int,
    criteria: WinningCriteria,
    attended_codes: int,
    total_codes: int,
) -> WinnerResolution:
    """Determine who is elected.

    :param candidates: Objects with a ``vote_count`` attribute (ORM candidates
        or :class:`Tally` tuples).
    :param max_selections: Number of seats to fill.
    :param criteria: The election's winning criteria.
    :param attended_codes: Codes for this election that have logged in.
    :param total_codes: Codes issued for this election.
    """
    if max_selections < 1:
        raise ValueError("max_selections must be at least 1")
    required = required_votes(criteria, attended_codes, total_codes)
    standing = sorted_by_tally(c for c in candidates if c.vote_count > 0)

    if not standing:
        return WinnerResolution(
            [], False, criteria.kind == PLURALITY, required, [], [], max_selections
        )

    meets = _meets_threshold(criteria, standing[0].vote_count, required)
    if not meets:
        return WinnerResolution([], False, False, required, [], [], max_selections)

    if len(standing) < max_selections:
        return WinnerResolution(
            list(standing), False, True, required, list(standing), [], max_selections
        )

    cutoff = standing[max_selections - 1].vote_count
    tied_at_cutoff = [c for c in standing if c.vote_count == cutoff]
    if len(tied_at_cutoff) > max_selections:
        confirmed = [c for c in standing if c.vote_count > cutoff]
        winners = confirmed + tied_at_cutoff
        return WinnerResolution(
            winners, True, True, required, confirmed, tied_at_cutoff, max_selections
        )

    winners = [c for c in standing if c.vote_count >= cutoff]
    return WinnerResolution(winners, False, True, required, winners, [], max_selections)


def rank_candidates(candidates: Sequence[Any]) -> List[Dict[str, Any]]:
    total = sum(c.vote_count for c in candidates)
    rows = []
    for rank, cand in dense_ranks(candidates):
        rows.append(
            {
                "rank": rank,
                "id": _candidate_id(cand),
                "name": cand.name,
                "vote_count": cand.vote_count,
                "share": round(cand.vote_count / total * 100, 2) if total else 0.0,
            }
        )
    return rows


## --- participation ---------------------------------------------------------


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _used_code_ids(codes) -> set:
    """Codes that have voted in every election they can currently vote in.

    Read from the ballot ledger, so a stored flag that went stale when an
    election opened or closed does not skew the report. When none of a code's
    elections is open, the closed ones it could vote in are what count.
    """
    statuses = {e.id: e.status for e in ElectionStore().list_elections()}
    voted = BallotLedger().voted_by_code(c.id for c in codes)
    used = set()
    for code in codes:
        accessible = code.accessible_election_ids
        scope = {eid for eid in accessible if statuses.get(eid) == "active"}
        if not scope:
            scope = {eid for eid in accessible if statuses.get(eid) == "closed"}
        if scope and scope <= voted[code.id]:
            used.add(code.id)
    return used


def participation(election_id: int) -> Dict[str, Any]:
    codes = CodeStore().list_codes_for_election(election_id)
    ledger = BallotLedger()
    ballots = ledger.list_ballots(election_id)

    total_codes = len(codes)
    attended = sum(1 for c in codes if c.first_login_at is not None)
    used = len(_used_code_ids(codes))
    return {
        "total_codes": total_codes,
        "attended_codes": attended,
        "used_codes": used,
        "unused_codes": total_codes - used,
        "participation_rate": _rate(used, total_codes),
        "attendance_rate": _rate(attended, total_codes),
        "total_votes": sum(1 for b in ballots if not b.is_abstain),
        "abstentions": sum(1 for b in ballots if b.is_abstain),
        "unique_voters": ledger.count_distinct_voters(election_id),
    }


def village_participation(election_id: int) -> List[Dict[str, Any]]:
    """Participation per village, highest participation rate first."""
    codes = CodeStore().list_codes_for_election(election_id)
    used_ids = _used_code_ids(codes)
    per_village: Dict[int, List[int]] = {}
    for code in codes:
        if code.village_id is None:
            continue
        counts = per_village.setdefault(code.village_id, [0, 0])
        counts[0] += 1
        if code.id in used_ids:
            counts[1] += 1
    if not per_village:
        return []
    names = {
        v.id: v.name
        for v in db.session.query(Village).filter(Village.id.in_(list(per_village))).all()
    }
    rows = [
        {
            "village": names.get(village_id),
            "codes_count": total,
            "used_count": used,
            "participation_rate": _rate(used, total),
        }
        for village_id, (total, used) in per_village.items()
    ]
    rows.sort(key=lambda r: r["participation_rate"], reverse=True)
    return rows


def election_results(election_id: int) -> Dict[str, Any]:
    election = ElectionStore().get_election(election_id)
    if election is None:
        raise errors.ElectionNotFound(f"Election {election_id} does not exist.")
    candidates = ElectionStore().list_candidates(election_id)
    criteria = WinningCriteria.from_dict(election.winning_criteria)
    stats = participation(election_id)

    resolution = resolve_winners(
        candidates,
        election.max_selections,
        criteria,
        stats["attended_codes"],
        stats["total_codes"],
    )
    if resolution.has_tie:
        logger.info(
            "election %s: %d candidate(s) tied for %d seat(s)",
            election_id,
            len(resolution.tied_candidates),
            resolution.remaining_seats,
        )
    elif resolution.oversubscribed:
        logger.info(
            "election %s: %d candidate(s) elected for %d seat(s)",
            election_id,
            len(resolution.winners),
            election.max_selections,
        )
    elif not resolution.meets_threshold and criteria.kind != PLURALITY:
        logger.info("election %s: no candidate reached %s votes", election_id, resolution.required_votes)

    return {
        "election": election.to_dict(),
        "criteria": criteria.to_dict(),
        "stats": stats,
        "villages": village_participation(election_id),
        "standings": rank_candidates(candidates),
        "resolution": resolution.to_dict(),
    }
