"""Ballot session controller.

Turns a raw voter code into a voting session and drives the voter through
the active elections that code may access:

- redeem: look up the code, record attendance, load elections and the voted set
- load_session: the same without touching attendance (used per request)
- select_election: open a ballot form for one not-yet-voted election

A :class:`BallotForm` only lives in memory. Abandoning it leaves nothing in
the database; a vote becomes final only through ``submission.submit``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Set

from . import errors
from .helpers import utcnow
from .models import Candidate, Election, VoterCode, db
from .stores import BallotLedger, CodeStore, ElectionStore


logger = logging.getLogger(__name__)

NOT_STARTED = "not_started"
SELECTING = "selecting"
SUBMITTED = "submitted"


class ElectionEntry:
    """An active election as seen from one session."""

    def __init__(self, election: Election, voted: bool):
        self.election = election
        self.voted = voted

    @property
    def state(self) -> str:
        return SUBMITTED if self.voted else NOT_STARTED

    def to_dict(self):
        d = self.election.to_dict()
        d["voted"] = self.voted
        d["state"] = self.state
        return d


class Session:
    def __init__(self, code: VoterCode, elections: List[Election], voted: Set[int]):
        self.code = code
        self.voted = set(voted)
        self._elections: Dict[int, Election] = {e.id: e for e in elections}

    @property
    def active_election_ids(self) -> Set[int]:
        return set(self._elections)

    @property
    def entries(self) -> List[ElectionEntry]:
        return [ElectionEntry(e, e.id in self.voted) for e in self._elections.values()]

    @property
    def pending(self) -> Set[int]:
        return self.active_election_ids - self.voted

    @property
    def is_complete(self) -> bool:
        return not self.pending

    def election(self, election_id: int) -> Optional[Election]:
        return self._elections.get(election_id)

    def mark_voted(self, election_id: int) -> None:
        self.voted.add(election_id)

    def to_dict(self):
        return {
            "code": self.code.code,
            "code_type": self.code.code_type,
            "elections": [entry.to_dict() for entry in self.entries],
            "voted": sorted(self.voted),
            "complete": self.is_complete,
        }


class BallotForm:
    """Candidate selection for one election, bound to ``max_selections``.

    Abstain and candidate selections are mutually exclusive: choosing one
    clears the other.
    """

    def __init__(self, election: Election, candidates: List[Candidate]):
        self.election = election
        self.candidates = list(candidates)
        self.selected: List[int] = []
        self.abstain = False
        self.state = SELECTING
        self._candidate_ids = {c.id for c in self.candidates}

    @property
    def max_selections(self) -> int:
        return self.election.max_selections

    def _check_open(self) -> None:
        if self.state == SUBMITTED:
            raise errors.AlreadyVoted(f"'{self.election.title}' has already been voted.")

    def toggle(self, candidate_id: int) -> None:
        self._check_open()
        if candidate_id not in self._candidate_ids:
            raise errors.UnknownCandidate(
                f"Candidate {candidate_id} is not standing in '{self.election.title}'."
            )
        if candidate_id in self.selected:
            self.selected.remove(candidate_id)
            return
        if len(self.selected) >= self.max_selections:
            raise errors.SelectionLimitExceeded(
                f"You can select at most {self.max_selections} candidate(s)."
            )
        self.selected.append(candidate_id)
        self.abstain = False

    def toggle_abstain(self) -> None:
        self._check_open()
        self.abstain = not self.abstain
        if self.abstain:
            self.selected = []

    def validate(self) -> None:
        if self.abstain:
            return
        required_count_check(self.max_selections, len(self.selected))

    def to_dict(self):
        return {
            "election": self.election.to_dict(),
            "candidates": [{"id": c.id, "name": c.name} for c in self.candidates],
            "max_selections": self.max_selections,
            "selected": list(self.selected),
            "abstain": self.abstain,
            "state": self.state,
        }


def required_count_check(max_selections: int, selected: int) -> None:
    if selected != max_selections:
        raise errors.SelectionCountMismatch(
            f"Select exactly {max_selections} candidate(s) or abstain; "
            f"you selected {selected}."
        )


def _open_session(voter_code: VoterCode, elections: ElectionStore, ledger: BallotLedger) -> Session:
    active = elections.list_elections(voter_code.accessible_election_ids, status="active")
    if not active:
        raise errors.NoActiveElections("There are no elections open for this code right now.")
    voted = ledger.voted_elections(voter_code.id)
    return Session(voter_code, active, voted)


def load_session(code: str) -> Session:
    """Build a session for ``code`` without recording a login."""
    voter_code = CodeStore().find_by_code(code)
    if voter_code is None:
        raise errors.InvalidCode("This voter code is not valid.")
    return _open_session(voter_code, ElectionStore(), BallotLedger())


def redeem(code: str, now: Optional[datetime] = None) -> Session:
    """Redeem a voter code and open a voting session."""
    now = now or utcnow()
    codes = CodeStore()
    voter_code = codes.find_by_code(code)
    if voter_code is None:
        logger.info("rejected unknown voter code")
        raise errors.InvalidCode("This voter code is not valid.")

    # attendance is recorded even when nothing is open to vote on
    if codes.mark_first_login(voter_code.id, now):
        logger.info("code %s attended for the first time", voter_code.id)
    else:
        codes.mark_last_login(voter_code.id, now)
    db.session.commit()

    session = _open_session(voter_code, ElectionStore(), BallotLedger())

    # the ledger decides whether the code is used, not the stored flag
    if session.is_complete:
        if not voter_code.is_used:
            codes.mark_used(voter_code.id, now)
            db.session.commit()
        raise errors.CodeAlreadyUsed("This voter code has already been used.")
    if voter_code.is_used:
        logger.info("code %s reopened: %d election(s) pending", voter_code.id, len(session.pending))
        codes.clear_used(voter_code.id)
        db.session.commit()

    logger.info("code %s redeemed, %d election(s) pending", voter_code.id, len(session.pending))
    return session


def select_election(session: Session, election_id: int) -> BallotForm:
    if election_id in session.voted:
        raise errors.AlreadyVoted("You have already voted in this election.")
    election = session.election(election_id)
    if election is None or election_id not in session.code.accessible_election_ids:
        raise errors.NotAccessible("This election is not open to your code.")
    candidates = ElectionStore().list_candidates(election_id)
    return BallotForm(election, candidates)
