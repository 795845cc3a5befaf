"""Repositories over the SQLAlchemy session.

The ballot engine only talks to the database through these three stores.
None of them commits: the caller owns the transaction boundary.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import func

from .helpers import normalize_code
from .models import Ballot, BallotEvent, Candidate, Election, VoterCode, code_elections, db


class CodeStore:
    def __init__(self, session=None):
        self.session = session or db.session

    def find_by_code(self, code: str) -> Optional[VoterCode]:
        normalized = normalize_code(code)
        if not normalized:
            return None
        return self.session.query(VoterCode).filter_by(code=normalized).first()

    def code_exists(self, code: str) -> bool:
        normalized = normalize_code(code)
        q = self.session.query(VoterCode.id).filter_by(code=normalized)
        return self.session.query(q.exists()).scalar()

    def get(self, code_id: int) -> Optional[VoterCode]:
        return self.session.get(VoterCode, code_id)

    def mark_first_login(self, code_id: int, ts: datetime) -> bool:
        """Set first and last login, only if no first login was recorded yet.

        Returns whether this call recorded the first login.
        """
        updated = (
            self.session.query(VoterCode)
            .filter(VoterCode.id == code_id, VoterCode.first_login_at.is_(None))
            .update(
                {VoterCode.first_login_at: ts, VoterCode.last_login_at: ts},
                synchronize_session="fetch",
            )
        )
        return updated == 1

    def mark_last_login(self, code_id: int, ts: datetime) -> None:
        self.session.query(VoterCode).filter(VoterCode.id == code_id).update(
            {VoterCode.last_login_at: ts}, synchronize_session="fetch"
        )

    def mark_used(self, code_id: int, ts: datetime) -> None:
        self.session.query(VoterCode).filter(VoterCode.id == code_id).update(
            {VoterCode.is_used: True, VoterCode.used_at: ts}, synchronize_session="fetch"
        )

    def clear_used(self, code_id: int) -> None:
        self.session.query(VoterCode).filter(VoterCode.id == code_id).update(
            {VoterCode.is_used: False, VoterCode.used_at: None}, synchronize_session="fetch"
        )

    def list_codes_for_election(self, election_id: int) -> List[VoterCode]:
        return (
            self.session.query(VoterCode)
            .join(code_elections, code_elections.c.voter_code_id == VoterCode.id)
            .filter(code_elections.c.election_id == election_id)
            .order_by(VoterCode.id)
            .all()
        )


class ElectionStore:
    def __init__(self, session=None):
        self.session = session or db.session

    def get_election(self, election_id: int) -> Optional[Election]:
        return self.session.get(Election, election_id)

    def list_elections(
        self, election_ids: Optional[Iterable[int]] = None, status: Optional[str] = None
    ) -> List[Election]:
        q = self.session.query(Election)
        if election_ids is not None:
            ids = list(election_ids)
            if not ids:
                return []
            q = q.filter(Election.id.in_(ids))
        if status is not None:
            q = q.filter(Election.status == status)
        return q.order_by(Election.created_at.desc(), Election.id.desc()).all()

    def list_candidates(self, election_id: int) -> List[Candidate]:
        return (
            self.session.query(Candidate)
            .filter_by(election_id=election_id)
            .order_by(Candidate.name, Candidate.id)
            .all()
        )

    def increment_vote_count(self, candidate_id: int) -> None:
        # single UPDATE so concurrent voters never lose an increment
        self.session.query(Candidate).filter(Candidate.id == candidate_id).update(
            {Candidate.vote_count: Candidate.vote_count + 1}, synchronize_session="fetch"
        )


class BallotLedger:
    def __init__(self, session=None):
        self.session = session or db.session

    def has_ballot_event(self, election_id: int, voter_code_id: int) -> bool:
        q = self.session.query(BallotEvent.id).filter_by(
            election_id=election_id, voter_code_id=voter_code_id
        )
        return self.session.query(q.exists()).scalar()

    def insert_ballot_event(self, election_id: int, voter_code_id: int, is_abstain: bool) -> BallotEvent:
        """Insert the event row and flush, so a duplicate fails right here."""
        event = BallotEvent(
            election_id=election_id, voter_code_id=voter_code_id, is_abstain=is_abstain
        )
        self.session.add(event)
        self.session.flush()
        return event

    def insert_ballot(
        self,
        event: BallotEvent,
        candidate_id: Optional[int] = None,
        is_abstain: bool = False,
    ) -> Ballot:
        row = Ballot(
            event_id=event.id,
            election_id=event.election_id,
            voter_code_id=event.voter_code_id,
            candidate_id=candidate_id,
            is_abstain=is_abstain,
        )
        self.session.add(row)
        return row

    def list_ballots(self, election_id: int) -> List[Ballot]:
        return self.session.query(Ballot).filter_by(election_id=election_id).order_by(Ballot.id).all()

    def count_distinct_voters(self, election_id: int) -> int:
        return (
            self.session.query(func.count(func.distinct(Ballot.voter_code_id)))
            .filter(Ballot.election_id == election_id)
            .scalar()
        ) or 0

    def voted_elections(self, voter_code_id: int) -> Set[int]:
        rows = self.session.query(BallotEvent.election_id).filter_by(voter_code_id=voter_code_id).all()
        return {election_id for (election_id,) in rows}

    def voted_by_code(self, voter_code_ids: Iterable[int]) -> Dict[int, Set[int]]:
        """Voted election ids for many codes in one query."""
        ids = list(voter_code_ids)
        voted: Dict[int, Set[int]] = {code_id: set() for code_id in ids}
        if not ids:
            return voted
        rows = (
            self.session.query(BallotEvent.voter_code_id, BallotEvent.election_id)
            .filter(BallotEvent.voter_code_id.in_(ids))
            .all()
        )
        for code_id, election_id in rows:
            voted[code_id].add(election_id)
        return voted
