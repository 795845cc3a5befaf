"""Vote submission transaction.

Commits one election's ballot for one voter code, exactly once. The ballot
event row, the ballot rows, the tally increments and the code's used flag are
written in a single database transaction; the unique constraint on
(election, voter code) is what finally rejects a second submission.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from . import errors
from .helpers import utcnow
from .models import db
from .session import SUBMITTED, BallotForm, Session, required_count_check
from .stores import BallotLedger, CodeStore, ElectionStore


logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    MORE_ELECTIONS_REMAIN = "more_elections_remain"
    ALL_COMPLETE = "all_complete"


def _validate_selection(election, candidate_ids, abstain, elections: ElectionStore):
    if abstain:
        if candidate_ids:
            raise errors.SelectionCountMismatch(
                "Either abstain or select candidates, not both."
            )
        return []
    selected = list(candidate_ids or [])
    if len(set(selected)) != len(selected):
        raise errors.SelectionCountMismatch("Each candidate can only be selected once.")
    required_count_check(election.max_selections, len(selected))
    valid = {c.id for c in elections.list_candidates(election.id)}
    unknown = [cid for cid in selected if cid not in valid]
    if unknown:
        raise errors.UnknownCandidate(
            f"Candidate(s) {', '.join(str(c) for c in unknown)} are not standing in "
            f"'{election.title}'."
        )
    return selected


def submit(
    session: Session,
    election_id: int,
    candidate_ids: Optional[Iterable[int]] = None,
    abstain: bool = False,
    now: Optional[datetime] = None,
) -> Outcome:
    """Cast the ballot for ``election_id`` and update the code's state.

    Raises a :class:`errors.VotingError` subclass; nothing is written unless
    the whole ballot is committed.
    """
    now = now or utcnow()
    codes, elections, ledger = CodeStore(), ElectionStore(), BallotLedger()
    code_id = session.code.id

    election = session.election(election_id)
    if election is None or election_id not in session.code.accessible_election_ids:
        raise errors.NotAccessible("This election is not open to your code.")

    # fast path only; the unique constraint below is authoritative
    if ledger.has_ballot_event(election_id, code_id):
        session.mark_voted(election_id)
        raise errors.DuplicateVote("You have already voted in this election.")

    selected = _validate_selection(election, candidate_ids, abstain, elections)

    active_ids = session.active_election_ids
    try:
        event = ledger.insert_ballot_event(election_id, code_id, is_abstain=abstain)
        if abstain:
            ledger.insert_ballot(event, candidate_id=None, is_abstain=True)
        else:
            for candidate_id in selected:
                ledger.insert_ballot(event, candidate_id=candidate_id)
                elections.increment_vote_count(candidate_id)
        voted = ledger.voted_elections(code_id) | {election_id}
        complete = active_ids <= voted
        if complete:
            codes.mark_used(code_id, now)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        session.mark_voted(election_id)
        logger.warning("duplicate ballot for election %s from code %s", election_id, code_id)
        raise errors.DuplicateVote("You have already voted in this election.") from None
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("ballot for election %s from code %s rolled back: %s", election_id, code_id, e)
        raise errors.StoreFailure(
            "Your ballot could not be recorded. Nothing was saved; please try again."
        ) from e

    session.voted = voted
    logger.info(
        "code %s %s election %s", code_id, "abstained in" if abstain else "voted in", election_id
    )
    if complete:
        logger.info("code %s has completed all elections", code_id)
        return Outcome.ALL_COMPLETE
    return Outcome.MORE_ELECTIONS_REMAIN


def submit_form(session: Session, form: BallotForm, now: Optional[datetime] = None) -> Outcome:
    form.validate()
    outcome = submit(
        session,
        form.election.id,
        candidate_ids=None if form.abstain else form.selected,
        abstain=form.abstain,
        now=now,
    )
    form.state = SUBMITTED
    return outcome
