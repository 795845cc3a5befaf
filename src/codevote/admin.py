"""Administrative operations the ballot engine depends on.

Code issuance, widening a group's codes when elections are added to it,
deleting unused codes and moving elections between statuses. The creation
helpers at the bottom are the minimum the demo runner and tests need.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from . import errors
from .helpers import generate_code
from .models import (
    CODE_TYPES,
    ELECTION_STATUSES,
    Candidate,
    Election,
    ElectionGroup,
    Village,
    VoterCode,
    code_elections,
    db,
)
from .results import WinningCriteria
from .stores import BallotLedger, CodeStore, ElectionStore


logger = logging.getLogger(__name__)

MAX_BATCH = 1000
# retries per code before giving up on finding an unused code string
MAX_CODE_ATTEMPTS = 20


def _load_elections(election_ids: Iterable[int]) -> List[Election]:
    ids = list(dict.fromkeys(election_ids or []))
    if not ids:
        raise errors.InvalidRequest("Select at least one election.")
    found = ElectionStore().list_elections(ids)
    missing = set(ids) - {e.id for e in found}
    if missing:
        raise errors.ElectionNotFound(
            f"Election(s) {', '.join(str(i) for i in sorted(missing))} do not exist."
        )
    return found


def _unique_code(code_type: str, codes: CodeStore, taken: set) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        candidate = generate_code(code_type)
        if candidate not in taken and not codes.code_exists(candidate):
            return candidate
    raise errors.StoreFailure("Could not find an unused voter code; try a smaller batch.")


def generate_codes(
    code_type: str,
    election_ids: Iterable[int],
    quantity: int,
    village_id: Optional[int] = None,
    voter_names: Optional[List[str]] = None,
) -> List[VoterCode]:
    """Issue ``quantity`` new voter codes for the given elections."""
    if code_type not in CODE_TYPES:
        raise errors.InvalidRequest(f"Code type must be one of {', '.join(CODE_TYPES)}.")
    if not isinstance(quantity, int) or not 1 <= quantity <= MAX_BATCH:
        raise errors.InvalidRequest(f"Quantity must be between 1 and {MAX_BATCH}.")
    if code_type == "delegate" and village_id is None:
        raise errors.InvalidRequest("Delegate codes must belong to a village.")
    if village_id is not None and db.session.get(Village, village_id) is None:
        raise errors.InvalidRequest(f"Village {village_id} does not exist.")
    if voter_names is not None and len(voter_names) != quantity:
        raise errors.InvalidRequest("Provide one voter name per code.")
    elections = _load_elections(election_ids)

    codes = CodeStore()
    taken = set()
    issued = []
    for i in range(quantity):
        code = _unique_code(code_type, codes, taken)
        taken.add(code)
        issued.append(
            VoterCode(
                code=code,
                code_type=code_type,
                village_id=village_id if code_type == "delegate" else None,
                voter_name=voter_names[i] if voter_names else None,
                accessible_elections=list(elections),
            )
        )
    db.session.add_all(issued)
    db.session.commit()
    logger.info(
        "issued %d %s code(s) for election(s) %s",
        quantity,
        code_type,
        ", ".join(str(e.id) for e in elections),
    )
    return issued


def add_elections_to_group(group_id: int, election_ids: Iterable[int]) -> int:
    """Attach elections to a group and give every code of that group access.

    Codes already issued for the group (codes with access to any of its
    elections) are widened retroactively. A widened code that was marked used
    now has a pending election, so it is reopened. Returns the number of codes
    widened.
    """
    group = db.session.get(ElectionGroup, group_id)
    if group is None:
        raise errors.InvalidRequest(f"Election group {group_id} does not exist.")
    new_elections = _load_elections(election_ids)
    existing_ids = [e.id for e in group.elections]

    for election in new_elections:
        election.group_id = group.id

    widened = 0
    if existing_ids:
        codes = CodeStore()
        ledger = BallotLedger()
        group_codes = (
            db.session.query(VoterCode)
            .join(code_elections, code_elections.c.voter_code_id == VoterCode.id)
            .filter(code_elections.c.election_id.in_(existing_ids))
            .distinct()
            .all()
        )
        for code in group_codes:
            have = code.accessible_election_ids
            added = [e for e in new_elections if e.id not in have]
            if not added:
                continue
            code.accessible_elections.extend(added)
            widened += 1
            voted = ledger.voted_elections(code.id)
            if code.is_used and any(e.id not in voted for e in added):
                codes.clear_used(code.id)
    db.session.commit()
    logger.info("group %s: %d election(s) added, %d code(s) widened", group_id, len(new_elections), widened)
    return widened


def delete_code(code_id: int) -> None:
    code = CodeStore().get(code_id)
    if code is None:
        raise errors.InvalidCode(f"Voter code {code_id} does not exist.")
    if code.is_used:
        raise errors.CodeInUse("Used voter codes cannot be deleted.")
    if BallotLedger().voted_elections(code_id):
        raise errors.CodeInUse("This code has cast ballots and cannot be deleted.")
    db.session.delete(code)
    db.session.commit()
    logger.info("deleted code %s", code_id)


def set_election_status(election_id: int, status: str) -> Election:
    if status not in ELECTION_STATUSES:
        raise errors.InvalidRequest(f"Status must be one of {', '.join(ELECTION_STATUSES)}.")
    election = ElectionStore().get_election(election_id)
    if election is None:
        raise errors.ElectionNotFound(f"Election {election_id} does not exist.")
    previous, election.status = election.status, status
    db.session.commit()
    logger.info("election %s: %s -> %s", election_id, previous, status)
    return election


## --- creation helpers ----------------------------------------------------


def create_village(name: str) -> Village:
    village = Village(name=name)
    db.session.add(village)
    db.session.commit()
    return village


def create_group(title: str, group_type: str, description: Optional[str] = None) -> ElectionGroup:
    if group_type not in CODE_TYPES:
        raise errors.InvalidRequest(f"Group type must be one of {', '.join(CODE_TYPES)}.")
    group = ElectionGroup(title=title, group_type=group_type, description=description)
    db.session.add(group)
    db.session.commit()
    return group


def create_election(
    title: str,
    election_type: str = "delegate",
    max_selections: int = 1,
    criteria: Optional[WinningCriteria] = None,
    status: str = "waiting",
    village_id: Optional[int] = None,
    position: Optional[str] = None,
    group_id: Optional[int] = None,
    round: int = 1,
    candidates: Iterable[str] = (),
) -> Election:
    if election_type not in CODE_TYPES:
        raise errors.InvalidRequest(f"Election type must be one of {', '.join(CODE_TYPES)}.")
    if status not in ELECTION_STATUSES:
        raise errors.InvalidRequest(f"Status must be one of {', '.join(ELECTION_STATUSES)}.")
    if max_selections < 1:
        raise errors.InvalidRequest("An election must fill at least one seat.")
    criteria = criteria or WinningCriteria()
    election = Election(
        title=title,
        election_type=election_type,
        max_selections=max_selections,
        winning_criteria=criteria.to_dict(),
        status=status,
        village_id=village_id,
        position=position,
        group_id=group_id,
        round=round,
    )
    election.candidates = [Candidate(name=name) for name in candidates]
    db.session.add(election)
    db.session.commit()
    return election


def add_candidate(election_id: int, name: str) -> Candidate:
    if ElectionStore().get_election(election_id) is None:
        raise errors.ElectionNotFound(f"Election {election_id} does not exist.")
    candidate = Candidate(election_id=election_id, name=name)
    db.session.add(candidate)
    db.session.commit()
    return candidate
