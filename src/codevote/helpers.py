"""Helper utilities shared by the session, submission and admin code.

Three logical groups live here:
- codes: normalization and random generation of voter codes
- time: timezone-aware timestamps
- ranking: the rank numbering used by result displays
"""

from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Tuple
import secrets
import string


## --- code helpers --------------------------------------------------------

DELEGATE_LETTERS = 2
DELEGATE_DIGITS = 4
OFFICER_TOKEN_LENGTH = 10
_OFFICER_ALPHABET = string.ascii_uppercase + string.digits


def normalize_code(code: Optional[str]) -> str:
    """Codes are case-insensitive; they are stored and compared upper-case."""
    if not isinstance(code, str):
        return ""
    return code.strip().upper()


def generate_delegate_code() -> str:
    letters = "".join(secrets.choice(string.ascii_uppercase) for _ in range(DELEGATE_LETTERS))
    digits = "".join(secrets.choice(string.digits) for _ in range(DELEGATE_DIGITS))
    return letters + digits


def generate_officer_code(nbytes: int = OFFICER_TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(_OFFICER_ALPHABET) for _ in range(nbytes))


def generate_code(code_type: str) -> str:
    if code_type == "delegate":
        return generate_delegate_code()
    if code_type == "officer":
        return generate_officer_code()
    raise ValueError(f"unknown code type '{code_type}'")


def is_delegate_code(code: str) -> bool:
    code = normalize_code(code)
    return (
        len(code) == DELEGATE_LETTERS + DELEGATE_DIGITS
        and code[:DELEGATE_LETTERS].isalpha()
        and code[DELEGATE_LETTERS:].isdigit()
    )


## --- time helpers --------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


## --- ranking helpers -----------------------------------------------------


def sorted_by_tally(candidates: Iterable[Any]) -> List[Any]:
    # stable, so equal tallies keep their incoming order
    return sorted(candidates, key=lambda c: c.vote_count, reverse=True)


def dense_ranks(candidates: Iterable[Any]) -> List[Tuple[int, Any]]:
    """Rank candidates by tally, highest first.

    Equal tallies share a rank and the next distinct tally continues at the
    prior rank + 1, so [10, 8, 8, 3] ranks as 1, 2, 2, 3.
    """
    ranked: List[Tuple[int, Any]] = []
    rank = 0
    previous = None
    for cand in sorted_by_tally(candidates):
        if cand.vote_count != previous:
            rank += 1
            previous = cand.vote_count
        ranked.append((rank, cand))
    return ranked
