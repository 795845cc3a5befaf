"""codevote - voter-code elections: ballot sessions, submission and results.

A voter redeems a single-use code, votes (or abstains) once in every active
election the code gives access to, and the results module decides who is
elected under each election's winning criteria.
"""

from . import admin, results, session, submission
from .server import create_app

__all__ = ["admin", "results", "session", "submission", "create_app"]
