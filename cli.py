"""Small CLI for interacting with a running codevote server.

Usage examples:
    python cli.py redeem AB1234
    python cli.py ballot AB1234 3
    python cli.py vote AB1234 3 --candidates 7 9
    python cli.py abstain AB1234 3
    python cli.py results 3
"""

import argparse
import json
import os

import requests


BASE = os.getenv("CODEVOTE_URL", "http://127.0.0.1:5000")


def _show(r):
    print(json.dumps(r.json(), indent=2, ensure_ascii=False))


def redeem(code: str):
    r = requests.post(f"{BASE}/redeem", json={"code": code}, timeout=5)
    _show(r)


def ballot(code: str, election_id: int):
    r = requests.get(f"{BASE}/codes/{code}/elections/{election_id}", timeout=5)
    _show(r)


def vote(code: str, election_id: int, candidate_ids):
    r = requests.post(
        f"{BASE}/codes/{code}/elections/{election_id}/ballot",
        json={"candidate_ids": candidate_ids},
        timeout=5,
    )
    _show(r)


def abstain(code: str, election_id: int):
    r = requests.post(
        f"{BASE}/codes/{code}/elections/{election_id}/ballot",
        json={"abstain": True},
        timeout=5,
    )
    _show(r)


def results(election_id: int):
    r = requests.get(f"{BASE}/elections/{election_id}/results", timeout=5)
    _show(r)


def main():
    p = argparse.ArgumentParser()
    sub = p.add_subparsers(dest="cmd")
    s = sub.add_parser("redeem")
    s.add_argument("code")
    b = sub.add_parser("ballot")
    b.add_argument("code")
    b.add_argument("election_id", type=int)
    v = sub.add_parser("vote")
    v.add_argument("code")
    v.add_argument("election_id", type=int)
    v.add_argument("--candidates", type=int, nargs="+", required=True)
    a = sub.add_parser("abstain")
    a.add_argument("code")
    a.add_argument("election_id", type=int)
    r = sub.add_parser("results")
    r.add_argument("election_id", type=int)
    args = p.parse_args()
    if args.cmd == "redeem":
        redeem(args.code)
    elif args.cmd == "ballot":
        ballot(args.code, args.election_id)
    elif args.cmd == "vote":
        vote(args.code, args.election_id, args.candidates)
    elif args.cmd == "abstain":
        abstain(args.code, args.election_id)
    elif args.cmd == "results":
        results(args.election_id)
    else:
        p.print_help()


if __name__ == "__main__":
    main()
