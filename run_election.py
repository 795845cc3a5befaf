"""Demo runner: a small two-election campaign on an in-memory database.

Run this script from the repository root (with the package installed, or
with src/ on PYTHONPATH) to issue codes, cast ballots and print the results.
"""

import argparse

from codevote import admin, create_app, results, session, submission
from codevote.errors import VotingError
from codevote.results import WinningCriteria


def _print_heading(msg: str):
    print()
    print(msg)


def _print_kv(key: str, value):
    print(f"  {key}: {value}")


def _print_report(report):
    election = report["election"]
    stats = report["stats"]
    resolution = report["resolution"]
    _print_heading(f"[Results] {election['title']} ({report['criteria']['type']})")
    _print_kv("codes issued", stats["total_codes"])
    _print_kv("attended", stats["attended_codes"])
    _print_kv("votes", stats["total_votes"])
    _print_kv("abstentions", stats["abstentions"])
    for row in report["standings"]:
        print(f"  {row['rank']}. {row['name']}: {row['vote_count']} ({row['share']}%)")
    names = {row["id"]: row["name"] for row in report["standings"]}
    if not resolution["meets_threshold"]:
        _print_kv("outcome", f"nobody reached {resolution['required_votes']} votes; a runoff is needed")
    elif resolution["has_tie"]:
        _print_kv("confirmed", ", ".join(names[i] for i in resolution["confirmed_winners"]) or "-")
        _print_kv(
            f"tied for {resolution['remaining_seats']} seat(s)",
            ", ".join(names[i] for i in resolution["tied_candidates"]),
        )
    else:
        _print_kv("elected", ", ".join(names[i] for i in resolution["winners"]) or "-")


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--voters", type=int, default=6)
    args = p.parse_args()

    app = create_app({"SQLALCHEMY_DATABASE_URI": "sqlite://", "LOG_LEVEL": "WARNING"})
    with app.app_context():
        _print_heading("[Setup] elections and codes")
        village = admin.create_village("Riverside")
        delegates = admin.create_election(
            "Delegates",
            max_selections=2,
            status="active",
            village_id=village.id,
            candidates=["Alice", "Bob", "Carol", "Dave"],
        )
        chair = admin.create_election(
            "Chair",
            election_type="delegate",
            criteria=WinningCriteria("absolute_majority"),
            status="active",
            candidates=["Erin", "Frank"],
        )
        codes = admin.generate_codes(
            "delegate", [delegates.id, chair.id], args.voters, village_id=village.id
        )
        for c in codes:
            _print_kv("issued", c.code)

        names = {c.name: c.id for c in delegates.candidates + chair.candidates}
        picks = [("Alice", "Bob"), ("Alice", "Carol"), ("Bob", "Carol"), ("Alice", "Dave")]

        _print_heading("[Voting]")
        # the last code never shows up
        for i, c in enumerate(codes[:-1]):
            try:
                sess = session.redeem(c.code.lower())
                form = session.select_election(sess, delegates.id)
                for name in picks[i % len(picks)]:
                    form.toggle(names[name])
                submission.submit_form(sess, form)
                form = session.select_election(sess, chair.id)
                if i % 3 == 2:
                    form.toggle_abstain()
                else:
                    form.toggle(names["Erin" if i % 2 == 0 else "Frank"])
                outcome = submission.submit_form(sess, form)
                _print_kv(c.code, outcome.value)
            except VotingError as e:
                _print_kv(c.code, f"rejected: {e.message}")

        # a second attempt with a finished code is turned away
        try:
            session.redeem(codes[0].code)
        except VotingError as e:
            _print_kv(codes[0].code, f"rejected: {e.message}")

        _print_report(results.election_results(delegates.id))
        _print_report(results.election_results(chair.id))


if __name__ == "__main__":
    main()
