import pytest

# If Flask isn't installed in the environment, skip these integration tests.
pytest.importorskip("flask")

from codevote.models import Candidate, VoterCode, db


def test_full_flow_redeem_select_cast_results(client, campaign):
    code = campaign.code

    rv = client.post("/redeem", json={"code": code.lower()})
    assert rv.status_code == 200
    data = rv.get_json()
    assert data["code"] == code
    assert {e["id"] for e in data["elections"]} == {campaign.council.id, campaign.chair.id}
    assert data["complete"] is False

    rv = client.get(f"/codes/{code}/elections/{campaign.council.id}")
    assert rv.status_code == 200
    form = rv.get_json()
    assert [c["name"] for c in form["candidates"]] == ["Alice", "Bob", "Carol"]
    assert form["max_selections"] == 2

    rv = client.post(
        f"/codes/{code}/elections/{campaign.council.id}/ballot",
        json={"candidate_ids": [campaign.cands["Alice"], campaign.cands["Bob"]]},
    )
    assert rv.status_code == 201
    data = rv.get_json()
    assert data["outcome"] == "more_elections_remain"
    assert data["remaining"] == [campaign.chair.id]

    # casting again for the same election is refused
    rv = client.post(
        f"/codes/{code}/elections/{campaign.council.id}/ballot",
        json={"candidate_ids": [campaign.cands["Alice"], campaign.cands["Carol"]]},
    )
    assert rv.status_code == 409
    assert rv.get_json()["error"] in ("already_voted", "duplicate_vote")

    rv = client.post(f"/codes/{code}/elections/{campaign.chair.id}/ballot", json={"abstain": True})
    assert rv.status_code == 201
    assert rv.get_json() == {"status": "cast", "outcome": "all_complete", "remaining": []}

    db.session.expire_all()
    assert VoterCode.query.filter_by(code=code).one().is_used is True
    assert db.session.get(Candidate, campaign.cands["Alice"]).vote_count == 1

    rv = client.post("/redeem", json={"code": code})
    assert rv.status_code == 409

    rv = client.get(f"/elections/{campaign.council.id}/results")
    assert rv.status_code == 200
    report = rv.get_json()
    assert report["stats"]["unique_voters"] == 1
    assert report["standings"][0]["vote_count"] == 1
    assert set(report["resolution"]["winners"]) == {campaign.cands["Alice"], campaign.cands["Bob"]}

    rv = client.get(f"/elections/{campaign.council.id}/monitor")
    assert rv.status_code == 200
    assert rv.get_json()["refresh_seconds"] == 10


def test_invalid_code_and_bad_bodies(client, campaign):
    rv = client.post("/redeem", json={"code": "QQ0000"})
    assert rv.status_code == 404
    assert rv.get_json()["error"] == "invalid_code"

    rv = client.post("/redeem", json={})
    assert rv.status_code == 400

    rv = client.post("/redeem", data="not json", content_type="text/plain")
    assert rv.status_code == 400

    rv = client.post(
        f"/codes/{campaign.code}/elections/{campaign.council.id}/ballot",
        json={"candidate_ids": "Alice"},
    )
    assert rv.status_code == 400

    rv = client.post(
        f"/codes/{campaign.code}/elections/{campaign.council.id}/ballot",
        json={"candidate_ids": [campaign.cands["Alice"]]},
    )
    assert rv.status_code == 400
    assert rv.get_json()["error"] == "selection_count_mismatch"

    rv = client.get(f"/codes/{campaign.code}/elections/{campaign.treasurer.id}")
    assert rv.status_code == 403

    rv = client.get("/elections/9999/results")
    assert rv.status_code == 404


def test_admin_endpoints(client, campaign):
    rv = client.post(
        "/admin/codes",
        json={"code_type": "officer", "election_ids": [campaign.chair.id], "quantity": 2},
    )
    assert rv.status_code == 201
    issued = rv.get_json()["codes"]
    assert len(issued) == 2
    assert all(c["accessible_elections"] == [campaign.chair.id] for c in issued)

    rv = client.delete(f"/admin/codes/{issued[0]['id']}")
    assert rv.status_code == 200

    rv = client.post(f"/admin/elections/{campaign.treasurer.id}/status", json={"status": "active"})
    assert rv.status_code == 200
    assert rv.get_json()["status"] == "active"

    rv = client.post("/admin/codes", json={"code_type": "officer", "election_ids": [], "quantity": 2})
    assert rv.status_code == 400


def test_admin_token_is_enforced(app, client, campaign):
    app.config["ADMIN_TOKEN"] = "s3cret"
    payload = {"status": "closed"}

    rv = client.post(f"/admin/elections/{campaign.council.id}/status", json=payload)
    assert rv.status_code == 403

    rv = client.post(
        f"/admin/elections/{campaign.council.id}/status",
        json=payload,
        headers={"X-Admin-Token": "wrong"},
    )
    assert rv.status_code == 403

    rv = client.post(
        f"/admin/elections/{campaign.council.id}/status",
        json=payload,
        headers={"X-Admin-Token": "s3cret"},
    )
    assert rv.status_code == 200

    # voter endpoints never need the token
    rv = client.post("/redeem", json={"code": campaign.code})
    assert rv.status_code == 200


def test_repeat_ballot_with_empty_body_is_a_conflict(client, campaign):
    url = f"/codes/{campaign.code}/elections/{campaign.chair.id}/ballot"
    rv = client.post(url, json={"abstain": True})
    assert rv.status_code == 201

    rv = client.post(url, json={})
    assert rv.status_code == 409
    assert rv.get_json()["error"] == "duplicate_vote"
