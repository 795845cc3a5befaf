"""Flask API for the voter-code election engine.

Endpoints:
- POST /redeem -> redeem {"code": ...} and return the voting session
- GET /codes/<code>/elections -> the session again, without recording a login
- GET /codes/<code>/elections/<id> -> ballot form (candidates, max_selections)
- POST /codes/<code>/elections/<id>/ballot -> {"candidate_ids": [...]} or {"abstain": true}
- GET /elections/<id>/results -> participation, standings and winners
- GET /elections/<id>/monitor -> live standings plus the poll interval
- POST /admin/codes -> issue a batch of voter codes
- DELETE /admin/codes/<id> -> delete an unused code
- POST /admin/groups/<id>/elections -> add elections to a group, widening its codes
- POST /admin/elections/<id>/status -> change an election's status
"""

import hmac
import logging
from typing import Any, Dict, Optional

from flask import Flask, current_app, jsonify, request

from . import admin, errors, results, session as ballot_session, submission
from .config import Config, make_logger
from .models import db


logger = logging.getLogger(__name__)


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise errors.InvalidRequest("Request body must be a JSON object.")
    return data


def _require_admin() -> None:
    token = current_app.config.get("ADMIN_TOKEN")
    if not token:
        return
    presented = request.headers.get("X-Admin-Token", "")
    if not hmac.compare_digest(token.encode("utf-8"), presented.encode("utf-8")):
        raise errors.AdminTokenRequired("A valid admin token is required.")


def _int_list(value, field: str):
    if not isinstance(value, list) or not all(
        isinstance(v, int) and not isinstance(v, bool) for v in value
    ):
        raise errors.InvalidRequest(f"'{field}' must be a list of ids.")
    return value


def register_routes(app: Flask) -> None:
    @app.errorhandler(errors.VotingError)
    def handle_voting_error(e: errors.VotingError):
        return jsonify(e.to_dict()), e.status

    @app.route("/redeem", methods=["POST"])
    def redeem_code():
        """Redeem a voter code: expects JSON {"code": "..."}."""
        data = _json_body()
        code = data.get("code")
        if not isinstance(code, str) or not code.strip():
            return jsonify({"error": "invalid_request", "detail": "missing code"}), 400
        sess = ballot_session.redeem(code)
        return jsonify(sess.to_dict())

    @app.route("/codes/<code>/elections", methods=["GET"])
    def list_elections(code):
        return jsonify(ballot_session.load_session(code).to_dict())

    @app.route("/codes/<code>/elections/<int:election_id>", methods=["GET"])
    def ballot_form(code, election_id):
        sess = ballot_session.load_session(code)
        form = ballot_session.select_election(sess, election_id)
        return jsonify(form.to_dict())

    @app.route("/codes/<code>/elections/<int:election_id>/ballot", methods=["POST"])
    def cast_ballot(code, election_id):
        """Cast a ballot for one election.

        Expects {"candidate_ids": [...]} or {"abstain": true}.
        """
        data = _json_body()
        abstain = data.get("abstain", False)
        if not isinstance(abstain, bool):
            raise errors.InvalidRequest("'abstain' must be true or false.")
        candidate_ids = data.get("candidate_ids")
        if candidate_ids is not None:
            candidate_ids = _int_list(candidate_ids, "candidate_ids")
        elif not abstain:
            candidate_ids = []

        sess = ballot_session.load_session(code)
        outcome = submission.submit(sess, election_id, candidate_ids=candidate_ids, abstain=abstain)
        return (
            jsonify(
                {
                    "status": "cast",
                    "outcome": outcome.value,
                    "remaining": sorted(sess.pending),
                }
            ),
            201,
        )

    @app.route("/elections/<int:election_id>/results", methods=["GET"])
    def election_results(election_id):
        return jsonify(results.election_results(election_id))

    @app.route("/elections/<int:election_id>/monitor", methods=["GET"])
    def monitor(election_id):
        report = results.election_results(election_id)
        return jsonify(
            {
                "election": report["election"],
                "stats": report["stats"],
                "standings": report["standings"],
                "resolution": report["resolution"],
                "refresh_seconds": current_app.config["MONITOR_REFRESH_SECONDS"],
            }
        )

    @app.route("/admin/codes", methods=["POST"])
    def issue_codes():
        """Issue codes: {"code_type", "election_ids", "quantity", "village_id"?, "voter_names"?}."""
        _require_admin()
        data = _json_body()
        quantity = data.get("quantity", 10)
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            raise errors.InvalidRequest("'quantity' must be an integer.")
        voter_names = data.get("voter_names")
        if voter_names is not None and not isinstance(voter_names, list):
            raise errors.InvalidRequest("'voter_names' must be a list.")
        issued = admin.generate_codes(
            data.get("code_type"),
            _int_list(data.get("election_ids"), "election_ids"),
            quantity,
            village_id=data.get("village_id"),
            voter_names=voter_names,
        )
        return jsonify({"status": "issued", "codes": [c.to_dict() for c in issued]}), 201

    @app.route("/admin/codes/<int:code_id>", methods=["DELETE"])
    def remove_code(code_id):
        _require_admin()
        admin.delete_code(code_id)
        return jsonify({"status": "deleted"})

    @app.route("/admin/groups/<int:group_id>/elections", methods=["POST"])
    def add_group_elections(group_id):
        _require_admin()
        data = _json_body()
        widened = admin.add_elections_to_group(
            group_id, _int_list(data.get("election_ids"), "election_ids")
        )
        return jsonify({"status": "added", "codes_widened": widened})

    @app.route("/admin/elections/<int:election_id>/status", methods=["POST"])
    def change_status(election_id):
        _require_admin()
        data = _json_body()
        election = admin.set_election_status(election_id, data.get("status"))
        return jsonify(election.to_dict())


def create_app(config: Optional[Dict[str, Any]] = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)
    make_logger("codevote", app.config["LOG_LEVEL"])

    db.init_app(app)
    with app.app_context():
        db.create_all()

    register_routes(app)
    logger.info("codevote API ready on %s", app.config["SQLALCHEMY_DATABASE_URI"].split("://")[0])
    return app


if __name__ == "__main__":
    create_app().run(debug=True)
