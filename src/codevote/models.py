"""Database models for elections, candidates, voter codes and the ballot ledger."""

from flask_sqlalchemy import SQLAlchemy

from .helpers import isoformat, utcnow


db = SQLAlchemy()

CODE_TYPES = ("delegate", "officer")
ELECTION_STATUSES = ("waiting", "registering", "active", "closed")
GROUP_STATUSES = ("waiting", "active", "closed")


# access table: which elections a voter code may vote in
code_elections = db.Table(
    "code_elections",
    db.Column("voter_code_id", db.Integer, db.ForeignKey("voter_code.id"), primary_key=True),
    db.Column("election_id", db.Integer, db.ForeignKey("election.id"), primary_key=True),
)


class Village(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)


class ElectionGroup(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    group_type = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), default="waiting", nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    elections = db.relationship("Election", backref="group", lazy=True)


class Election(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    election_type = db.Column(db.String(20), nullable=False)
    position = db.Column(db.String(100), nullable=True)
    village_id = db.Column(db.Integer, db.ForeignKey("village.id"), nullable=True)
    group_id = db.Column(db.Integer, db.ForeignKey("election_group.id"), nullable=True)
    max_selections = db.Column(db.Integer, default=1, nullable=False)
    round = db.Column(db.Integer, default=1, nullable=False)
    status = db.Column(db.String(20), default="waiting", nullable=False)
    # {"type": "plurality"} | {"type": "absolute_majority"}
    # | {"type": "percentage", "percentage": 66.67, "base": "attended"}
    winning_criteria = db.Column(db.JSON, default=lambda: {"type": "plurality"}, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    village = db.relationship("Village")
    candidates = db.relationship(
        "Candidate", backref="election", cascade="all, delete-orphan", lazy=True
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "election_type": self.election_type,
            "position": self.position,
            "village": self.village.name if self.village else None,
            "group_id": self.group_id,
            "max_selections": self.max_selections,
            "round": self.round,
            "status": self.status,
            "winning_criteria": self.winning_criteria,
        }


class Candidate(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey("election.id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    vote_count = db.Column(db.Integer, default=0, nullable=False)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "vote_count": self.vote_count}


class VoterCode(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), unique=True, nullable=False)
    code_type = db.Column(db.String(20), nullable=False)
    village_id = db.Column(db.Integer, db.ForeignKey("village.id"), nullable=True)
    voter_name = db.Column(db.String(100), nullable=True)
    is_used = db.Column(db.Boolean, default=False, nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    first_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    village = db.relationship("Village")
    accessible_elections = db.relationship(
        "Election", secondary=code_elections, lazy="subquery"
    )

    @property
    def accessible_election_ids(self):
        return {e.id for e in self.accessible_elections}

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "code_type": self.code_type,
            "village": self.village.name if self.village else None,
            "voter_name": self.voter_name,
            "accessible_elections": sorted(self.accessible_election_ids),
            "is_used": self.is_used,
            "used_at": isoformat(self.used_at),
            "first_login_at": isoformat(self.first_login_at),
            "last_login_at": isoformat(self.last_login_at),
        }


class BallotEvent(db.Model):
    """One row per (election, voter code): the key that makes a vote final."""

    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey("election.id"), nullable=False)
    voter_code_id = db.Column(db.Integer, db.ForeignKey("voter_code.id"), nullable=False)
    is_abstain = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    ballots = db.relationship("Ballot", backref="event", lazy=True)

    __table_args__ = (
        db.UniqueConstraint("election_id", "voter_code_id", name="uq_ballot_event_election_code"),
    )


class Ballot(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("ballot_event.id"), nullable=False)
    election_id = db.Column(db.Integer, db.ForeignKey("election.id"), nullable=False)
    voter_code_id = db.Column(db.Integer, db.ForeignKey("voter_code.id"), nullable=False)
    # null when abstaining
    candidate_id = db.Column(db.Integer, db.ForeignKey("candidate.id"), nullable=True)
    is_abstain = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            "election_id", "voter_code_id", "candidate_id", name="uq_ballot_candidate"
        ),
    )
