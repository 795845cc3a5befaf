from datetime import datetime

import pytest

from codevote import admin, errors, session, submission


T1 = datetime(2024, 3, 2, 9, 0, 0)
T2 = datetime(2024, 3, 2, 9, 30, 0)


def test_redeem_unknown_code(app):
    with pytest.raises(errors.InvalidCode):
        session.redeem("ZZ9999")
    with pytest.raises(errors.InvalidCode):
        session.redeem("   ")


def test_redeem_is_case_insensitive_and_lists_active_elections(campaign):
    sess = session.redeem("  " + campaign.code.lower() + " ")
    assert sess.code.code == campaign.code
    # the waiting election is not offered
    assert sess.active_election_ids == {campaign.council.id, campaign.chair.id}
    assert sess.voted == set()
    assert all(entry.state == session.NOT_STARTED for entry in sess.entries)
    assert sess.to_dict()["complete"] is False


def test_first_login_recorded_once(campaign, reload_code):
    session.redeem(campaign.code, now=T1)
    code = reload_code(campaign.code)
    assert code.first_login_at == T1
    assert code.last_login_at == T1

    session.redeem(campaign.code, now=T2)
    code = reload_code(campaign.code)
    assert code.first_login_at == T1
    assert code.last_login_at == T2
    assert code.is_used is False


def test_no_active_elections_still_records_attendance(campaign, reload_code):
    waiting_only = admin.generate_codes(
        "delegate", [campaign.treasurer.id], 1, village_id=campaign.village.id
    )[0].code
    with pytest.raises(errors.NoActiveElections):
        session.redeem(waiting_only, now=T1)
    assert reload_code(waiting_only).first_login_at == T1


def test_load_session_does_not_touch_attendance(campaign, reload_code):
    sess = session.load_session(campaign.code)
    assert sess.pending == {campaign.council.id, campaign.chair.id}
    assert reload_code(campaign.code).first_login_at is None


def test_select_election_guards(campaign):
    sess = session.redeem(campaign.code)
    with pytest.raises(errors.NotAccessible):
        session.select_election(sess, campaign.treasurer.id)

    other = admin.create_election("Elsewhere", status="active", candidates=["Gus"])
    with pytest.raises(errors.NotAccessible):
        session.select_election(sess, other.id)

    submission.submit(sess, campaign.chair.id, abstain=True)
    with pytest.raises(errors.AlreadyVoted):
        session.select_election(sess, campaign.chair.id)


def test_ballot_form_lists_candidates_by_name(campaign):
    sess = session.redeem(campaign.code)
    form = session.select_election(sess, campaign.council.id)
    assert [c.name for c in form.candidates] == ["Alice", "Bob", "Carol"]
    assert form.max_selections == 2
    assert form.state == session.SELECTING


def test_selecting_past_the_limit_is_rejected(campaign):
    sess = session.redeem(campaign.code)
    form = session.select_election(sess, campaign.council.id)
    form.toggle(campaign.cands["Alice"])
    form.toggle(campaign.cands["Bob"])
    with pytest.raises(errors.SelectionLimitExceeded):
        form.toggle(campaign.cands["Carol"])
    assert form.selected == [campaign.cands["Alice"], campaign.cands["Bob"]]

    # toggling again deselects
    form.toggle(campaign.cands["Alice"])
    assert form.selected == [campaign.cands["Bob"]]


def test_abstain_and_candidates_are_mutually_exclusive(campaign):
    sess = session.redeem(campaign.code)
    form = session.select_election(sess, campaign.council.id)
    form.toggle(campaign.cands["Alice"])
    form.toggle_abstain()
    assert form.abstain is True
    assert form.selected == []

    form.toggle(campaign.cands["Bob"])
    assert form.abstain is False
    assert form.selected == [campaign.cands["Bob"]]


def test_validate_names_the_required_count(campaign):
    sess = session.redeem(campaign.code)
    form = session.select_election(sess, campaign.council.id)
    form.toggle(campaign.cands["Alice"])
    with pytest.raises(errors.SelectionCountMismatch) as exc:
        form.validate()
    assert "exactly 2" in exc.value.message
    assert "you selected 1" in exc.value.message

    form.toggle_abstain()
    form.validate()


def test_unknown_candidate_rejected_by_form(campaign):
    sess = session.redeem(campaign.code)
    form = session.select_election(sess, campaign.council.id)
    with pytest.raises(errors.UnknownCandidate):
        form.toggle(campaign.cands["Dan"])


def test_submitted_form_cannot_change(campaign):
    sess = session.redeem(campaign.code)
    form = session.select_election(sess, campaign.chair.id)
    form.toggle(campaign.cands["Dan"])
    submission.submit_form(sess, form)
    assert form.state == session.SUBMITTED
    with pytest.raises(errors.AlreadyVoted):
        form.toggle_abstain()


def test_fully_used_code_cannot_be_redeemed(campaign, reload_code):
    sess = session.redeem(campaign.code)
    submission.submit(sess, campaign.council.id, abstain=True)
    submission.submit(sess, campaign.chair.id, abstain=True)
    assert reload_code(campaign.code).is_used is True
    with pytest.raises(errors.CodeAlreadyUsed):
        session.redeem(campaign.code)


def test_used_code_reopens_when_another_election_goes_live(campaign, reload_code):
    sess = session.redeem(campaign.code)
    submission.submit(sess, campaign.council.id, abstain=True)
    submission.submit(sess, campaign.chair.id, abstain=True)
    assert reload_code(campaign.code).is_used is True

    admin.set_election_status(campaign.treasurer.id, "active")
    sess = session.redeem(campaign.code)
    assert sess.pending == {campaign.treasurer.id}
    code = reload_code(campaign.code)
    assert code.is_used is False
    assert code.used_at is None
