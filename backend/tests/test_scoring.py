import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fitstake.errors import (
    AlreadyReviewed, AlreadySettled, ChallengeEnded, DuplicateSubmission, InvalidScore, NotAParticipant,
    SubmissionNotFound, ValidationFailed, VideoTooLong,
)
from fitstake.services.entry import join_challenge
from fitstake.services.scoring import (
    final_score, list_submissions, list_user_submissions, submit, user_has_active_submission, validate,
)
from fitstake.services.settlement import get_leaderboard, list_payouts, settle


def _now():
    return datetime.now(timezone.utc)


async def _entrant(session, funded, challenge_id):
    user = await funded("100")
    await join_challenge(session, challenge_id, user)
    return user


def test_final_score_weights():
    assert final_score(80, 20) == Decimal("56.00")
    assert final_score(Decimal("100"), 0) == Decimal("60.00")
    assert final_score(0, 50) == Decimal("20.00")
    assert final_score("72.5", 13) == Decimal("48.70")


@pytest.mark.parametrize("form, reps", [(-1, 10), (100.5, 10), (50, -1), (50, 2.5), ("abc", 3), (50, True)])
def test_final_score_rejects_out_of_range_inputs(form, reps):
    with pytest.raises(InvalidScore):
        final_score(form, reps)


@pytest.mark.asyncio
async def test_submit_creates_pending_submission(session, funded, make_challenge):
    ch = await make_challenge()
    ch_id = ch.id
    user = await _entrant(session, funded, ch_id)

    s = await submit(session, ch_id, user, "videos/abc.mp4", declared_score=40, notes="clean reps",
                     video_duration_seconds=45)

    assert s.status == "pending"
    assert s.final_score is None and s.form_score is None and s.rep_count is None
    assert s.video_ref == "videos/abc.mp4"
    assert await user_has_active_submission(session, ch_id, user)


@pytest.mark.asyncio
async def test_submit_rejections(session, funded, make_challenge):
    ch = await make_challenge(video_duration_limit=30)
    ch_id = ch.id
    ends_at = ch.ends_at
    outsider = await funded("100")

    with pytest.raises(NotAParticipant):
        await submit(session, ch_id, outsider, "videos/x.mp4")

    user = await _entrant(session, funded, ch_id)
    with pytest.raises(ValidationFailed):
        await submit(session, ch_id, user, "   ")
    with pytest.raises(VideoTooLong):
        await submit(session, ch_id, user, "videos/long.mp4", video_duration_seconds=31)
    with pytest.raises(ChallengeEnded):
        await submit(session, ch_id, user, "videos/late.mp4", now=ends_at + timedelta(seconds=1))


@pytest.mark.asyncio
async def test_duplicate_submission_until_first_is_rejected(session, funded, make_challenge):
    ch = await make_challenge()
    ch_id = ch.id
    user = await _entrant(session, funded, ch_id)

    first = await submit(session, ch_id, user, "videos/1.mp4")
    first_id = first.id
    with pytest.raises(DuplicateSubmission):
        await submit(session, ch_id, user, "videos/2.mp4")

    await validate(session, first_id, 10, 1, decision="reject", rejection_reason="partial reps")
    assert not await user_has_active_submission(session, ch_id, user)

    second = await submit(session, ch_id, user, "videos/2.mp4")
    assert second.status == "pending"
    assert second.id != first_id


@pytest.mark.asyncio
async def test_validate_approve_scores_and_updates_leaderboard(session, funded, make_challenge):
    ch = await make_challenge()
    ch_id = ch.id
    user = await _entrant(session, funded, ch_id)
    s = await submit(session, ch_id, user, "videos/1.mp4")

    reviewed = await validate(session, s.id, 80, 20, notes="good depth")

    assert reviewed.status == "approved"
    assert reviewed.final_score == Decimal("56.00")
    assert reviewed.form_score == Decimal("80.00")
    assert reviewed.rep_count == 20
    assert reviewed.validation_notes == "good depth"
    assert reviewed.reviewed_at is not None

    board = await get_leaderboard(session, ch_id)
    assert [(r.rank, r.user_id, r.score) for r in board] == [(1, user, Decimal("56.00"))]


@pytest.mark.asyncio
async def test_validate_is_one_shot(session, funded, make_challenge):
    ch = await make_challenge()
    ch_id = ch.id
    user = await _entrant(session, funded, ch_id)
    sid = (await submit(session, ch_id, user, "videos/1.mp4")).id
    await validate(session, sid, 80, 20)

    with pytest.raises(AlreadyReviewed):
        await validate(session, sid, 90, 30)
    with pytest.raises(AlreadyReviewed):
        await validate(session, sid, 10, 1, decision="reject")

    with pytest.raises(SubmissionNotFound):
        await validate(session, uuid.uuid4(), 50, 5)
    with pytest.raises(ValidationFailed):
        await validate(session, sid, 50, 5, decision="maybe")


@pytest.mark.asyncio
async def test_leaderboard_ties_go_to_earliest_submission(session, funded, make_challenge):
    ch = await make_challenge()
    ch_id = ch.id
    base = _now()
    users = [await _entrant(session, funded, ch_id) for _ in range(3)]
    subs = []
    # submitted in order 0, 1, 2; users 1 and 2 tie on score
    for i, u in enumerate(users):
        subs.append(await submit(session, ch_id, u, f"videos/{i}.mp4", now=base + timedelta(minutes=i)))
    await validate(session, subs[2].id, 50, 25)
    await validate(session, subs[1].id, 50, 25)
    await validate(session, subs[0].id, 90, 30)

    board = await get_leaderboard(session, ch_id)
    assert [r.user_id for r in board] == [users[0], users[1], users[2]]
    assert [r.rank for r in board] == [1, 2, 3]
    assert board[1].score == board[2].score == Decimal("40.00")


@pytest.mark.asyncio
async def test_approval_after_settlement_is_refused(session, funded, make_challenge):
    ch = await make_challenge(prize_distribution="winner_takes_all")
    ch_id, ends_at = ch.id, ch.ends_at
    winner = await _entrant(session, funded, ch_id)
    latecomer = await _entrant(session, funded, ch_id)
    first = await submit(session, ch_id, winner, "videos/winner.mp4")
    late_id = (await submit(session, ch_id, latecomer, "videos/late.mp4")).id
    await validate(session, first.id, 50, 10)
    await settle(session, ch_id, now=ends_at)

    with pytest.raises(AlreadySettled):
        await validate(session, late_id, 100, 100)

    board = await get_leaderboard(session, ch_id)
    (payout,) = await list_payouts(session, ch_id)
    assert [r.user_id for r in board] == [winner]
    assert payout.user_id == winner

    # the leftover can still be cleared from the queue
    rejected = await validate(session, late_id, 0, 0, decision="reject", rejection_reason="reviewed after settlement")
    assert rejected.status == "rejected"
    assert [r.user_id for r in await get_leaderboard(session, ch_id)] == [winner]


@pytest.mark.asyncio
async def test_review_queue_and_own_submissions(session, funded, make_challenge):
    ch = await make_challenge()
    ch_id = ch.id
    base = _now()
    users = [await _entrant(session, funded, ch_id) for _ in range(3)]
    subs = [
        await submit(session, ch_id, u, f"videos/{i}.mp4", now=base + timedelta(minutes=i))
        for i, u in enumerate(users)
    ]
    await validate(session, subs[1].id, 70, 10)

    queue = await list_submissions(session, ch_id, status="pending")
    assert [s.id for s in queue] == [subs[0].id, subs[2].id]
    assert len(await list_submissions(session, ch_id)) == 3
    assert [s.status for s in await list_submissions(session, ch_id, status="approved")] == ["approved"]

    mine = await list_user_submissions(session, users[1])
    assert [s.id for s in mine] == [subs[1].id]
    assert await list_user_submissions(session, users[1], status="pending") == []

    with pytest.raises(ValidationFailed):
        await list_submissions(session, ch_id, status="archived")
