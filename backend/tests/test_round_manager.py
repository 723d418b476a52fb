from __future__ import annotations

from songquiz.round_manager import PhaseDurations, RoundManager

DURATIONS = PhaseDurations(round_ms=10_000, reveal_ms=3_000, leaderboard_ms=2_000)


def started_manager(total_rounds: int = 2, countdown_ms: int = 1_000) -> RoundManager:
    manager = RoundManager("ROOM01")
    assert manager.start(0, countdown_ms, total_rounds)
    return manager


def test_start_only_from_waiting():
    manager = started_manager()
    assert manager.phase == "countdown"
    assert manager.deadline_ms == 1_000
    assert manager.start(500, 1_000, 3) is False
    assert manager.total_rounds == 2


def test_waiting_and_results_have_no_deadline():
    manager = RoundManager("ROOM01")
    assert manager.phase == "waiting"
    assert manager.deadline_ms is None

    manager.start(0, 0, 1)
    manager.tick(100_000, DURATIONS)
    assert manager.phase == "results"
    assert manager.deadline_ms is None


def test_tick_walks_through_the_round_cycle():
    manager = started_manager()

    manager.tick(999, DURATIONS)
    assert manager.phase == "countdown"

    manager.tick(1_000, DURATIONS)
    assert (manager.phase, manager.current_round) == ("playing", 1)
    assert manager.round_started_at_ms == 1_000
    assert manager.deadline_ms == 11_000

    result = manager.tick(11_000, DURATIONS)
    assert manager.phase == "reveal"
    assert [closed.round for closed in result.closed_rounds] == [1]

    manager.tick(14_000, DURATIONS)
    assert manager.phase == "leaderboard"

    manager.tick(16_000, DURATIONS)
    assert (manager.phase, manager.current_round) == ("playing", 2)


def test_late_tick_matches_incremental_ticks():
    incremental = started_manager(total_rounds=3)
    for now in range(0, 40_001, 250):
        incremental.tick(now, DURATIONS)

    single = started_manager(total_rounds=3)
    result = single.tick(40_000, DURATIONS)

    assert (single.phase, single.current_round, single.deadline_ms) == (
        incremental.phase,
        incremental.current_round,
        incremental.deadline_ms,
    )
    assert [closed.round for closed in result.closed_rounds] == [1, 2]


def test_zero_rounds_finishes_after_countdown():
    manager = started_manager(total_rounds=0)
    manager.tick(1_000, DURATIONS)
    assert manager.phase == "results"


def test_loading_phase_precedes_playing_when_configured():
    durations = PhaseDurations(round_ms=10_000, reveal_ms=3_000, leaderboard_ms=2_000, loading_ms=1_500)
    manager = started_manager()
    manager.tick(1_000, durations)
    assert manager.phase == "loading"
    assert manager.deadline_ms == 2_500

    manager.tick(2_500, durations)
    assert manager.phase == "playing"
    assert manager.round_started_at_ms == 2_500


def test_single_commit_per_round():
    manager = started_manager()
    manager.tick(1_000, DURATIONS)

    assert manager.submit_answer("p1", "first", 2_000).accepted
    second = manager.submit_answer("p1", "second", 3_000)
    assert not second.accepted
    assert second.reason == "already_answered"
    assert manager.answers["p1"].value == "first"


def test_answer_rejected_outside_playing_or_after_deadline():
    manager = started_manager()
    assert manager.submit_answer("p1", "early", 500).reason == "wrong_phase"

    manager.tick(1_000, DURATIONS)
    assert manager.submit_answer("p1", "late", 11_000).reason == "deadline_passed"


def test_draft_is_promoted_at_the_deadline():
    manager = started_manager(countdown_ms=0)
    manager.tick(0, DURATIONS)

    assert manager.set_draft_answer("p1", "draft guess", 2_000).accepted
    assert manager.set_draft_answer("p2", "   ", 2_000).accepted

    result = manager.tick(10_000, DURATIONS)
    closed = result.closed_rounds[0]
    assert closed.answers["p1"].value == "draft guess"
    assert closed.answers["p1"].submitted_at_ms == 10_000
    assert "p2" not in closed.answers


def test_commit_clears_draft():
    manager = started_manager(countdown_ms=0)
    manager.tick(0, DURATIONS)
    manager.set_draft_answer("p1", "draft", 100)
    manager.submit_answer("p1", "final", 200)

    closed = manager.tick(10_000, DURATIONS).closed_rounds[0]
    assert closed.answers["p1"].value == "final"
    assert closed.answers["p1"].submitted_at_ms == 200


def test_skipped_guess_blocks_submission_and_draft_promotion():
    manager = started_manager(countdown_ms=0)
    manager.tick(0, DURATIONS)
    manager.set_draft_answer("p1", "draft", 100)

    assert manager.skip_guess_for_player("p1").accepted
    assert manager.submit_answer("p1", "answer", 200).reason == "already_skipped"
    assert manager.skip_guess_for_player("p1").reason == "already_skipped"

    closed = manager.tick(10_000, DURATIONS).closed_rounds[0]
    assert closed.answers == {}
    assert closed.skipped_player_ids == frozenset({"p1"})


def test_reveal_skip_and_media_ready_are_phase_gated():
    manager = started_manager(countdown_ms=0)
    assert manager.skip_reveal_for_player("p1").reason == "wrong_phase"
    manager.tick(0, DURATIONS)

    assert manager.mark_media_ready("p1").accepted
    assert manager.mark_media_ready("p1").reason == "already_ready"

    manager.tick(10_000, DURATIONS)
    assert manager.skip_reveal_for_player("p1").accepted
    assert manager.all_skipped_reveal(["p1"])
    assert not manager.all_skipped_reveal(["p1", "p2"])


def test_expire_current_phase_advances_on_next_tick():
    manager = started_manager(countdown_ms=0)
    manager.tick(0, DURATIONS)
    manager.submit_answer("p1", "guess", 1_200)

    assert manager.expire_current_phase(1_500)
    result = manager.tick(1_500, DURATIONS)
    assert manager.phase == "reveal"
    assert result.closed_rounds[0].closed_at_ms == 1_500
    assert manager.deadline_ms == 4_500


def test_remove_player_purges_round_maps():
    manager = started_manager(countdown_ms=0)
    manager.tick(0, DURATIONS)
    manager.submit_answer("p1", "guess", 100)
    manager.set_draft_answer("p2", "draft", 100)
    manager.mark_media_ready("p2")

    manager.remove_player("p1")
    manager.remove_player("p2")
    assert manager.answers == {}
    assert manager.drafts == {}
    assert manager.media_ready == set()


def test_reset_to_waiting_clears_everything():
    manager = started_manager(countdown_ms=0)
    manager.tick(0, DURATIONS)
    manager.submit_answer("p1", "guess", 100)

    manager.reset_to_waiting()
    assert manager.phase == "waiting"
    assert manager.current_round == 0
    assert manager.deadline_ms is None
    assert manager.answers == {}
