from __future__ import annotations

import json

import pytest

from guess_it.clock import ManualClock
from guess_it.game_core import FAIL_PHRASES, TIMEOUT_MESSAGE, WIN_PHRASES, Mode, Outcome, SessionStats
from guess_it.persistence import ACHIEVEMENTS_KEY, STATS_KEY, InMemoryStore, load_stats
from guess_it.rounds import RoundRecord
from guess_it.session import GuessSession, SessionConfig, SessionPhase
from guess_it.sound import RecordingSound, SoundCue


def _rounds() -> list[RoundRecord]:
    return [
        RoundRecord("1", "cat.jpg", "Meows", ("cat", "kitten")),
        RoundRecord("2", "dog.jpg", "Barks", ("dog", "puppy")),
        RoundRecord("3", "bird.jpg", "Sings", ("bird", "parrot")),
    ]


def _session(mode: Mode = Mode.TIMED, **kwargs: object) -> tuple[GuessSession, ManualClock]:
    clock = ManualClock()
    rounds = kwargs.pop("rounds", _rounds())
    s = GuessSession(rounds=rounds, clock=clock, seed=123, mode=mode, **kwargs)  # type: ignore[arg-type]
    return s, clock


def test_correct_guess_shows_win_feedback_then_advances() -> None:
    s, clock = _session(Mode.CLASSIC)
    assert s.submit_guess("  KITTEN ") is True

    snap = s.snapshot()
    assert snap.phase is SessionPhase.FEEDBACK
    assert snap.feedback.visible and snap.feedback.kind is Outcome.WIN
    assert snap.feedback.message in WIN_PHRASES
    assert s.stats == SessionStats(correct=1, wrong=0, streak=1, rounds_played=1)

    clock.advance(0.5)
    s.update()
    assert s.phase is SessionPhase.FEEDBACK

    clock.advance(0.5)
    s.update()
    assert s.phase is SessionPhase.AWAITING_INPUT
    assert s.round_index == 1
    assert s.feedback.visible is False


def test_wrong_guess_retries_same_round() -> None:
    s, clock = _session(Mode.CLASSIC)
    assert s.submit_guess("cow")
    assert s.feedback.kind is Outcome.FAIL
    assert s.feedback.message in FAIL_PHRASES

    clock.advance(1.0)
    s.update()
    assert s.phase is SessionPhase.AWAITING_INPUT
    assert s.round_index == 0

    assert s.submit_guess("horse")
    clock.advance(1.0)
    s.update()
    assert s.round_index == 0
    assert s.stats == SessionStats(correct=0, wrong=2, streak=0, rounds_played=2)


def test_input_is_rejected_while_feedback_is_showing() -> None:
    s, _clock = _session(Mode.CLASSIC)
    assert s.submit_guess("cat")
    assert s.submit_guess("cat") is False
    assert s.stats.rounds_played == 1


def test_blank_guess_is_ignored() -> None:
    s, _clock = _session(Mode.CLASSIC)
    assert s.submit_guess("   ") is False
    assert s.submit_guess("") is False
    assert s.phase is SessionPhase.AWAITING_INPUT
    assert s.stats == SessionStats()


def test_streak_counts_and_resets() -> None:
    s, clock = _session(Mode.CLASSIC)
    streaks = []
    for guess, delay in (("cat", 0.9), ("puppy", 0.9), ("fish", 1.0), ("parrot", 0.9)):
        assert s.submit_guess(guess)
        streaks.append(s.stats.streak)
        clock.advance(delay)
        s.update()
    assert streaks == [1, 2, 0, 1]
    assert s.phase is SessionPhase.COMPLETE

    result = s.result()
    assert result.best_streak == 2
    assert ("Longest Streak", "2") in result.tiles()
    assert ("Accuracy", "75%") in result.tiles()


def test_timed_session_completes_after_last_round() -> None:
    s, clock = _session(Mode.TIMED)
    assert s.skip() and s.skip()
    assert s.round_index == 2
    assert s.stats == SessionStats()

    assert s.submit_guess("bird")
    assert s.phase is SessionPhase.FEEDBACK
    clock.advance(0.9)
    s.update()
    assert s.phase is SessionPhase.COMPLETE
    assert s.stats.correct == 1
    assert s.result().completed is True

    assert s.submit_guess("bird") is False
    assert s.skip() is False


def test_countdown_waits_for_content_then_times_out_and_advances() -> None:
    s, clock = _session(Mode.TIMED)
    clock.advance(30.0)
    s.update()
    assert s.phase is SessionPhase.AWAITING_INPUT
    assert s.timer_active is False
    assert s.snapshot().countdown_s == 5

    s.mark_content_ready()
    assert s.timer_active
    clock.advance(1.2)
    s.update()
    assert s.snapshot().countdown_s == 4

    clock.advance(3.9)
    s.update()
    assert s.phase is SessionPhase.FEEDBACK
    assert s.feedback.kind is Outcome.FAIL
    assert s.feedback.message == TIMEOUT_MESSAGE
    assert s.stats.wrong == 1

    clock.advance(1.0)
    s.update()
    assert s.phase is SessionPhase.AWAITING_INPUT
    assert s.round_index == 1
    assert s.timer_active is False


def test_countdown_only_runs_in_timed_modes() -> None:
    for mode in (Mode.CLASSIC, Mode.SURVIVAL):
        s, clock = _session(mode)
        s.mark_content_ready()
        assert s.timer_active is False
        assert s.snapshot().countdown_s is None
        clock.advance(10.0)
        s.update()
        assert s.phase is SessionPhase.AWAITING_INPUT

    s, _clock = _session(Mode.MULTIPLE_CHOICE)
    s.mark_content_ready()
    assert s.timer_active


def test_countdown_pauses_during_feedback_and_restarts_on_retry() -> None:
    s, clock = _session(Mode.TIMED)
    s.mark_content_ready()
    clock.advance(4.0)
    assert s.submit_guess("cow")
    assert s.timer_active is False

    clock.advance(1.0)
    s.update()
    assert s.phase is SessionPhase.AWAITING_INPUT
    assert s.round_index == 0
    assert s.timer_active
    assert s.snapshot().countdown_s == 5


def test_mode_change_restarts_countdown() -> None:
    s, clock = _session(Mode.TIMED)
    s.mark_content_ready()
    clock.advance(3.0)
    s.update()
    assert s.snapshot().countdown_s == 2

    s.set_mode(Mode.CLASSIC)
    assert s.timer_active is False
    clock.advance(10.0)
    s.update()
    assert s.phase is SessionPhase.AWAITING_INPUT

    s.set_mode(Mode.TIMED)
    assert s.timer_active
    assert s.snapshot().countdown_s == 5


def test_skip_during_feedback_strands_pending_transition() -> None:
    s, clock = _session(Mode.CLASSIC)
    assert s.submit_guess("cat")
    assert s.skip()
    assert s.round_index == 1
    assert s.phase is SessionPhase.AWAITING_INPUT

    clock.advance(5.0)
    s.update()
    assert s.round_index == 1
    assert s.phase is SessionPhase.AWAITING_INPUT
    assert s.stats.rounds_played == 1


def test_reset_during_feedback_strands_pending_transition() -> None:
    store = InMemoryStore()
    s, clock = _session(Mode.CLASSIC, store=store)
    assert s.submit_guess("cat")
    clock.advance(0.9)
    s.update()
    assert s.submit_guess("dog")

    s.reset()
    assert s.stats == SessionStats()
    assert load_stats(store) == SessionStats()
    assert s.round_index == 0
    assert s.phase is SessionPhase.AWAITING_INPUT
    assert s.feedback.visible is False

    clock.advance(5.0)
    s.update()
    assert s.round_index == 0


def test_timer_from_an_old_round_never_fires_late() -> None:
    s, clock = _session(Mode.TIMED)
    s.mark_content_ready()
    clock.advance(4.9)
    s.skip()
    clock.advance(0.5)
    s.update()
    assert s.phase is SessionPhase.AWAITING_INPUT
    assert s.stats.wrong == 0


def test_dismiss_feedback_fires_transition_immediately() -> None:
    s, clock = _session(Mode.CLASSIC)
    assert s.dismiss_feedback() is False
    assert s.submit_guess("kitten")
    assert s.dismiss_feedback() is True
    assert s.round_index == 1
    clock.advance(2.0)
    s.update()
    assert s.round_index == 1


def test_survival_loses_lives_and_wraps_catalog() -> None:
    s, clock = _session(Mode.SURVIVAL)
    assert s.snapshot().lives == 3
    assert s.submit_guess("wrong")
    assert s.lives == 2
    clock.advance(1.0)
    s.update()

    for guess in ("cat", "dog", "bird"):
        s.submit_guess(guess)
        clock.advance(0.9)
        s.update()
    # Past the end of the catalog, rounds wrap around.
    assert s.round_index == 3
    assert s.current_round is not None and s.current_round.round_id == "1"
    assert s.snapshot().round_number == 4
    assert s.phase is SessionPhase.AWAITING_INPUT


def test_survival_ends_when_last_life_is_lost() -> None:
    s, clock = _session(Mode.SURVIVAL, config=SessionConfig(starting_lives=1))
    assert s.submit_guess("nope")
    assert s.lives == 0
    clock.advance(1.0)
    s.update()
    assert s.phase is SessionPhase.COMPLETE
    assert s.round_index == 0
    assert ("Lives Remaining", "0") in s.result().tiles()


def test_switching_modes_never_changes_lives() -> None:
    s, clock = _session(Mode.SURVIVAL)
    s.submit_guess("nope")
    clock.advance(1.0)
    s.update()
    assert s.lives == 2
    s.set_mode(Mode.CLASSIC)
    assert s.snapshot().lives is None
    s.set_mode(Mode.SURVIVAL)
    assert s.lives == 2
    assert s.snapshot().lives == 2


@pytest.mark.parametrize("cycles", [1, 4])
def test_mode_change_during_last_life_fail_still_ends_session(cycles: int) -> None:
    s, clock = _session(Mode.SURVIVAL, config=SessionConfig(starting_lives=1))
    assert s.submit_guess("nope")
    assert s.lives == 0
    for _ in range(cycles):
        s.cycle_mode()
    clock.advance(1.0)
    s.update()
    assert s.phase is SessionPhase.COMPLETE
    assert s.lives == 0


def test_dismissing_last_life_fail_after_mode_change_ends_session() -> None:
    s, _clock = _session(Mode.SURVIVAL, config=SessionConfig(starting_lives=1))
    assert s.submit_guess("nope")
    s.set_mode(Mode.CLASSIC)
    assert s.dismiss_feedback()
    assert s.phase is SessionPhase.COMPLETE


def test_multiple_choice_offers_options_and_scores_selection() -> None:
    rounds = _rounds() + [RoundRecord("4", "fish.jpg", "Swims", ("fish",))]
    s, _clock = _session(Mode.MULTIPLE_CHOICE, rounds=rounds)
    choices = s.choices
    assert len(choices) == 4
    correct = [c for c in choices if c in ("cat", "kitten")]
    assert len(correct) == 1

    assert s.submit_choice(correct[0])
    assert s.feedback.kind is Outcome.WIN


def test_wrong_choice_is_scored_as_fail() -> None:
    s, _clock = _session(Mode.MULTIPLE_CHOICE)
    wrong = next(c for c in s.choices if c not in ("cat", "kitten"))
    assert s.submit_choice(wrong)
    assert s.feedback.kind is Outcome.FAIL


def test_choices_are_rejected_outside_multiple_choice() -> None:
    s, _clock = _session(Mode.TIMED)
    assert s.choices == ()
    assert s.submit_choice("cat") is False
    assert s.phase is SessionPhase.AWAITING_INPUT

    s.set_mode(Mode.MULTIPLE_CHOICE)
    assert len(s.choices) == 3


def test_round_without_answers_always_fails() -> None:
    rounds = [RoundRecord("1", "", "", ())]
    s, _clock = _session(Mode.CLASSIC, rounds=rounds)
    assert s.submit_guess("anything")
    assert s.feedback.kind is Outcome.FAIL


def test_empty_catalog_waits_for_content() -> None:
    s, clock = _session(Mode.TIMED, rounds=[])
    snap = s.snapshot()
    assert snap.phase is SessionPhase.AWAITING_CONTENT
    assert snap.round_number == 0 and snap.progress == 0.0
    assert s.current_round is None

    assert s.submit_guess("cat") is False
    assert s.skip() is False
    s.mark_content_ready()
    clock.advance(10.0)
    s.update()
    s.reset()
    assert s.phase is SessionPhase.AWAITING_CONTENT
    assert s.stats == SessionStats()


def test_sound_cues_follow_round_flow() -> None:
    sound = RecordingSound()
    s, clock = _session(Mode.CLASSIC, sound=sound)
    s.submit_guess("cat")
    clock.advance(0.9)
    s.update()
    s.submit_guess("cow")
    assert sound.cues == [
        SoundCue.CLICK,
        SoundCue.WIN,
        SoundCue.TRANSITION,
        SoundCue.CLICK,
        SoundCue.FAIL,
    ]


def test_same_seed_gives_same_choices_and_phrases() -> None:
    a, _ = _session(Mode.MULTIPLE_CHOICE)
    b, _ = _session(Mode.MULTIPLE_CHOICE)
    assert a.choices == b.choices
    a.submit_guess("cow")
    b.submit_guess("cow")
    assert a.feedback.message == b.feedback.message


def test_progress_is_loaded_from_and_saved_to_store() -> None:
    store = InMemoryStore(
        {
            STATS_KEY: json.dumps({"correct": 19, "wrong": 4, "streak": 9, "rounds": 23}),
            ACHIEVEMENTS_KEY: json.dumps({}),
        }
    )
    s, _clock = _session(Mode.CLASSIC, store=store)
    assert s.stats == SessionStats(19, 4, 9, 23)

    assert s.submit_guess("cat")
    assert load_stats(store) == SessionStats(20, 4, 10, 24)
    saved = json.loads(store.get(ACHIEVEMENTS_KEY) or "{}")
    assert set(saved) == {"streak_10", "classic_complete", "correct_20"}
    assert set(s.achievements()) == set(saved)


def test_achievements_unlock_once_over_a_long_survival_run() -> None:
    rounds = [RoundRecord("1", "cat.jpg", "", ("cat",))]
    s, clock = _session(Mode.SURVIVAL, rounds=rounds)
    first_stamp = None
    for idx in range(25):
        assert s.submit_guess("cat")
        clock.advance(0.9)
        s.update()
        unlocked = s.achievements()
        if idx == 19:
            first_stamp = unlocked["correct_20"].unlocked
    assert s.achievements()["correct_20"].unlocked == first_stamp
    assert "streak_10" in s.achievements()
    assert "timed_complete" not in s.achievements()
    assert s.stats.correct == 25


def test_closed_session_ignores_everything() -> None:
    s, clock = _session(Mode.TIMED)
    s.mark_content_ready()
    s.close()
    clock.advance(10.0)
    s.update()
    assert s.phase is SessionPhase.AWAITING_INPUT
    assert s.submit_guess("cat") is False
    assert s.skip() is False
    assert s.stats == SessionStats()


def test_snapshot_reports_hud_data() -> None:
    s, _clock = _session(Mode.TIMED)
    snap = s.snapshot()
    assert (snap.round_number, snap.total_rounds) == (1, 3)
    assert snap.image == "cat.jpg"
    assert snap.clue == "Meows" and snap.show_clue is True
    assert snap.lives is None
    assert s.toggle_clue() is False
    assert s.snapshot().show_clue is False
    assert s.cycle_mode() is Mode.CLASSIC


@pytest.mark.parametrize(
    "config",
    [
        SessionConfig(countdown_s=0),
        SessionConfig(win_delay_s=-1),
        SessionConfig(starting_lives=0),
        SessionConfig(max_choices=0),
    ],
)
def test_invalid_config_is_rejected(config: SessionConfig) -> None:
    with pytest.raises(ValueError):
        GuessSession(rounds=_rounds(), clock=ManualClock(), seed=1, config=config)


def test_result_counts_only_this_game() -> None:
    store = InMemoryStore({STATS_KEY: json.dumps({"correct": 3, "wrong": 2, "streak": 1, "rounds": 5})})
    s, clock = _session(Mode.CLASSIC, store=store)
    result = s.result()
    assert (result.rounds_played, result.correct, result.wrong) == (0, 0, 0)
    assert ("Accuracy", "0%") in result.tiles()

    assert s.submit_guess("cat")
    clock.advance(0.9)
    s.update()
    assert s.submit_guess("cow")

    result = s.result()
    assert (result.rounds_played, result.correct, result.wrong) == (2, 1, 1)
    # The stored totals keep accumulating across games.
    assert load_stats(store) == SessionStats(correct=4, wrong=3, streak=0, rounds_played=7)


def test_result_after_reset_starts_from_zero() -> None:
    s, _clock = _session(Mode.CLASSIC)
    assert s.submit_guess("cat")
    s.reset()
    assert s.result().rounds_played == 0
    assert s.submit_guess("cow")
    assert s.result().rounds_played == 1
    assert s.result().wrong == 1
