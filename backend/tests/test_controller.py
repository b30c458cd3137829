import random
import threading

import pytest

from app.services.arcade import (
    ArcadeCabinet,
    GameSessionController,
    SequenceGenerator,
    SessionState,
    Stimulus,
    StimulusError,
    UnknownGameError,
)
from app.services.arcade.variants import BINARY_BREAKER, MEMORY_MATRIX, PATTERN_PULSE, REACTION_TEST


def make(config, timers, generator, submissions, **kwargs):
    return GameSessionController(
        config,
        timers,
        generator=generator,
        submit_score=lambda name, score: submissions.append((name, score)),
        **kwargs
    )


def open_input(controller, scheduler, limit_ms=20000):
    """Advance the clock until the controller takes input."""
    waited = 0
    while not controller.accepting_input and waited < limit_ms:
        scheduler.advance(100)
        waited += 100
    assert controller.accepting_input


class ScriptedNumbers(SequenceGenerator):
    def __init__(self, values):
        super().__init__()
        self.values = list(values)

    def _value(self, bits):
        return self.values.pop(0)


class EmptyGenerator(SequenceGenerator):
    def next(self, level, config):
        return Stimulus((), level)


def test_memory_scenario_lives_then_game_over(scheduler, timers, generator, submissions):
    ctrl = make(MEMORY_MATRIX, timers, generator, submissions)
    assert ctrl.start()
    assert ctrl.state == SessionState.ACTIVE
    assert len(ctrl.stimulus.elements) == 3
    assert ctrl.session.lives_remaining == 3

    open_input(ctrl, scheduler)
    assert ctrl.submit_input(list(ctrl.stimulus.elements))
    assert ctrl.state == SessionState.ROUND_TRANSITION
    assert ctrl.session.level == 2
    round_one_score = ctrl.session.score
    assert round_one_score > 0

    for expected_lives in (2, 1):
        open_input(ctrl, scheduler)
        assert ctrl.submit_input([-1])
        assert ctrl.session.lives_remaining == expected_lives
        assert ctrl.state == SessionState.ROUND_TRANSITION

    open_input(ctrl, scheduler)
    assert ctrl.submit_input([-1])
    assert ctrl.session.lives_remaining == 0
    assert ctrl.state == SessionState.ENDED
    assert ctrl.session.end_reason == 'lives_exhausted'
    assert ctrl.session.level == 2
    assert submissions == [('memory-matrix', round_one_score)]


def test_memory_accepts_cells_in_any_order(scheduler, timers, generator, submissions):
    ctrl = make(MEMORY_MATRIX, timers, generator, submissions)
    ctrl.start()
    open_input(ctrl, scheduler)
    assert ctrl.submit_input(list(reversed(ctrl.stimulus.elements)))
    assert ctrl.session.level == 2


def test_reaction_faster_input_scores_more(submissions):
    from app.services.arcade import ManualScheduler, TimerService

    def play(delay_ms):
        scheduler = ManualScheduler()
        ctrl = make(REACTION_TEST, TimerService(scheduler), SequenceGenerator.seeded(1), submissions)
        ctrl.start()
        assert ctrl.state == SessionState.PRIMING
        scheduler.advance(REACTION_TEST.priming_ms)
        assert ctrl.state == SessionState.ACTIVE
        scheduler.advance(delay_ms)
        assert ctrl.submit_input('click')
        return ctrl.session.score

    assert play(180) > play(600)


def test_reaction_input_during_priming_is_ignored(scheduler, timers, generator, submissions):
    ctrl = make(REACTION_TEST, timers, generator, submissions)
    ctrl.start()
    scheduler.advance(1000)
    assert not ctrl.submit_input('click')
    assert ctrl.state == SessionState.PRIMING
    assert ctrl.session.score == 0
    assert ctrl.session.level == 1


def test_reaction_completes_after_max_rounds(scheduler, timers, generator, submissions):
    ctrl = make(REACTION_TEST, timers, generator, submissions)
    ctrl.start()
    for _ in range(REACTION_TEST.max_rounds):
        open_input(ctrl, scheduler)
        scheduler.advance(200)
        assert ctrl.submit_input(None)
    assert ctrl.state == SessionState.ENDED
    assert ctrl.session.end_reason == 'completed'
    assert len(submissions) == 1
    assert submissions[0] == ('reaction-test', ctrl.session.score)


def test_reaction_timeout_ends_session(scheduler, timers, generator, submissions):
    ctrl = make(REACTION_TEST, timers, generator, submissions)
    ctrl.start()
    scheduler.advance(REACTION_TEST.priming_ms)
    scheduler.advance(REACTION_TEST.round_timeout_ms(1))
    assert ctrl.state == SessionState.ENDED
    assert ctrl.session.end_reason == 'timeout'
    assert submissions == [('reaction-test', 0)]


def test_binary_scenario_single_mistake(scheduler, timers, submissions):
    ctrl = make(BINARY_BREAKER, timers, ScriptedNumbers([2, 5, 13, 13]), submissions)
    ctrl.start()
    assert ctrl.submit_input('10')
    scheduler.advance(BINARY_BREAKER.transition_ms)
    assert ctrl.submit_input('101')
    scheduler.advance(BINARY_BREAKER.transition_ms)

    assert ctrl.session.level == 3
    assert ctrl.stimulus.elements == (13,)
    assert BINARY_BREAKER.round_timeout_ms(3) == 8000
    score_before = ctrl.session.score
    scheduler.advance(2000)
    assert ctrl.submit_input('1101')
    assert ctrl.session.level == 4
    assert ctrl.session.score > score_before

    scheduler.advance(BINARY_BREAKER.transition_ms)
    final_score = ctrl.session.score
    assert ctrl.submit_input('1110')
    assert ctrl.state == SessionState.ENDED
    assert ctrl.session.end_reason == 'mistake'
    assert submissions == [('binary-breaker', final_score)]


def test_binary_answer_must_be_binary_digits(scheduler, timers, submissions):
    ctrl = make(BINARY_BREAKER, timers, ScriptedNumbers([3, 2]), submissions)
    ctrl.start()
    assert ctrl.submit_input(' 11 ')
    assert ctrl.session.level == 2
    ctrl2 = make(BINARY_BREAKER, timers, ScriptedNumbers([3]), [])
    ctrl2.start()
    assert ctrl2.submit_input('3')
    assert ctrl2.state == SessionState.ENDED


def test_binary_answer_rejects_leading_zeros(scheduler, timers, submissions):
    ctrl = make(BINARY_BREAKER, timers, ScriptedNumbers([3]), submissions)
    ctrl.start()
    assert ctrl.submit_input('011')
    assert ctrl.state == SessionState.ENDED
    assert ctrl.session.end_reason == 'mistake'
    assert ctrl.session.level == 1


def test_binary_timeout_is_a_miss(scheduler, timers, submissions):
    ctrl = make(BINARY_BREAKER, timers, ScriptedNumbers([2]), submissions)
    ctrl.start()
    scheduler.advance(BINARY_BREAKER.round_timeout_ms(1))
    assert ctrl.state == SessionState.ENDED
    assert ctrl.session.end_reason == 'timeout'
    assert len(submissions) == 1


def test_memory_timeout_costs_a_life(scheduler, timers, generator, submissions):
    ctrl = make(MEMORY_MATRIX, timers, generator, submissions)
    ctrl.start()
    open_input(ctrl, scheduler)
    scheduler.advance(MEMORY_MATRIX.round_timeout_ms(1))
    assert ctrl.session.lives_remaining == 2
    assert ctrl.state == SessionState.ROUND_TRANSITION
    assert submissions == []


def test_pattern_press_step_by_step(scheduler, timers, generator, submissions):
    ctrl = make(PATTERN_PULSE, timers, generator, submissions)
    ctrl.start()
    open_input(ctrl, scheduler)
    elements = list(ctrl.stimulus.elements)
    for element in elements[:-1]:
        assert ctrl.press(element)
        assert ctrl.state == SessionState.ACTIVE
    assert ctrl.press(elements[-1])
    assert ctrl.session.level == 2

    open_input(ctrl, scheduler)
    first = ctrl.stimulus.elements[0]
    wrong = next(p for p in PATTERN_PULSE.palette if p != first)
    assert ctrl.press(wrong)
    assert ctrl.session.lives_remaining == 2
    assert ctrl.session.level == 2


def test_pattern_order_matters(scheduler, timers, generator, submissions):
    ctrl = make(PATTERN_PULSE, timers, generator, submissions)
    ctrl.start()
    open_input(ctrl, scheduler)
    elements = list(ctrl.stimulus.elements)
    rotated = elements[1:] + elements[:1]
    assert ctrl.submit_input(rotated)
    assert ctrl.session.lives_remaining == 2


def test_input_outside_active_changes_nothing(scheduler, timers, generator, submissions):
    ctrl = make(MEMORY_MATRIX, timers, generator, submissions)
    assert not ctrl.submit_input([1, 2, 3])  # idle
    ctrl.start()
    answer = list(ctrl.stimulus.elements)
    assert not ctrl.submit_input(answer)  # still revealing
    open_input(ctrl, scheduler)
    ctrl.submit_input(answer)
    before = (ctrl.session.score, ctrl.session.level, ctrl.session.lives_remaining)
    assert not ctrl.submit_input(answer)  # round transition
    assert not ctrl.press(answer[0])
    assert (ctrl.session.score, ctrl.session.level, ctrl.session.lives_remaining) == before
    ctrl.quit()
    assert not ctrl.submit_input([-1])  # ended
    assert (ctrl.session.score, ctrl.session.level, ctrl.session.lives_remaining) == before


def test_quit_submits_exactly_once(scheduler, timers, generator, submissions):
    ctrl = make(MEMORY_MATRIX, timers, generator, submissions)
    assert not ctrl.quit()
    ctrl.start()
    assert ctrl.quit()
    assert not ctrl.quit()
    scheduler.advance(60000)
    assert ctrl.state == SessionState.ENDED
    assert ctrl.session.end_reason == 'quit'
    assert submissions == [('memory-matrix', 0)]


def test_failed_submission_still_ends_session(scheduler, timers, generator):
    def broken(name, score):
        raise ConnectionError('store unreachable')

    ctrl = GameSessionController(REACTION_TEST, timers, generator=generator, submit_score=broken)
    ctrl.start()
    assert ctrl.quit()
    assert ctrl.state == SessionState.ENDED


def test_empty_stimulus_refuses_to_start(timers, submissions):
    ctrl = make(MEMORY_MATRIX, timers, EmptyGenerator(), submissions)
    with pytest.raises(StimulusError):
        ctrl.start()
    assert ctrl.state == SessionState.IDLE
    assert submissions == []


def test_reveal_is_clamped_to_floor(scheduler, timers, generator, submissions):
    ctrl = make(MEMORY_MATRIX, timers, generator, submissions, reveal_floor_ms=300)
    ctrl.session.level = 50
    ctrl.start()
    assert ctrl.stimulus.reveal_duration_ms == MEMORY_MATRIX.reveal_floor_ms
    scheduler.advance(299)
    assert not ctrl.accepting_input
    scheduler.advance(1)
    assert ctrl.accepting_input


def test_snapshot_hides_stimulus_after_reveal(scheduler, timers, generator, submissions):
    ctrl = make(MEMORY_MATRIX, timers, generator, submissions, high_score=40)
    ctrl.start()
    snap = ctrl.snapshot()
    assert snap['stimulus']['elements'] == list(ctrl.stimulus.elements)
    assert snap['high_score'] == 40
    open_input(ctrl, scheduler)
    snap = ctrl.snapshot()
    assert snap['accepting_input']
    assert snap['stimulus']['elements'] is None
    assert snap['remaining_ms'] == MEMORY_MATRIX.round_timeout_ms(1)


def test_reentrant_input_is_serialized(scheduler, timers, generator, submissions):
    events = []
    holder = {}

    def listener(event, payload):
        events.append(event)
        if event == 'round_result':
            # Double click racing the first answer
            holder['ctrl'].submit_input(list(holder['ctrl'].stimulus.elements))

    ctrl = make(MEMORY_MATRIX, timers, generator, submissions, listener=listener)
    holder['ctrl'] = ctrl
    ctrl.start()
    open_input(ctrl, scheduler)
    ctrl.submit_input(list(ctrl.stimulus.elements))
    assert ctrl.session.level == 2
    assert ctrl.session.score == MEMORY_MATRIX.scoring.points_for(1)
    assert events.count('round_result') == 1


def test_stale_timers_do_not_fire_into_new_session(scheduler, timers, generator, submissions):
    ctrl = make(REACTION_TEST, timers, generator, submissions)
    ctrl.start()
    timers.next_generation()
    scheduler.advance(10000)
    assert ctrl.state == SessionState.PRIMING
    assert submissions == []


def fire_while_locked(controller, callback, during):
    """Run ``callback`` on a worker thread that has to wait for the controller lock."""
    with controller._lock:
        worker = threading.Thread(target=callback)
        worker.start()
        worker.join(0.05)
        during()
    worker.join(2)
    assert not worker.is_alive()


def test_timer_waiting_on_lock_is_dropped_after_back_to_menu(timers, generator, submissions):
    events = []
    cabinet = ArcadeCabinet(
        timers=timers,
        generator=generator,
        submit_score=lambda name, score: submissions.append((name, score)),
        listener=lambda event, payload: events.append(event),
    )
    ctrl = cabinet.start('reaction-test')
    assert ctrl.state == SessionState.PRIMING
    on_expire = ctrl._timer.on_expire
    events.clear()

    fire_while_locked(ctrl, on_expire, cabinet.back_to_menu)

    assert ctrl.state == SessionState.PRIMING
    assert events == []
    assert timers.active_handles() == 0


def test_round_timeout_waiting_on_lock_does_not_submit_after_discard(scheduler, timers, generator, submissions):
    cabinet = ArcadeCabinet(
        timers=timers,
        generator=generator,
        submit_score=lambda name, score: submissions.append((name, score)),
    )
    ctrl = cabinet.start('binary-breaker')
    assert ctrl.accepting_input
    on_timeout = ctrl._timer.on_expire

    fire_while_locked(ctrl, on_timeout, cabinet.back_to_menu)

    assert ctrl.state == SessionState.ACTIVE
    assert ctrl.session.end_reason is None
    assert submissions == []
    assert timers.active_handles() == 0


def test_cabinet_switch_cancels_previous_session(scheduler, timers, generator, submissions):
    cabinet = ArcadeCabinet(
        timers=timers,
        generator=generator,
        submit_score=lambda name, score: submissions.append((name, score)),
        high_scores=lambda key: {'memory-matrix': 55}.get(key, 0),
    )
    first = cabinet.start('reaction-test')
    assert first.state == SessionState.PRIMING
    second = cabinet.start('memory-matrix')
    assert cabinet.current is second
    assert second.session.high_score == 55
    scheduler.advance(10000)
    assert first.state == SessionState.PRIMING
    assert not first.submit_input('click')
    assert second.state != SessionState.IDLE

    cabinet.back_to_menu()
    assert cabinet.current is None
    assert timers.active_handles() == 0
    assert submissions == []


def test_cabinet_applies_timing_overrides(timers, generator):
    cabinet = ArcadeCabinet(timers=timers, generator=generator, priming_ms=1000, transition_ms=250)
    reaction = cabinet.select('reaction-test')
    assert reaction.config.priming_ms == 1000
    assert reaction.config.transition_ms == 250
    memory = cabinet.select('memory-matrix')
    assert memory.config.priming_ms == 0


def test_cabinet_rejects_unknown_game(timers):
    cabinet = ArcadeCabinet(timers=timers)
    with pytest.raises(UnknownGameError):
        cabinet.select('pong')


def test_cabinet_survives_high_score_lookup_failure(timers, generator):
    def lookup(key):
        raise RuntimeError('db down')

    cabinet = ArcadeCabinet(timers=timers, generator=generator, high_scores=lookup)
    assert cabinet.select('pattern-pulse').session.high_score == 0


@pytest.mark.parametrize('config', [MEMORY_MATRIX, PATTERN_PULSE, REACTION_TEST, BINARY_BREAKER], ids=lambda c: c.key)
def test_score_never_decreases_and_submits_once(config, scheduler, timers, submissions):
    rng = random.Random(config.key)
    ctrl = make(config, timers, SequenceGenerator.seeded(5), submissions)
    ctrl.start()
    last = 0
    for _ in range(400):
        action = rng.random()
        if action < 0.3 and ctrl.stimulus is not None:
            answer = ctrl.stimulus.answer if config.key == 'binary-breaker' else list(ctrl.stimulus.elements)
            ctrl.submit_input(answer)
        elif action < 0.45:
            ctrl.submit_input('nope')
        elif action < 0.55 and config.palette:
            ctrl.press(rng.choice(config.palette))
        else:
            scheduler.advance(rng.choice([50, 100, 400, 900]))
        assert ctrl.session.score >= last
        last = ctrl.session.score
        if ctrl.state == SessionState.ENDED:
            assert len(submissions) == 1
        else:
            assert submissions == []
    ctrl.quit()
    assert len(submissions) == 1
    assert submissions[0] == (config.key, ctrl.session.score)
