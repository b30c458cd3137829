import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, Optional, Tuple

from .scoring import Outcome
from .sequence import SequenceGenerator, Stimulus
from .session import GameSession, SessionState
from .errors import StimulusError
from .timer import TimerHandle, TimerService
from .variants import GameVariantConfig


logger = logging.getLogger(__name__)

SubmitScore = Callable[[str, int], None]
Listener = Callable[[str, dict], None]


class GameSessionController:
    """Drives one play-through of a variant through a single state machine.

    Idle -> Priming -> Active <-> RoundTransition -> Ended

    Every call-in (player input, quit, timer callback) goes through
    ``_dispatch``: an RLock serializes threads, and a call that arrives while
    another is still being handled on the same thread is queued behind it.
    Timer callbacks carry the TimerService generation current when the
    controller was built and are dropped once that generation is stale or
    the controller is discarded, checked again once the lock is held.
    """

    def __init__(self, config: GameVariantConfig, timers: TimerService,
                 generator: Optional[SequenceGenerator] = None,
                 submit_score: Optional[SubmitScore] = None,
                 high_score: int = 0,
                 user_present: bool = False,
                 listener: Optional[Listener] = None,
                 reveal_floor_ms: Optional[int] = None):
        self.config = config
        self.timers = timers
        self.generator = generator if generator is not None else SequenceGenerator()
        self.user_present = user_present
        self.reveal_floor_ms = config.reveal_floor_ms if reveal_floor_ms is None else reveal_floor_ms
        self.session = GameSession(variant=config.variant, lives_remaining=config.lives,
                                   high_score=max(0, int(high_score or 0)))
        self.generation = timers.generation
        self.stimulus: Optional[Stimulus] = None
        self._submit_score = submit_score
        self._listener = listener
        self._timer: Optional[TimerHandle] = None
        self._accepting = False
        self._input_opened_at: Optional[float] = None
        self._buffer: list = []
        self._submitted = False
        self._discarded = False
        self._lock = threading.RLock()
        self._dispatching = False
        self._pending: Deque[Tuple[Callable[..., Any], tuple]] = deque()

    # ---- public call-ins ----

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def accepting_input(self) -> bool:
        return self._accepting and self.session.state == SessionState.ACTIVE

    def start(self) -> bool:
        """Leave Idle. Raises StimulusError if the first round cannot be generated."""
        return bool(self._dispatch(self._start))

    def submit_input(self, candidate) -> bool:
        """Judge a full answer. Returns False when the input was ignored."""
        return bool(self._dispatch(self._submit, candidate))

    def press(self, element) -> bool:
        """Enter one element of a sequence answer."""
        return bool(self._dispatch(self._press, element))

    def quit(self) -> bool:
        return bool(self._dispatch(self._quit))

    def discard(self) -> None:
        """Drop the session without submitting (player went back to the menu)."""
        with self._lock:
            self._discarded = True
            self._accepting = False
            self._cancel_timer()
            self._pending.clear()
        logger.info(f"[session-discard] game={self.config.key} state={self.session.state.value}")

    def snapshot(self) -> dict:
        data = self.session.to_dict()
        data['accepting_input'] = self.accepting_input
        data['round_timeout_ms'] = self.config.round_timeout_ms(self.session.level)
        data['remaining_ms'] = self._timer.remaining_ms() if self._timer is not None and self._timer.active else None
        data['user_present'] = self.user_present
        data['entered'] = list(self._buffer)
        if self.stimulus is not None and self.session.state == SessionState.ACTIVE:
            reveal = not (self.config.reveals and self._accepting)
            data['stimulus'] = self.stimulus.to_dict(reveal=reveal)
        else:
            data['stimulus'] = None
        return data

    # ---- dispatch / timers ----

    def _dispatch(self, handler: Callable[..., Any], *args):
        with self._lock:
            if self._dispatching:
                self._pending.append((handler, args))
                return None
            self._dispatching = True
            try:
                result = handler(*args)
                while self._pending:
                    queued, queued_args = self._pending.popleft()
                    queued(*queued_args)
                return result
            finally:
                self._pending.clear()
                self._dispatching = False

    def _guard(self, fn: Callable[..., None]) -> Callable[..., None]:
        generation = self.generation

        def stale() -> bool:
            if self._discarded or generation != self.timers.generation:
                logger.debug(f"[timer-abort] game={self.config.key} generation={generation} current={self.timers.generation}")
                return True
            return False

        def guarded(*args):
            # Checked again under the lock: a discard may land while we wait for it
            if not stale():
                fn(*args)

        def callback(*args):
            if not stale():
                self._dispatch(guarded, *args)
        return callback

    def _arm(self, duration_ms: int, on_expire: Callable[[], None],
             on_tick: Optional[Callable[[int], None]] = None) -> None:
        self._cancel_timer()
        self._timer = self.timers.start_countdown(
            duration_ms,
            on_tick=self._guard(on_tick) if on_tick is not None else None,
            on_expire=self._guard(on_expire),
        )

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()

    def _emit(self, event: str, **extra) -> None:
        if self._listener is None:
            return
        payload = self.snapshot()
        payload.update(extra)
        try:
            self._listener(event, payload)
        except Exception:
            logger.exception(f"[listener-error] game={self.config.key} event={event}")

    def _set_state(self, state: SessionState) -> None:
        previous = self.session.state
        self.session.state = state
        logger.debug(f"[state] game={self.config.key} {previous.value} -> {state.value} level={self.session.level}")
        self._emit('state_update')

    def _generate(self) -> Stimulus:
        stimulus = self.generator.next(self.session.level, self.config)
        if stimulus is None or not stimulus.elements:
            raise StimulusError(f"{self.config.key}: empty stimulus at level {self.session.level}")
        return stimulus

    # ---- state machine ----

    def _start(self) -> bool:
        if self._discarded or self.session.state != SessionState.IDLE:
            return False
        self.stimulus = self._generate()
        self.session.started_at = self.timers.now()
        logger.info(f"[session-start] game={self.config.key} high_score={self.session.high_score} user={self.user_present}")
        if self.config.priming_ms > 0:
            self._set_state(SessionState.PRIMING)
            self._arm(self.config.priming_ms, on_expire=self._activate, on_tick=self._on_tick)
        else:
            self._activate()
        return True

    def _on_tick(self, remaining_ms: int) -> None:
        self._emit('tick', phase=self.session.state.value, remaining_ms=remaining_ms)

    def _activate(self) -> None:
        if self.session.state == SessionState.ENDED:
            return
        self.stimulus = self.stimulus.presented(self.timers.now())
        self._buffer = []
        self._accepting = False
        self._set_state(SessionState.ACTIVE)
        self._emit('stimulus')
        reveal = self._reveal_ms()
        if reveal > 0:
            self._arm(reveal, on_expire=self._open_input)
        else:
            self._open_input()

    def _reveal_ms(self) -> int:
        if not self.config.reveals:
            return 0
        return max(self.reveal_floor_ms, self.stimulus.reveal_duration_ms)

    def _open_input(self) -> None:
        if self.session.state != SessionState.ACTIVE:
            return
        self._accepting = True
        self._input_opened_at = self.timers.mark()
        timeout = self.config.round_timeout_ms(self.session.level)
        if timeout:
            self._arm(timeout, on_expire=self._on_round_timeout, on_tick=self._on_tick)
        else:
            self._cancel_timer()
        self._emit('state_update')

    def _accepts(self, what: str) -> bool:
        if self._discarded or not self.accepting_input:
            logger.debug(f"[input-ignored] game={self.config.key} kind={what} state={self.session.state.value}")
            return False
        return True

    def _submit(self, candidate) -> bool:
        if not self._accepts('submit'):
            return False
        correct = self.config.matcher(self.stimulus, candidate)
        self._resolve(Outcome.CORRECT if correct else Outcome.INCORRECT)
        return True

    def _press(self, element) -> bool:
        if self.config.step_matcher is None or not self._accepts('press'):
            return False
        self._buffer.append(element)
        if not self.config.step_matcher(self.stimulus, self._buffer):
            self._resolve(Outcome.INCORRECT)
        elif len(self._buffer) >= len(self.stimulus.elements):
            correct = self.config.matcher(self.stimulus, list(self._buffer))
            self._resolve(Outcome.CORRECT if correct else Outcome.INCORRECT)
        else:
            self._emit('progress')
        return True

    def _on_round_timeout(self) -> None:
        if self.session.state != SessionState.ACTIVE or not self._accepting:
            return
        logger.info(f"[round-timeout] game={self.config.key} level={self.session.level}")
        if self.config.timeout_is_miss:
            self._resolve(Outcome.INCORRECT, reason='timeout')
        else:
            self._end('timeout')

    def _resolve(self, outcome: Outcome, reason: Optional[str] = None) -> None:
        session = self.session
        elapsed = self.timers.elapsed_since(self._input_opened_at) if self._input_opened_at is not None else 0
        self._accepting = False
        self._cancel_timer()

        update = self.config.scoring.apply(outcome, elapsed, session.level, session)
        session.rounds_played += 1
        session.score += max(0, update.score_delta)
        if update.lives_delta and session.lives_remaining is not None:
            session.lives_remaining = max(0, session.lives_remaining + update.lives_delta)
        session.level = max(session.level, update.next_level)
        logger.info(
            f"[round] game={self.config.key} outcome={outcome.value} elapsed={elapsed}ms "
            f"delta={update.score_delta} score={session.score} level={session.level} lives={session.lives_remaining}"
        )
        self._emit('round_result', outcome=outcome.value, elapsed_ms=elapsed, score_delta=update.score_delta)

        if outcome == Outcome.INCORRECT and (update.ends_session or session.lives_remaining == 0):
            if reason is None:
                reason = 'lives_exhausted' if session.lives_remaining is not None else 'mistake'
            self._end(reason)
            return
        if self.config.max_rounds is not None and session.rounds_played >= self.config.max_rounds:
            self._end('completed')
            return
        self._begin_transition()

    def _begin_transition(self) -> None:
        self.stimulus = self._generate()
        self._set_state(SessionState.ROUND_TRANSITION)
        if self.config.transition_ms > 0:
            self._arm(self.config.transition_ms, on_expire=self._activate)
        else:
            self._activate()

    def _quit(self) -> bool:
        if self._discarded or self.session.state in (SessionState.IDLE, SessionState.ENDED):
            return False
        self._end('quit')
        return True

    def _end(self, reason: str) -> None:
        session = self.session
        if session.state == SessionState.ENDED:
            return
        self._accepting = False
        self._cancel_timer()
        session.ended_at = self.timers.now()
        session.end_reason = reason
        self._set_state(SessionState.ENDED)
        logger.info(f"[session-end] game={self.config.key} reason={reason} score={session.score} level={session.level}")
        self._submit_final_score()
        self._emit('game_over')

    def _submit_final_score(self) -> None:
        if self._submitted:
            return
        self._submitted = True
        if self._submit_score is None:
            return
        try:
            self._submit_score(self.config.key, self.session.score)
        except Exception:
            # Submission is fire-and-forget; the local session stays Ended.
            logger.exception(f"[score-submit-failed] game={self.config.key} score={self.session.score}")
