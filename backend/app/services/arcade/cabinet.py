import logging
from typing import Callable, Dict, Optional

from .controller import GameSessionController, Listener, SubmitScore
from .errors import UnknownGameError
from .sequence import SequenceGenerator
from .timer import TimerService
from .variants import GameVariantConfig, VARIANTS


logger = logging.getLogger(__name__)


class ArcadeCabinet:
    """The arcade menu for one player.

    Holds at most one live session. Selecting a game (or going back to the
    menu) discards the previous session and bumps the timer generation
    before any timer of the next session is armed.
    """

    def __init__(self, timers: Optional[TimerService] = None,
                 generator: Optional[SequenceGenerator] = None,
                 submit_score: Optional[SubmitScore] = None,
                 high_scores: Optional[Callable[[str], int]] = None,
                 user_present: bool = False,
                 listener: Optional[Listener] = None,
                 priming_ms: Optional[int] = None,
                 transition_ms: Optional[int] = None,
                 reveal_floor_ms: Optional[int] = None,
                 variants: Optional[Dict[str, GameVariantConfig]] = None):
        self.timers = timers if timers is not None else TimerService()
        self.generator = generator if generator is not None else SequenceGenerator()
        self.submit_score = submit_score
        self.high_scores = high_scores
        self.user_present = user_present
        self.listener = listener
        self.priming_ms = priming_ms
        self.transition_ms = transition_ms
        self.reveal_floor_ms = reveal_floor_ms
        self.variants = variants if variants is not None else VARIANTS
        self.current: Optional[GameSessionController] = None

    def config_for(self, key) -> GameVariantConfig:
        key = getattr(key, 'value', key)
        config = self.variants.get(key) if isinstance(key, str) else None
        if config is None:
            raise UnknownGameError(key)
        return config.with_timings(self.priming_ms, self.transition_ms, self.reveal_floor_ms)

    def high_score_for(self, key: str) -> int:
        if self.high_scores is None:
            return 0
        try:
            return int(self.high_scores(key) or 0)
        except Exception:
            # Display only; a failed lookup must not block play.
            logger.exception(f"[high-score-lookup-failed] game={key}")
            return 0

    def select(self, key) -> GameSessionController:
        """Build a fresh Idle session for ``key``. Raises UnknownGameError."""
        config = self.config_for(key)
        self.back_to_menu()
        controller = GameSessionController(
            config,
            self.timers,
            generator=self.generator,
            submit_score=self.submit_score,
            high_score=self.high_score_for(config.key),
            user_present=self.user_present,
            listener=self.listener,
            reveal_floor_ms=self.reveal_floor_ms,
        )
        self.current = controller
        logger.info(f"[cabinet-select] game={config.key} generation={self.timers.generation}")
        return controller

    def start(self, key) -> GameSessionController:
        controller = self.select(key)
        controller.start()
        return controller

    def back_to_menu(self) -> None:
        if self.current is not None:
            self.current.discard()
            self.current = None
        self.timers.next_generation()
