"""Arcade domain services: the mini-game engine, score gateway and stats.

The engine modules (timer, sequence, scoring, variants, session,
controller, cabinet) are plain Python and know nothing about Flask; the
gateway, stats and achievements modules talk to the database and are
imported by HTTP routes and socket handlers, keeping transport concerns
separated from core game mechanics.
"""
from .cabinet import ArcadeCabinet
from .controller import GameSessionController
from .errors import ArcadeError, StimulusError, UnknownAchievementError, UnknownGameError
from .scoring import Outcome, ScoreUpdate, ScoringPolicy
from .sequence import SequenceGenerator, Stimulus, StimulusKind
from .session import GameSession, SessionState
from .timer import ManualScheduler, SocketIOScheduler, TimerHandle, TimerService
from .variants import VARIANTS, GameVariantConfig, Variant, catalog, get_variant
