class ArcadeError(Exception):
    """Base class for arcade engine errors."""


class StimulusError(ArcadeError):
    """Raised when a generated stimulus is empty or malformed.

    Treated as a configuration error: a session that cannot produce a
    playable stimulus never leaves Idle.
    """


class UnknownGameError(ArcadeError):
    def __init__(self, key):
        super().__init__(f"Unknown game: {key!r}")
        self.key = key


class UnknownAchievementError(ArcadeError):
    def __init__(self, name):
        super().__init__(f"Unknown achievement: {name!r}")
        self.name = name
