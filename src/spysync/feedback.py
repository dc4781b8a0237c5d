"""Sound cues and user-facing notifications.

Both are fire-and-forget: a failing sound backend or notifier never breaks
state handling.
"""

import enum
import logging

from spysync.exceptions import SpySyncException

log = logging.getLogger(__name__)


class Cue(str, enum.Enum):
    CLICK = "click"
    SPY_REVEAL = "spyReveal"
    TIMER = "timer"
    VOTE = "vote"


# event -> cues played when it arrives
EVENT_CUES: dict[str, tuple[Cue, ...]] = {
    "room_joined": (Cue.CLICK,),
    "game_start": (Cue.SPY_REVEAL,),
    "game_end": (Cue.SPY_REVEAL,),
    "clue_phase_start": (Cue.TIMER,),
    "clue_submitted": (Cue.CLICK,),
    "voting_phase_start": (Cue.VOTE,),
    "vote_casted": (Cue.VOTE,),
    "voting_results": (Cue.SPY_REVEAL,),
    "spy_guess_start": (Cue.TIMER,),
    "spy_guess_result": (Cue.SPY_REVEAL,),
}
MUSIC_START_EVENTS = ("game_start",)
MUSIC_STOP_EVENTS = ("game_end",)


class Sound:
    """Sound backend. The base class is silent."""

    def play(self, cue: Cue) -> None:
        pass

    def play_music(self) -> None:
        pass

    def stop_music(self) -> None:
        pass


class Notifier:
    """Transient user-facing notifications. The base class only logs."""

    def error(self, error: SpySyncException) -> None:
        log.error(f"{type(error).__name__}: {error}")


def play_event_cues(sound: Sound, event: str) -> None:
    """Play the cues and music changes bound to ``event``."""
    try:
        if event in MUSIC_STOP_EVENTS:
            sound.stop_music()
        for cue in EVENT_CUES.get(event, ()):
            sound.play(cue)
        if event in MUSIC_START_EVENTS:
            sound.play_music()
    except Exception as e:
        log.warning(f"Sound playback failed for '{event}': {e}")


def notify(notifier: Notifier, error: SpySyncException) -> None:
    try:
        notifier.error(error)
    except Exception as e:
        log.warning(f"Notifier failed: {e}")
