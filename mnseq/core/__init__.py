"""Core functionality for MNSEQ.

This subpackage contains the immutable records (CV tracks, trigger
events, sequencer tracks), the CV track registry, the control-rate
engine that turns triggers into voltages, output-channel scaling, the
audio interface catalogue, persistence, and the Session that ties them
together for the REPL.
"""

# Records and routing
from .objects import CVTrack, SequencerTrack, Step, TriggerEvent  # noqa: F401
from .registry import CVTrackRegistry  # noqa: F401
from .session import Session  # noqa: F401
