"""MNSEQ package.

Envelope generation and CV routing core for a modular-synth step
sequencer.  Sequencer triggers (typed by hand or Euclidean-generated)
drive per-track ADSR envelopes, which are scaled, offset, clamped and
slewed into control voltages for a DC-coupled audio interface.

SUBPACKAGES:
- dsp       - Pure math: Euclidean patterns, curves, envelopes, quantiser
- core      - Records, registry, control-rate engine, session, user data
- commands  - Slash commands for the REPL (mnseq_repl.py)
"""

__version__ = "2.0"
__build__ = "mnseq_v2.0_cv"

__all__ = ["core", "dsp", "commands"]
