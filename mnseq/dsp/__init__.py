"""Pure DSP and music primitives for MNSEQ.

Nothing here holds state between calls except the per-voice
bookkeeping in ``voice``.

Modules:
- scaling: Clamping ranges and command-line value parsing
- euclidean: Bjorklund pattern generator, transforms and rhythm presets
- curves: Envelope segment curves
- envelopes: ADSR envelope evaluator and presets
- voice: Retrigger/legato state for one envelope
- music_theory: Scale tables, note names and the scale quantiser

BUILD ID: dsp_v2_cv
"""

__all__ = [
    "scaling",
    "euclidean",
    "curves",
    "envelopes",
    "voice",
    "music_theory",
]
