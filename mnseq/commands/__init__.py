"""Command entry points for MNSEQ.

Each module in this package defines functions named ``cmd_<n>``.
These are bound by the launcher to the corresponding command names
invoked via the REPL.  Commands take a session object and a list of
strings (arguments) and return a string message.

BUILD ID: commands_v2_cv
"""

__all__ = [
    "cv_cmds",
    "pattern_cmds",
]
