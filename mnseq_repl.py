#!/usr/bin/env python
"""MNSEQ launcher.

This REPL binds command names starting with '/' to the ``cmd_*``
functions in the mnseq.commands package.

Keybindings (readline):
  Ctrl+K   Clear to end of line
  Ctrl+U   Clear whole line
  Ctrl+R   Run last command again
  Tab      Autocomplete command names

BUILD ID: mnseq_repl_v2
"""

import atexit
import logging
import os
import readline
import sys

# Ensure package is importable
current_dir = os.path.dirname(os.path.abspath(__file__))
if current_dir not in sys.path:
    sys.path.insert(0, current_dir)

from mnseq import __version__
from mnseq.commands import cv_cmds, pattern_cmds
from mnseq.core import user_data
from mnseq.core.session import Session

logger = logging.getLogger("mnseq")


def build_command_table():
    """Collect all command functions from the commands modules.

    Every ``cmd_<name>`` function is registered as ``/<name>``; the
    modules' own registration dicts add any aliases.
    """
    commands = {}
    for module in (cv_cmds, pattern_cmds):
        for attr in dir(module):
            if attr.startswith('cmd_'):
                commands[attr[4:]] = getattr(module, attr)
    commands.update(cv_cmds.get_cv_commands())
    commands.update(pattern_cmds.get_pattern_commands())
    commands['help'] = cmd_help
    commands['h'] = cmd_help
    commands['prefs'] = cmd_prefs
    return commands


def cmd_help(session, args):
    """List commands, or show one command's help."""
    commands = build_command_table()
    if args:
        func = commands.get(args[0].lstrip('/').lower())
        if func is None:
            return f"ERROR: Unknown command /{args[0]}"
        return (func.__doc__ or "(no help)").strip()
    lines = [f"MNSEQ v{__version__} — commands\n"]
    for name in sorted(commands):
        func = commands[name]
        first = (func.__doc__ or '').strip().splitlines()
        lines.append(f"  /{name:8s} {first[0] if first else ''}")
    lines.append("\n  /help <cmd> for details, /q to quit")
    return '\n'.join(lines)


def cmd_prefs(session, args):
    """Show or change saved preferences.

    /prefs                  — show preferences
    /prefs <key> <value>    — set and save
    /prefs info             — user data locations
    """
    if not args:
        return '\n'.join(["PREFERENCES\n"] +
                         [f"  {k:20s} {v}" for k, v in sorted(session.prefs.items())])
    if args[0].lower() == 'info':
        return user_data.get_user_data_info()
    if len(args) < 2:
        return "Usage: /prefs <key> <value>"
    key, raw = args[0], ' '.join(args[1:])
    default = user_data.DEFAULT_PREFERENCES.get(key)
    try:
        if isinstance(default, bool):
            value = raw.lower() in ('1', 'on', 'true', 'yes')
        elif isinstance(default, int):
            value = int(raw)
        elif isinstance(default, float):
            value = float(raw)
        else:
            value = raw
        session.prefs = user_data.set_preference(key, value)
    except ValueError as e:
        return f"ERROR: {e}"
    return f"OK: {key} = {value} (applies next session)"


def execute_command(session, commands, cmd_line):
    """Execute a single command line and return its output."""
    if not cmd_line.startswith('/'):
        return "ERROR: Commands must start with /"

    parts = cmd_line[1:].split()
    if not parts:
        return ""

    cmd = parts[0].lower()
    args = parts[1:]

    if cmd in ('q', 'quit', 'exit'):
        return "EXIT"

    func = commands.get(cmd)
    if func is not None:
        try:
            return func(session, args)
        except Exception as exc:
            logger.exception("Command /%s failed", cmd)
            return f"ERROR: {exc}"

    # Suggest similar commands for unknown input
    similar = [c for c in commands if cmd in c or c.startswith(cmd[:2])][:5]
    if similar:
        return f"ERROR: Unknown command /{cmd}. Did you mean: {', '.join('/' + s for s in similar)}?"
    return f"ERROR: Unknown command /{cmd}"


def main() -> None:
    prefs = user_data.load_preferences()
    level = getattr(logging, str(prefs.get('log_level', 'WARNING')).upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    session = Session(prefs)
    commands = build_command_table()

    # ===================================================================
    # READLINE SETUP — history, completion, keybindings
    # ===================================================================
    _history_path = os.path.expanduser('~/.mnseq_history')
    try:
        readline.read_history_file(_history_path)
        readline.set_history_length(2000)
    except FileNotFoundError:
        pass
    atexit.register(readline.write_history_file, _history_path)

    _cmd_names = sorted('/' + k for k in commands.keys())

    def _completer(text, state):
        if text.startswith('/'):
            matches = [c for c in _cmd_names if c.startswith(text)]
        else:
            matches = [c for c in _cmd_names if c.startswith('/' + text)]
        if state < len(matches):
            return matches[state]
        return None

    readline.set_completer(_completer)
    readline.set_completer_delims(' \t\n')
    readline.parse_and_bind('tab: complete')

    _is_libedit = 'libedit' in readline.__doc__ if readline.__doc__ else False
    if _is_libedit:
        readline.parse_and_bind('bind ^K ed-kill-line')
    else:
        readline.parse_and_bind('"\\C-k": kill-line')
        readline.parse_and_bind('"\\C-u": unix-line-discard')
        readline.parse_and_bind('"\\C-r": "\\x12\\n"')

    print(f"MNSEQ v{__version__} ready — {session.interface.summary()}")
    print(f"  {len(session.registry)} CV track(s), {len(commands)} commands. /help for a list.")

    last_command = None
    while True:
        try:
            line = input('> ').strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if not line:
            continue

        # Ctrl+R -> re-run last command
        if line.startswith('\x12'):
            if last_command is None:
                print("  No previous command to re-run.")
                continue
            line = last_command
            print(f"  re-run: {line}")

        result = execute_command(session, commands, line)
        if result == "EXIT":
            break
        last_command = line
        if result:
            print(result)


if __name__ == '__main__':
    main()
