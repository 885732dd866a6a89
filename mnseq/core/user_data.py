"""MNSEQ User Data Management.

Handles all persistent user data:
- Preferences (session defaults)
- Envelope presets (user-saved envelopes)
- CV track sets (saved routings)

User Data Structure:
    ~/Documents/MNSEQ/           (override with $MNSEQ_HOME)
    ├── preferences.json         # Session defaults
    ├── envelopes/               # User envelope presets
    │   └── <name>.json
    └── cv_sets/                 # Saved CV track routings
        └── <name>.json

Missing or corrupt files fall back to defaults; they never stop the
session from starting.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..dsp.envelopes import Envelope

logger = logging.getLogger(__name__)


# ============================================================================
# PATH CONFIGURATION
# ============================================================================

HOME_ENV_VAR = 'MNSEQ_HOME'


def get_mnseq_root() -> Path:
    """Get the root MNSEQ user data directory.

    ``$MNSEQ_HOME`` when set, otherwise:

    Windows: C:\\Users\\<user>\\Documents\\MNSEQ
    Linux/Mac: ~/Documents/MNSEQ

    Creates the directory if it doesn't exist.
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        root = Path(override).expanduser()
    else:
        if os.name == 'nt':
            docs = Path(os.environ.get('USERPROFILE', str(Path.home()))) / 'Documents'
        else:
            docs = Path.home() / 'Documents'
        root = docs / 'MNSEQ'
    root.mkdir(parents=True, exist_ok=True)
    return root


def get_preferences_path() -> Path:
    """Get path to preferences.json file."""
    return get_mnseq_root() / 'preferences.json'


def get_envelopes_dir() -> Path:
    """Get path to the user envelope preset directory."""
    path = get_mnseq_root() / 'envelopes'
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cv_sets_dir() -> Path:
    """Get path to the saved CV track set directory."""
    path = get_mnseq_root() / 'cv_sets'
    path.mkdir(parents=True, exist_ok=True)
    return path


def _safe_name(name: str) -> str:
    cleaned = ''.join(c if c.isalnum() or c in '-_' else '_' for c in name.strip().lower())
    if not cleaned:
        raise ValueError("Name cannot be empty")
    return cleaned


def _read_json(path: Path) -> Optional[Any]:
    if not path.exists():
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable %s: %s", path, e)
        return None


def _write_json(path: Path, data: Any) -> bool:
    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        return True
    except (OSError, TypeError) as e:
        logger.error("Could not write %s: %s", path, e)
        return False


# ============================================================================
# PREFERENCES MANAGEMENT
# ============================================================================

DEFAULT_PREFERENCES: Dict[str, Any] = {
    'interface_id': 'expert-sleepers-es8',
    'control_rate_hz': 1000.0,
    'bpm': 120.0,
    'default_envelope': 'perc',
    'quant_root': 60,
    'quant_scale': 'chromatic',
    'log_level': 'WARNING',
    'euclid_steps': 16,
    'euclid_pulses': 4,
    'euclid_accent_every': 4,
}


def load_preferences() -> Dict[str, Any]:
    """Load user preferences from disk.

    Returns
    -------
    dict
        Preferences dictionary with defaults filled in
    """
    prefs = DEFAULT_PREFERENCES.copy()
    saved = _read_json(get_preferences_path())
    if isinstance(saved, dict):
        prefs.update(saved)
    return prefs


def save_preferences(prefs: Dict[str, Any]) -> bool:
    """Save user preferences to disk.

    Parameters
    ----------
    prefs : dict
        Preferences dictionary

    Returns
    -------
    bool
        True if saved successfully
    """
    return _write_json(get_preferences_path(), prefs)


def set_preference(key: str, value: Any) -> Dict[str, Any]:
    """Update one preference and persist.  Unknown keys raise ``ValueError``."""
    if key not in DEFAULT_PREFERENCES:
        raise ValueError(f"Unknown preference: {key!r}. "
                         f"Available: {', '.join(DEFAULT_PREFERENCES)}")
    prefs = load_preferences()
    prefs[key] = value
    save_preferences(prefs)
    return prefs


# ============================================================================
# ENVELOPE PRESETS
# ============================================================================

def save_envelope(name: str, envelope: Envelope) -> Path:
    """Save *envelope* as a user preset and return the file path."""
    path = get_envelopes_dir() / f'{_safe_name(name)}.json'
    data = envelope.to_dict()
    data['name'] = name
    if not _write_json(path, data):
        raise OSError(f"Could not save envelope preset to {path}")
    logger.info("Saved envelope preset %s", name)
    return path


def load_envelope(name: str) -> Optional[Envelope]:
    """Load a user envelope preset by name, or None if absent/corrupt."""
    data = _read_json(get_envelopes_dir() / f'{_safe_name(name)}.json')
    if not isinstance(data, dict):
        return None
    try:
        return Envelope.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Bad envelope preset %s: %s", name, e)
        return None


def list_envelopes() -> List[str]:
    """List all saved user envelope preset names."""
    return sorted(p.stem for p in get_envelopes_dir().glob('*.json'))


def delete_envelope(name: str) -> Tuple[bool, str]:
    """Delete a user envelope preset."""
    path = get_envelopes_dir() / f'{_safe_name(name)}.json'
    if not path.exists():
        return False, f"Envelope preset '{name}' not found"
    path.unlink()
    logger.info("Deleted envelope preset %s", name)
    return True, f"Envelope preset '{name}' deleted"


# ============================================================================
# CV TRACK SETS
# ============================================================================

def cv_set_path(name: str) -> Path:
    return get_cv_sets_dir() / f'{_safe_name(name)}.json'


def list_cv_sets() -> List[str]:
    return sorted(p.stem for p in get_cv_sets_dir().glob('*.json'))


# ============================================================================
# INFO
# ============================================================================

def get_user_data_info() -> str:
    """Get information about user data locations.

    Returns
    -------
    str
        Formatted info string
    """
    root = get_mnseq_root()
    lines = [
        "=== MNSEQ USER DATA ===",
        f"Root: {root}",
        "",
        f"  Preferences: {get_preferences_path()}",
        f"  Envelopes:   {get_envelopes_dir()}",
        f"  CV sets:     {get_cv_sets_dir()}",
        "",
        f"Envelope presets: {len(list_envelopes())}",
        f"CV sets: {len(list_cv_sets())}",
    ]
    return '\n'.join(lines)
