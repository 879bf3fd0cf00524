"""
Quick-action command surface.

These fixed commands bypass intent routing and agent dispatch entirely. A
command matches when the input equals it or starts with it followed by
whitespace; the remainder is passed to the handler as an argument.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class QuickAction(str, Enum):
    SAVE = "save"
    RESTART = "restart"
    GET_STARTED = "get_started"
    PAUSE = "pause"
    SKIP = "skip"
    HINT = "hint"
    RECAP = "recap"
    BATTLE_TEST = "battle_test"


QUICK_ACTION_COMMANDS = {
    "/save": QuickAction.SAVE,
    "/restart": QuickAction.RESTART,
    "/reset": QuickAction.RESTART,
    "/start": QuickAction.GET_STARTED,
    "get started": QuickAction.GET_STARTED,
    "/pause": QuickAction.PAUSE,
    "/skip": QuickAction.SKIP,
    "/hint": QuickAction.HINT,
    "/recap": QuickAction.RECAP,
    "/battle": QuickAction.BATTLE_TEST,
    "/encounter": QuickAction.BATTLE_TEST,
}

# Longest first so "/start" never shadows a longer command sharing its prefix
_ORDERED_COMMANDS = sorted(QUICK_ACTION_COMMANDS, key=len, reverse=True)

SAVE_CONFIRMATION = "Session saved successfully."
SETUP_SKIPPED = (
    "Setup skipped: this session already has progress. "
    "Use /restart first if you want a fresh starter session."
)
RESTART_MESSAGE = "Session restarted. A fresh adventure is ready whenever you are."
PAUSE_MESSAGE = "Adventure paused. Take your time; send any message to pick up where you left off."
SKIP_MESSAGE = "Skipping ahead. The story will move past the current moment."
NO_PARTY_MESSAGE = "You need at least one Pokémon in your party before a battle can start."
BATTLE_ACTIVE_MESSAGE = "A battle is already in progress. Finish it before starting another."


@dataclass(frozen=True)
class ParsedQuickAction:
    action: QuickAction
    command: str
    argument: str = ""


def parse_quick_action(user_input: str) -> Optional[ParsedQuickAction]:
    """Return the quick action named by ``user_input``, or None for normal input"""
    text = user_input.strip()
    lowered = text.lower()
    for command in _ORDERED_COMMANDS:
        if lowered == command:
            return ParsedQuickAction(QUICK_ACTION_COMMANDS[command], command)
        if lowered.startswith(command) and lowered[len(command)].isspace():
            return ParsedQuickAction(
                QUICK_ACTION_COMMANDS[command], command, text[len(command):].strip()
            )
    return None
