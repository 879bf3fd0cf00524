"""
Deterministic recap of a session's recent history
"""

from typing import Any, Dict, List

NO_RECAP_MESSAGE = (
    "No recap data available yet. Start your adventure to build up session history!"
)

RECENT_EVENTS = 10
RECENT_RECAPS = 3
RECENT_TIMELINE = 5


def _party_line(document: Dict[str, Any]) -> str:
    members: List[str] = []
    for character in document["characters"]:
        for pokemon in character["pokemon_party"]:
            name = pokemon.get("nickname") or pokemon["species_ref"]["ref"].split(":", 1)[-1].title()
            members.append(f"{name} (Lv. {pokemon['level']})")
    return ", ".join(members)


def build_recap(document: Dict[str, Any]) -> str:
    """Plain-text recap, or ``NO_RECAP_MESSAGE`` when nothing has happened"""
    session = document["session"]
    continuity = document["continuity"]
    events = session["event_log"][-RECENT_EVENTS:]
    recaps = continuity["recaps"][-RECENT_RECAPS:]
    timeline = continuity["timeline"][-RECENT_TIMELINE:]

    has_state = bool(session["scene"]["description"] or session["current_objectives"])
    if not (events or recaps or timeline or has_state):
        return NO_RECAP_MESSAGE

    sections: List[str] = []
    if session["episode_title"]:
        sections.append(f"**{session['episode_title']}**")

    if timeline:
        sections.append(
            "Previously:\n" + "\n".join(f"- {entry['episode_title']}: {entry['summary']}" for entry in timeline)
        )
    if recaps:
        sections.append("Earlier recaps:\n" + "\n".join(f"- {recap['text']}" for recap in recaps))
    if events:
        sections.append(
            "Recent events:\n" + "\n".join(f"- [{event['kind']}] {event['summary']}" for event in events)
        )

    current: List[str] = []
    if session["scene"]["description"]:
        current.append(f"Scene: {session['scene']['description']}")
    active = [o["description"] for o in session["current_objectives"] if o["status"] == "active"]
    if active:
        current.append("Objectives: " + "; ".join(active))
    party = _party_line(document)
    if party:
        current.append(f"Party: {party}")
    battle = session["battle_state"]
    if battle["active"]:
        current.append(
            f"Battle in progress (round {battle['round']})"
            + (f": {battle['last_action_summary']}" if battle.get("last_action_summary") else "")
        )
    if current:
        sections.append("Right now:\n" + "\n".join(f"- {line}" for line in current))

    return "\n\n".join(sections)


def build_hint(document: Dict[str, Any], depth: str = "kid") -> str:
    """Suggest the safest next step from the presented choices and objectives"""
    session = document["session"]
    choices = session["player_choices"]
    options = {o["option_id"]: o for o in choices["options_presented"]}
    safe = options.get(choices.get("safe_default") or "")
    active = [o["description"] for o in session["current_objectives"] if o["status"] == "active"]

    if session["battle_state"]["active"]:
        lead = "You're in a battle!" if depth == "kid" else "A battle is in progress."
    else:
        lead = "Here's a hint." if depth == "kid" else "Hint:"

    lines = [lead]
    if safe:
        if depth == "kid":
            lines.append(f"A safe choice is \"{safe['label']}\": {safe['description']}")
        else:
            lines.append(
                f"The lowest-risk option is \"{safe['label']}\" ({safe['risk_level']} risk): {safe['description']}"
            )
    if active:
        lines.append("Your goal: " + active[0])
    if len(lines) == 1:
        lines.append("Try exploring nearby or talking to someone you've met.")
    return " ".join(lines)
