"""
Turn orchestrator for the PokeDM engine.

One turn runs LOAD_OR_CREATE -> QUICK_ACTION? -> ROUTE -> DISPATCH -> MERGE
-> PERSIST -> RESPOND while holding the session's lock, so turns against the
same session never interleave. Quick actions skip routing and dispatch.
"""

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from pokedm.agents.prompts import RECAP_SYSTEM
from pokedm.config import settings
from pokedm.errors import GenerationError, StaleWriteError, StorageError, TurnError
from pokedm.schemas.agent import AgentResult, BattleOutcome
from pokedm.schemas.session import ChoiceOption
from pokedm.schemas.validation import SessionValidationError
from pokedm.utils.clock import Clock, epoch_ms, now_iso, utc_now
from pokedm.utils.logger import get_logger

from .custom_dex import CustomDexError, CustomDexRegistry
from .encounter import (
    EncounterSynthesizer,
    detect_encounter_type,
    has_party_pokemon,
    party_instance_ids,
    safe_default_choice,
    should_start_encounter,
)
from .locks import SessionLockManager
from .merge import StateMergeEngine, append_events
from .progression import ProgressionEngine, ProgressionEvent
from .quick_actions import (
    BATTLE_ACTIVE_MESSAGE,
    NO_PARTY_MESSAGE,
    PAUSE_MESSAGE,
    RESTART_MESSAGE,
    SAVE_CONFIRMATION,
    SETUP_SKIPPED,
    SKIP_MESSAGE,
    ParsedQuickAction,
    QuickAction,
    parse_quick_action,
)
from .recap import NO_RECAP_MESSAGE, build_hint, build_recap
from .session_factory import (
    STARTER_NARRATION,
    is_session_empty,
    new_session_document,
    new_session_id,
    seed_starter_session,
)

logger = get_logger(__name__)

Document = Dict[str, Any]

ENCOUNTER_INTENTS = ("narration", "roll")
FAILURE_CONFIDENCE_THRESHOLD = 2
SUCCESS_CONFIDENCE_THRESHOLD = 2
CAPTURE_FRIENDSHIP = 70


class TurnResponse(BaseModel):
    """What a caller gets back from one turn"""

    session_id: str
    narration: str
    choices: List[ChoiceOption] = Field(default_factory=list)
    safe_default: Optional[str] = None
    intent: Optional[str] = None
    quick_action: Optional[str] = None
    battle_active: bool = False
    state_applied: bool = False
    warnings: List[str] = Field(default_factory=list)
    revision: Optional[str] = None


@dataclass
class TurnOutcome:
    document: Document
    narration: str
    state_applied: bool = False
    warnings: List[str] = field(default_factory=list)


def party_confidence(recent_failures: int, recent_successes: int) -> str:
    if recent_failures >= FAILURE_CONFIDENCE_THRESHOLD:
        return "low"
    if recent_successes >= SUCCESS_CONFIDENCE_THRESHOLD and recent_successes > recent_failures:
        return "high"
    return "medium"


def match_choice(user_input: str, options: Sequence[Dict[str, Any]]) -> Optional[str]:
    """Option id selected by ``user_input``: its id, its label or its 1-based number"""
    text = user_input.strip().lower()
    if not text:
        return None
    for index, option in enumerate(options, start=1):
        if text in (option["option_id"].lower(), option["label"].strip().lower(), str(index)):
            return option["option_id"]
    return None


class TurnOrchestrator:
    """
    Drives single turns against stored sessions.

    Collaborators are injected so tests can build isolated instances; the
    process-wide wiring lives in ``pokedm.services``.
    """

    def __init__(
        self,
        storage,
        router,
        dispatcher,
        merge_engine: Optional[StateMergeEngine] = None,
        encounters: Optional[EncounterSynthesizer] = None,
        progression: Optional[ProgressionEngine] = None,
        locks: Optional[SessionLockManager] = None,
        custom_dex: Optional[CustomDexRegistry] = None,
        recap_provider=None,
        clock: Optional[Clock] = None,
        llm_recaps: Optional[bool] = None,
    ):
        self.storage = storage
        self.router = router
        self.dispatcher = dispatcher
        self.clock = clock or utc_now
        self.merge_engine = merge_engine or StateMergeEngine()
        self.encounters = encounters or EncounterSynthesizer(clock=self.clock)
        self.progression = progression or ProgressionEngine(self.merge_engine, clock=self.clock)
        self.locks = locks or SessionLockManager()
        self.custom_dex = custom_dex or CustomDexRegistry()
        self.recap_provider = recap_provider
        self.llm_recaps = settings.llm_recaps if llm_recaps is None else llm_recaps

    async def process_turn(
        self,
        user_input: str,
        session_id: Optional[str] = None,
        campaign_id: Optional[str] = None,
        character_ids: Optional[Sequence[str]] = None,
    ) -> TurnResponse:
        """
        Run one turn

        Args:
            user_input: Raw player message
            session_id: Existing session; a new one is created when omitted
                or unknown
            campaign_id: Campaign for a newly created session
            character_ids: Characters for a newly created session

        Raises:
            TurnError: the turn was aborted and nothing was persisted
        """
        session_id = session_id or new_session_id()
        async with self.locks.hold(session_id):
            try:
                return await self._run_turn(user_input, session_id, campaign_id, character_ids)
            except TurnError:
                raise
            except SessionValidationError as e:
                logger.error(f"[Orchestrator] Invalid document for {session_id}: {e}")
                raise TurnError(
                    "validation", str(e), retry_hint="fix the request", session_id=session_id
                ) from e
            except StorageError as e:
                logger.error(f"[Orchestrator] Storage failure for {session_id}: {e}")
                raise TurnError(
                    "storage", str(e), retry_hint="retry later", session_id=session_id
                ) from e

    async def _run_turn(
        self,
        user_input: str,
        session_id: str,
        campaign_id: Optional[str],
        character_ids: Optional[Sequence[str]],
    ) -> TurnResponse:
        document, revision = await self._load_or_create(session_id, campaign_id, character_ids)

        quick = parse_quick_action(user_input)
        if quick is not None:
            logger.info(f"[Orchestrator] Quick action '{quick.action.value}' for {session_id}")
            return await self._handle_quick_action(quick, document, revision)

        classification = await self.router.classify(user_input, document)
        try:
            result = await self.dispatcher.dispatch(classification.intent, user_input, document)
        except GenerationError as e:
            logger.error(f"[Orchestrator] Generation failed for {session_id}: {e}")
            raise TurnError(
                "external",
                str(e),
                retry_hint="retry" if e.retryable else "check the model configuration",
                session_id=session_id,
            ) from e

        outcome, new_revision = await self._commit(
            session_id,
            document,
            revision,
            lambda current: self._apply_result(current, result, user_input),
        )
        logger.info(
            f"[Orchestrator] Turn complete for {session_id}: intent={result.intent}, "
            f"state_applied={outcome.state_applied}, warnings={len(outcome.warnings)}"
        )
        return self._response(outcome, new_revision, intent=result.intent)

    # ==================== Load / persist ====================

    async def _load_or_create(
        self,
        session_id: str,
        campaign_id: Optional[str],
        character_ids: Optional[Sequence[str]],
    ) -> Tuple[Document, str]:
        document, revision = await self.storage.load_with_revision(session_id)
        if document is not None:
            return document, revision

        document = new_session_document(
            session_id=session_id,
            campaign_id=campaign_id or "",
            character_ids=character_ids or (),
            clock=self.clock,
        )
        revision = await self.storage.save(session_id, document)
        logger.info(f"[Orchestrator] Created session {session_id}")
        return document, revision

    async def _commit(
        self,
        session_id: str,
        document: Document,
        revision: Optional[str],
        build: Callable[[Document], TurnOutcome],
    ) -> Tuple[TurnOutcome, str]:
        """
        Build the new document from ``document`` and save it.

        On a stale write the build is re-run once against a fresh load; a
        second conflict surfaces as a transient TurnError.
        """
        outcome = build(document)
        try:
            return outcome, await self.storage.save(
                session_id, outcome.document, expected_revision=revision
            )
        except StaleWriteError:
            logger.warning(f"[Orchestrator] Stale write for {session_id}; re-applying once")

        fresh, fresh_revision = await self.storage.load_with_revision(session_id)
        if fresh is None:
            raise TurnError(
                "transient", "Session was deleted during the turn", retry_hint="retry", session_id=session_id
            )
        outcome = build(fresh)
        try:
            return outcome, await self.storage.save(
                session_id, outcome.document, expected_revision=fresh_revision
            )
        except StaleWriteError as e:
            raise TurnError(
                "transient",
                "Session was modified concurrently",
                retry_hint="retry",
                session_id=session_id,
            ) from e

    def _response(
        self,
        outcome: TurnOutcome,
        revision: Optional[str],
        intent: Optional[str] = None,
        quick_action: Optional[QuickAction] = None,
    ) -> TurnResponse:
        session = outcome.document["session"]
        choices = session["player_choices"]
        return TurnResponse(
            session_id=session["session_id"],
            narration=outcome.narration,
            choices=choices["options_presented"],
            safe_default=choices.get("safe_default"),
            intent=intent,
            quick_action=quick_action.value if quick_action else None,
            battle_active=session["battle_state"]["active"],
            state_applied=outcome.state_applied,
            warnings=outcome.warnings,
            revision=revision,
        )

    # ==================== Agent results ====================

    def _apply_result(self, document: Document, result: AgentResult, user_input: str) -> TurnOutcome:
        """Merge every proposal carried by ``result``; rejected ones become warnings"""
        outcome = TurnOutcome(document=document, narration=result.narration)
        session_id = document["session"]["session_id"]
        # A turn that starts mid-battle never opens another encounter
        was_active = document["session"]["battle_state"]["active"]

        self._merge(outcome, self._clear_controls(document), "controls")
        self._merge(outcome, self._record_choice(outcome.document, user_input), "choice")

        if result.state_update:
            if self._merge(outcome, result.state_update, result.intent):
                outcome.state_applied = True

        if result.choices:
            choices = [choice.model_dump(mode="json", exclude_none=True) for choice in result.choices]
            self._merge(
                outcome,
                {
                    "session": {
                        "player_choices": {
                            "options_presented": choices,
                            "safe_default": safe_default_choice(choices),
                        }
                    }
                },
                "choices",
            )

        if result.custom_pokemon:
            try:
                registration = self.custom_dex.build_registration(outcome.document, result.custom_pokemon)
            except CustomDexError as e:
                logger.warning(f"[Orchestrator] Custom Pokémon rejected for {session_id}: {e}")
                outcome.warnings.append(str(e))
            else:
                if self._merge(outcome, registration, "custom_dex"):
                    outcome.state_applied = True

        if result.battle_outcome and outcome.document["session"]["battle_state"]["active"]:
            self._resolve_battle(outcome, result.battle_outcome)

        if (
            not was_active
            and result.intent in ENCOUNTER_INTENTS
            and should_start_encounter(outcome.document, user_input, result.narration)
        ):
            encounter_type = detect_encounter_type(f"{user_input} {result.narration}")
            plan = self.encounters.synthesize(outcome.document, encounter_type)
            if self._merge(outcome, plan.to_update(outcome.document), "encounter"):
                outcome.narration = f"{outcome.narration}\n\n{plan.narration}".strip()
                logger.info(
                    f"[Orchestrator] Started {encounter_type} encounter "
                    f"{plan.encounter['encounter_id']} for {session_id}"
                )

        return outcome

    def _merge(self, outcome: TurnOutcome, update: Optional[Dict[str, Any]], source: str) -> bool:
        merged = self.merge_engine.apply(outcome.document, update, source=source)
        if merged.applied:
            outcome.document = merged.document
        elif merged.errors:
            outcome.warnings.append(
                f"Ignored {source} update: " + "; ".join(str(error) for error in merged.errors[:3])
            )
        return merged.applied

    @staticmethod
    def _clear_controls(document: Document) -> Optional[Dict[str, Any]]:
        controls = document["session"]["controls"]
        if not (controls["pause_requested"] or controls["skip_requested"] or controls["explain_requested"]):
            return None
        return {
            "session": {
                "controls": {
                    "pause_requested": False,
                    "skip_requested": False,
                    "explain_requested": False,
                }
            }
        }

    def _record_choice(self, document: Document, user_input: str) -> Optional[Dict[str, Any]]:
        session = document["session"]
        option_id = match_choice(user_input, session["player_choices"]["options_presented"])
        if option_id is None:
            return None
        timestamp = now_iso(self.clock)
        return {
            "session": {
                "player_choices": {"last_choice": {"option_id": option_id, "timestamp": timestamp}},
                "event_log": append_events(
                    session["event_log"],
                    [{"t": timestamp, "kind": "choice", "summary": f"Chose {option_id}"}],
                ),
            }
        }

    def _resolve_battle(self, outcome: TurnOutcome, battle: BattleOutcome) -> None:
        document = outcome.document
        session = document["session"]
        encounter_id = session["battle_state"].get("encounter_id")
        flags = session["fail_soft_flags"]
        failures = flags["recent_failures"] + (1 if battle.result == "loss" else 0)
        successes = flags["recent_successes"] + (1 if battle.result in ("win", "captured") else 0)
        captured = battle.result == "captured" or battle.capture_succeeded

        encounters = copy.deepcopy(session["encounters"])
        characters = None
        for encounter in encounters:
            if encounter["encounter_id"] != encounter_id:
                continue
            encounter["status"] = "resolved"
            encounter["outcome"] = {
                "summary": battle.summary,
                "fail_soft_applied": battle.result == "loss",
            }
            if captured and encounter["wild_slots"]:
                characters = self._capture(document, encounter)

        timestamp = now_iso(self.clock)
        update: Dict[str, Any] = {
            "session": {
                "encounters": encounters,
                "battle_state": {
                    "active": False,
                    "encounter_id": None,
                    "round": 0,
                    "turn_order": [],
                    "field_effects": [],
                    "last_action_summary": battle.summary,
                },
                "fail_soft_flags": {
                    "recent_failures": failures,
                    "recent_successes": successes,
                    "party_confidence": party_confidence(failures, successes),
                },
                "event_log": append_events(
                    session["event_log"],
                    [
                        {
                            "t": timestamp,
                            "kind": "battle",
                            "summary": battle.summary,
                            "details": f"outcome={battle.result}",
                        }
                    ],
                ),
            }
        }
        if characters is not None:
            update["characters"] = characters
        if not self._merge(outcome, update, "battle"):
            return
        outcome.state_applied = True

        event = ProgressionEvent(
            type="capture" if captured else "battle",
            outcome=battle.result,
            participants=party_instance_ids(document),
            first_time=battle.first_time,
            type_advantage_used=battle.type_advantage_used,
            success=captured,
        )
        try:
            progressed = self.progression.apply(outcome.document, event)
        except SessionValidationError as e:
            logger.warning(f"[Orchestrator] Progression rejected: {e}")
            outcome.warnings.append(f"Ignored progression update: {e}")
            return
        outcome.document = progressed.document
        for badge in progressed.badges:
            outcome.narration += f"\n\nNew badge earned: {badge['badge_id']}!"
        for instance_id in progressed.level_ups:
            outcome.narration += f"\n\n{instance_id} grew to a new level!"

    def _capture(self, document: Document, encounter: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
        """Mark the first wild slot captured and add it to the first character's party"""
        if not document["characters"]:
            return None
        characters = copy.deepcopy(document["characters"])
        catcher = characters[0]
        slot = encounter["wild_slots"][0]
        slot["capture"] = {
            "attempts": slot["capture"]["attempts"] + 1,
            "captured_by_character_id": catcher["character_id"],
            "result": "succeeded",
        }
        session = document["session"]
        catcher["pokemon_party"].append(
            {
                "instance_id": f"pkmn_{uuid.uuid4().hex[:8]}",
                "species_ref": slot["species_ref"],
                "form_ref": slot["form_ref"],
                "typing": slot["typing"],
                "level": slot["level"],
                "ability": slot["ability"],
                "moves": slot["moves"],
                "stats": slot["stats"],
                "status_conditions": [],
                "friendship": CAPTURE_FRIENDSHIP,
                "known_info": {
                    "met_at": {
                        "location_id": session["scene"]["location_id"],
                        "session_id": session["session_id"],
                    },
                    "lore_learned": [],
                    "seen_moves": [move["name"] for move in slot["moves"]],
                },
            }
        )
        return characters

    # ==================== Quick actions ====================

    async def _handle_quick_action(
        self, quick: ParsedQuickAction, document: Document, revision: str
    ) -> TurnResponse:
        session_id = document["session"]["session_id"]
        action = quick.action

        if action == QuickAction.SAVE:
            outcome, new_revision = await self._commit(
                session_id, document, revision, lambda current: TurnOutcome(current, SAVE_CONFIRMATION)
            )
            return self._response(outcome, new_revision, quick_action=action)

        if action == QuickAction.RESTART:
            return await self._restart(document, action)

        if action == QuickAction.GET_STARTED:
            if not is_session_empty(document):
                logger.warning(f"[Orchestrator] Setup skipped for {session_id}: session has progress")
                return self._response(TurnOutcome(document, SETUP_SKIPPED), revision, quick_action=action)
            trainer_name = quick.argument or "Alex"
            outcome, new_revision = await self._commit(
                session_id,
                document,
                revision,
                lambda current: TurnOutcome(
                    seed_starter_session(current, trainer_name=trainer_name, clock=self.clock),
                    STARTER_NARRATION,
                    state_applied=True,
                ),
            )
            return self._response(outcome, new_revision, quick_action=action)

        if action in (QuickAction.PAUSE, QuickAction.SKIP, QuickAction.HINT):
            return await self._set_controls(quick, document, revision)

        if action == QuickAction.RECAP:
            return await self._recap(document, revision, action)

        return await self._battle_test(quick, document, revision)

    async def _restart(self, document: Document, action: QuickAction) -> TurnResponse:
        old_id = document["session"]["session_id"]
        await self.storage.delete(old_id)
        fresh = new_session_document(
            campaign_id=document["session"]["campaign_id"],
            character_ids=document["session"]["character_ids"],
            clock=self.clock,
        )
        new_id = fresh["session"]["session_id"]
        revision = await self.storage.save(new_id, fresh)
        logger.info(f"[Orchestrator] Restarted session {old_id} as {new_id}")
        return self._response(TurnOutcome(fresh, RESTART_MESSAGE), revision, quick_action=action)

    async def _set_controls(
        self, quick: ParsedQuickAction, document: Document, revision: str
    ) -> TurnResponse:
        session_id = document["session"]["session_id"]
        action = quick.action
        depth = quick.argument.lower() if quick.argument.lower() in ("kid", "adult") else "kid"

        def build(current: Document) -> TurnOutcome:
            if action == QuickAction.PAUSE:
                controls, narration = {"pause_requested": True}, PAUSE_MESSAGE
            elif action == QuickAction.SKIP:
                controls, narration = {"skip_requested": True}, SKIP_MESSAGE
            else:
                controls = {"explain_requested": True, "explain_depth": depth}
                narration = build_hint(current, depth)
            outcome = TurnOutcome(current, narration)
            self._merge(outcome, {"session": {"controls": controls}}, action.value)
            return outcome

        outcome, new_revision = await self._commit(session_id, document, revision, build)
        return self._response(outcome, new_revision, quick_action=action)

    async def _recap(self, document: Document, revision: str, action: QuickAction) -> TurnResponse:
        session_id = document["session"]["session_id"]
        text = build_recap(document)
        if text == NO_RECAP_MESSAGE:
            return self._response(TurnOutcome(document, text), revision, quick_action=action)
        text = await self._polish_recap(text)

        def build(current: Document) -> TurnOutcome:
            session = current["session"]
            timestamp = now_iso(self.clock)
            recap = {
                "recap_id": f"recap_{epoch_ms(self.clock())}",
                "scope": "campaign",
                "target_id": session["campaign_id"] or session_id,
                "text": text,
                "updated_in_session_id": session_id,
            }
            outcome = TurnOutcome(current, text)
            self._merge(
                outcome,
                {
                    "continuity": {"recaps": list(current["continuity"]["recaps"]) + [recap]},
                    "session": {
                        "event_log": append_events(
                            session["event_log"],
                            [{"t": timestamp, "kind": "recap", "summary": "Recap recorded"}],
                        )
                    },
                },
                "recap",
            )
            return outcome

        outcome, new_revision = await self._commit(session_id, document, revision, build)
        return self._response(outcome, new_revision, quick_action=action)

    async def _polish_recap(self, text: str) -> str:
        """Optional provider rewrite; the deterministic text is kept on any failure"""
        if self.recap_provider is None or not self.llm_recaps:
            return text
        try:
            response = await self.recap_provider.chat(
                [SystemMessage(content=RECAP_SYSTEM), HumanMessage(content=text)]
            )
        except Exception as e:
            logger.warning(f"[Orchestrator] Recap polish failed, using plain recap: {e}")
            return text
        return response.content.strip() or text

    async def _battle_test(
        self, quick: ParsedQuickAction, document: Document, revision: str
    ) -> TurnResponse:
        session_id = document["session"]["session_id"]
        action = quick.action
        if document["session"]["battle_state"]["active"]:
            return self._response(TurnOutcome(document, BATTLE_ACTIVE_MESSAGE), revision, quick_action=action)
        if not has_party_pokemon(document):
            return self._response(TurnOutcome(document, NO_PARTY_MESSAGE), revision, quick_action=action)

        encounter_type = "trainer" if quick.argument.lower().startswith("trainer") else "wild"

        def build(current: Document) -> TurnOutcome:
            plan = self.encounters.synthesize(current, encounter_type)
            return TurnOutcome(
                self.merge_engine.merge(current, plan.to_update(current)),
                plan.narration,
                state_applied=True,
            )

        outcome, new_revision = await self._commit(session_id, document, revision, build)
        return self._response(outcome, new_revision, quick_action=action)
