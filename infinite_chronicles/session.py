"""Game session: the single owner of game state.

Turn flow (make_choice):
  1. Guard: ignored while a turn is in flight, before the first turn, or
     after game over.
  2. Resolve the API key (player key, else environment). No key → error,
     no request.
  3. Filter the notebook to entries relevant to the location, active quests
     and the last chapters; render the turn prompt.
  4. Call the LLM with STORY_SCHEMA and validate the reply.
  5. Apply the status delta, run the terminal check (forcing isGameOver on
     the new segment), floor-clamp, merge notebook/quests/stats, append the
     segment and move the player.
  6. Every summary_interval turns, start a background summary task.

Every transition runs under one asyncio.Lock. A failure at any step sets a
readable error and leaves the rest of the state exactly as it was.

Summary tasks only ever write the ``summary`` field. A summary started
before a restart/load is discarded rather than written into the new game.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from pathlib import Path
from typing import Any

from infinite_chronicles.config import (
    ConfigurationError,
    build_llm,
    get_config,
    resolve_api_key,
    validate_config,
)
from infinite_chronicles.context import recent_text, select_relevant
from infinite_chronicles.dice import SkillCheckResult, resolve_skill_check
from infinite_chronicles.history import append_segment, undo_turn
from infinite_chronicles.llm import LLM, LLMError
from infinite_chronicles.models import (
    CharacterProfile,
    GameState,
    StoryChoice,
    StorySegment,
)
from infinite_chronicles.prompts import (
    PromptError,
    build_opening_prompt,
    build_summary_prompt,
    build_turn_prompt,
)
from infinite_chronicles.reconcile import merge_notebook, merge_quests
from infinite_chronicles.status import (
    TERMINAL_MESSAGES,
    apply_stats_update,
    apply_status_delta,
    check_terminal,
    floor_status,
)
from infinite_chronicles.storage import (
    PersistenceError,
    SaveStore,
    deserialize_state,
    slot_key,
)
from infinite_chronicles.turns import STORY_SCHEMA, InvalidPayload, parse_turn_payload

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown"

START_FAILED = "Could not start the story. "
TURN_FAILED = "The AI was interrupted. "
START_MALFORMED = "The AI returned malformed data. Please try again."
START_NETWORK = "Check your API key or network connection."
TURN_MALFORMED = "The returned data was malformed. Please try again."
TURN_NETWORK = "This may be a network or API key problem."
NO_STORE = "Saving is not available: no save storage is configured."
QUICKSAVE_KEY = "quicksave"

LLMFactory = Callable[[str], LLM]


class _PayloadRejected(Exception):
    """Internal: the model replied but the reply is not a usable turn."""


class GameSession:
    """Owns one GameState and exposes the player-facing transitions.

    Args:
        llm_factory: Builds an LLM for a resolved API key. Defaults to an
                     HttpLLM configured from ``config``.
        store:       Save storage; persistence calls fail softly without it.
        config:      Overrides for the engine config (see config.get_config()).
        llm:         A ready LLM used for every key. Takes precedence over
                     ``llm_factory``.
        rng:         Random source for d20 skill checks; seed it for
                     reproducible rolls.
    """

    def __init__(
        self,
        llm_factory: LLMFactory | None = None,
        store: SaveStore | None = None,
        config: dict[str, Any] | None = None,
        llm: LLM | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._config = validate_config({**get_config(), **(config or {})})
        if llm is not None:
            self._llm_factory: LLMFactory = lambda key: llm
        else:
            self._llm_factory = llm_factory or (lambda key: build_llm(self._config, key))
        self._store = store
        self._rng = rng
        self._state = GameState()
        self._lock = asyncio.Lock()
        self._epoch = 0
        self._summary_tasks: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def state(self) -> GameState:
        """A deep copy of the current state; mutating it has no effect."""
        return self._state.model_copy(deep=True)

    def snapshot(self) -> dict[str, Any]:
        """The state in wire format, without the credential."""
        return self._state.model_dump(mode="json", by_alias=True, exclude={"user_api_key"})

    @property
    def config(self) -> dict[str, Any]:
        return dict(self._config)

    def apply_config(self, config: dict[str, Any]) -> None:
        """Use new engine settings from the next turn on."""
        self._config = validate_config({**self._config, **config})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _set(self, **fields: Any) -> None:
        self._state = self._state.model_copy(update=fields)

    def _replace(self, state: GameState) -> None:
        self._epoch += 1
        self._state = state

    async def _generate(self, stage: str, prompt: str) -> StorySegment:
        llm = self._llm_factory(resolve_api_key(self._state.user_api_key))
        raw = await llm(stage, prompt, STORY_SCHEMA)
        result = parse_turn_payload(raw)
        if isinstance(result, InvalidPayload):
            raise _PayloadRejected(result.reason)
        return result.segment

    def _failure_message(self, prefix: str, error: Exception, malformed: str, network: str) -> str:
        if isinstance(error, ConfigurationError):
            return str(error)
        if isinstance(error, _PayloadRejected):
            return prefix + malformed
        return prefix + network

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def start_game(
        self, profile: CharacterProfile, credential: str | None = None
    ) -> GameState:
        """Reset to a fresh game for ``profile`` and generate the opening."""
        async with self._lock:
            self._replace(GameState(
                character_profile=profile,
                user_api_key=credential,
                is_loading=True,
            ))
            try:
                prompt = build_opening_prompt(profile, self._config["language"])
                segment = await self._generate("opening", prompt)
            except Exception as e:
                self._report_failure("opening", e, START_FAILED, START_MALFORMED, START_NETWORK)
                return self.state

            state = self._state
            self._set(
                history=[segment],
                notebook=merge_notebook(state.notebook, segment.notebook_updates),
                quests=merge_quests(state.quests, segment.quest_updates),
                stats=apply_stats_update(state.stats, segment.stats_update),
                current_location=segment.current_location or UNKNOWN_LOCATION,
                is_loading=False,
            )
            logger.info("Game started: %r at %s", segment.title, self._state.current_location)
            return self.state

    async def make_choice(self, action_text: str, is_cheat: bool = False) -> GameState:
        """Send the player's action and fold the next turn into state."""
        if self._state.is_loading:
            logger.debug("choice ignored: a turn is already in flight")
            return self.state
        async with self._lock:
            before = self._state
            if not before.history:
                logger.debug("choice ignored: no game in progress")
                return self.state
            if before.is_game_over:
                logger.debug("choice ignored: game over")
                return self.state

            self._set(is_loading=True, error=None)
            try:
                prompt = self._turn_prompt(before, action_text, is_cheat)
                segment = await self._generate("turn", prompt)
            except Exception as e:
                self._report_failure("turn", e, TURN_FAILED, TURN_MALFORMED, TURN_NETWORK)
                return self.state

            self._apply_turn(segment)
            self._schedule_summary()
            return self.state

    async def choose(self, choice: StoryChoice, is_cheat: bool = False) -> GameState:
        """Resolve a choice's skill check locally, then submit it."""
        check = self.resolve_choice(choice)
        action = check.action_text() if check else choice.text
        return await self.make_choice(action, is_cheat)

    def resolve_choice(self, choice: StoryChoice) -> SkillCheckResult | None:
        if choice.skill_check is None:
            return None
        result = resolve_skill_check(choice, self._state.stats, rng=self._rng)
        logger.info(
            "skill check %s DC %d: d20=%d%+d total=%d %s",
            result.stat, result.difficulty, result.roll, result.modifier,
            result.total, "success" if result.success else "failure",
        )
        return result

    async def undo(self) -> GameState:
        async with self._lock:
            self._state = undo_turn(self._state)
            return self.state

    async def restart(self) -> GameState:
        async with self._lock:
            self._replace(GameState())
            return self.state

    async def toggle_cheat_mode(self) -> GameState:
        async with self._lock:
            self._set(is_cheat_mode=not self._state.is_cheat_mode)
            return self.state

    async def clear_error(self) -> GameState:
        async with self._lock:
            self._set(error=None)
            return self.state

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def list_saves(self) -> list[dict[str, Any]]:
        if self._store is None:
            return []
        return self._store.list_slots()

    async def save_game(self, slot: int) -> GameState:
        async with self._lock:
            try:
                self._require_store().save_state(slot_key(slot), self._state)
            except PersistenceError as e:
                logger.warning("save to slot %d failed: %s", slot, e)
                self._set(error=f"Could not save the game: {e}")
            return self.state

    async def load_game(self, slot: int) -> GameState:
        async with self._lock:
            try:
                loaded = self._require_store().load_state(slot_key(slot))
                if loaded is None:
                    raise PersistenceError(f"Slot {slot} is empty")
            except PersistenceError as e:
                logger.warning("load from slot %d failed: %s", slot, e)
                self._set(error=f"Could not load the game: {e}")
                return self.state
            self._adopt(loaded)
            logger.info("Loaded game from slot %d", slot)
            return self.state

    async def quick_save(self) -> GameState:
        """Save into the single quick-save slot, outside the numbered slots."""
        async with self._lock:
            try:
                self._require_store().save_state(QUICKSAVE_KEY, self._state)
            except PersistenceError as e:
                logger.warning("quick save failed: %s", e)
                self._set(error=f"Could not save the game: {e}")
            return self.state

    async def quick_load(self) -> GameState:
        async with self._lock:
            try:
                loaded = self._require_store().load_state(QUICKSAVE_KEY)
                if loaded is None:
                    raise PersistenceError("No quick save found")
            except PersistenceError as e:
                logger.warning("quick load failed: %s", e)
                self._set(error=f"Could not load the game: {e}")
                return self.state
            self._adopt(loaded)
            logger.info("Loaded quick save")
            return self.state

    async def delete_save(self, slot: int) -> bool:
        async with self._lock:
            try:
                return self._require_store().delete(slot_key(slot))
            except PersistenceError as e:
                logger.warning("delete of slot %d failed: %s", slot, e)
                self._set(error=f"Could not delete the save: {e}")
                return False

    async def export_game(self, path: Path) -> Path | None:
        async with self._lock:
            try:
                return self._require_store().export_state(self._state, path)
            except PersistenceError as e:
                logger.warning("export to %s failed: %s", path, e)
                self._set(error=f"Could not export the game: {e}")
                return None

    async def import_game(self, path: Path) -> GameState:
        async with self._lock:
            try:
                imported = self._require_store().import_state(path)
            except PersistenceError as e:
                logger.warning("import from %s failed: %s", path, e)
                self._set(error=f"Invalid or corrupt save file: {e}")
                return self.state
            self._adopt(imported)
            return self.state

    async def import_blob(self, blob: Any) -> GameState:
        """Import an already-parsed save blob (e.g. an uploaded file)."""
        async with self._lock:
            try:
                imported = deserialize_state(blob)
            except PersistenceError as e:
                logger.warning("import failed: %s", e)
                self._set(error=f"Invalid or corrupt save file: {e}")
                return self.state
            self._adopt(imported)
            return self.state

    # ------------------------------------------------------------------
    # Summaries
    # ------------------------------------------------------------------

    async def wait_for_summaries(self) -> None:
        """Wait for all background summary tasks to finish."""
        pending = list(self._summary_tasks)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _schedule_summary(self) -> None:
        history = self._state.history
        interval = self._config["summary_interval"]
        if not history or len(history) % interval:
            return
        grand = len(history) % self._config["grand_summary_interval"] == 0
        segments = list(history) if grand else list(history[-interval:])
        task = asyncio.create_task(
            self._summarize(
                self._epoch, self._state.user_api_key, self._state.summary, segments, grand
            )
        )
        self._summary_tasks.add(task)
        task.add_done_callback(self._summary_tasks.discard)
        logger.debug("summary scheduled at turn %d grand=%s", len(history), grand)

    async def _summarize(
        self,
        epoch: int,
        credential: str | None,
        current: str,
        segments: list[StorySegment],
        grand: bool,
    ) -> None:
        try:
            llm = self._llm_factory(resolve_api_key(credential))
            text = await llm("summary", build_summary_prompt(current, segments, grand))
        except Exception as e:
            logger.warning("Summary generation failed, keeping previous summary: %s", e)
            return
        if epoch != self._epoch:
            logger.debug("summary dropped: game was replaced")
            return
        self._set(summary=text.strip() or current)

    # ------------------------------------------------------------------
    # Turn application
    # ------------------------------------------------------------------

    def _turn_prompt(self, state: GameState, action: str, is_cheat: bool) -> str:
        relevant = select_relevant(
            state.notebook,
            state.current_location,
            state.quests,
            recent_text(state.history, self._config["recent_segments"]),
        )
        return build_turn_prompt(
            profile=state.character_profile,
            stats=state.stats,
            status=state.player_status,
            location=state.current_location,
            quests=state.quests,
            notebook=relevant,
            summary=state.summary,
            previous=state.history[-1],
            action=action,
            is_cheat=is_cheat,
            language=self._config["language"],
            previous_chars=self._config["context_chars"],
        )

    def _apply_turn(self, segment: StorySegment) -> None:
        state = self._state
        status = apply_status_delta(state.player_status, segment.status_changes)
        terminal = check_terminal(status)
        if terminal is not None:
            logger.info("terminal condition reached: %s", terminal)
            segment = segment.model_copy(update={"is_game_over": True})
            status = floor_status(status)
            if not segment.status:
                segment = segment.model_copy(update={"status": TERMINAL_MESSAGES[terminal]})

        self._set(
            history=append_segment(state.history, segment),
            notebook=merge_notebook(state.notebook, segment.notebook_updates),
            quests=merge_quests(state.quests, segment.quest_updates),
            stats=apply_stats_update(state.stats, segment.stats_update),
            player_status=status,
            current_location=segment.current_location or state.current_location,
            is_loading=False,
        )

    def _report_failure(
        self, stage: str, error: Exception, prefix: str, malformed: str, network: str
    ) -> None:
        if isinstance(error, (ConfigurationError, _PayloadRejected, LLMError, PromptError)):
            logger.warning("%s generation failed: %s", stage, error)
        else:
            logger.exception("%s generation failed unexpectedly", stage)
        self._set(is_loading=False, error=self._failure_message(prefix, error, malformed, network))

    def _require_store(self) -> SaveStore:
        if self._store is None:
            raise PersistenceError(NO_STORE)
        return self._store

    def _adopt(self, loaded: GameState) -> None:
        credential = loaded.user_api_key or self._state.user_api_key
        self._replace(loaded.model_copy(update={
            "user_api_key": credential,
            "is_loading": False,
            "error": None,
        }))
