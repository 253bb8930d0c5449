"""
Apply/reverse orchestration.

Every multi-step workflow on a character (adding or removing an item, applying
a choice, gaining a level) runs as one job in that character's mailbox.
A job only starts once the previous job's persisted updates resolved and the
character was recomputed, so advancements always read prepared data.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from shortuuid import random

from .advancement.base import Advancement, AdvancementConfigurationError, AdvancementData, AdvancementError
from .advancement.levels import AdvancementLevels
from .content import ItemContent
from .effects import ActiveEffect, EffectsEngine
from .models import Character, Item
from .utils import DELETE, get_property

if TYPE_CHECKING:
    from .ruleset import Ruleset

logger = logging.getLogger("advancement-engine.queue")

T = TypeVar("T")

# Granted items can grant items of their own; stop following them past this depth
MAX_GRANT_DEPTH = 5


# ---------------------------------------------------------------------------
# Mailboxes
# ---------------------------------------------------------------------------


class AdvancementQueue:
    """One FIFO mailbox and worker task per character.

    Jobs for the same character run strictly one after another; jobs for
    different characters interleave freely. A failing job rejects its own
    future and the worker moves on to the next one.
    """

    def __init__(self) -> None:
        self._mailboxes: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}

    async def submit(self, character_id: str, job: Callable[[], Awaitable[T]]) -> T:
        """Queue ``job`` for a character and wait for its result.

        A job submitted from inside another job of the same character runs
        inline; queueing it would wait on itself.
        """
        worker = self._workers.get(character_id)
        if worker is not None and asyncio.current_task() is worker:
            return await job()

        future = asyncio.get_running_loop().create_future()
        await self._mailbox(character_id).put((job, future))
        return await future

    def _mailbox(self, character_id: str) -> asyncio.Queue:
        mailbox = self._mailboxes.get(character_id)
        worker = self._workers.get(character_id)
        if mailbox is None or worker is None or worker.done():
            mailbox = mailbox or asyncio.Queue()
            self._mailboxes[character_id] = mailbox
            self._workers[character_id] = asyncio.create_task(self._work(character_id, mailbox))
        return mailbox

    async def _work(self, character_id: str, mailbox: asyncio.Queue) -> None:
        while True:
            job, future = await mailbox.get()
            try:
                result = await job()
            except Exception as e:
                logger.warning(f"Job for character '{character_id}' failed: {e}")
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                mailbox.task_done()

    async def join(self, character_id: str | None = None) -> None:
        """Wait until the mailbox of one character (or every mailbox) is empty."""
        if character_id is not None:
            mailbox = self._mailboxes.get(character_id)
            if mailbox is not None:
                await mailbox.join()
            return
        for mailbox in list(self._mailboxes.values()):
            await mailbox.join()

    async def close(self) -> None:
        """Cancel every worker. Queued jobs that have not started are dropped."""
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._mailboxes.clear()


# ---------------------------------------------------------------------------
# Item & advancement lifecycle
# ---------------------------------------------------------------------------


class AdvancementManager:
    """Runs advancement workflows for characters through an :class:`AdvancementQueue`.

    Public coroutines queue a job and wait for it. Methods prefixed with
    ``run_`` perform the same work directly and are meant to be called from
    inside an already queued job.
    """

    def __init__(self, ruleset: "Ruleset", queue: AdvancementQueue | None = None) -> None:
        self.ruleset = ruleset
        self.queue = queue or AdvancementQueue()

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def add_item(self, character: Character, item: Item | ItemContent | dict | str) -> Item:
        """Add an item to a character and apply its advancements for every level already gained.

        Args:
            item: Item data, content, or a content reference to clone.

        Returns:
            The created item.
        """
        return await self.queue.submit(character.id, lambda: self.run_add_item(character, item))

    async def run_add_item(self, character: Character, item: Item | ItemContent | dict | str) -> Item:
        data = await self._item_data(item)
        before = set(character.items)
        created = await character.create_embedded_items([data])
        item_id = created[0].id
        logger.info(f"Added '{created[0].name}' to '{character.name}'")
        await self.run_backfill(character, item_id)
        await self._backfill_granted(character, before | {item_id})
        return character.items[item_id]

    async def _item_data(self, item: Item | ItemContent | dict | str) -> dict[str, Any]:
        if isinstance(item, str):
            content = await self.ruleset.content.resolve_by_reference(item)
            if content is None:
                raise AdvancementError(f"Content '{item}' could not be found")
            item = content
        if isinstance(item, ItemContent):
            return item.to_item_data(random(length=8))
        if isinstance(item, Item):
            return item.to_record()
        return dict(item)

    async def remove_item(self, character: Character, item_id: str) -> None:
        """Reverse every advancement of an item, then delete it with everything it granted."""
        await self.queue.submit(character.id, lambda: self.run_remove_item(character, item_id))

    async def run_remove_item(self, character: Character, item_id: str) -> None:
        item = character.items.get(item_id)
        if item is None:
            raise AdvancementError(f"Character '{character.name}' has no item '{item_id}'")
        for levels in reversed(character.level_steps()):
            for advancement in reversed(item.advancement_for_level(levels)):
                await advancement.reverse(levels)

        granted = [
            i.id for i in character.items.values()
            if (i.advancement_origin or "").startswith(f"{item_id}.")
        ]
        await character.delete_embedded_items([item_id, *granted])
        await self._prune_orphans(character)
        logger.info(f"Removed '{item.name}' from '{character.name}'")

    async def _prune_orphans(self, character: Character) -> None:
        """Drop advancement values whose item no longer exists."""
        values = get_property(character.system, "progression.advancement") or {}
        orphans = [item_id for item_id in values if item_id not in character.items]
        if orphans:
            await character.update({f"system.progression.advancement.{i}": DELETE for i in orphans})

    # ------------------------------------------------------------------
    # Advancements on items
    # ------------------------------------------------------------------

    async def create_advancement(self, item: Item, data: AdvancementData | dict) -> Advancement:
        """Add an advancement definition to an item.

        On a character the new advancement is applied for every level step
        already gained.

        Raises:
            AdvancementConfigurationError: If the type cannot be added to the item.
        """
        record = data if isinstance(data, AdvancementData) else AdvancementData.model_validate(data)
        self.ruleset.advancement_types.validate_for_item(record.type, item)

        character = item.character
        if character is None:
            item.advancement[record.id] = record
            item.reset_advancement()
            return item.advancements.get(record.id)

        async def job() -> Advancement:
            await character.update_embedded_items(
                [{"id": item.id, f"advancement.{record.id}": record.model_dump()}]
            )
            before = set(character.items)
            await self.run_backfill(character, item.id, advancement_id=record.id)
            await self._backfill_granted(character, before)
            return character.items[item.id].advancements.get(record.id)

        return await self.queue.submit(character.id, job)

    async def delete_advancement(self, item: Item, advancement_id: str) -> None:
        """Remove an advancement definition, its stored value and the items it granted."""
        advancement = item.advancements.get(advancement_id)
        if advancement is None:
            raise AdvancementConfigurationError(f"'{item.name}' has no advancement '{advancement_id}'")

        character = item.character
        if character is None:
            item.advancement.pop(advancement_id, None)
            item.reset_advancement()
            return

        async def job() -> None:
            granted = [
                i.id for i in character.items.values() if i.advancement_origin == advancement.relative_id
            ]
            if granted:
                await character.delete_embedded_items(granted)
            await character.update({advancement.value_key_path: DELETE})
            await character.update_embedded_items([{"id": item.id, f"advancement.{advancement_id}": DELETE}])
            await self._prune_orphans(character)

        await self.queue.submit(character.id, job)

    # ------------------------------------------------------------------
    # Choices
    # ------------------------------------------------------------------

    async def apply(
        self, character: Character, relative_id: str, levels: AdvancementLevels, data: Any = None
    ) -> None:
        """Apply player choice ``data`` to the advancement ``itemId.advancementId``."""

        async def job() -> None:
            advancement = self.find(character, relative_id)
            before = set(character.items)
            await advancement.apply(levels, data)
            await self._backfill_granted(character, before)

        await self.queue.submit(character.id, job)

    async def reverse(
        self, character: Character, relative_id: str, levels: AdvancementLevels, data: Any = None
    ) -> None:
        await self.queue.submit(character.id, lambda: self.find(character, relative_id).reverse(levels, data))

    @staticmethod
    def find(character: Character, relative_id: str) -> Advancement:
        item_id, _, advancement_id = relative_id.partition(".")
        item = character.items.get(item_id)
        advancement = item.advancements.get(advancement_id) if item is not None else None
        if advancement is None:
            raise AdvancementError(f"Advancement '{relative_id}' not found on '{character.name}'")
        return advancement

    # ------------------------------------------------------------------
    # Active effects
    # ------------------------------------------------------------------

    async def apply_effect(self, character: Character, effect: ActiveEffect) -> ActiveEffect:
        return await self.queue.submit(character.id, lambda: EffectsEngine.apply_effect(character, effect))

    async def remove_effect(self, character: Character, effect_id: str) -> ActiveEffect | None:
        return await self.queue.submit(character.id, lambda: EffectsEngine.remove_effect(character, effect_id))

    async def remove_effects_by_name(self, character: Character, name: str) -> list[ActiveEffect]:
        return await self.queue.submit(character.id, lambda: EffectsEngine.remove_effects_by_name(character, name))

    async def tick_effects(self, character: Character) -> list[ActiveEffect]:
        """Advance the character's timed effects by one round in its mailbox."""
        return await self.queue.submit(character.id, lambda: EffectsEngine.tick_effects(character))

    # ------------------------------------------------------------------
    # Level steps
    # ------------------------------------------------------------------

    async def run_step(
        self, character: Character, levels: AdvancementLevels, choices: dict[str, Any] | None = None
    ) -> list[Advancement]:
        """Apply every advancement active at one level step.

        Args:
            choices: Choice data keyed by advancement ID or relative ID.
                Advancements without an entry are applied with defaults.

        Returns:
            The advancements that were applied.
        """
        choices = choices or {}
        before = set(character.items)
        applied = []
        for advancement in character.advancement_for_level(levels):
            data = choices.get(advancement.relative_id, choices.get(advancement.id))
            await advancement.apply(levels, data, initial=data is None)
            applied.append(advancement)
        await self._backfill_granted(character, before)
        return applied

    async def run_reverse_step(self, character: Character, levels: AdvancementLevels) -> list[Advancement]:
        """Reverse every advancement active at one level step, last first."""
        reversed_ = []
        for advancement in reversed(character.advancement_for_level(levels)):
            await advancement.reverse(levels)
            reversed_.append(advancement)
        await self._prune_orphans(character)
        return reversed_

    async def run_backfill(self, character: Character, item_id: str, advancement_id: str | None = None) -> None:
        """Apply an item's advancements with defaults for the baseline and every gained level."""
        for levels in character.level_steps():
            item = character.items.get(item_id)
            if item is None:
                return
            for advancement in item.advancement_for_level(levels):
                if advancement_id is None or advancement.id == advancement_id:
                    await advancement.apply(levels, None, initial=True)

    async def _backfill_granted(self, character: Character, known: set[str], depth: int = 0) -> None:
        """Backfill the advancements of items created since ``known`` was taken."""
        new_ids = [i for i in character.items if i not in known]
        if not new_ids:
            return
        if depth >= MAX_GRANT_DEPTH:
            logger.warning(f"Granted items on '{character.name}' nest deeper than {MAX_GRANT_DEPTH}; stopping")
            return
        known = known | set(new_ids)
        for item_id in new_ids:
            await self.run_backfill(character, item_id)
        await self._backfill_granted(character, known, depth + 1)
