"""
Engine wiring.

Builds one store, one push scheduler and their collaborators around a
single state database. Only one engine should be active per database.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from memoai.chunks.extraction import NoteExtractor
from memoai.chunks.merge import MergeApplier
from memoai.chunks.store import ChunkStore
from memoai.clock import Clock
from memoai.llm.client import LLMClient
from memoai.llm.services import LLMExtractionService, LLMTutoringService
from memoai.persistence.state_store import StateStore
from memoai.push.scheduler import PushScheduler
from memoai.vault import NoteVault

if TYPE_CHECKING:
    from config import Settings


@dataclass
class MemoEngine:
    """The assembled review engine."""

    state: StateStore
    chunks: ChunkStore
    pushes: PushScheduler
    merger: MergeApplier
    extractor: NoteExtractor
    vault: NoteVault
    llm: LLMClient

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock | None = None) -> MemoEngine:
        """
        Build an engine, load persisted state and drop chunks of deleted notes.
        """
        state = StateStore(settings.database_path)
        llm = LLMClient(
            api_key=settings.llm_api_key,
            api_base=settings.llm_api_base,
            model=settings.llm_model,
            timeout_seconds=settings.llm_timeout,
        )
        vault = NoteVault(settings.vault_dir)

        chunks = ChunkStore(persistence=state, clock=clock)
        pushes = PushScheduler(
            chunks,
            tutor=LLMTutoringService(llm),
            persistence=state,
            config=settings.push_config(),
            language=settings.language,
            clock=clock,
        )
        merger = MergeApplier(chunks)
        extractor = NoteExtractor(chunks, LLMExtractionService(llm), vault, merger)

        engine = cls(
            state=state,
            chunks=chunks,
            pushes=pushes,
            merger=merger,
            extractor=extractor,
            vault=vault,
            llm=llm,
        )
        engine.start()
        return engine

    def start(self) -> None:
        self.chunks.load()
        self.pushes.load()
        removed = self.chunks.cleanup_orphans(self.vault.exists)
        if removed:
            logger.info(f"Cleaned up {len(removed)} orphaned chunks on start")

    def close(self) -> None:
        self.llm.close()
        self.state.close()
