"""
Process-wide service wiring.

Everything is constructed once per process by ``get_services`` and handed to
the API through FastAPI dependencies. Tests build their own ``Services`` with
``build_services`` (or override the dependency) instead of touching these.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pokedm.agents import AgentDispatcher, IntentRouter
from pokedm.config import settings
from pokedm.engine.campaign import CampaignService
from pokedm.engine.encounter import EncounterSynthesizer
from pokedm.engine.encounter_profiles import load_profiles
from pokedm.engine.locks import SessionLockManager
from pokedm.engine.merge import StateMergeEngine
from pokedm.engine.orchestrator import TurnOrchestrator
from pokedm.engine.progression import ProgressionEngine
from pokedm.providers import BaseProvider, create_provider
from pokedm.storage import (
    CanonCache,
    InMemoryCanonCache,
    PokeAPIClient,
    StorageAdapter,
    create_adapter,
)
from pokedm.utils.clock import Clock, utc_now
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    storage: StorageAdapter
    canon_cache: CanonCache
    provider: BaseProvider
    router: IntentRouter
    dispatcher: AgentDispatcher
    locks: SessionLockManager
    orchestrator: TurnOrchestrator
    campaigns: CampaignService


def build_services(
    storage: Optional[StorageAdapter] = None,
    provider: Optional[BaseProvider] = None,
    router_provider: Optional[BaseProvider] = None,
    clock: Optional[Clock] = None,
    fetcher=None,
) -> Services:
    clock = clock or utc_now
    storage = storage or create_adapter(clock=clock)
    provider = provider or create_provider()
    if router_provider is None:
        router_provider = (
            create_provider(settings.router_model_name) if settings.router_model_name else provider
        )

    if fetcher is None and settings.canon_fetch_enabled:
        fetcher = PokeAPIClient()

    canon_cache = CanonCache(
        storage,
        memory=InMemoryCanonCache(
            default_ttl=settings.memory_cache_ttl_seconds,
            clock=clock,
            max_size=settings.memory_cache_max_entries,
        ),
        clock=clock,
        fetcher=fetcher,
    )
    locks = SessionLockManager()
    merge_engine = StateMergeEngine()
    router = IntentRouter(router_provider)
    dispatcher = AgentDispatcher.from_provider(provider, canon_cache=canon_cache)
    orchestrator = TurnOrchestrator(
        storage,
        router,
        dispatcher,
        merge_engine=merge_engine,
        encounters=EncounterSynthesizer(
            profiles=load_profiles(settings.encounter_profiles_path), clock=clock
        ),
        progression=ProgressionEngine(merge_engine, clock=clock),
        locks=locks,
        recap_provider=provider,
        clock=clock,
    )
    campaigns = CampaignService(storage, merge_engine=merge_engine, locks=locks, clock=clock)
    logger.info(
        f"Services ready: storage={storage.name}, provider={provider.__class__.__name__}, "
        f"model={provider.model_name}"
    )
    return Services(
        storage=storage,
        canon_cache=canon_cache,
        provider=provider,
        router=router,
        dispatcher=dispatcher,
        locks=locks,
        orchestrator=orchestrator,
        campaigns=campaigns,
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    """FastAPI dependency: the shared service container"""
    return build_services()
