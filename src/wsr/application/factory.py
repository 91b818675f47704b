"""
Service Factory
Centralizes wiring of adapters and services from an AppConfig.
"""

from pathlib import Path

from wsr.application.config import AppConfig
from wsr.application.deck_iterator import IteratorOrder
from wsr.application.extract_service import ExtractService
from wsr.application.review_service import ReviewService
from wsr.application.scheduling import MemoryModel, SchedulerParameters
from wsr.domain.ports import ItemRepository, PostponementStore
from wsr.infrastructure.adapters import JsonPostponementStore, VaultItemRepository


def get_memory_model(config: AppConfig) -> MemoryModel:
    return MemoryModel(
        SchedulerParameters(
            desired_retention=config.desired_retention,
            maximum_interval=config.maximum_interval,
            enable_fuzz=config.enable_fuzz,
            fuzz_seed=config.fuzz_seed,
            learning_steps=tuple(config.learning_steps),
            relearning_steps=tuple(config.relearning_steps),
        )
    )


def get_item_repository(config: AppConfig) -> ItemRepository:
    return VaultItemRepository(
        vault_root=config.vault_root or Path.cwd(),
        items_folder=config.items_folder,
        priority_file=config.priority_file,
        review_tag=config.review_tag,
        dismiss_tag=config.dismiss_tag,
        scan_batch_size=config.scan_batch_size,
    )


def get_postponement_store(config: AppConfig) -> PostponementStore:
    return JsonPostponementStore(config.postponement_file)


def get_review_service(config: AppConfig) -> ReviewService:
    """
    Returns a ReviewService wired to the vault adapter. Call sync() before use.
    """
    return ReviewService(
        repository=get_item_repository(config),
        postponement_store=get_postponement_store(config),
        model=get_memory_model(config),
        order=IteratorOrder.parse(config.deck_order, config.card_order),
        iterator_seed=config.iterator_seed,
        clear_postponed_on_new_day=config.clear_postponed_on_new_day,
        review_tag=config.review_tag,
        dismiss_tag=config.dismiss_tag,
    )


def get_extract_service(config: AppConfig, repository: ItemRepository | None = None) -> ExtractService:
    return ExtractService(
        repository or get_item_repository(config),
        model=get_memory_model(config),
        folder=config.extract_folder,
        review_tag=config.review_tag,
        dismiss_tag=config.dismiss_tag,
    )
