"""Sweep runner entry point.

Reconciles the vector store with the tracking store: vectors of untracked
documents are deactivated and every inactive vector is hard-deleted. With
SWEEP_RETRAIN_DRIVE=true, Drive documents changed since their last training
are retrained for all bots first. Meant to be run on a schedule (cron).

Usage:
    python -m sweep.sweep_runner
"""

import asyncio

from services.doc_training.Fragmenter import Fragmenter
from services.doc_training.LifecycleService import LifecycleService
from services.doc_training.TrackingStore import TrackingStore
from services.doc_training.TrainingService import TrainingService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.source.SourceClientManager import SourceClientManager
from shared.clients.storage.StorageClientManager import StorageClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging


async def refresh_all_bots(tracking_store: TrackingStore, training_service: TrainingService, logger) -> None:
    """Retrain stale Drive documents for every bot that uses tracked documents."""
    state = await tracking_store.get()
    bot_ids = sorted({bot_id for record in state.values() for bot_id in record.used_by_bots})
    for bot_id in bot_ids:
        report = await training_service.refresh_bot_documents(bot_id)
        if report.failures:
            logger.warning("Refresh of bot '%s' had %d failures.", bot_id, len(report.failures))


async def main() -> None:
    """Run the maintenance sweep once."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    rag_client = RAGClientManager(helper_config=config).get_client()
    storage_client = StorageClientManager(helper_config=config).get_client()
    clients = [rag_client, storage_client]

    tracking_store = TrackingStore(helper_config=config, storage_client=storage_client)
    lifecycle_service = LifecycleService(helper_config=config, tracking_store=tracking_store, rag_client=rag_client)

    training_service: TrainingService | None = None
    if config.get_bool_val("SWEEP_RETRAIN_DRIVE", default=False):
        embed_client = EmbedClientManager(helper_config=config).get_client()
        source_manager = SourceClientManager(helper_config=config)
        clients.extend([embed_client, *source_manager.get_clients()])
        training_service = TrainingService(
            helper_config=config,
            tracking_store=tracking_store,
            fragmenter=Fragmenter(helper_config=config),
            embed_client=embed_client,
            rag_client=rag_client,
            source_manager=source_manager,
        )

    try:
        for client in clients:
            await client.boot()
        await rag_client.do_healthcheck()
        await storage_client.do_healthcheck()

        if training_service is not None:
            await refresh_all_bots(tracking_store, training_service, logger)

        await lifecycle_service.sweep()
    finally:
        for client in clients:
            await client.close()


if __name__ == "__main__":
    asyncio.run(main())
