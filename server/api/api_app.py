"""FastAPI application entry point for the chatbot training bridge."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import os
from server.api.error_handlers import register_error_handlers
from server.api.routers.QueryRouter import query_router
from server.api.routers.SourceRouter import source_router
from server.api.routers.TrainManagementRouter import train_management_router
from server.api.routers.TrainingRouter import training_router
from services.doc_training.Fragmenter import Fragmenter
from services.doc_training.LifecycleService import LifecycleService
from services.doc_training.SearchService import SearchService
from services.doc_training.TrackingStore import TrackingStore
from services.doc_training.TrainingService import TrainingService
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.source.SourceClientManager import SourceClientManager
from shared.clients.storage.StorageClientManager import StorageClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown."""
    app.state.logging = setup_logging()
    app.state.config = HelperConfig(logger=app.state.logging)

    # Initialise clients
    embed_client = EmbedClientManager(helper_config=app.state.config).get_client()
    rag_client = RAGClientManager(helper_config=app.state.config).get_client()
    storage_client = StorageClientManager(helper_config=app.state.config).get_client()
    source_manager = SourceClientManager(helper_config=app.state.config)
    clients = [embed_client, rag_client, storage_client, *source_manager.get_clients()]
    for client in clients:
        await client.boot()

    # Health checks
    await rag_client.do_healthcheck()
    await storage_client.do_healthcheck()

    # Ensure the vector collection exists, sized by the embedding model
    if not await rag_client.do_existence_check():
        sample = await embed_client.do_embed(texts=["dimension check"])
        await rag_client.do_create_collection(vector_size=len(sample[0]))
    else:
        app.state.logging.info("Vector collection of %s already exists.", rag_client.get_engine_name())

    # Wire up services
    tracking_store = TrackingStore(helper_config=app.state.config, storage_client=storage_client)
    app.state.tracking_store = tracking_store
    app.state.source_manager = source_manager
    app.state.training_service = TrainingService(
        helper_config=app.state.config,
        tracking_store=tracking_store,
        fragmenter=Fragmenter(helper_config=app.state.config),
        embed_client=embed_client,
        rag_client=rag_client,
        source_manager=source_manager,
    )
    app.state.lifecycle_service = LifecycleService(
        helper_config=app.state.config,
        tracking_store=tracking_store,
        rag_client=rag_client,
    )
    app.state.search_service = SearchService(
        helper_config=app.state.config,
        tracking_store=tracking_store,
        embed_client=embed_client,
        rag_client=rag_client,
    )

    app.state.logging.info("Training bridge API ready.")
    yield

    # Shutdown
    for client in clients:
        await client.close()
    app.state.logging.info("Training bridge API shut down.")


app = FastAPI(
    title="Chatbot Training Bridge",
    description="Trains chatbots on blob and Google Drive documents and serves grounded retrieval context.",
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)
app.include_router(training_router)
app.include_router(train_management_router)
app.include_router(source_router)
app.include_router(query_router)


# Server Start
if __name__ == "__main__":
    # start server
    import uvicorn
    logging.info(f"Starting training bridge API v{app_version} from root dir: {os.getenv('ROOT_DIR', os.getcwd())} on port 8000...")
    uvicorn.run(app, host="0.0.0.0", port=8000)
