"""Factory for wiring Lexi services together."""

from dataclasses import dataclass, field
from types import TracebackType

from lexi.cache import CacheConfig, CacheService
from lexi.context.background import EmbeddingWriteQueue
from lexi.context.service import ContextService
from lexi.context.stores import EmbeddingStore, InMemoryEmbeddingStore, MongoEmbeddingStore
from lexi.core.config import Settings, get_settings, load_cache_config
from lexi.core.lifecycle import LifecycleManager, ShutdownState
from lexi.core.models import RetrievalConfig
from lexi.engines.embeddings.base import EmbeddingProvider
from lexi.engines.embeddings.factory import create_embedding_providers
from lexi.engines.embeddings.generator import EmbeddingGenerator
from lexi.engines.gateway import ProviderGateway
from lexi.engines.generation.base import GenerationProvider
from lexi.engines.generation.factory import create_generation_providers
from lexi.observability.logging import LogEvents, configure_logging, get_logger


@dataclass
class LexiServices:
    """Every long-lived Lexi component, built once per process.

    Example:
        >>> async with create_services() as services:
        ...     text = await services.gateway.generate_content("Draft an NDA")
    """

    settings: Settings
    cache: CacheService
    gateway: ProviderGateway
    embeddings: EmbeddingGenerator
    store: EmbeddingStore
    context: ContextService
    write_queue: EmbeddingWriteQueue
    lifecycle: LifecycleManager = field(init=False)

    def __post_init__(self) -> None:
        self.lifecycle = LifecycleManager(
            write_queue=self.write_queue,
            cache=self.cache,
            store=self.store,
            shutdown_timeout=self.settings.shutdown_timeout,
        )

    async def start(self) -> None:
        """Start the cache sweep and ensure store indexes (best effort)."""
        logger = get_logger(__name__)
        self.cache.start()
        if isinstance(self.store, MongoEmbeddingStore):
            try:
                await self.store.ensure_indexes()
            except Exception as e:
                logger.warning(LogEvents.INDEX_SETUP_FAILED, error=str(e))
        logger.info(
            LogEvents.SERVICES_STARTED,
            providers=self.gateway.provider_names,
            store=type(self.store).__name__,
        )

    async def close(self) -> ShutdownState:
        """Drain writes, stop the cache sweep and close the store."""
        logger = get_logger(__name__)
        state = await self.lifecycle.shutdown()
        logger.info(
            LogEvents.SERVICES_SHUTDOWN,
            phase=state.phase.value,
            errors=len(state.errors),
        )
        return state

    async def __aenter__(self) -> "LexiServices":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


def create_services(
    settings: Settings | None = None,
    store: EmbeddingStore | None = None,
    generation_providers: list[GenerationProvider] | None = None,
    embedding_providers: list[EmbeddingProvider] | None = None,
    cache: CacheService | None = None,
    retrieval_config: RetrievalConfig | None = None,
) -> LexiServices:
    """Create LexiServices with all dependencies.

    Any dependency may be injected (tests pass fakes); the rest are built
    from Settings. The store is MongoDB when mongodb_uri is set, in-memory
    otherwise.

    Args:
        settings: Settings (defaults to get_settings())
        store: Embedding store
        generation_providers: Generation providers in priority order
        embedding_providers: Embedding providers in priority order
        cache: Shared cache
        retrieval_config: Retrieval tuning (defaults to RetrievalConfig.load())

    Returns:
        LexiServices (call start() or use as an async context manager)
    """
    settings = settings or get_settings()
    configure_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        is_production=settings.is_production,
    )
    logger = get_logger(__name__)

    if cache is None:
        cache = CacheService(CacheConfig.from_dict(load_cache_config(settings)))

    gateway = ProviderGateway(
        generation_providers or create_generation_providers(settings),
        cache,
        settings,
    )
    embeddings = EmbeddingGenerator(
        embedding_providers or create_embedding_providers(settings),
        settings,
    )

    if store is None:
        if settings.mongodb_uri:
            store = MongoEmbeddingStore(
                uri=settings.mongodb_uri,
                database=settings.mongodb_database,
                collection=settings.embeddings_collection,
                index_name=settings.vector_index_name,
            )
        else:
            logger.info("mongodb_uri not set, using in-memory embedding store")
            store = InMemoryEmbeddingStore()

    context = ContextService(store, embeddings, retrieval_config or RetrievalConfig.load())

    return LexiServices(
        settings=settings,
        cache=cache,
        gateway=gateway,
        embeddings=embeddings,
        store=store,
        context=context,
        write_queue=EmbeddingWriteQueue(context),
    )
