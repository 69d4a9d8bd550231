"""Sentence embeddings for interest history and questions.

The sentence-transformers model is expensive to load, so a single
``EmbeddingModelProvider`` per model name holds it for the life of the
process. Concurrent first requests wait on the same load instead of starting
their own.
"""

import asyncio
import logging
import time
from functools import lru_cache
from typing import Any, Callable, List, Optional, Sequence

from app.services.tutor.cache import EmbeddingCache
from app.services.tutor.errors import EmbeddingUnavailable, InvalidInput

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


def load_sentence_transformer(model_name: str) -> Any:
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name)


class EmbeddingModelProvider:
    """Loads the embedding model once and hands the same instance to everyone."""

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        loader: Callable[[str], Any] = load_sentence_transformer,
    ):
        self.model_name = model_name
        self._loader = loader
        self._model: Optional[Any] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None
        self.load_count = 0

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def _load_lock(self) -> asyncio.Lock:
        # An asyncio.Lock binds to the first loop that waits on it
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def get_model(self) -> Any:
        if self._model is not None:
            return self._model

        async with self._load_lock():
            # Another caller may have finished loading while we waited
            if self._model is None:
                logger.info(f"Loading embedding model {self.model_name}")
                start_time = time.time()
                try:
                    model = await asyncio.to_thread(self._loader, self.model_name)
                except Exception as e:
                    logger.error(
                        f"Error loading embedding model {self.model_name}: {str(e)}"
                    )
                    raise EmbeddingUnavailable(
                        f"could not load embedding model {self.model_name}"
                    ) from e

                self._model = model
                self.load_count += 1
                logger.info(
                    f"Loaded embedding model {self.model_name} in "
                    f"{int((time.time() - start_time) * 1000)}ms"
                )

        return self._model


@lru_cache()
def get_model_provider(model_name: str = DEFAULT_MODEL) -> EmbeddingModelProvider:
    """Process-wide provider for the given model."""
    return EmbeddingModelProvider(model_name)


class EmbeddingService:
    """Turns text into mean-pooled, L2-normalized embedding vectors."""

    def __init__(
        self,
        provider: EmbeddingModelProvider,
        cache: Optional[EmbeddingCache] = None,
        max_concurrency: int = 8,
    ):
        self.provider = provider
        self.cache = cache
        self.max_concurrency = max(1, max_concurrency)

    @property
    def model_name(self) -> str:
        return self.provider.model_name

    async def encode(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise InvalidInput("cannot embed empty text")

        if self.cache:
            cached = await self.cache.get_cached_embedding(text, self.model_name)
            if cached is not None:
                return cached

        model = await self.provider.get_model()
        start_time = time.time()
        try:
            vector = await asyncio.to_thread(
                model.encode,
                text,
                normalize_embeddings=True,
                convert_to_numpy=True,
            )
        except Exception as e:
            logger.error(f"Error encoding text: {str(e)}")
            raise EmbeddingUnavailable("embedding model failed to encode text") from e

        embedding = [float(x) for x in vector]

        if self.cache:
            try:
                await self.cache.store_embedding(
                    text,
                    self.model_name,
                    embedding,
                    duration_ms=int((time.time() - start_time) * 1000),
                )
            except Exception as e:
                logger.warning(f"Could not cache embedding: {str(e)}")

        return embedding

    async def encode_many(self, texts: Sequence[str]) -> List[List[float]]:
        """Encode texts concurrently, never more than max_concurrency at once."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def encode_bounded(text: str) -> List[float]:
            async with semaphore:
                return await self.encode(text)

        return list(await asyncio.gather(*(encode_bounded(t) for t in texts)))
