"""Embedding provider interface and implementations."""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx
import numpy as np

from event_search.config import EmbeddingBackend, EmbeddingSettings, get_settings
from event_search.embeddings.models import EmbeddingResult
from event_search.exceptions import EmbeddingUnavailable, ErrorCode
from event_search.logging_config import get_logger
from event_search.observability.metrics import track_embedding_request

logger = get_logger(__name__)

# Known model dimensions
MODEL_DIMENSIONS = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "Xenova/all-MiniLM-L6-v2": 384,
    "BAAI/bge-small-en-v1.5": 384,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}
DEFAULT_DIMENSIONS = 384


def normalize_rows(vectors: Any) -> np.ndarray:
    """L2-normalise each row of *vectors*; all-zero rows are left as zeros."""
    matrix = np.atleast_2d(np.asarray(vectors, dtype=np.float64))
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    return np.divide(matrix, norms, out=np.zeros_like(matrix), where=norms > 0)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers.

    Every vector returned has the provider's fixed dimensionality and
    unit L2 norm.
    """

    @abstractmethod
    async def embed(self, text: str) -> EmbeddingResult:
        """Generate embedding for a single text.

        Args:
            text: Text to embed. Empty text is valid input.

        Returns:
            EmbeddingResult with vector.

        Raises:
            EmbeddingUnavailable: If the model cannot be loaded or fails.
        """
        ...

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed.

        Returns:
            List of EmbeddingResult objects, in input order.

        Raises:
            EmbeddingUnavailable: If the model cannot be loaded or fails.
        """
        ...

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name used for embeddings."""
        ...

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Get the embedding dimensions."""
        ...

    async def close(self) -> None:
        """Release resources held by the provider."""
        return None


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by an in-process sentence-transformers model.

    The model is loaded lazily on first use. Concurrent first callers wait
    on a single lock so the weights are loaded exactly once; afterwards the
    loaded model is read without locking. Loading and inference run in a
    worker thread so the event loop keeps serving other requests.
    """

    def __init__(self, settings: EmbeddingSettings | None = None) -> None:
        """Initialize the provider without loading the model.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
        """
        self._settings = settings or get_settings().embedding
        self._model: Any | None = None
        self._dimensions: int | None = None
        self._load_task: asyncio.Task[Any] | None = None

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions."""
        if self._dimensions is not None:
            return self._dimensions
        return MODEL_DIMENSIONS.get(self._settings.model, DEFAULT_DIMENSIONS)

    @property
    def is_loaded(self) -> bool:
        """Whether the model has been initialised."""
        return self._model is not None

    def _load_model(self) -> Any:
        """Load the pretrained model. Runs in a worker thread."""
        from sentence_transformers import SentenceTransformer

        logger.info(
            f"Loading embedding model {self._settings.model}",
            extra={"precision": self._settings.precision},
        )
        return SentenceTransformer(
            self._settings.model,
            device=self._settings.device,
            model_kwargs={"torch_dtype": self._settings.precision},
        )

    async def _initialise(self) -> Any:
        """Load the model in a worker thread and install it on success."""
        model = await asyncio.to_thread(self._load_model)

        get_dim = getattr(model, "get_sentence_embedding_dimension", None)
        if callable(get_dim) and get_dim():
            self._dimensions = int(get_dim())
        self._model = model
        logger.info(
            f"Embedding model ready: {self._settings.model}",
            extra={"dimensions": self.dimensions},
        )
        return model

    def _on_load_done(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Embedding model initialisation failed: {error}")

    async def _get_model(self) -> Any:
        """Return the loaded model, loading it on first use.

        All callers share one in-flight load. A caller that times out stops
        waiting but leaves the load running; a new load starts only once the
        previous one has finished without producing a model.
        """
        if self._model is not None:
            return self._model

        # No await between the check and the assignment
        task = self._load_task
        if task is None or (task.done() and self._model is None):
            task = asyncio.ensure_future(self._initialise())
            task.add_done_callback(self._on_load_done)
            self._load_task = task

        try:
            return await asyncio.wait_for(
                asyncio.shield(task), timeout=self._settings.load_timeout
            )
        except TimeoutError as e:
            raise EmbeddingUnavailable(
                f"Timed out loading embedding model {self._settings.model}",
                details={"model": self._settings.model},
            ) from e
        except Exception as e:
            raise EmbeddingUnavailable(
                f"Failed to load embedding model: {e}",
                details={"model": self._settings.model, "error": str(e)},
            ) from e

    async def embed(self, text: str) -> EmbeddingResult:
        """Generate embedding for a single text."""
        results = await self.embed_batch([text])
        return results[0]

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts."""
        if not texts:
            return []

        model = await self._get_model()
        start = time.perf_counter()

        try:
            raw = await asyncio.wait_for(
                asyncio.to_thread(
                    model.encode,
                    texts,
                    batch_size=self._settings.batch_size,
                    normalize_embeddings=True,
                    convert_to_numpy=True,
                    show_progress_bar=False,
                ),
                timeout=self._settings.timeout,
            )
        except TimeoutError as e:
            track_embedding_request(
                self.model_name, time.perf_counter() - start, len(texts), success=False
            )
            raise EmbeddingUnavailable(
                "Embedding inference timed out",
                details={"timeout": self._settings.timeout},
            ) from e
        except Exception as e:
            track_embedding_request(
                self.model_name, time.perf_counter() - start, len(texts), success=False
            )
            logger.error(f"Embedding inference failed: {e}")
            raise EmbeddingUnavailable(
                f"Embedding inference failed: {e}",
                details={"error": str(e)},
            ) from e

        track_embedding_request(self.model_name, time.perf_counter() - start, len(texts))

        vectors = normalize_rows(raw)
        return [
            EmbeddingResult(
                text=text,
                embedding=vector.tolist(),
                model=self.model_name,
                dimensions=len(vector),
            )
            for text, vector in zip(texts, vectors, strict=True)
        ]


class HTTPEmbeddingProvider(EmbeddingProvider):
    """Embedding provider using HTTP API.

    Compatible with OpenAI-style embedding APIs and
    text-embeddings-inference (TEI) servers. Vectors are normalised
    client-side since servers differ in whether they normalise.
    """

    def __init__(
        self,
        settings: EmbeddingSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP embedding provider.

        Args:
            settings: Embedding configuration. Uses defaults if not provided.
            client: HTTP client. Creates new one if not provided.
        """
        self._settings = settings or get_settings().embedding
        self._client = client
        self._owns_client = client is None
        self._dimensions: int | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def model_name(self) -> str:
        """Get the model name."""
        return self._settings.model

    @property
    def dimensions(self) -> int:
        """Get embedding dimensions."""
        if self._dimensions is not None:
            return self._dimensions
        return MODEL_DIMENSIONS.get(self._settings.model, DEFAULT_DIMENSIONS)

    async def embed(self, text: str) -> EmbeddingResult:
        """Generate embedding for a single text."""
        results = await self.embed_batch([text])
        return results[0]

    async def embed_batch(self, texts: list[str]) -> list[EmbeddingResult]:
        """Generate embeddings for multiple texts."""
        if not texts:
            return []

        client = await self._get_client()
        url = f"{self._settings.base_url}/embeddings"

        all_results: list[EmbeddingResult] = []
        batch_size = self._settings.batch_size

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            batch_results = await self._embed_batch_request(client, url, batch)
            all_results.extend(batch_results)

        return all_results

    async def _embed_batch_request(
        self,
        client: httpx.AsyncClient,
        url: str,
        texts: list[str],
    ) -> list[EmbeddingResult]:
        """Make embedding request for a batch.

        Raises:
            EmbeddingUnavailable: If the request fails or the response is malformed.
        """
        payload = {
            "input": texts,
            "model": self._settings.model,
        }
        start = time.perf_counter()

        try:
            response = await client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            track_embedding_request(
                self.model_name, time.perf_counter() - start, len(texts), success=False
            )
            logger.error(
                f"Embedding request failed: {e.response.status_code}",
                extra={"url": url, "status": e.response.status_code},
            )
            raise EmbeddingUnavailable(
                f"Embedding service returned {e.response.status_code}",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            track_embedding_request(
                self.model_name, time.perf_counter() - start, len(texts), success=False
            )
            logger.error(
                f"Embedding request error: {e}",
                extra={"url": url},
            )
            raise EmbeddingUnavailable(
                f"Failed to connect to embedding service: {e}",
                details={"url": url},
            ) from e

        track_embedding_request(self.model_name, time.perf_counter() - start, len(texts))

        try:
            data = response.json()
            embeddings = [item["embedding"] for item in data["data"]]
        except (KeyError, TypeError, ValueError) as e:
            raise EmbeddingUnavailable(
                f"Invalid response from embedding service: {e}",
                details={"error": str(e)},
            ) from e

        if len(embeddings) != len(texts):
            raise EmbeddingUnavailable(
                "Embedding service returned a different number of vectors than requested",
                code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
                details={"expected": len(texts), "received": len(embeddings)},
            )

        lengths = {len(embedding) for embedding in embeddings}
        if len(lengths) != 1:
            raise EmbeddingUnavailable(
                "Embedding service returned vectors of mixed dimensionality",
                code=ErrorCode.EMBEDDING_DIMENSION_MISMATCH,
                details={"dimensions": sorted(lengths)},
            )

        vectors = normalize_rows(embeddings)
        if self._dimensions is None:
            self._dimensions = vectors.shape[1]

        return [
            EmbeddingResult(
                text=text,
                embedding=vector.tolist(),
                model=self._settings.model,
                dimensions=len(vector),
            )
            for text, vector in zip(texts, vectors, strict=True)
        ]


def create_embedding_provider(
    settings: EmbeddingSettings | None = None,
) -> EmbeddingProvider:
    """Build the provider selected by ``EMBEDDING_BACKEND``."""
    settings = settings or get_settings().embedding
    if settings.backend == EmbeddingBackend.HTTP:
        return HTTPEmbeddingProvider(settings=settings)
    return SentenceTransformerEmbeddingProvider(settings=settings)
