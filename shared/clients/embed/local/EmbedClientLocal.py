"""On-device embedding backend based on sentence-transformers.

The model is downloaded and loaded on first use. Loading runs in a worker
thread, is shared by all concurrent callers and is bounded by
EMBED_LOCAL_INIT_TIMEOUT seconds.
"""

import asyncio
import importlib.util
from typing import Any

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface, InitProgressCallback
from shared.exceptions import BackendUnavailable, InitializationTimeout
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.embed import EmbedProgress


class EmbedClientLocal(EmbedClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._model_name = self.get_config_val("MODEL", default="sentence-transformers/all-MiniLM-L6-v2", val_type="string")
        self._dimensions = int(self.get_config_val("DIMENSIONS", default=384, val_type="number"))
        self._init_timeout = float(self.get_config_val("INIT_TIMEOUT", default=30, val_type="number"))
        self._encode_batch_size = int(self.get_config_val("BATCH_SIZE", default=32, val_type="number"))
        self._device = self.get_config_val("DEVICE", default="cpu", val_type="string")

        self._model: Any = None
        self._init_task: asyncio.Task | None = None
        self._progress_listeners: list[InitProgressCallback] = []

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def is_available(self) -> bool:
        return importlib.util.find_spec("sentence_transformers") is not None

    def is_ready(self) -> bool:
        return self._model is not None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Local"

    def get_model_name(self) -> str:
        return self._model_name

    def get_dimension(self) -> int:
        return self._dimensions

    def _get_sub_batch_size(self) -> int:
        return max(1, self._encode_batch_size)

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="MODEL", val_type="string", default="sentence-transformers/all-MiniLM-L6-v2"),
            EnvConfig(env_key="DIMENSIONS", val_type="number", default=384),
            EnvConfig(env_key="INIT_TIMEOUT", val_type="number", default=30),
            EnvConfig(env_key="BATCH_SIZE", val_type="number", default=32),
            EnvConfig(env_key="DEVICE", val_type="string", default="cpu"),
        ]

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def initialize(self, on_progress: InitProgressCallback | None = None) -> None:
        """Load the model once. Concurrent callers await the same in-flight load.

        Args:
            on_progress (InitProgressCallback | None): Receives loading progress.

        Raises:
            BackendUnavailable: If sentence-transformers is missing or the model has an unexpected dimension.
            InitializationTimeout: If loading takes longer than the configured timeout.
        """
        if self._model is not None:
            if on_progress:
                on_progress(EmbedProgress(status="ready", fraction_complete=1.0))
            return

        if on_progress:
            self._progress_listeners.append(on_progress)
        if self._init_task is None:
            self._init_task = asyncio.create_task(self._run_initialization())
        try:
            await asyncio.shield(self._init_task)
        finally:
            if on_progress in self._progress_listeners:
                self._progress_listeners.remove(on_progress)

    async def _run_initialization(self) -> None:
        self._notify(EmbedProgress(status="initiate", fraction_complete=0.0, file=self._model_name))
        self.logging.info("Loading local embedding model '%s'...", self._model_name)
        try:
            model = await asyncio.wait_for(asyncio.to_thread(self._load_model), timeout=self._init_timeout)
        except asyncio.TimeoutError as e:
            self._init_task = None
            self.logging.error("Local embedding model did not load within %ss", self._init_timeout)
            raise InitializationTimeout(
                f"Local embedding model '{self._model_name}' did not load within {self._init_timeout}s"
            ) from e
        except Exception:
            # forget the failed attempt so the next call retries
            self._init_task = None
            raise

        self._model = model
        self._notify(EmbedProgress(status="ready", fraction_complete=1.0, file=self._model_name))
        self.logging.info("Local embedding model '%s' ready (%d dimensions).", self._model_name, self._dimensions, color="green")

    def _notify(self, progress: EmbedProgress) -> None:
        for listener in list(self._progress_listeners):
            listener(progress)

    def _load_model(self) -> Any:
        """Blocking model load, executed in a worker thread."""
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise BackendUnavailable(
                "Local embedding backend requires the 'sentence-transformers' package (pip install .[local])."
            ) from e

        model = SentenceTransformer(self._model_name, device=self._device)
        actual = model.get_sentence_embedding_dimension()
        if actual != self._dimensions:
            raise BackendUnavailable(
                f"Model '{self._model_name}' produces {actual} dimensions, EMBED_LOCAL_DIMENSIONS is {self._dimensions}."
            )
        return model

    async def close(self) -> None:
        self._model = None
        self._init_task = None

    ##########################################
    ############### EMBEDDING ################
    ##########################################

    async def _embed_texts(self, texts: list[str]) -> list[list[float]]:
        return await asyncio.to_thread(self._encode, texts)

    def _encode(self, texts: list[str]) -> list[list[float]]:
        # mean pooled, L2 normalised sentence vectors
        vectors = self._model.encode(
            texts,
            batch_size=self._encode_batch_size,
            normalize_embeddings=True,
            convert_to_numpy=True,
            show_progress_bar=False,
        )
        return [[float(v) for v in row] for row in vectors]
