# backend/ml/model_loader.py

"""
Model Loader
============

Loads trained attack prediction models from the data store + model storage
and keeps them in a bounded in-memory cache.

Cache semantics
---------------
* keyed by model id, LRU-evicted beyond max_size
* get_or_load() is single-flight per key: concurrent callers for the same
  uncached id wait for one storage read instead of each performing their own
* a failed load is not cached; the next caller retries

Public API
----------
ModelLoader.load_model_by_id(model_id)        -> LoadedModel
ModelLoader.load_latest_model_by_type(type)   -> LoadedModel
ModelLoader.get_latest_model_by_type(type)    -> PredictionModel | None
ModelLoader.clear_model_cache()
ModelLoader.get_available_model_types()       -> list[str]
ModelLoader.get_all_model_metadata()          -> list[dict]
ModelLoader.save_model(network, metadata)     -> model id
"""

import json
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ml.config import MODEL_CACHE_SIZE
from ml.database import PredictionModel, new_id
from ml.errors import ModelLoadError, ModelNotFoundError, NoTrainedModelError

logger = logging.getLogger(__name__)


@dataclass
class LoadedModel:
    """A ready-to-run network together with the record it was loaded from."""
    record:     PredictionModel
    network:    Any
    parameters: dict = field(default_factory=dict)

    @property
    def model_id(self) -> str:
        return self.record.id

    @property
    def feature_names(self) -> Optional[list]:
        return self.parameters.get("feature_names")

    @property
    def attack_types(self) -> Optional[list]:
        return self.parameters.get("attack_types")

    @property
    def precision(self) -> Optional[float]:
        return self.record.precision


def parse_parameters(record: PredictionModel) -> dict:
    try:
        params = json.loads(record.parameters or "{}")
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("[ModelLoader] Model %s has malformed parameters: %s", record.id, e)
        return {}
    return params if isinstance(params, dict) else {}


def model_metadata(record: PredictionModel) -> dict:
    """JSON-safe summary of a model record."""
    return {
        "id":            record.id,
        "name":          record.name,
        "description":   record.description,
        "type":          record.type,
        "algorithm":     record.algorithm,
        "version":       record.version,
        "accuracy":      record.accuracy,
        "precision":     record.precision,
        "recall":        record.recall,
        "f1_score":      record.f1_score,
        "training_date": record.training_date.isoformat() if record.training_date else None,
        "last_used":     record.last_used.isoformat() if record.last_used else None,
        "file_path":     record.file_path,
    }


class ModelCache:
    """Bounded, thread-safe LRU cache with single-flight loading."""

    def __init__(self, max_size: int = MODEL_CACHE_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: OrderedDict = OrderedDict()
        self._loading: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str):
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def put(self, key: str, value) -> None:
        with self._lock:
            self._store(key, value)

    def _store(self, key: str, value) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.info("[ModelCache] Evicted model %s", evicted)

    def get_or_load(self, key: str, loader: Callable[[], Any]):
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
                return self._entries[key]
            key_lock = self._loading.setdefault(key, threading.Lock())

        with key_lock:
            # Another caller may have finished the load while we waited
            with self._lock:
                if key in self._entries:
                    self._entries.move_to_end(key)
                    return self._entries[key]
            try:
                value = loader()
                with self._lock:
                    self._store(key, value)
                return value
            finally:
                with self._lock:
                    if self._loading.get(key) is key_lock:
                        del self._loading[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class ModelLoader:
    """Resolves model records to loaded networks through a ModelCache."""

    def __init__(self, store, storage, cache: ModelCache | None = None):
        self.store   = store
        self.storage = storage
        self.cache   = cache if cache is not None else ModelCache()

    def load_model_by_id(self, model_id: str) -> LoadedModel:
        return self.cache.get_or_load(model_id, lambda: self._load_from_storage(model_id))

    def _load_from_storage(self, model_id: str) -> LoadedModel:
        record = self.store.get_model(model_id)
        if record is None:
            raise ModelNotFoundError(f"Model with ID {model_id} not found in database")
        if not record.file_path:
            raise ModelNotFoundError(f"Model with ID {model_id} has no file path defined")

        try:
            network = self.storage.load(record.file_path)
        except ModelLoadError:
            raise
        except Exception as e:
            logger.error("[ModelLoader] Error loading model %s: %s", model_id, e)
            raise ModelLoadError(f"Failed to load model {model_id}: {e}") from e

        self.store.touch_model(model_id)
        logger.info("[ModelLoader] Loaded model %s from %s", model_id, record.file_path)
        return LoadedModel(record=record, network=network, parameters=parse_parameters(record))

    def get_latest_model_by_type(self, model_type: str) -> Optional[PredictionModel]:
        return self.store.get_latest_model(model_type)

    def load_latest_model_by_type(self, model_type: str) -> LoadedModel:
        record = self.get_latest_model_by_type(model_type)
        if record is None:
            raise NoTrainedModelError(f"No model of type {model_type} found")
        return self.load_model_by_id(record.id)

    def clear_model_cache(self) -> None:
        self.cache.clear()

    def get_available_model_types(self) -> list[str]:
        return self.store.list_model_types()

    def get_all_model_metadata(self) -> list[dict]:
        return [model_metadata(r) for r in self.store.list_models()]

    def save_model(self, network, metadata: dict, model_id: str | None = None) -> str:
        """
        Persist a network and its metadata record. The blob is written first
        so a stored record never points at a missing file.
        """
        model_id  = model_id or new_id()
        file_path = f"{metadata['type']}/attack-prediction-{model_id}.pt"
        self.storage.save(network, file_path)

        record = PredictionModel(
            id          = model_id,
            name        = metadata["name"],
            description = metadata.get("description", ""),
            type        = metadata["type"],
            algorithm   = metadata["algorithm"],
            version     = metadata["version"],
            parameters  = json.dumps(metadata.get("parameters", {})),
            accuracy    = metadata.get("accuracy"),
            precision   = metadata.get("precision"),
            recall      = metadata.get("recall"),
            f1_score    = metadata.get("f1_score"),
            file_path   = file_path,
        )
        self.store.insert_model(record)
        return model_id
