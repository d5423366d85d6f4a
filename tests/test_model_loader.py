# tests/test_model_loader.py

"""
Test cases for the Model Loader and its cache
Run: pytest tests/test_model_loader.py -v
"""

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest
import torch

from ml.attack_model import AttackPredictionNet
from ml.database import PredictionModel
from ml.errors import ModelLoadError, ModelNotFoundError, NoTrainedModelError
from ml.model_loader import ModelCache, ModelLoader


class CountingStorage:
    """Storage stub that counts (slow) loads"""

    def __init__(self, delay=0.05):
        self.delay = delay
        self.loads = 0
        self._lock = threading.Lock()

    def load(self, file_path):
        with self._lock:
            self.loads += 1
        time.sleep(self.delay)
        return object()

    def save(self, model, file_path):
        pass


def _record(model_id, file_path="attack_probability/m.pt", trained=None, **params):
    return PredictionModel(
        id            = model_id,
        name          = "test",
        type          = "attack_probability",
        algorithm     = "neural_network",
        version       = "1.0",
        parameters    = json.dumps(params),
        precision     = 0.8,
        file_path     = file_path,
        training_date = trained or datetime.now(UTC),
    )


class TestModelCache:

    def test_lru_eviction(self):
        """Test: least recently used entry is evicted beyond max_size"""
        cache = ModelCache(max_size=2)
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.get("a") == 1          # a is now most recent
        cache.put("c", 3)
        assert "b" not in cache
        assert "a" in cache and "c" in cache
        assert len(cache) == 2

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            ModelCache(max_size=0)

    def test_single_flight(self):
        """Test: concurrent callers for one key trigger exactly one load"""
        cache = ModelCache(max_size=4)
        calls = []

        def load():
            calls.append(1)
            time.sleep(0.05)
            return "model"

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: cache.get_or_load("k", load), range(16)))

        assert results == ["model"] * 16
        assert len(calls) == 1

    def test_failed_load_is_not_cached(self):
        cache = ModelCache()

        def boom():
            raise RuntimeError("disk gone")

        with pytest.raises(RuntimeError):
            cache.get_or_load("k", boom)
        assert "k" not in cache
        assert cache.get_or_load("k", lambda: 42) == 42


class TestModelLoader:

    @pytest.fixture
    def counting(self):
        return CountingStorage()

    @pytest.fixture
    def loader(self, store, counting):
        return ModelLoader(store, counting, ModelCache(max_size=4))

    def test_missing_record(self, loader):
        with pytest.raises(ModelNotFoundError):
            loader.load_model_by_id("does-not-exist")

    def test_missing_file_path(self, store, loader):
        store.insert_model(_record("no-path", file_path=None))
        with pytest.raises(ModelNotFoundError, match="no file path"):
            loader.load_model_by_id("no-path")

    def test_concurrent_loads_hit_storage_once(self, store, loader, counting):
        """Test: N parallel requests for an uncached id load it once"""
        store.insert_model(_record("m1", feature_names=["a"], attack_types=["x"]))
        with ThreadPoolExecutor(max_workers=8) as pool:
            models = list(pool.map(lambda _: loader.load_model_by_id("m1"), range(12)))

        assert counting.loads == 1
        assert all(m is models[0] for m in models)
        assert models[0].feature_names == ["a"]
        assert models[0].attack_types == ["x"]
        assert models[0].precision == 0.8

    def test_last_used_is_touched(self, store, loader):
        old = datetime(2020, 1, 1, tzinfo=UTC)
        record = _record("m2")
        record.last_used = old
        store.insert_model(record)
        loader.load_model_by_id("m2")
        assert store.get_model("m2").last_used.year > 2020

    def test_latest_by_type(self, store, loader):
        now = datetime.now(UTC)
        store.insert_model(_record("older", trained=now - timedelta(days=2)))
        store.insert_model(_record("newer", trained=now))
        assert loader.get_latest_model_by_type("attack_probability").id == "newer"
        assert loader.load_latest_model_by_type("attack_probability").model_id == "newer"

    def test_no_trained_model(self, loader):
        with pytest.raises(NoTrainedModelError):
            loader.load_latest_model_by_type("attack_probability")

    def test_clear_cache(self, store, loader, counting):
        store.insert_model(_record("m3"))
        loader.load_model_by_id("m3")
        loader.clear_model_cache()
        loader.load_model_by_id("m3")
        assert counting.loads == 2

    def test_metadata_and_types(self, store, loader):
        store.insert_model(_record("m4"))
        assert loader.get_available_model_types() == ["attack_probability"]
        meta = loader.get_all_model_metadata()
        assert meta[0]["id"] == "m4"
        assert meta[0]["precision"] == 0.8


class TestModelStorageRoundTrip:

    def test_save_and_load(self, store, storage):
        """Test: a saved network loads back with identical outputs"""
        torch.manual_seed(0)
        net = AttackPredictionNet(input_dim=5, num_labels=3)
        net.eval()
        loader = ModelLoader(store, storage)
        model_id = loader.save_model(net, {
            "name": "rt", "type": "attack_probability", "algorithm": "neural_network",
            "version": "1.0", "parameters": {"feature_names": list("abcde")},
        })

        assert storage.exists(f"attack_probability/attack-prediction-{model_id}.pt")
        loaded = loader.load_model_by_id(model_id)
        x = torch.rand(2, 5)
        with torch.no_grad():
            assert torch.allclose(net(x), loaded.network(x))
        assert loaded.feature_names == list("abcde")

    def test_missing_blob(self, store, storage):
        store.insert_model(_record("ghost", file_path="attack_probability/ghost.pt"))
        with pytest.raises(ModelLoadError):
            ModelLoader(store, storage).load_model_by_id("ghost")

    def test_path_escape_rejected(self, storage):
        with pytest.raises(ModelLoadError):
            storage.resolve("../../etc/passwd")
