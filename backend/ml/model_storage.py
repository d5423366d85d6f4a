# backend/ml/model_storage.py

"""
File-backed model blob store.

Models are addressed by a relative file_path (as stored in the
prediction_models table) under a storage root, e.g.

    <MODEL_DIR>/attack_probability/attack-prediction-<id>.pt

Each blob is a torch.save'd dict holding the network topology and its
state_dict, so a model can be rebuilt without any other metadata.
"""

import logging
import pickle
from pathlib import Path

import torch

from ml.attack_model import AttackPredictionNet
from ml.config import MODEL_DIR
from ml.errors import ModelLoadError

logger = logging.getLogger(__name__)

BLOB_FORMAT = 1


class ModelStorage:
    """Save / load AttackPredictionNet blobs by relative path."""

    def __init__(self, root: Path | str = MODEL_DIR):
        self.root = Path(root)

    def resolve(self, file_path: str) -> Path:
        relative = Path(str(file_path).lstrip("/\\"))
        full = (self.root / relative).resolve()
        if self.root.resolve() not in full.parents:
            raise ModelLoadError(f"Model path escapes storage root: {file_path}")
        return full

    def exists(self, file_path: str) -> bool:
        return self.resolve(file_path).is_file()

    def save(self, model: AttackPredictionNet, file_path: str) -> Path:
        full = self.resolve(file_path)
        full.parent.mkdir(parents=True, exist_ok=True)
        torch.save(
            {
                "format":     BLOB_FORMAT,
                "topology":   model.topology(),
                "state_dict": model.state_dict(),
            },
            full,
        )
        logger.info("[ModelStorage] Saved model → %s", full)
        return full

    def load(self, file_path: str) -> AttackPredictionNet:
        full = self.resolve(file_path)
        if not full.is_file():
            raise ModelLoadError(f"Model file not found: {full}")
        try:
            blob = torch.load(full, map_location="cpu")
            topo = blob["topology"]
            model = AttackPredictionNet(
                input_dim    = topo["input_dim"],
                num_labels   = topo["num_labels"],
                hidden_units = tuple(topo["hidden_units"]),
                dropout      = tuple(topo["dropout"]),
            )
            model.load_state_dict(blob["state_dict"])
        except (KeyError, RuntimeError, OSError, ValueError, pickle.UnpicklingError) as e:
            logger.error("[ModelStorage] Failed to load %s: %s", full, e)
            raise ModelLoadError(f"Failed to load model {file_path}: {e}") from e
        model.eval()
        return model
