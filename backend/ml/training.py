# backend/ml/training.py

"""
Model Trainer
=============

Trains the attack prediction network on the historical attack data in the
store and registers the result as a new `attack_probability` model.

Pipeline
--------
1. prepare_training_data()  → TrainingExample list (store order)
2. extract_features / extract_labels
3. drop rows with no matching attack type, normalise multi-hot rows
4. split 80/20 (array order, or seeded permutation when shuffle_seed is set)
5. Adam + cross-entropy on soft targets, shuffled mini-batches
6. evaluate on the validation split (argmax accuracy, micro P/R/F1)
7. save weights, then insert the model record

Usage:
    from ml.training import train_attack_prediction_model
    result = train_attack_prediction_model(store, storage)
"""

import logging
import math
from datetime import UTC, datetime

import numpy as np
import torch
import torch.nn.functional as F
from torch.utils.data import DataLoader, TensorDataset

from ml.attack_model import AttackPredictionNet
from ml.config import (
    MODEL_ALGORITHM,
    MODEL_TYPE,
    MODEL_VERSION,
    REGION_CATEGORIES,
    SECTOR_CATEGORIES,
    TrainingConfig,
)
from ml.data_processing import prepare_training_data
from ml.errors import TrainingError
from ml.feature_extraction import extract_features, extract_labels
from ml.metrics import accuracy_from_probabilities, binarize, micro_precision_recall_f1
from ml.model_loader import ModelLoader

logger = logging.getLogger(__name__)


def clean_labels(features: np.ndarray, labels: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Drop all-zero label rows; scale multi-hot rows to sum to 1."""
    totals = labels.sum(axis=1)
    keep = totals > 0
    dropped = int((~keep).sum())
    if dropped:
        logger.info("[Trainer] Dropped %d examples with no recognised attack type", dropped)
    features = features[keep]
    labels   = labels[keep] / totals[keep][:, None]
    return features.astype(np.float32), labels.astype(np.float32)


def split_train_validation(
    features: np.ndarray,
    labels: np.ndarray,
    validation_split: float = 0.2,
    shuffle_seed: int | None = None,
):
    """
    (x_train, y_train, x_val, y_val). The first floor((1 - split) * n) rows
    train, the rest validate.
    """
    n = len(features)
    if shuffle_seed is not None:
        order = np.random.default_rng(shuffle_seed).permutation(n)
        features, labels = features[order], labels[order]
    n_train = math.floor((1.0 - validation_split) * n)
    return features[:n_train], labels[:n_train], features[n_train:], labels[n_train:]


def _evaluate(model: AttackPredictionNet, x_val: np.ndarray, y_val: np.ndarray) -> dict:
    if len(x_val) == 0:
        logger.warning("[Trainer] Empty validation split; metrics default to 0")
        return {"accuracy": 0.0, "precision": 0.0, "recall": 0.0, "f1_score": 0.0, "loss": None}

    model.eval()
    with torch.no_grad():
        x = torch.from_numpy(x_val)
        y = torch.from_numpy(y_val)
        logits = model.logits(x)
        loss   = F.cross_entropy(logits, y).item()
        probs  = F.softmax(logits, dim=-1).numpy()

    precision, recall, f1 = micro_precision_recall_f1(binarize(probs), y_val > 0)
    return {
        "accuracy":  accuracy_from_probabilities(probs, y_val),
        "precision": precision,
        "recall":    recall,
        "f1_score":  f1,
        "loss":      loss,
    }


def train_attack_prediction_model(store, storage, config: TrainingConfig | None = None) -> dict:
    """
    Train and register a new attack prediction model.

    Returns {model_id, accuracy, precision, recall, f1_score}.
    Raises TrainingError when fewer than 2 usable examples exist.
    """
    config = config or TrainingConfig()
    torch.manual_seed(config.seed)

    examples = prepare_training_data(store)
    features, feature_names = extract_features(examples)
    labels, attack_types    = extract_labels(examples)
    features, labels = clean_labels(features, labels)

    if len(features) < 2:
        raise TrainingError(
            f"Not enough training data: {len(features)} usable examples (need at least 2)"
        )

    x_train, y_train, x_val, y_val = split_train_validation(
        features, labels, config.validation_split, config.shuffle_seed
    )
    logger.info(
        "[Trainer] %d features, %d labels | train=%d validation=%d",
        len(feature_names), len(attack_types), len(x_train), len(x_val),
    )

    model = AttackPredictionNet(
        input_dim    = len(feature_names),
        num_labels   = len(attack_types),
        hidden_units = config.hidden_units,
        dropout      = config.dropout,
    )
    optimizer = torch.optim.Adam(model.parameters(), lr=config.learning_rate)
    loader = DataLoader(
        TensorDataset(torch.from_numpy(x_train), torch.from_numpy(y_train)),
        batch_size = config.batch_size,
        shuffle    = True,
        generator  = torch.Generator().manual_seed(config.seed),
    )

    for epoch in range(1, config.epochs + 1):
        model.train()
        total_loss = 0.0
        for xb, yb in loader:
            optimizer.zero_grad()
            loss = F.cross_entropy(model.logits(xb), yb)
            loss.backward()
            optimizer.step()
            total_loss += loss.item() * len(xb)
        if epoch % config.log_every == 0 or epoch == config.epochs:
            logger.info(
                "[Trainer] Epoch %d/%d  loss=%.4f",
                epoch, config.epochs, total_loss / max(len(x_train), 1),
            )

    metrics = _evaluate(model, x_val, y_val)
    if metrics["loss"] is not None:
        logger.info("[Trainer] Validation loss=%.4f", metrics["loss"])
    logger.info(
        "[Trainer] Validation accuracy=%.4f precision=%.4f recall=%.4f f1=%.4f",
        metrics["accuracy"], metrics["precision"], metrics["recall"], metrics["f1_score"],
    )

    parameters = {
        "feature_names":     feature_names,
        "attack_types":      attack_types,
        "sector_categories": [name for name, _ in SECTOR_CATEGORIES],
        "region_categories": [name for name, _ in REGION_CATEGORIES],
        "layers":            model.layer_summary(),
        "training": {
            "epochs":              config.epochs,
            "batch_size":          config.batch_size,
            "learning_rate":       config.learning_rate,
            "validation_split":    config.validation_split,
            "shuffle_seed":        config.shuffle_seed,
            "train_examples":      len(x_train),
            "validation_examples": len(x_val),
        },
    }

    model.eval()
    model_id = ModelLoader(store, storage).save_model(model, {
        "name":        f"Attack Prediction Model {datetime.now(UTC).date().isoformat()}",
        "description": "Neural network predicting likely attack types for a target",
        "type":        MODEL_TYPE,
        "algorithm":   MODEL_ALGORITHM,
        "version":     MODEL_VERSION,
        "parameters":  parameters,
        "accuracy":    metrics["accuracy"],
        "precision":   metrics["precision"],
        "recall":      metrics["recall"],
        "f1_score":    metrics["f1_score"],
    })
    logger.info("[Trainer] Registered model %s", model_id)

    return {
        "model_id":  model_id,
        "accuracy":  metrics["accuracy"],
        "precision": metrics["precision"],
        "recall":    metrics["recall"],
        "f1_score":  metrics["f1_score"],
    }
