# backend/ml/metrics.py

"""
Evaluation metrics for the attack prediction model.

Precision / recall / F1 are micro-averaged: true positives, false positives
and false negatives are pooled across every label column before dividing.
The dashboard shows a single number per model, so the per-class breakdown
is not kept.
"""

import numpy as np


def binarize(probabilities, threshold: float = 0.5) -> np.ndarray:
    """Probability matrix → boolean prediction matrix (strictly above threshold)."""
    return np.asarray(probabilities, dtype=np.float64) > threshold


def confusion_counts(predicted, actual) -> tuple[int, int, int]:
    """(tp, fp, fn) pooled over all cells of two equal-shaped boolean matrices."""
    predicted = np.asarray(predicted, dtype=bool)
    actual    = np.asarray(actual, dtype=bool)
    if predicted.shape != actual.shape:
        raise ValueError(
            f"Shape mismatch: predicted {predicted.shape} vs actual {actual.shape}"
        )
    tp = int(np.sum(predicted & actual))
    fp = int(np.sum(predicted & ~actual))
    fn = int(np.sum(~predicted & actual))
    return tp, fp, fn


def micro_precision_recall_f1(predicted, actual) -> tuple[float, float, float]:
    """
    Micro-averaged precision, recall and F1.
    Zero denominators yield 0.0 rather than NaN.
    """
    tp, fp, fn = confusion_counts(predicted, actual)
    precision = tp / (tp + fp) if tp + fp else 0.0
    recall    = tp / (tp + fn) if tp + fn else 0.0
    f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0
    return precision, recall, f1


def accuracy_from_probabilities(probabilities, labels) -> float:
    """Fraction of rows whose argmax prediction matches the argmax label."""
    probabilities = np.asarray(probabilities)
    labels        = np.asarray(labels)
    if len(probabilities) == 0:
        return 0.0
    return float(np.mean(probabilities.argmax(axis=1) == labels.argmax(axis=1)))
