# backend/ml/attack_model.py

"""
Feed-forward attack type classifier.

    dense(64, relu) → dropout(0.3) → dense(32, relu) → dropout(0.2)
    → dense(n_labels) → softmax

forward() returns class probabilities; logits() is used by the trainer so
the loss can be computed on the numerically stable log-softmax.
"""

import torch
import torch.nn as nn
import torch.nn.functional as F


class AttackPredictionNet(nn.Module):
    def __init__(
        self,
        input_dim: int,
        num_labels: int,
        hidden_units: tuple = (64, 32),
        dropout: tuple = (0.3, 0.2),
    ):
        super().__init__()
        if len(hidden_units) != len(dropout):
            raise ValueError("hidden_units and dropout must have the same length")

        self.input_dim    = int(input_dim)
        self.num_labels   = int(num_labels)
        self.hidden_units = tuple(int(u) for u in hidden_units)
        self.dropout      = tuple(float(d) for d in dropout)

        layers: list[nn.Module] = []
        prev = self.input_dim
        for units, rate in zip(self.hidden_units, self.dropout):
            linear = nn.Linear(prev, units)
            nn.init.kaiming_normal_(linear.weight, nonlinearity="relu")
            nn.init.zeros_(linear.bias)
            layers += [linear, nn.ReLU(), nn.Dropout(rate)]
            prev = units
        layers.append(nn.Linear(prev, self.num_labels))
        self.layers = nn.Sequential(*layers)

    def logits(self, x: torch.Tensor) -> torch.Tensor:
        return self.layers(x)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return F.softmax(self.logits(x), dim=-1)

    def topology(self) -> dict:
        """Constructor arguments, stored next to the weights."""
        return {
            "input_dim":    self.input_dim,
            "num_labels":   self.num_labels,
            "hidden_units": list(self.hidden_units),
            "dropout":      list(self.dropout),
        }

    def layer_summary(self) -> list[dict]:
        """Human-readable layer list persisted in the model record."""
        summary = []
        for units, rate in zip(self.hidden_units, self.dropout):
            summary.append({"type": "dense", "units": units, "activation": "relu"})
            summary.append({"type": "dropout", "rate": rate})
        summary.append({"type": "dense", "units": self.num_labels, "activation": "softmax"})
        return summary
