# untils/train_attack_model.py

"""
Train the attack prediction network.

Input:  historical attacks, vulnerabilities and threat actors in the data
        store (CYBERPULSE_DATABASE_URL)
Output: <CYBERPULSE_MODEL_DIR>/attack_probability/attack-prediction-<id>.pt
        + a new row in prediction_models

Usage
-----
    python untils/train_attack_model.py
    python untils/train_attack_model.py --epochs 100 --shuffle-seed 7
    python untils/train_attack_model.py --database-url sqlite:///data/demo.db

Seed a demo dataset first if the store is empty:
    python untils/seed_sample_data.py
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / "backend"))

from ml.config          import DATABASE_URL, MODEL_DIR, TrainingConfig
from ml.data_processing import prepare_training_data, summarize_training_data
from ml.database        import ThreatDataStore
from ml.errors          import TrainingError
from ml.model_storage   import ModelStorage
from ml.training        import train_attack_prediction_model


def main():
    defaults = TrainingConfig()
    parser = argparse.ArgumentParser(description="Train the CyberPulse attack prediction model")
    parser.add_argument("--database-url", default=DATABASE_URL, help="SQLAlchemy URL of the data store")
    parser.add_argument("--model-dir", default=str(MODEL_DIR), help="Model storage root")
    parser.add_argument("--epochs", type=int, default=defaults.epochs)
    parser.add_argument("--batch-size", type=int, default=defaults.batch_size)
    parser.add_argument("--learning-rate", type=float, default=defaults.learning_rate)
    parser.add_argument("--validation-split", type=float, default=defaults.validation_split)
    parser.add_argument(
        "--shuffle-seed", type=int, default=None,
        help="Shuffle before the train/validation split (default: split by store order).",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("TRAIN ATTACK PREDICTION MODEL")
    print("=" * 60)

    store   = ThreatDataStore(args.database_url)
    storage = ModelStorage(args.model_dir)

    examples = prepare_training_data(store)
    if not examples:
        print("\n[ERROR] No historical attacks in the data store")
        print("Run first: python untils/seed_sample_data.py")
        sys.exit(1)

    print(f"\nLoaded {len(examples):,} attacks")
    print("\nClass distribution:")
    for attack_type, row in summarize_training_data(examples).iterrows():
        bar = "█" * int(row["pct"] / 2)
        print(f"  {attack_type:15s}: {int(row['count']):>6,}  ({row['pct']:5.1f}%)  {bar}")

    config = replace(
        defaults,
        epochs           = args.epochs,
        batch_size       = args.batch_size,
        learning_rate    = args.learning_rate,
        validation_split = args.validation_split,
        shuffle_seed     = args.shuffle_seed,
    )

    print(f"\nTraining for {config.epochs} epochs …")
    try:
        result = train_attack_prediction_model(store, storage, config)
    except TrainingError as e:
        print(f"\n[ERROR] {e}")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("RESULTS (validation split)")
    print("=" * 60)
    print(f"  Model ID : {result['model_id']}")
    print(f"  Accuracy : {result['accuracy']:.4f}")
    print(f"  Precision: {result['precision']:.4f}")
    print(f"  Recall   : {result['recall']:.4f}")
    print(f"  F1       : {result['f1_score']:.4f}")


if __name__ == "__main__":
    main()
