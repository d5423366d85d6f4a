"""
CyberPulse Threat Prediction
Flask Web Server

API Endpoints:
  GET  /api/status        - Configuration, latest model & cache status
  POST /api/predictions   - Predict attack types for a target
  GET  /api/predictions   - ?sectors=true  → sector sweep
                            ?recent=true   → stored predictions (limit, minProbability)
  GET  /api/predict       - Sector sweep (dashboard overview)
  POST /api/models/train  - Train a new attack prediction model
  GET  /api/models        - Metadata of all trained models
"""

from flask import Flask, request, jsonify
from flask_cors import CORS
from datetime import UTC, datetime
from pathlib import Path
import logging
import sys

# ── Path setup ───────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).parent
sys.path.append(str(BASE_DIR))

from ml.config           import DATABASE_URL, MODEL_CACHE_SIZE, MODEL_DIR, MODEL_TYPE, NVD_API_KEY
from ml.database         import ThreatDataStore
from ml.errors           import CyberPulseError, ModelNotFoundError, TrainingError
from ml.model_loader     import ModelCache, ModelLoader, model_metadata
from ml.model_storage    import ModelStorage
from ml.prediction       import AttackPredictor, TargetDescriptor
from ml.training         import train_attack_prediction_model

logger = logging.getLogger(__name__)

# ── Flask app ─────────────────────────────────────────────────────────────────
app = Flask(__name__)
CORS(app)

# ── Globals ───────────────────────────────────────────────────────────────────
store     = None
storage   = None
loader    = None
predictor = None


# ── Initialization ────────────────────────────────────────────────────────────

def init_app(store_=None, storage_=None, loader_=None, predictor_=None):
    """Wire the data store, model storage, loader and predictor."""
    global store, storage, loader, predictor

    print("=" * 70)
    print("[*] CYBERPULSE THREAT PREDICTION")
    print("=" * 70)

    store     = store_     if store_     is not None else ThreatDataStore(DATABASE_URL)
    storage   = storage_   if storage_   is not None else ModelStorage(MODEL_DIR)
    loader    = loader_    if loader_    is not None else ModelLoader(store, storage, ModelCache(MODEL_CACHE_SIZE))
    predictor = predictor_ if predictor_ is not None else AttackPredictor(store, loader)

    print(f"[+] Data store   : {store.database_url}")
    print(f"[+] Model storage: {storage.root}")

    latest = loader.get_latest_model_by_type(MODEL_TYPE)
    if latest is not None:
        print(f"[+] Latest model : {latest.id} (trained {latest.training_date})")
    else:
        print("[i] No trained model yet (run: python untils/train_attack_model.py)")

    if not NVD_API_KEY:
        print("[!] WARNING: No NVD API key, feed refreshes will be slow")
    print()


def _services():
    if predictor is None:
        init_app()
    return store, loader, predictor


def _ok(data, status=200):
    return jsonify({
        'success':   True,
        'data':      data,
        'timestamp': datetime.now(UTC).isoformat(),
    }), status


def _error(message, status):
    return jsonify({'success': False, 'error': message}), status


def _flag(name: str) -> bool:
    return request.args.get(name, '').lower() in ('1', 'true', 'yes')


# ── /api/status ───────────────────────────────────────────────────────────────

@app.route('/api/status', methods=['GET'])
def get_status():
    store_, loader_, _ = _services()
    latest = loader_.get_latest_model_by_type(MODEL_TYPE)
    return jsonify({
        'tool':          'CyberPulse Threat Prediction',
        'version':       '1.0',
        'database_url':  store_.database_url,
        'model_dir':     str(storage.root),
        'nvd_api_key':   NVD_API_KEY is not None,
        'latest_model':  model_metadata(latest) if latest is not None else None,
        'model_types':   loader_.get_available_model_types(),
        'cache': {
            'size':     len(loader_.cache),
            'max_size': loader_.cache.max_size,
        },
        'predictions':   store_.count_predictions(),
    })


# ── /api/predictions ──────────────────────────────────────────────────────────

@app.route('/api/predictions', methods=['POST'])
def create_prediction():
    _, _, predictor_ = _services()
    data = request.get_json(silent=True) or {}

    try:
        target = TargetDescriptor.from_payload(data)
    except ValueError as e:
        return _error(str(e), 400)

    model_id = data.get('model_id') or data.get('modelId')
    try:
        result = predictor_.predict_attacks(target, model_id=model_id)
    except ModelNotFoundError as e:
        return _error(str(e), 404)
    except CyberPulseError as e:
        logger.error("[API] Prediction failed: %s", e)
        return _error(str(e), 500)

    return _ok(result)


@app.route('/api/predictions', methods=['GET'])
def list_predictions():
    _, _, predictor_ = _services()

    if _flag('sectors'):
        return _ok(predictor_.get_predictions_for_common_sectors())

    if _flag('recent'):
        try:
            limit           = int(request.args.get('limit', 10))
            min_probability = float(request.args.get('minProbability', 0.0))
            days            = int(request.args.get('days', 30))
        except ValueError:
            return _error('limit, days and minProbability must be numeric', 400)
        return _ok(predictor_.get_recent_predictions(
            days=days, limit=limit, min_probability=min_probability,
        ))

    return _error('Specify sectors=true or recent=true', 400)


# ── /api/predict ──────────────────────────────────────────────────────────────

@app.route('/api/predict', methods=['GET'])
def sector_sweep():
    _, _, predictor_ = _services()
    return _ok(predictor_.get_predictions_for_common_sectors())


# ── /api/models ───────────────────────────────────────────────────────────────

@app.route('/api/models/train', methods=['POST'])
def train_model():
    store_, _, _ = _services()
    try:
        result = train_attack_prediction_model(store_, storage)
    except TrainingError as e:
        return _error(str(e), 400)
    except CyberPulseError as e:
        logger.error("[API] Training failed: %s", e)
        return _error(str(e), 500)
    return _ok(result, 201)


@app.route('/api/models', methods=['GET'])
def list_models():
    _, loader_, _ = _services()
    return _ok(loader_.get_all_model_metadata())


# ── Errors ────────────────────────────────────────────────────────────────────

@app.errorhandler(404)
def not_found(_e):
    return _error('Not found', 404)


@app.errorhandler(500)
def internal_error(e):
    return _error(str(getattr(e, 'original_exception', e)), 500)


# ── Entrypoint ────────────────────────────────────────────────────────────────

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    init_app()
    print()
    print("API       : http://localhost:5000")
    print()
    print("Endpoints :")
    print("  GET  /api/status         - System status")
    print("  POST /api/predictions    - Predict attacks for a target")
    print("  GET  /api/predictions    - ?sectors=true | ?recent=true")
    print("  GET  /api/predict        - Sector sweep")
    print("  POST /api/models/train   - Train a new model")
    print("  GET  /api/models         - List trained models")
    print()
    app.run(debug=True, host='0.0.0.0', port=5000)
