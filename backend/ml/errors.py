# backend/ml/errors.py

"""Exceptions raised by the attack prediction subsystem."""


class CyberPulseError(Exception):
    """Base class for all CyberPulse errors."""


class ModelNotFoundError(CyberPulseError, LookupError):
    """A model record is missing, or has no stored file path."""


class NoTrainedModelError(ModelNotFoundError):
    """No trained model of the requested type exists."""


class ModelLoadError(CyberPulseError):
    """The model blob could not be read from storage."""


class FeatureSchemaError(CyberPulseError):
    """A model's persisted feature/label schema is absent or inconsistent."""


class TrainingError(CyberPulseError):
    """Training could not run (e.g. not enough usable examples)."""


class FeedError(CyberPulseError):
    """An upstream threat feed request failed."""
