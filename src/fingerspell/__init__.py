from .classifier import GroupClassifier, LoadState
from .disambiguation import disambiguate
from .errors import AssetLoadError, DegenerateInputWarning, FingerspellError, NotReadyError
from .recognizer import Recognizer
from .stabilizer import Stabilizer, StabilizerState
from .types import Group, Landmark, LandmarkSet, PredictionResult

__all__ = [
    "AssetLoadError",
    "DegenerateInputWarning",
    "FingerspellError",
    "Group",
    "GroupClassifier",
    "Landmark",
    "LandmarkSet",
    "LoadState",
    "NotReadyError",
    "PredictionResult",
    "Recognizer",
    "Stabilizer",
    "StabilizerState",
    "disambiguate",
]
