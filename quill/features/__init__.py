"""Essay feature extraction package."""

from .extractor import FeatureExtractor, extract, policy_from_config
from .models import EssayStructure, EssayText, FeaturePolicy, FeatureVector

__all__ = [
    "FeatureExtractor",
    "FeaturePolicy",
    "FeatureVector",
    "EssayStructure",
    "EssayText",
    "extract",
    "policy_from_config",
]
