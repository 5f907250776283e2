"""Client for the external essay scoring backend, with a local fallback estimator."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from quill.features.groups.lexical import LexicalGroup
from quill.features.groups.surface import SurfaceGroup, decode_word_count
from quill.features.models import DEFAULT_VECTOR_LENGTH, FeatureVector, check_vector_length
from quill.libs.config_loader import ConfigType, get_config
from .calibration.policy import DEFAULT_WEIGHTS
from .models import InferenceResult, QualityScores, clamp_unit

LOG = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:5001"
DEFAULT_TIMEOUT_SECONDS = 10.0

# Raw slots read by the fallback estimator when it is handed a bare list
WORD_COUNT_SLOT = SurfaceGroup.start + SurfaceGroup.slot_names.index("log_word_count")
LONG_WORD_RATIO_SLOT = SurfaceGroup.start + SurfaceGroup.slot_names.index("long_word_ratio")
TYPE_TOKEN_SLOT = LexicalGroup.start + LexicalGroup.slot_names.index("type_token_ratio")

FeatureInput = Union[FeatureVector, Sequence[float]]


class BackendResponse(BaseModel):
    """Payload returned by ``POST /predict``."""
    model_config = ConfigDict(allow_inf_nan=False)

    score: float
    normalized_score: float
    confidence: float
    quality_scores: QualityScores

    @field_validator('confidence')
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return clamp_unit(value)


@dataclass(frozen=True)
class ScalerParams:
    """Per-feature standardization ``(f - mean) / scale``. Scalars apply to every slot."""
    mean: Union[float, Sequence[float]] = 0.0
    scale: Union[float, Sequence[float]] = 1.0

    def _expand(self, value, length: int, name: str) -> List[float]:
        if isinstance(value, (int, float)):
            return [float(value)] * length
        values = [float(v) for v in value]
        if len(values) != length:
            raise ValueError(f"Scaler {name} has {len(values)} entries, expected {length}")
        return values

    def standardize(self, features: Sequence[float]) -> List[float]:
        means = self._expand(self.mean, len(features), "mean")
        scales = self._expand(self.scale, len(features), "scale")
        return [(f - m) / (s if s else 1.0) for f, m, s in zip(features, means, scales)]

    @classmethod
    def load(cls, path: Path) -> 'ScalerParams':
        """Read ``mean`` and ``scale`` from a YAML or JSON file."""
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict) or 'mean' not in data or 'scale' not in data:
            raise ValueError(f"Scaler file {path} must define mean and scale")
        return cls(mean=data['mean'], scale=data['scale'])


@dataclass(frozen=True)
class FallbackPolicy:
    floor: float = 0.5
    ceiling: float = 0.9
    confidence: float = 0.6


def fallback_scores(features: FeatureInput, policy: Optional[FallbackPolicy] = None) -> InferenceResult:
    """
    Estimate quality sub-scores from raw (unstandardized) features.

    Used whenever the backend cannot answer. Every sub-score is clamped to a
    narrow middle range so a degraded system never hands out extreme verdicts.
    """
    policy = policy or FallbackPolicy()
    if isinstance(features, FeatureVector):
        log_words = features.get("surface.log_word_count")
        long_ratio = features.get("surface.long_word_ratio")
        ttr = features.get("lexical.type_token_ratio")
    else:
        log_words = features[WORD_COUNT_SLOT]
        long_ratio = features[LONG_WORD_RATIO_SLOT]
        ttr = features[TYPE_TOKEN_SLOT]
    words = decode_word_count(log_words)

    estimates = {
        'grammar': min(0.8, 0.6 + ttr * 0.4) + ttr * 0.2,
        'content': min(0.85, 0.5 + words / 1000) + min(0.1, words / 3000),
        'organization': 0.7,
        'style': min(0.8, 0.5 + long_ratio * 0.6) + ttr * 0.2,
        'mechanics': 0.7,
    }
    estimates = {k: max(policy.floor, min(policy.ceiling, v)) for k, v in estimates.items()}
    scores = QualityScores(**estimates)
    score = scores.weighted(DEFAULT_WEIGHTS) * 100
    return InferenceResult(
        quality_scores=scores,
        raw_score=score,
        normalized_score=score,
        confidence=policy.confidence,
        source='fallback',
        degraded=True,
    )


class InferenceGateway:
    """
    One bounded call to the scoring backend per essay.

    Any failure (timeout, connection error, bad status, malformed payload)
    is logged and answered with ``fallback_scores``; nothing is re-raised.
    """

    def __init__(self, url: str = DEFAULT_URL,
                 timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
                 scaler: Optional[ScalerParams] = None,
                 fallback_policy: Optional[FallbackPolicy] = None,
                 vector_length: int = DEFAULT_VECTOR_LENGTH,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url.rstrip('/')
        self.timeout_seconds = timeout_seconds
        self.scaler = scaler or ScalerParams()
        self.fallback_policy = fallback_policy or FallbackPolicy()
        self.vector_length = vector_length
        self.transport = transport

    @classmethod
    def from_config(cls, configs: ConfigType,
                    transport: Optional[httpx.AsyncBaseTransport] = None) -> 'InferenceGateway':
        scaler_path = get_config("inference.scaler_params", configs, default=None)
        scaler = ScalerParams.load(Path(scaler_path)) if scaler_path else None
        fallback = get_config("inference.fallback", configs, default={}) or {}
        return cls(
            url=get_config("inference.url", configs, default=DEFAULT_URL),
            timeout_seconds=float(get_config("inference.timeout_seconds", configs,
                                             default=DEFAULT_TIMEOUT_SECONDS)),
            scaler=scaler,
            fallback_policy=FallbackPolicy(**{k: float(v) for k, v in fallback.items()
                                              if k in FallbackPolicy.__dataclass_fields__}),
            vector_length=int(get_config("features.vector_length", configs,
                                         default=DEFAULT_VECTOR_LENGTH)),
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.url, timeout=self.timeout_seconds,
                                 transport=self.transport)

    async def score_async(self, features: FeatureInput) -> InferenceResult:
        """
        Score a feature vector with the backend, falling back locally on failure.

        Raises:
            ValueError: If the vector length is wrong (a caller bug, not a backend failure)
        """
        raw = list(features)
        check_vector_length(raw, self.vector_length)
        payload = {"features": self.scaler.standardize(raw)}

        try:
            async with self._client() as client:
                response = await client.post("/predict", json=payload)
                response.raise_for_status()
                parsed = BackendResponse.model_validate(response.json())
        # ValueError covers undecodable bodies (JSONDecodeError, UnicodeDecodeError)
        except (httpx.HTTPError, httpx.InvalidURL, ValidationError, ValueError, asyncio.TimeoutError) as e:
            LOG.warning(f"Inference backend unavailable ({type(e).__name__}: {e}); using fallback scores")
            return fallback_scores(features, self.fallback_policy)

        LOG.debug(f"Backend score {parsed.score:.2f} (confidence {parsed.confidence:.2f})")
        return InferenceResult(
            quality_scores=parsed.quality_scores,
            raw_score=parsed.score,
            normalized_score=parsed.normalized_score,
            confidence=parsed.confidence,
            source='backend',
            degraded=False,
        )

    def score(self, features: FeatureInput) -> InferenceResult:
        """Synchronous wrapper for score_async."""
        return asyncio.run(self.score_async(features))

    async def health_async(self) -> bool:
        """True when ``GET /health`` answers with a success status."""
        try:
            async with self._client() as client:
                response = await client.get("/health")
            return response.is_success
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            LOG.debug(f"Health check failed: {e}")
            return False
