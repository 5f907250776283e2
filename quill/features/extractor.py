"""Feature extractor that lays feature groups into a fixed-slot vector."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from quill.libs.config_loader import ConfigType, policy_overrides

from .groups import default_groups
from .groups.base import FeatureGroup
from .models import EssayStructure, EssayText, FeaturePolicy, FeatureVector

LOG = logging.getLogger(__name__)


def policy_from_config(configs: Optional[ConfigType]) -> FeaturePolicy:
    """Build a FeaturePolicy from the ``features`` config section."""
    if not configs:
        return FeaturePolicy()
    fields = list(FeaturePolicy.__dataclass_fields__)
    return FeaturePolicy(**policy_overrides("features", fields, configs))


class FeatureExtractor:
    """
    Deterministic text-to-vector transformation.

    Every group owns a fixed slot range; slots a group does not fill, and
    everything past the last group, stay zero. Extraction never raises: a
    group that fails is logged and its slots are left zero.
    """

    def __init__(
        self,
        policy: Optional[FeaturePolicy] = None,
        groups: Optional[Sequence[FeatureGroup]] = None,
    ) -> None:
        self.policy = policy or FeaturePolicy()
        self.groups: List[FeatureGroup] = sorted(
            groups if groups is not None else default_groups(), key=lambda g: g.start
        )
        self._check_layout()
        self.slot_names = self._build_slot_names()

    def _check_layout(self) -> None:
        previous_end = 0
        for group in self.groups:
            if group.start < previous_end:
                raise ValueError(f"Feature group {group.name} overlaps the previous group")
            if group.end > self.policy.vector_length:
                raise ValueError(
                    f"Feature group {group.name} ends at slot {group.end}, "
                    f"past vector length {self.policy.vector_length}"
                )
            previous_end = group.end

    def _build_slot_names(self) -> List[str]:
        names = [f"reserved.{i}" for i in range(self.policy.vector_length)]
        for group in self.groups:
            names[group.start:group.end] = group.qualified_names()
        return names

    def extract(self, text: str, structure: Optional[EssayStructure] = None) -> FeatureVector:
        """Compute the feature vector for one essay."""
        return self.extract_essay(EssayText.from_text(text), structure)

    def extract_essay(self, essay: EssayText, structure: Optional[EssayStructure] = None) -> FeatureVector:
        if essay.is_degenerate:
            LOG.debug("Degenerate essay text; returning zero vector")
            return FeatureVector.zeros(self.slot_names)

        values = [0.0] * self.policy.vector_length

        for group in self.groups:
            try:
                group_values = group.compute(essay, structure, self.policy)
            except Exception as exc:
                LOG.warning(f"Feature group {group.name} failed ({exc}); slots left at zero")
                continue
            if len(group_values) > group.size:
                LOG.warning(f"Feature group {group.name} produced {len(group_values)} values "
                            f"for {group.size} slots; extra values dropped")
                group_values = group_values[: group.size]
            for offset, value in enumerate(group_values):
                values[group.start + offset] = self.policy.clamp(value)

        return FeatureVector(values=tuple(values), names=tuple(self.slot_names))


_DEFAULT_EXTRACTOR: Optional[FeatureExtractor] = None


def extract(text: str, structure: Optional[EssayStructure] = None) -> FeatureVector:
    """Extract features with the default policy and groups."""
    global _DEFAULT_EXTRACTOR
    if _DEFAULT_EXTRACTOR is None:
        _DEFAULT_EXTRACTOR = FeatureExtractor()
    return _DEFAULT_EXTRACTOR.extract(text, structure)
