"""Base class for feature groups."""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..models import EssayStructure, EssayText, FeaturePolicy


class FeatureGroup:
    """
    Extension point for one block of the feature vector.

    A group owns ``size`` consecutive slots starting at ``start``. It may
    return fewer values than it owns; the extractor zero-fills the rest so
    later groups always land on the same positions.
    """

    name: str = ""
    start: int = 0
    size: int = 0
    slot_names: Tuple[str, ...] = ()

    @property
    def end(self) -> int:
        return self.start + self.size

    def qualified_names(self) -> List[str]:
        names = [f"{self.name}.{slot}" for slot in self.slot_names[: self.size]]
        names.extend(f"reserved.{self.start + i}" for i in range(len(names), self.size))
        return names

    def compute(
        self,
        essay: EssayText,
        structure: Optional[EssayStructure],
        policy: FeaturePolicy,
    ) -> List[float]:
        raise NotImplementedError
