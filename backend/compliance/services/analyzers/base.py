import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Sequence, TypeVar

import httpx

from compliance.core.config import Settings
from compliance.models.license import LicensePolicy
from compliance.models.package import BillOfMaterials

T = TypeVar("T")


@dataclass
class AnalysisContext:
    """Per-run collaborators handed to every analyzer."""

    project_path: Path
    settings: Settings
    policy: LicensePolicy
    logger: logging.Logger
    client: httpx.AsyncClient


class Analyzer(ABC):
    name: str

    @abstractmethod
    async def analyze(self, bom: BillOfMaterials, context: AnalysisContext) -> Dict[str, Any]:
        pass

    @staticmethod
    def _batches(items: Sequence[T], size: int) -> Iterator[List[T]]:
        """Split items into consecutive lists of at most ``size`` elements."""
        size = max(1, size)
        for start in range(0, len(items), size):
            yield list(items[start:start + size])
