"""Operation filtering by path predicates and substring lists."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

from .models import OperationInfo


logger = logging.getLogger(__name__)

PathPredicate = Callable[[str], bool]


@dataclass(frozen=True)
class OperationFilter:
    """Four independent stages, applied in order and AND-combined."""

    exclude_predicate: Optional[PathPredicate] = None
    include_predicate: Optional[PathPredicate] = None
    excluded_paths: Sequence[str] = ()
    included_paths: Sequence[str] = ()

    def allows(self, path: str) -> bool:
        if self.exclude_predicate is not None and self.exclude_predicate(path):
            return False
        if self.include_predicate is not None and not self.include_predicate(path):
            return False

        lowered = path.lower()
        if self.excluded_paths and any(item.lower() in lowered for item in self.excluded_paths):
            return False
        if self.included_paths and not any(item.lower() in lowered for item in self.included_paths):
            return False
        return True

    def apply(self, operations: Dict[str, OperationInfo]) -> Dict[str, OperationInfo]:
        kept = {
            operation_id: info
            for operation_id, info in operations.items()
            if self.allows(info.path)
        }
        logger.info("Filtered operations: %s kept of %s", len(kept), len(operations))
        return kept
