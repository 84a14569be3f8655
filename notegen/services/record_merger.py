"""
Record de-duplication and merging.

Curriculum records are grouped by a composite key chosen by MergePolicy;
scheme items are grouped by (week, subject, class).  On a key collision
list fields are unioned in first-seen order, so repeated imports never
duplicate an indicator, an exemplar or a resource phrase.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from notegen.config import settings
from notegen.models.schemas import CurriculumRecord, MergePolicy, SchemeItem
from notegen.utils.helpers import merge_fields, merge_resources, unique_extend

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    records: List[CurriculumRecord]
    created: int = 0
    merged: int = 0


class RecordMerger:
    """Groups CurriculumRecords by merge key and unions their lists."""

    def __init__(
        self,
        policy: MergePolicy = MergePolicy.CONTENT_STANDARD,
        indicator_key_length: Optional[int] = None,
    ) -> None:
        self.policy = MergePolicy(policy)
        self.indicator_key_length = indicator_key_length or settings.INDICATOR_KEY_LENGTH

    def key_for(self, record: CurriculumRecord) -> str:
        key = "_".join((
            record.grade_level,
            record.strand,
            record.sub_strand,
            record.content_standard_code,
        ))
        if self.policy is MergePolicy.INDICATOR_SET:
            indicators = "|".join(record.learning_indicators)[: self.indicator_key_length]
            key = f"{key}_{indicators}"
        return key

    def merge(
        self,
        records: Iterable[CurriculumRecord],
        existing: Optional[Iterable[CurriculumRecord]] = None,
    ) -> MergeResult:
        """
        Merge *records* into *existing* (which is not mutated).

        Returns:
            MergeResult with every resulting record, the number of new keys
            created and the number of incoming records folded into an
            already-present key.
        """
        grouped: Dict[str, CurriculumRecord] = {}
        for record in existing or ():
            grouped.setdefault(self.key_for(record), record.model_copy(deep=True))

        result = MergeResult(records=[])
        for record in records:
            key = self.key_for(record)
            current = grouped.get(key)
            if current is None:
                grouped[key] = record.model_copy(deep=True)
                result.created += 1
                continue
            self._merge_into(current, record)
            result.merged += 1

        result.records = list(grouped.values())
        logger.info(
            "Merged curriculum records (policy=%s): %d created, %d merged, %d total",
            self.policy.value, result.created, result.merged, len(result.records),
        )
        return result

    @staticmethod
    def _merge_into(target: CurriculumRecord, incoming: CurriculumRecord) -> None:
        unique_extend(target.learning_indicators, incoming.learning_indicators)
        unique_extend(target.exemplars, incoming.exemplars)
        unique_extend(target.content_standards, incoming.content_standards)
        if not target.content_standard_description:
            target.content_standard_description = incoming.content_standard_description
        if not target.subject:
            target.subject = incoming.subject


# ---------------------------------------------------------------------------
# Scheme items
# ---------------------------------------------------------------------------

@dataclass
class ImportSummary:
    added: List[SchemeItem] = field(default_factory=list)
    skipped: int = 0


class SchemeMerger:
    """Merges scheme rows that describe the same week/subject/class."""

    MERGED_FIELDS = ("strand", "sub_strand", "content_standard", "indicators", "exemplars")

    def merge(self, items: Iterable[SchemeItem]) -> List[SchemeItem]:
        grouped: Dict[str, SchemeItem] = {}
        for item in items:
            existing = grouped.get(item.merge_key)
            if existing is None:
                grouped[item.merge_key] = item.model_copy()
                continue
            # week ending, term and the rest keep their first value
            for name in self.MERGED_FIELDS:
                setattr(existing, name, merge_fields(getattr(existing, name), getattr(item, name)))
            existing.resources = merge_resources(existing.resources, item.resources)
        return list(grouped.values())

    @staticmethod
    def filter_new(
        existing: Iterable[SchemeItem], incoming: Iterable[SchemeItem]
    ) -> ImportSummary:
        """Drop incoming items whose (class, subject, term, week) is already saved."""
        seen = {item.signature for item in existing}
        summary = ImportSummary()
        for item in incoming:
            if item.signature in seen:
                summary.skipped += 1
                continue
            summary.added.append(item)
        return summary
