"""
Accumulation of per-read assignments.

The pipeline appends one item per read (plus one per additional multi-gene
id) holding the read uid, its weight and one class id per classification.
Per classification, the accumulator keeps the weighted and unweighted
totals per class. The min-support pass later moves classes into their
ancestors; append_class() rewrites the affected items in place through a
class-to-items index, without rescanning all reads.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterator, Sequence

import polars as pl


class UpdateAccumulator:
    """
    Per-read assignment items and per-class totals for a set of classifications.

    A class id of 0 in an item means the item does not contribute to that
    classification.

    Args:
        classifications: Names of the classifications, in item column order
    """

    def __init__(self, classifications: Sequence[str]) -> None:
        self.classifications = list(classifications)
        self._index = {name: c for c, name in enumerate(self.classifications)}
        self._read_uids: list[int] = []
        self._weights: list[float] = []
        self._class_ids: list[list[int]] = []
        self._class_to_weight: list[dict[int, float]] = [defaultdict(float) for _ in self.classifications]
        self._class_to_count: list[dict[int, int]] = [defaultdict(int) for _ in self.classifications]
        self._class_to_items: list[dict[int, list[int]]] = [defaultdict(list) for _ in self.classifications]

    def _column(self, classification: str | int) -> int:
        if isinstance(classification, int):
            return classification
        return self._index[classification]

    def add_item(self, read_uid: int, weight: float, class_ids: Sequence[int]) -> None:
        """
        Append one assignment item.

        Args:
            read_uid: Uid of the read
            weight: Weight the item contributes
            class_ids: One class id per classification (0 = no contribution)
        """
        if len(class_ids) != len(self.classifications):
            msg = f"Expected {len(self.classifications)} class ids, got {len(class_ids)}"
            raise ValueError(msg)

        item = len(self._read_uids)
        self._read_uids.append(read_uid)
        self._weights.append(weight)
        self._class_ids.append(list(class_ids))
        for c, class_id in enumerate(class_ids):
            if class_id == 0:
                continue
            self._class_to_weight[c][class_id] += weight
            self._class_to_count[c][class_id] += 1
            self._class_to_items[c][class_id].append(item)

    def class_to_weight(self, classification: str | int) -> dict[int, float]:
        """Weighted total per class id."""
        return dict(self._class_to_weight[self._column(classification)])

    def class_to_count(self, classification: str | int) -> dict[int, int]:
        """Number of items per class id."""
        return dict(self._class_to_count[self._column(classification)])

    def append_class(self, classification: str | int, src_id: int, tgt_id: int) -> None:
        """
        Move everything assigned to ``src_id`` over to ``tgt_id``.

        Totals are merged into the target and every item carrying the source
        id is rewritten to the target id.
        """
        c = self._column(classification)
        if src_id == tgt_id:
            return
        weights = self._class_to_weight[c]
        counts = self._class_to_count[c]
        items = self._class_to_items[c]

        if src_id in weights:
            weights[tgt_id] += weights.pop(src_id)
            counts[tgt_id] += counts.pop(src_id)
        moved = items.pop(src_id, [])
        for item in moved:
            self._class_ids[item][c] = tgt_id
        items[tgt_id].extend(moved)

    def items(self) -> Iterator[tuple[int, float, tuple[int, ...]]]:
        """Iterate (read_uid, weight, class_ids) in insertion order."""
        for read_uid, weight, class_ids in zip(self._read_uids, self._weights, self._class_ids):
            yield read_uid, weight, tuple(class_ids)

    def __len__(self) -> int:
        return len(self._read_uids)

    def to_frame(self) -> pl.DataFrame:
        """All items as a DataFrame with columns read_uid, weight and one per classification."""
        data: dict[str, list] = {
            "read_uid": self._read_uids,
            "weight": self._weights,
        }
        for c, name in enumerate(self.classifications):
            data[name] = [row[c] for row in self._class_ids]
        schema = {"read_uid": pl.Int64, "weight": pl.Float64}
        schema.update({name: pl.Int64 for name in self.classifications})
        return pl.DataFrame(data, schema=schema)

    def counts_frame(self, classification: str | int) -> pl.DataFrame:
        """Per-class totals (class_id, count, weight) sorted by class id."""
        c = self._column(classification)
        ids = sorted(self._class_to_weight[c])
        return pl.DataFrame(
            {
                "class_id": ids,
                "count": [self._class_to_count[c][i] for i in ids],
                "weight": [self._class_to_weight[c][i] for i in ids],
            },
            schema={"class_id": pl.Int64, "count": pl.Int64, "weight": pl.Float64},
        )
