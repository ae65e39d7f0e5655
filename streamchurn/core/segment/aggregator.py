# core/segment/aggregator.py
"""
Grouped metric computation over a record frame.

The aggregation is split into partial aggregates (group count, per-field sums,
per-condition hit counts) and a finalisation step that derives means and rates
from those totals. Partials from disjoint shards can be summed before
finalising, which gives the same table as aggregating the union directly.
"""

import logging
import concurrent.futures
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

import numpy as np  # type: ignore
import pandas as pd  # type: ignore

from streamchurn.errors import ConfigurationError, InvalidFieldError
from .bucket_rule import Bucketizer
from .metrics import FieldCondition, MetricSpec, combined_mask

logger = logging.getLogger(__name__)

COUNT_COLUMN = "__count"


def round_half_up(value: float, digits: int) -> float:
    """
    Round half away from zero, like ROUND(CAST(x AS NUMERIC), digits) in PostgreSQL.

    The float is read through its 15 significant digit decimal form first, which
    is what the NUMERIC cast keeps, so 0.25 gives 0.3 and 3.125 gives 3.13.
    """
    if value is None or not np.isfinite(value):
        return value
    exact = Decimal(format(float(value), ".15g"))
    return float(exact.quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP))


class Aggregator:
    """
    Partition records by group fields and compute metrics per group.

    Parameters
    ----------
    group_by : Sequence[str]
        Raw columns or bucket rule names; an empty list yields one overall row
    metrics : Sequence[MetricSpec]
        Metrics in output column order
    bucketizer : Bucketizer, optional
        Source of derived label columns referenced in group_by
    filters : Sequence[FieldCondition], optional
        Pre-filter applied before bucketing and partitioning
    sort_by : str, optional
        Metric name to order by; ties are broken by group key ascending
    ascending : bool, optional
        Sort direction for sort_by, descending by default
    """

    def __init__(
        self,
        group_by: Sequence[str],
        metrics: Sequence[MetricSpec],
        bucketizer: Optional[Bucketizer] = None,
        filters: Optional[Sequence[FieldCondition]] = None,
        sort_by: Optional[str] = None,
        ascending: Optional[bool] = None,
    ):
        self.group_by = list(group_by)
        self.metrics = list(metrics)
        self.bucketizer = bucketizer or Bucketizer()
        self.filters = list(filters or [])
        self.sort_by = sort_by
        self.ascending = False if ascending is None else ascending

        self._check_definition()

    # ---------------- Validation ----------------

    def _check_definition(self) -> None:
        if not self.metrics:
            raise ConfigurationError("Aggregator needs at least one metric")
        names = [m.name for m in self.metrics]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate metric names: {duplicates}")
        if len(set(self.group_by)) != len(self.group_by):
            raise ConfigurationError(f"Duplicate group fields: {self.group_by}")
        clashes = sorted(set(names) & set(self.group_by))
        if clashes:
            raise ConfigurationError(f"Metric names clash with group fields: {clashes}")
        if self.sort_by is not None and self.sort_by not in names:
            raise ConfigurationError(f"Sort metric '{self.sort_by}' is not one of {names}")

    @property
    def bucket_fields(self) -> List[str]:
        return [g for g in self.group_by if g in self.bucketizer]

    def validate(self, columns: Sequence[str]) -> None:
        """
        Check every referenced field against the record columns.

        Raises InvalidFieldError before any computation happens.
        """
        columns = list(columns)
        for condition in self.filters:
            if condition.field not in columns:
                raise InvalidFieldError(condition.field, columns, context="filter")
        self.bucketizer.validate(columns, self.bucket_fields)
        for group_field in self.group_by:
            if group_field not in self.bucketizer and group_field not in columns:
                raise InvalidFieldError(group_field, columns, context="group fields")
        for metric in self.metrics:
            for metric_field in metric.required_fields:
                if metric_field not in columns:
                    raise InvalidFieldError(metric_field, columns, context=f"metric '{metric.name}'")

    # ---------------- Pipeline ----------------

    def prepare(self, df: pd.DataFrame) -> pd.DataFrame:
        """Apply the pre-filter, then attach the bucket labels the grouping needs."""
        self.validate(df.columns)
        filtered = df[combined_mask(df, self.filters)] if self.filters else df
        if self.filters:
            logger.debug(f"   ➡️ Pre-filter kept {len(filtered):,} of {len(df):,} records")
        return self.bucketizer.apply(filtered, self.bucket_fields)

    def partials(self, frame: pd.DataFrame) -> pd.DataFrame:
        """
        Per-group partial aggregates of a prepared frame.

        Columns: group fields, '__count', 'sum__<field>' per mean metric and
        'hits__<metric>' per rate or matches metric. Values are plain totals, so
        partials of disjoint shards can be added together.
        """
        value_columns = self._value_columns()
        if frame.empty:
            return pd.DataFrame(columns=self.group_by + value_columns)

        work = pd.DataFrame(index=frame.index)
        for group_field in self.group_by:
            work[group_field] = frame[group_field]
        work[COUNT_COLUMN] = 1
        for metric in self.metrics:
            if metric.kind == "mean":
                work[metric.sum_column] = frame[metric.field].astype(float)
            elif metric.kind in ("rate", "matches"):
                work[metric.hits_column] = metric.condition.mask(frame).astype(int)

        return self._sum_by_group(work, value_columns)

    def merge_partials(self, parts: Sequence[pd.DataFrame]) -> pd.DataFrame:
        """Add up partial aggregates computed on disjoint shards."""
        value_columns = self._value_columns()
        non_empty = [p for p in parts if not p.empty]
        if not non_empty:
            return pd.DataFrame(columns=self.group_by + value_columns)
        return self._sum_by_group(pd.concat(non_empty, ignore_index=True), value_columns)

    def finalize(self, partials: pd.DataFrame) -> pd.DataFrame:
        """Derive metric columns from (possibly merged) partials and order the rows."""
        columns = self.group_by + [m.name for m in self.metrics]
        if partials.empty:
            return pd.DataFrame(columns=columns)

        result = partials[self.group_by].copy()
        group_size = partials[COUNT_COLUMN].astype(int)
        # Empty groups give NaN ("no value") rather than a division by zero
        denominator = group_size.where(group_size > 0).astype(float)

        for metric in self.metrics:
            if metric.kind == "count":
                result[metric.name] = group_size
            elif metric.kind == "matches":
                result[metric.name] = partials[metric.hits_column].astype(int)
            elif metric.kind == "mean":
                values = partials[metric.sum_column].astype(float) / denominator
                result[metric.name] = self._round(values, metric.digits)
            elif metric.kind == "rate":
                hits = partials[metric.hits_column].astype(float)
                values = self._round(hits * 100.0 / denominator, metric.digits)
                result[metric.name] = self._pin_rate_bounds(values, hits, denominator, metric.digits)

        return self._order(result)[columns].reset_index(drop=True)

    def run(self, df: pd.DataFrame) -> pd.DataFrame:
        """Aggregate the whole frame in one pass."""
        frame = self.prepare(df)
        return self.finalize(self.partials(frame))

    def run_sharded(self, df: pd.DataFrame, shards: int = 4, max_workers: Optional[int] = None) -> pd.DataFrame:
        """
        Aggregate the frame split into shards processed concurrently.

        Every shard yields partial totals, the totals are merged, and means and
        rates are derived once from the merged counts.
        """
        if shards < 1:
            raise ValueError(f"❌ shards must be >= 1, got {shards}")

        frame = self.prepare(df)
        positions = np.array_split(np.arange(len(frame)), shards)
        pieces = [frame.iloc[idx] for idx in positions if len(idx)]

        parts: List[pd.DataFrame] = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers or len(pieces) or 1) as executor:
            future_to_shard = {
                executor.submit(self.partials, piece): shard_no
                for shard_no, piece in enumerate(pieces)
            }
            for future in concurrent.futures.as_completed(future_to_shard):
                shard_no = future_to_shard[future]
                parts.append(future.result())
                logger.debug(f"   ➡️ Shard {shard_no} aggregated")

        return self.finalize(self.merge_partials(parts))

    # ---------------- Helpers ----------------

    def _value_columns(self) -> List[str]:
        columns = [COUNT_COLUMN]
        for metric in self.metrics:
            if metric.kind == "mean" and metric.sum_column not in columns:
                columns.append(metric.sum_column)
            elif metric.kind in ("rate", "matches"):
                columns.append(metric.hits_column)
        return columns

    def _sum_by_group(self, work: pd.DataFrame, value_columns: List[str]) -> pd.DataFrame:
        if not self.group_by:
            return work[value_columns].sum().to_frame().T.reset_index(drop=True)
        return (
            work.groupby(self.group_by, sort=True, dropna=False, observed=True)[value_columns]
            .sum()
            .reset_index()
        )

    @staticmethod
    def _round(values: pd.Series, digits: Optional[int]) -> pd.Series:
        if digits is None:
            return values
        return values.map(lambda v: round_half_up(v, digits)).astype(float)

    @staticmethod
    def _pin_rate_bounds(values: pd.Series, hits: pd.Series, denominator: pd.Series,
                         digits: Optional[int]) -> pd.Series:
        """
        Keep 100 for groups where every record matches and 0 where none does.

        Rounding alone could report 100.0 for 99.996% or 0.0 for 0.004%.
        """
        if digits is None:
            return values
        step = 10.0 ** -digits
        partial_high = (hits < denominator) & (values >= 100.0)
        partial_low = (hits > 0) & (values <= 0.0)
        values = values.mask(partial_high, round(100.0 - step, digits))
        return values.mask(partial_low, step)

    def _order(self, result: pd.DataFrame) -> pd.DataFrame:
        if self.sort_by is None:
            if not self.group_by:
                return result
            return result.sort_values(self.group_by, kind="mergesort", na_position="last")
        by = [self.sort_by] + self.group_by
        ascending = [self.ascending] + [True] * len(self.group_by)
        return result.sort_values(by, ascending=ascending, kind="mergesort", na_position="last")
