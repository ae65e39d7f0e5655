# core/segment/metrics.py

import operator
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np  # type: ignore
import pandas as pd  # type: ignore

from streamchurn.errors import ConfigurationError
from .bucket_rule import sql_literal


_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_SQL_OPERATORS = {"==": "=", "!=": "<>", "<": "<", "<=": "<=", ">": ">", ">=": ">="}


@dataclass(frozen=True)
class FieldCondition:
    """
    Boolean condition on a single record field, used for pre-filters and rate metrics.

    Parameters
    ----------
    field : str
        Column name
    op : str
        One of ==, !=, <, <=, >, >=, in
    value : Any
        Comparison value (a list for 'in')
    """
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if not self.field:
            raise ConfigurationError("Condition needs a field")
        if self.op not in _OPERATORS and self.op != "in":
            raise ConfigurationError(f"Unsupported operator '{self.op}' on '{self.field}'")
        if self.op == "in":
            if isinstance(self.value, (str, bytes)) or not hasattr(self.value, "__iter__"):
                raise ConfigurationError(f"Operator 'in' on '{self.field}' needs a list of values")
            object.__setattr__(self, "value", tuple(self.value))

    @classmethod
    def from_config(cls, spec: Dict[str, Any]) -> "FieldCondition":
        if not isinstance(spec, dict) or "field" not in spec:
            raise ConfigurationError(f"Malformed condition: {spec!r}")
        return cls(field=spec["field"], op=spec.get("op", "=="), value=spec.get("value"))

    def evaluate(self, value: Any) -> bool:
        if self.op == "in":
            return value in self.value
        return bool(_OPERATORS[self.op](value, self.value))

    def mask(self, df: pd.DataFrame) -> pd.Series:
        column = df[self.field]
        if self.op == "in":
            result = column.isin(list(self.value))
        else:
            result = _OPERATORS[self.op](column, self.value)
        return pd.Series(result.to_numpy(dtype=bool, na_value=False), index=df.index)

    def to_sql(self) -> str:
        if self.op == "in":
            return f"{self.field} IN ({', '.join(sql_literal(v) for v in self.value)})"
        return f"{self.field} {_SQL_OPERATORS[self.op]} {sql_literal(self.value)}"


def combined_mask(df: pd.DataFrame, conditions: List[FieldCondition]) -> pd.Series:
    """AND of all conditions; all True when there are none."""
    mask = pd.Series(np.ones(len(df), dtype=bool), index=df.index)
    for condition in conditions:
        mask &= condition.mask(df)
    return mask


METRIC_KINDS = ("count", "mean", "rate", "matches")

# Rounding applied when a metric does not set its own precision
DEFAULT_PRECISION = {"mean": 1, "rate": 2}


@dataclass(frozen=True)
class MetricSpec:
    """
    Named reducer over a group.

    Kinds
    -----
    count   : number of records in the group
    mean    : arithmetic mean of a numeric field
    rate    : percentage of records satisfying a condition
    matches : number of records satisfying a condition
    """
    name: str
    kind: str
    field: Optional[str] = None
    condition: Optional[FieldCondition] = None
    precision: Optional[int] = None

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Metric needs a name")
        if self.kind not in METRIC_KINDS:
            raise ConfigurationError(
                f"Metric '{self.name}' has unknown kind '{self.kind}'. Allowed: {list(METRIC_KINDS)}"
            )
        if self.kind == "mean" and not self.field:
            raise ConfigurationError(f"Mean metric '{self.name}' needs a field")
        if self.kind in ("rate", "matches") and self.condition is None:
            raise ConfigurationError(f"Metric '{self.name}' of kind '{self.kind}' needs a condition")
        if self.precision is not None and self.precision < 0:
            raise ConfigurationError(f"Metric '{self.name}' has negative precision")

    @classmethod
    def from_config(cls, spec: Dict[str, Any]) -> "MetricSpec":
        if not isinstance(spec, dict):
            raise ConfigurationError(f"Malformed metric: {spec!r}")
        condition = spec.get("condition")
        return cls(
            name=spec.get("name"),
            kind=spec.get("kind"),
            field=spec.get("field"),
            condition=FieldCondition.from_config(condition) if condition is not None else None,
            precision=spec.get("precision"),
        )

    @property
    def digits(self) -> Optional[int]:
        if self.precision is not None:
            return self.precision
        return DEFAULT_PRECISION.get(self.kind)

    @property
    def required_fields(self) -> List[str]:
        fields = []
        if self.field:
            fields.append(self.field)
        if self.condition is not None:
            fields.append(self.condition.field)
        return fields

    # Column names used in partial aggregates
    @property
    def sum_column(self) -> str:
        return f"sum__{self.field}"

    @property
    def hits_column(self) -> str:
        return f"hits__{self.name}"


# Convenience constructors for the standing analyses
def count(name: str = "users") -> MetricSpec:
    return MetricSpec(name, "count")


def mean(name: str, field: str, precision: int = 1) -> MetricSpec:
    return MetricSpec(name, "mean", field=field, precision=precision)


def churn_rate(name: str = "churn_rate_pct", precision: int = 2) -> MetricSpec:
    return MetricSpec(name, "rate", condition=FieldCondition("churned", "==", True), precision=precision)


def churned_count(name: str = "churned_users") -> MetricSpec:
    return MetricSpec(name, "matches", condition=FieldCondition("churned", "==", True))
