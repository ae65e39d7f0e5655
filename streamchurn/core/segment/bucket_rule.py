# core/segment/bucket_rule.py
"""
Rule-based bucketing of continuous or categorical fields into segment labels.

A BucketRule holds an ordered list of (predicate, label) pairs and a mandatory
default label. The first predicate that matches wins, so overlapping ranges are
resolved by configuration order and every value receives exactly one label.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np  # type: ignore
import pandas as pd  # type: ignore

from streamchurn.errors import ConfigurationError, InvalidFieldError

logger = logging.getLogger(__name__)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and np.isnan(value))


def sql_literal(value: Any) -> str:
    """Render a Python scalar as a SQL literal."""
    if isinstance(value, (bool, np.bool_)):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, np.integer, np.floating)):
        return repr(value.item() if hasattr(value, "item") else value)
    text = str(value).replace("'", "''")
    return f"'{text}'"


@dataclass(frozen=True)
class RangePredicate:
    """Numeric range; each bound optional, inclusive unless stated otherwise."""
    min: Optional[float] = None
    max: Optional[float] = None
    min_inclusive: bool = True
    max_inclusive: bool = True

    def __post_init__(self):
        if self.min is None and self.max is None:
            raise ConfigurationError("Range predicate needs at least one bound")
        if self.min is not None and self.max is not None:
            if self.min > self.max:
                raise ConfigurationError(f"Range predicate min {self.min} > max {self.max}")
            if self.min == self.max and not (self.min_inclusive and self.max_inclusive):
                raise ConfigurationError(f"Range predicate [{self.min}, {self.max}] is empty")

    def matches(self, value: Any) -> bool:
        if _is_missing(value):
            return False
        if self.min is not None:
            if value < self.min or (value == self.min and not self.min_inclusive):
                return False
        if self.max is not None:
            if value > self.max or (value == self.max and not self.max_inclusive):
                return False
        return True

    def mask(self, series: pd.Series) -> np.ndarray:
        result = np.ones(len(series), dtype=bool)
        if self.min is not None:
            lower = series >= self.min if self.min_inclusive else series > self.min
            result &= lower.to_numpy(dtype=bool, na_value=False)
        if self.max is not None:
            upper = series <= self.max if self.max_inclusive else series < self.max
            result &= upper.to_numpy(dtype=bool, na_value=False)
        return result

    def to_sql(self, column: str) -> str:
        parts = []
        if self.min is not None:
            parts.append(f"{column} {'>=' if self.min_inclusive else '>'} {sql_literal(self.min)}")
        if self.max is not None:
            parts.append(f"{column} {'<=' if self.max_inclusive else '<'} {sql_literal(self.max)}")
        return " AND ".join(parts)

    def describe(self) -> str:
        if self.min is None:
            return f"{'≤' if self.max_inclusive else '<'} {self.max:g}"
        if self.max is None:
            return f"{'≥' if self.min_inclusive else '>'} {self.min:g}"
        left = "[" if self.min_inclusive else "("
        right = "]" if self.max_inclusive else ")"
        return f"{left}{self.min:g}, {self.max:g}{right}"


@dataclass(frozen=True)
class SetPredicate:
    """Set membership on a categorical field."""
    values: Tuple[Any, ...]

    def __post_init__(self):
        if not self.values:
            raise ConfigurationError("Set predicate needs at least one value")

    def matches(self, value: Any) -> bool:
        return value in self.values

    def mask(self, series: pd.Series) -> np.ndarray:
        return series.isin(list(self.values)).to_numpy(dtype=bool)

    def to_sql(self, column: str) -> str:
        return f"{column} IN ({', '.join(sql_literal(v) for v in self.values)})"

    def describe(self) -> str:
        return "in {" + ", ".join(str(v) for v in self.values) + "}"


def predicate_from_config(spec: Dict[str, Any]):
    """Build a predicate from a YAML bucket entry (either range bounds or 'values')."""
    has_range = "min" in spec or "max" in spec
    has_values = "values" in spec
    if has_range and has_values:
        raise ConfigurationError(f"Bucket '{spec.get('label')}' mixes a range and a value set")
    if has_values:
        return SetPredicate(tuple(spec["values"] or ()))
    if has_range:
        return RangePredicate(
            min=spec.get("min"),
            max=spec.get("max"),
            min_inclusive=spec.get("min_inclusive", True),
            max_inclusive=spec.get("max_inclusive", True),
        )
    raise ConfigurationError(f"Bucket '{spec.get('label')}' has neither a range nor values")


@dataclass(frozen=True)
class BucketRule:
    """
    Named derived classification.

    Parameters
    ----------
    name : str
        Name of the derived label column (e.g. 'age_group')
    field : str
        Record column the predicates are evaluated on
    buckets : Sequence[Tuple[predicate, str]]
        Ordered (predicate, label) pairs, first match wins
    default : str
        Label for values no predicate matches; mandatory so that the rule is total
    """
    name: str
    field: str
    buckets: Tuple[Tuple[Any, str], ...]
    default: Optional[str] = None
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Bucket rule needs a name")
        if not self.field:
            raise ConfigurationError(f"Bucket rule '{self.name}' needs a field")
        if not self.buckets:
            raise ConfigurationError(f"Bucket rule '{self.name}' needs at least one bucket")
        if self.default is None or self.default == "":
            raise ConfigurationError(
                f"Bucket rule '{self.name}' has no default label; every value must receive a label"
            )
        for predicate, label in self.buckets:
            if not isinstance(label, str) or not label:
                raise ConfigurationError(f"Bucket rule '{self.name}' has an empty label")
            if not hasattr(predicate, "matches"):
                raise ConfigurationError(f"Bucket rule '{self.name}' has an invalid predicate for '{label}'")

    @classmethod
    def from_config(cls, name: str, spec: Dict[str, Any]) -> "BucketRule":
        if not isinstance(spec, dict):
            raise ConfigurationError(f"Bucket rule '{name}' must be a mapping")
        buckets = tuple(
            (predicate_from_config(entry), entry.get("label"))
            for entry in spec.get("buckets") or []
        )
        return cls(
            name=name,
            field=spec.get("field"),
            buckets=buckets,
            default=spec.get("default"),
            description=spec.get("description", ""),
        )

    @property
    def labels(self) -> List[str]:
        """All labels in configured order, default last, without duplicates."""
        seen: List[str] = []
        for _, label in self.buckets:
            if label not in seen:
                seen.append(label)
        if self.default not in seen:
            seen.append(self.default)
        return seen

    def describe(self) -> str:
        """Readable summary, e.g. 'ads_per_week: Low Ads ≤ 5 | Medium Ads (5, 15] | High Ads otherwise'."""
        parts = [f"{label} {predicate.describe()}" for predicate, label in self.buckets]
        parts.append(f"{self.default} otherwise")
        return f"{self.field}: " + " | ".join(parts)

    def label_for(self, value: Any) -> str:
        for predicate, label in self.buckets:
            if predicate.matches(value):
                return label
        return self.default

    def assign(self, series: pd.Series) -> pd.Series:
        """Vectorised label_for over a column."""
        conditions = [predicate.mask(series) for predicate, _ in self.buckets]
        choices = [label for _, label in self.buckets]
        labels = np.select(conditions, choices, default=self.default)
        return pd.Series(labels, index=series.index, dtype=object, name=self.name)


class Bucketizer:
    """
    Attaches derived segment labels to a record frame.
    """

    def __init__(self, rules: Iterable[BucketRule] = ()):
        self.rules: Dict[str, BucketRule] = {}
        for rule in rules:
            if rule.name in self.rules:
                raise ConfigurationError(f"Duplicate bucket rule name: '{rule.name}'")
            self.rules[rule.name] = rule

    @classmethod
    def from_config(cls, section: Dict[str, Any]) -> "Bucketizer":
        """Build from the 'bucket_rules' section of the analysis config."""
        return cls(BucketRule.from_config(name, spec) for name, spec in (section or {}).items())

    @property
    def names(self) -> List[str]:
        return list(self.rules)

    def __contains__(self, name: str) -> bool:
        return name in self.rules

    def rule(self, name: str) -> BucketRule:
        try:
            return self.rules[name]
        except KeyError:
            raise ConfigurationError(f"Unknown bucket rule '{name}'. Known rules: {self.names}") from None

    def label_record(self, record: Any, rule_name: str) -> str:
        """Label a single UserRecord (or any object exposing the rule's field)."""
        rule = self.rule(rule_name)
        if not hasattr(record, rule.field):
            raise InvalidFieldError(rule.field, context=f"bucket rule '{rule_name}'")
        return rule.label_for(getattr(record, rule.field))

    def validate(self, columns: Sequence[str], rule_names: Optional[Sequence[str]] = None) -> None:
        for name in rule_names if rule_names is not None else self.names:
            rule = self.rule(name)
            if rule.field not in columns:
                raise InvalidFieldError(rule.field, columns, context=f"bucket rule '{name}'")

    def apply(self, df: pd.DataFrame, rule_names: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """
        Return a copy of df with one label column per rule.

        Parameters
        ----------
        df : pd.DataFrame
            Record frame; never modified
        rule_names : Sequence[str], optional
            Rules to apply, all rules by default
        """
        names = list(rule_names) if rule_names is not None else self.names
        self.validate(df.columns, names)

        out = df.copy()
        for name in names:
            rule = self.rules[name]
            out[name] = rule.assign(df[rule.field])
            logger.debug(f"   ➡️ Added {name} from {rule.field}")
        return out

    def distribution(self, df: pd.DataFrame, rule_name: str) -> pd.DataFrame:
        """Label counts and percentages in configured label order."""
        rule = self.rule(rule_name)
        labelled = self.apply(df, [rule_name])[rule_name]
        counts = labelled.value_counts().reindex(rule.labels, fill_value=0)
        distribution = counts.rename_axis(rule_name).reset_index(name="count")
        total = len(df)
        distribution["percentage"] = (distribution["count"] / total * 100) if total else 0.0
        return distribution
