# core/analysis/sql_builder.py
"""
Render analysis definitions as SQL GROUP BY / CASE queries.

The generated SQL sticks to constructs PostgreSQL and SQLite both accept so the
same catalog can run inside the database that holds the user table.
"""

import os
import logging
from typing import Dict, List

from streamchurn.core.segment.bucket_rule import Bucketizer, BucketRule, sql_literal
from streamchurn.core.segment.metrics import MetricSpec
from .catalog import AnalysisSpec

logger = logging.getLogger(__name__)


class SqlQueryBuilder:
    """
    Builds one SELECT statement per analysis.

    Parameters
    ----------
    bucketizer : Bucketizer
        Bucket rules rendered as CASE expressions
    table : str
        Name of the table holding the user records
    """

    def __init__(self, bucketizer: Bucketizer, table: str = "users"):
        self.bucketizer = bucketizer
        self.table = table

    @staticmethod
    def case_expression(rule: BucketRule) -> str:
        branches = [
            f"WHEN {predicate.to_sql(rule.field)} THEN {sql_literal(label)}"
            for predicate, label in rule.buckets
        ]
        return "CASE " + " ".join(branches) + f" ELSE {sql_literal(rule.default)} END"

    @staticmethod
    def _round(expression: str, digits) -> str:
        if digits is None:
            return expression
        return f"ROUND(CAST({expression} AS NUMERIC), {digits})"

    def metric_expression(self, metric: MetricSpec) -> str:
        if metric.kind == "count":
            return "COUNT(*)"
        if metric.kind == "mean":
            return self._round(f"AVG({metric.field})", metric.digits)
        hits = f"SUM(CASE WHEN {metric.condition.to_sql()} THEN 1 ELSE 0 END)"
        if metric.kind == "matches":
            return hits
        return self._round(f"100.0 * {hits} / COUNT(*)", metric.digits)

    def group_expressions(self, spec: AnalysisSpec) -> List[str]:
        return [
            self.case_expression(self.bucketizer.rule(g)) if g in self.bucketizer else g
            for g in spec.group_by
        ]

    def render(self, spec: AnalysisSpec) -> str:
        group_exprs = self.group_expressions(spec)
        select = [
            expr if expr == name else f"{expr} AS {name}"
            for expr, name in zip(group_exprs, spec.group_by)
        ]
        select += [f"{self.metric_expression(m)} AS {m.name}" for m in spec.metrics]

        if not group_exprs:
            # a global aggregate over zero rows would still return one row
            select.append("COUNT(*) AS group_rows")

        lines = ["SELECT", "    " + ",\n    ".join(select), f"FROM {self.table}"]
        if spec.filters:
            lines.append("WHERE " + "\n  AND ".join(c.to_sql() for c in spec.filters))
        if group_exprs:
            lines.append("GROUP BY " + ", ".join(group_exprs))
        else:
            inner = "\n".join("    " + line for line in lines)
            lines = [
                f"SELECT {', '.join(m.name for m in spec.metrics)}",
                f"FROM (\n{inner}\n) AS totals",
                "WHERE group_rows > 0",
            ]

        order = []
        if spec.sort_by is not None:
            order.append(f"{spec.sort_by} {'ASC' if spec.ascending else 'DESC'}")
        order += [f"{g} ASC" for g in spec.group_by]
        if order:
            lines.append("ORDER BY " + ", ".join(order))
        return "\n".join(lines) + ";"

    def render_all(self, catalog: Dict[str, AnalysisSpec]) -> Dict[str, str]:
        return {name: self.render(spec) for name, spec in catalog.items()}

    def write_sql_files(self, catalog: Dict[str, AnalysisSpec], output_dir: str) -> Dict[str, str]:
        """Write '<analysis>.sql' files and return their paths."""
        os.makedirs(output_dir, exist_ok=True)
        paths = {}
        for name, query in self.render_all(catalog).items():
            path = os.path.join(output_dir, f"{name}.sql")
            with open(path, "w", encoding="utf-8") as f:
                f.write(f"-- {catalog[name].description}\n" if catalog[name].description else "")
                f.write(query + "\n")
            paths[name] = path
            logger.info(f"   📄 {name}: {path}")
        return paths
