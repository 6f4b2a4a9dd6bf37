"""
Data quality report for the equipment history log.

Replay never fails on bad rows; it quarantines them. This module turns the
quarantined rows, and the rows that only survived through a silent fallback
(unparseable timestamp, unrecognized action label), into a structured report
an operator can act on.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

import pandas as pd

from .events import IssueKind
from .parsers import ActionResolver, TimestampParser
from .reconciliation import ReconciliationResult


@dataclass
class DataQualityIssue:
    """A single data quality issue found in the history log."""

    column: str
    issue_type: str  # e.g. "duplicate_checkout", "unparsed_timestamp"
    severity: str  # "critical", "warning", "info"
    count: int
    percentage: float
    sample_values: list[Any] = field(default_factory=list)
    description: str = ""


@dataclass
class DataQualityReport:
    """Summary report of data quality for one reconciliation run."""

    source_name: str
    total_rows: int
    issues: list[DataQualityIssue] = field(default_factory=list)

    @property
    def critical_issues(self) -> list[DataQualityIssue]:
        return [i for i in self.issues if i.severity == "critical"]

    @property
    def warning_issues(self) -> list[DataQualityIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def has_critical_issues(self) -> bool:
        return len(self.critical_issues) > 0

    def issue(self, issue_type: str) -> DataQualityIssue | None:
        return next((i for i in self.issues if i.issue_type == issue_type), None)

    def summary(self) -> dict:
        """Return a summary dict for display."""
        return {
            "source": self.source_name,
            "total_rows": self.total_rows,
            "critical": len(self.critical_issues),
            "warnings": len(self.warning_issues),
            "info": len([i for i in self.issues if i.severity == "info"]),
        }


Check = Callable[[pd.DataFrame], list[DataQualityIssue]]


class HistoryQualityChecker:
    """
    Quality checks over the replayed event frame (ReconciliationResult.to_frame()).

    Default checks:
    - Rejected events, one issue per IssueKind
    - Timestamps that fell back to the epoch sentinel
    - Action labels that matched no synonym and defaulted to checkin

    Extend by adding custom checks via add_check().
    """

    SAMPLE_SIZE = 5

    def __init__(
        self,
        source_name: str = "Equipment history",
        resolver: ActionResolver | None = None,
    ):
        self.source_name = source_name
        self.resolver = resolver or ActionResolver()
        self._checks: list[Check] = []
        self._add_default_checks()

    def _add_default_checks(self):
        self.add_check(self._issue_kind_check(IssueKind.INVALID_IDENTIFIER, "equipment_id", "warning"))
        self.add_check(self._issue_kind_check(IssueKind.DUPLICATE_CHECKOUT, "action", "warning"))
        self.add_check(self._issue_kind_check(IssueKind.ORPHAN_CHECKIN, "action", "warning"))
        self.add_check(self._check_unparsed_timestamps)
        self.add_check(self._check_unrecognized_actions)

    def add_check(self, check_fn: Check) -> "HistoryQualityChecker":
        """Add a custom check function. Returns self for chaining."""
        self._checks.append(check_fn)
        return self

    def _check_unrecognized_actions(self, df: pd.DataFrame) -> list[DataQualityIssue]:
        """Action labels that matched no synonym and fell back to the default."""
        if df.empty:
            return []
        labels = df["action_text"].fillna("").astype(str)
        mask = ~labels.apply(self.resolver.is_recognized)
        count = int(mask.sum())
        if count == 0:
            return []
        return [
            self._issue(
                df,
                column="action",
                issue_type="unrecognized_action",
                severity="warning",
                count=count,
                samples=labels[mask].head(self.SAMPLE_SIZE).tolist(),
                description=f"{count:,} action labels matched no synonym and were read as {self.resolver.default.value}",
            )
        ]

    def _issue_kind_check(self, kind: IssueKind, column: str, severity: str) -> Check:
        def check(df: pd.DataFrame) -> list[DataQualityIssue]:
            if df.empty:
                return []
            mask = df["issue_kind"] == kind.value
            count = int(mask.sum())
            if count == 0:
                return []
            samples = df.loc[mask, "event_id"].head(self.SAMPLE_SIZE).tolist()
            return [
                self._issue(
                    df,
                    column=column,
                    issue_type=kind.value,
                    severity=severity,
                    count=count,
                    samples=samples,
                    description=f"{count:,} events rejected: {kind.value.replace('_', ' ')}",
                )
            ]

        return check

    def _check_unparsed_timestamps(self, df: pd.DataFrame) -> list[DataQualityIssue]:
        """Events whose timestamp could not be parsed and sort first."""
        if df.empty:
            return []
        mask = df["instant"].apply(TimestampParser.is_sentinel)
        count = int(mask.sum())
        if count == 0:
            return []
        samples = df.loc[mask, "timestamp"].head(self.SAMPLE_SIZE).tolist()
        return [
            self._issue(
                df,
                column="timestamp",
                issue_type="unparsed_timestamp",
                severity="warning",
                count=count,
                samples=samples,
                description=f"{count:,} timestamps couldn't be parsed; replay order is unreliable",
            )
        ]

    @staticmethod
    def _issue(
        df: pd.DataFrame,
        column: str,
        issue_type: str,
        severity: str,
        count: int,
        samples: list[Any],
        description: str,
    ) -> DataQualityIssue:
        return DataQualityIssue(
            column=column,
            issue_type=issue_type,
            severity=severity,
            count=count,
            percentage=(count / len(df)) * 100 if len(df) else 0.0,
            sample_values=samples,
            description=description,
        )

    def run(self, result: ReconciliationResult) -> DataQualityReport:
        """Run all checks and return a quality report."""
        df = result.to_frame()
        all_issues = []
        for check_fn in self._checks:
            all_issues.extend(check_fn(df))

        return DataQualityReport(
            source_name=self.source_name, total_rows=len(df), issues=all_issues
        )
