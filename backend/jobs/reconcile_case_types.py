"""
Backfill case_type_id on legacy rows from their free-text case_type.

    DATABASE_URL=... python -m jobs.reconcile_case_types            # dry run
    DATABASE_URL=... python -m jobs.reconcile_case_types --apply

Environment: DATABASE_URL (required), DRY_RUN ("1" default, "0" applies),
LIMIT (row cap per table), INCLUDE_INACTIVE ("1" matches inactive case
types too), TOP_N (length of the unmatched/ambiguous lists).

Tables are processed one at a time. In apply mode every accepted update
for a table runs in one transaction guarded by ``case_type_id IS NULL``,
so a re-run changes nothing.
"""
from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Sequence, TextIO

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import column, create_engine, func, inspect, select, table, update
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from app.services.case_type_matching import (
    CandidateEntry,
    MatchDecision,
    MatchOutcome,
    build_candidate_dictionary,
    decide,
)

logger = logging.getLogger(__name__)

TARGET_TABLES = ("intake_requests", "service_requests")
REQUIRED_COLUMNS = ("id", "case_type", "case_type_id")
CASE_TYPE_COLUMNS = ("id", "name_ar", "name_en", "key", "is_active")


class ReconcileSettings(BaseSettings):
    DATABASE_URL: str
    DRY_RUN: bool = True
    LIMIT: Optional[int] = None
    INCLUDE_INACTIVE: bool = False
    TOP_N: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @field_validator("LIMIT", mode="before")
    @classmethod
    def empty_limit(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


@dataclass
class TableReport:
    table: str
    total: int = 0
    already_resolved: int = 0
    scanned: int = 0
    accepted: int = 0
    updated: int = 0
    skipped_no_match: int = 0
    skipped_ambiguous: int = 0
    skipped_reason: Optional[str] = None
    unmatched: Counter = field(default_factory=Counter)
    ambiguous: Counter = field(default_factory=Counter)
    decisions: list = field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


# ============================================================================
# Schema introspection
# ============================================================================

def _columns(engine: Engine, name: str) -> Optional[set]:
    inspector = inspect(engine)
    if not inspector.has_table(name):
        return None
    return {c["name"] for c in inspector.get_columns(name)}


def load_case_types(engine: Engine) -> list[dict]:
    columns = _columns(engine, "case_types")
    if columns is None:
        raise RuntimeError("case_types table not found; nothing to match against")
    if "id" not in columns or "name_ar" not in columns:
        raise RuntimeError("case_types table is missing id/name_ar columns")

    available = [c for c in CASE_TYPE_COLUMNS if c in columns]
    ct = table("case_types", *(column(c) for c in available))
    with engine.connect() as conn:
        rows = conn.execute(select(*ct.c)).mappings().all()
    return [dict(row) for row in rows]


# ============================================================================
# Per-table reconciliation
# ============================================================================

def _label(value) -> str:
    value = (value or "").strip()
    return value or "(empty)"


def reconcile_table(
    engine: Engine,
    name: str,
    candidates: Sequence[CandidateEntry],
    dry_run: bool = True,
    limit: Optional[int] = None,
) -> TableReport:
    report = TableReport(table=name)

    columns = _columns(engine, name)
    if columns is None:
        report.skipped_reason = "table not found"
        logger.warning("Skipping %s: %s", name, report.skipped_reason)
        return report
    missing = [c for c in REQUIRED_COLUMNS if c not in columns]
    if missing:
        report.skipped_reason = f"missing column(s): {', '.join(missing)}"
        logger.warning("Skipping %s: %s", name, report.skipped_reason)
        return report

    t = table(name, *(column(c) for c in REQUIRED_COLUMNS))

    with engine.connect() as conn:
        report.total = conn.execute(select(func.count()).select_from(t)).scalar_one()
        report.already_resolved = conn.execute(
            select(func.count()).select_from(t).where(t.c.case_type_id.is_not(None))
        ).scalar_one()

        query = select(t.c.id, t.c.case_type).where(t.c.case_type_id.is_(None)).order_by(t.c.id)
        if limit:
            query = query.limit(limit)
        rows = conn.execute(query).all()

    memo: dict[str, MatchDecision] = {}
    accepted = []
    for row in rows:
        report.scanned += 1
        key = row.case_type or ""
        decision = memo.get(key)
        if decision is None:
            decision = memo[key] = decide(row.case_type, candidates)
        report.decisions.append((row.id, decision))

        if decision.outcome == MatchOutcome.ACCEPT:
            report.accepted += 1
            accepted.append((row.id, decision.case_type_id))
        elif decision.outcome == MatchOutcome.SKIP_AMBIGUOUS:
            report.skipped_ambiguous += 1
            report.ambiguous[_label(row.case_type)] += 1
        else:
            report.skipped_no_match += 1
            report.unmatched[_label(row.case_type)] += 1

    logger.info(
        "%s: scanned=%s accepted=%s ambiguous=%s no_match=%s",
        name, report.scanned, report.accepted, report.skipped_ambiguous, report.skipped_no_match,
    )

    if dry_run or not accepted:
        return report

    try:
        with engine.begin() as conn:
            for row_id, case_type_id in accepted:
                result = conn.execute(
                    update(t)
                    .where(t.c.id == row_id, t.c.case_type_id.is_(None))
                    .values(case_type_id=case_type_id)
                )
                report.updated += result.rowcount or 0
    except Exception:
        logger.exception("Apply failed for %s; batch rolled back", name)
        raise

    logger.info("%s: updated=%s", name, report.updated)
    return report


def run_reconciliation(
    engine: Engine,
    dry_run: bool = True,
    limit: Optional[int] = None,
    include_inactive: bool = False,
    tables: Iterable[str] = TARGET_TABLES,
    on_report: Optional[Callable[[TableReport], None]] = None,
) -> list[TableReport]:
    """
    Reconcile each table in turn. ``on_report`` sees every finished table,
    so tables committed before a later failure are still reported.
    """
    case_types = load_case_types(engine)
    candidates = build_candidate_dictionary(case_types, include_inactive=include_inactive)
    logger.info(
        "Loaded %s case types (%s candidates, include_inactive=%s, dry_run=%s)",
        len(case_types), len(candidates), include_inactive, dry_run,
    )
    reports = []
    for name in tables:
        report = reconcile_table(engine, name, candidates, dry_run=dry_run, limit=limit)
        reports.append(report)
        if on_report is not None:
            on_report(report)
    return reports


# ============================================================================
# Output
# ============================================================================

def format_decisions(report: TableReport) -> str:
    lines = [f"-- {report.table}: decisions --"]
    for row_id, decision in report.decisions:
        best = f"{decision.best.label}({decision.best.score})" if decision.best else "-"
        second = f"{decision.second.label}({decision.second.score})" if decision.second else "-"
        lines.append(f"{row_id}\t{decision.value!r}\t{decision.outcome.value}\tbest={best}\tsecond={second}")
    return "\n".join(lines)


def format_report(report: TableReport, top_n: int = 10) -> str:
    if report.skipped:
        return f"== {report.table}: SKIPPED ({report.skipped_reason})"

    lines = [
        f"== {report.table}",
        f"   total rows:         {report.total}",
        f"   already resolved:   {report.already_resolved}",
        f"   scanned:            {report.scanned}",
        f"   accepted:           {report.accepted}",
        f"   updated:            {report.updated}",
        f"   skipped no match:   {report.skipped_no_match}",
        f"   skipped ambiguous:  {report.skipped_ambiguous}",
    ]
    for title, counter in (("top unmatched", report.unmatched), ("top ambiguous", report.ambiguous)):
        if counter:
            lines.append(f"   {title}:")
            lines.extend(f"     {count:>5}  {value}" for value, count in counter.most_common(top_n))
    return "\n".join(lines)


def format_mode(dry_run: bool) -> str:
    return f"Mode: {'DRY_RUN' if dry_run else 'APPLY'}"


def print_report(report: TableReport, dry_run: bool, top_n: int, out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    if dry_run and not report.skipped:
        print(format_decisions(report), file=out)
    print(format_report(report, top_n), file=out)


def print_reports(reports: Sequence[TableReport], dry_run: bool, top_n: int, out: Optional[TextIO] = None) -> None:
    out = out or sys.stdout
    print(format_mode(dry_run), file=out)
    for report in reports:
        print_report(report, dry_run, top_n, out)


# ============================================================================
# CLI Entry Point
# ============================================================================

def _engine_for(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, pool_pre_ping=True)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Backfill case_type_id from legacy case_type values")
    parser.add_argument("--apply", action="store_true", help="Write accepted matches (overrides DRY_RUN)")
    parser.add_argument("--limit", type=int, help="Row cap per table")
    parser.add_argument("--include-inactive", action="store_true", help="Match inactive case types too")
    parser.add_argument("--table", action="append", choices=TARGET_TABLES, help="Restrict to a table (repeatable)")
    parser.add_argument("--top-n", type=int, help="Length of unmatched/ambiguous lists")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    try:
        settings = ReconcileSettings()
    except ValidationError as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    dry_run = False if args.apply else settings.DRY_RUN
    limit = args.limit if args.limit is not None else settings.LIMIT
    include_inactive = args.include_inactive or settings.INCLUDE_INACTIVE
    top_n = args.top_n if args.top_n is not None else settings.TOP_N
    tables = tuple(t for t in TARGET_TABLES if not args.table or t in args.table)

    engine = _engine_for(settings.DATABASE_URL)
    print(format_mode(dry_run))
    try:
        run_reconciliation(
            engine,
            dry_run=dry_run,
            limit=limit,
            include_inactive=include_inactive,
            tables=tables,
            on_report=lambda report: print_report(report, dry_run, top_n),
        )
    except Exception:
        logger.exception("Case-type reconciliation failed")
        return 1
    finally:
        engine.dispose()

    return 0


if __name__ == "__main__":
    sys.exit(main())
