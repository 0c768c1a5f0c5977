# tracker.py
# Command-line front end for the expense tracker.
# - Expense CRUD (add, list, update, delete) scoped to one --user
# - Receipt scanning (scan): OCR -> parse -> categorize -> anomaly check -> save
# - Analytics (stats, anomaly, forecast, recategorize)
# - Assistant (chat, insights, search) backed by Gemini
# - Database management (db --init / --check / --stats)
#
# Examples:
#   python tracker.py db --init
#   python tracker.py add "Uber ride" 23.50 --date 2026-01-04
#   python tracker.py scan data/samples/coffee_shop.jpg --dry-run
#   python tracker.py list --category food --json
#   python tracker.py forecast food --months 3
#   python tracker.py chat "Where did most of my money go last month?"
#
# Notes:
# - Settings come from config.toml; --db and ET_DB_PATH override the database path.
# - Exit codes: 1 not found, 2 usage / integrity warning, 3 extraction or service failure.

from __future__ import annotations

import json
import os
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import click

from analytics.anomaly import AnomalyDetector
from analytics.forecast import Forecaster
from config.loader import load_config
from et_core.errors import ExtractionError
from et_core.models import CATEGORIES, INSIGHT_TYPES
from et_utils.logging_setup import setup_logging
from pipeline.expenses import ExpenseService
from pipeline.receipt import scan_receipt
from storage import SCHEMA_VERSION, SQLiteStore

CATEGORY_CHOICE = click.Choice(list(CATEGORIES) + ["auto"], case_sensitive=False)
FILTER_CHOICE = click.Choice(list(CATEGORIES) + ["all"], case_sensitive=False)
SORT_CHOICE = click.Choice(["date", "amount", "name", "category", "created_at"])


# ----------------------------- Helpers -----------------------------
def _jsonable(obj: Any) -> Any:
    if is_dataclass(obj):
        return asdict(obj)
    if isinstance(obj, (list, tuple)):
        return [_jsonable(o) for o in obj]
    if isinstance(obj, dict):
        return {k: _jsonable(v) for k, v in obj.items()}
    return obj


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(_jsonable(payload), indent=2, default=str, ensure_ascii=False))


def _expense_line(exp) -> str:
    flag = " [!]" if exp.is_anomaly else ""
    auto = "*" if exp.ai_categorized else ""
    return (
        f"  {exp.expense_id}  {exp.date}  {exp.amount:>10.2f}  "
        f"{exp.category + auto:<14} {exp.name}{flag}"
    )


def _anomaly_line(exp) -> str:
    if exp.anomaly_score is None:
        return f"[anomaly] unusual {exp.category} amount (differs from a constant history)"
    return f"[anomaly] unusual {exp.category} amount (z={exp.anomaly_score:.2f})"


def _not_found(expense_id: str) -> None:
    click.echo(f"[error] expense not found: {expense_id}", err=True)
    raise SystemExit(1)


class AppContext:
    """Lazily-built collaborators shared by all commands of one invocation."""

    def __init__(self, cfg: Dict[str, Any], user_id: str):
        self.cfg = cfg
        self.user_id = user_id
        self._store: Optional[SQLiteStore] = None

    @property
    def store(self) -> SQLiteStore:
        if self._store is None:
            self._store = SQLiteStore(self.cfg["storage"]["db_path"])
            self._store.ensure_schema()
        return self._store

    def expenses(self) -> ExpenseService:
        return ExpenseService.from_config(self.store, self.cfg)

    def assistant(self):
        from assistant.service import AssistantService

        return AssistantService.from_config(self.store, self.cfg)

    def close(self) -> None:
        if self._store is not None:
            self._store.close()


pass_app = click.make_pass_decorator(AppContext)


# ----------------------------- CLI -----------------------------
@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.toml (default: repo root).",
)
@click.option("--db", "db_path", default=None, help="Override the SQLite database path.")
@click.option(
    "--user",
    "user_id",
    default=lambda: os.environ.get("ET_USER", "default"),
    show_default="$ET_USER or 'default'",
    help="User the command acts on.",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.option("-q", "--quiet", is_flag=True, help="Only log warnings and errors.")
@click.pass_context
def cli(ctx, config_path, db_path, user_id, verbose, quiet) -> None:
    """Expense tracker CLI."""
    setup_logging("DEBUG" if verbose else "WARNING" if quiet else "INFO")
    cfg = load_config(config_path)
    if db_path:
        cfg["storage"]["db_path"] = db_path
    app = AppContext(cfg, user_id)
    ctx.obj = app
    ctx.call_on_close(app.close)


# ----------------------------- Expense Commands -----------------------------
@cli.command("add")
@click.argument("name")
@click.argument("amount", type=float)
@click.option("--category", "-c", type=CATEGORY_CHOICE, default="auto", show_default=True)
@click.option("--date", "date_", default=None, help="YYYY-MM-DD or MM/DD/YYYY (default: today).")
@click.option("--notes", default=None)
@click.option("--subcategory", default=None)
@click.option("--tag", "tags", multiple=True, help="Repeatable.")
@click.option("--explain", is_flag=True, help="Print per-category keyword scores.")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def add_cmd(app, name, amount, category, date_, notes, subcategory, tags, explain, output_json) -> None:
    """Record an expense; category 'auto' lets the categorizer pick."""
    try:
        exp = app.expenses().create(
            app.user_id,
            name=name,
            amount=amount,
            category=category.lower(),
            date=date_,
            notes=notes,
            subcategory=subcategory,
            tags=list(tags),
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    if output_json:
        _echo_json(exp)
        return
    conf = f" ({exp.confidence_score:.0%})" if exp.ai_categorized else ""
    click.echo(f"[ok] id={exp.expense_id} category={exp.category}{conf} amount={exp.amount:.2f}")
    if explain:
        scores = app.expenses().categorizer.explain(name, amount, notes or "")
        for cat, score in sorted(scores.items(), key=lambda kv: -kv[1]):
            click.echo(f"  {cat:<14} {score:.2f}")
    if exp.is_anomaly:
        click.echo(_anomaly_line(exp))


@cli.command("scan")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option("--dry-run", is_flag=True, help="Parse and print without saving.")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def scan_cmd(app, path, dry_run, output_json) -> None:
    """Extract a receipt (image, PDF or .txt) and save it as an expense."""
    reader = None
    if Path(path).suffix.lower() != ".txt":
        from ocr.reader import Reader

        reader = Reader.from_config(app.cfg)
    try:
        parsed = scan_receipt(
            path, reader=reader, timeout=app.cfg["ocr"].get("timeout_seconds")
        )
    except (ExtractionError, ValueError) as e:
        click.echo(f"[error] {path} :: {e}", err=True)
        raise SystemExit(3)

    if dry_run:
        if output_json:
            _echo_json({"receipt": parsed, "saved": False})
        else:
            click.echo(
                f"[dry-run] merchant={parsed.merchant!r} amount={parsed.amount:.2f} "
                f"date={parsed.date} items={len(parsed.items)}"
            )
        return

    exp = app.expenses().create_from_receipt(
        app.user_id, parsed, source_path=str(Path(path).resolve())
    )
    if output_json:
        _echo_json({"receipt": parsed, "expense": exp, "saved": True})
        return
    click.echo(
        f"[ok] id={exp.expense_id} {exp.name!r} {exp.amount:.2f} -> {exp.category} | {path}"
    )
    if exp.is_anomaly:
        click.echo(_anomaly_line(exp))


@cli.command("list")
@click.option("--category", type=FILTER_CHOICE, default="all", show_default=True)
@click.option("--from", "date_from", default=None, help="Earliest date (inclusive).")
@click.option("--to", "date_to", default=None, help="Latest date (inclusive).")
@click.option("--search", default=None, help="Substring match on name, notes and tags.")
@click.option("--page", default=1, show_default=True, type=click.IntRange(min=1))
@click.option("--limit", default=50, show_default=True, type=click.IntRange(1, 500))
@click.option("--sort", "sort_by", type=SORT_CHOICE, default="date", show_default=True)
@click.option("--asc", is_flag=True, help="Oldest / smallest first.")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def list_cmd(app, category, date_from, date_to, search, page, limit, sort_by, asc, output_json):
    """List expenses with filters and pagination."""
    from et_utils.normalizers import parse_date_arg

    try:
        result = app.expenses().list(
            app.user_id,
            category=category,
            date_from=parse_date_arg(date_from),
            date_to=parse_date_arg(date_to),
            search=search,
            page=page,
            limit=limit,
            sort_by=sort_by,
            descending=not asc,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    if output_json:
        _echo_json(result)
        return
    pg = result["pagination"]
    if not result["expenses"]:
        click.echo("[list] No expenses found.")
        return
    for exp in result["expenses"]:
        click.echo(_expense_line(exp))
    click.echo(f"[list] page {pg['page']}/{pg['pages']} ({pg['total']} total)")


@cli.command("update")
@click.argument("expense_id")
@click.option("--name", default=None)
@click.option("--amount", type=float, default=None)
@click.option("--category", type=click.Choice(list(CATEGORIES)), default=None)
@click.option("--date", "date_", default=None)
@click.option("--notes", default=None)
@click.option("--subcategory", default=None)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def update_cmd(app, expense_id, name, amount, category, date_, notes, subcategory, output_json):
    """Change fields of one of your expenses."""
    try:
        exp = app.expenses().update(
            app.user_id,
            expense_id,
            name=name,
            amount=amount,
            category=category,
            date=date_,
            notes=notes,
            subcategory=subcategory,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    if exp is None:
        _not_found(expense_id)
    if output_json:
        _echo_json(exp)
    else:
        click.echo(f"[ok] updated {exp.expense_id}")
        click.echo(_expense_line(exp))


@cli.command("delete")
@click.argument("expense_id")
@pass_app
def delete_cmd(app, expense_id) -> None:
    """Delete one of your expenses."""
    if not app.expenses().delete(app.user_id, expense_id):
        _not_found(expense_id)
    click.echo(f"[ok] deleted {expense_id}")


# ----------------------------- Analytics Commands -----------------------------
@cli.command("stats")
@click.option("--from", "date_from", default=None)
@click.option("--to", "date_to", default=None)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def stats_cmd(app, date_from, date_to, output_json) -> None:
    """Total, average, count and per-category breakdown."""
    try:
        stats = app.expenses().stats(app.user_id, date_from, date_to)
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    if output_json:
        _echo_json(stats)
        return
    click.echo(
        f"[stats] total={stats['total_spent']:.2f} average={stats['average_expense']:.2f} "
        f"count={stats['total_expenses']}"
    )
    for cat, total in stats["category_breakdown"].items():
        click.echo(f"  - {cat}: {total:.2f}")


@cli.command("anomaly")
@click.argument("amount", type=float)
@click.argument("category", type=click.Choice(list(CATEGORIES)))
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def anomaly_cmd(app, amount, category, output_json) -> None:
    """Check how unusual AMOUNT would be for CATEGORY (nothing is saved)."""
    result = AnomalyDetector.from_config(app.store, app.cfg).detect(
        app.user_id, amount, category
    )
    if output_json:
        _echo_json(result)
        return
    label = "ANOMALY" if result.is_anomaly else "normal"
    z = f" z={result.z_score:.2f}" if result.z_score is not None else ""
    click.echo(f"[anomaly] {label}{z} n={result.sample_size} :: {result.reason}")


@cli.command("forecast")
@click.argument("category", type=click.Choice(list(CATEGORIES)))
@click.option("--months", default=None, type=click.IntRange(1, 24), help="Months ahead.")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def forecast_cmd(app, category, months, output_json) -> None:
    """Project monthly spending in CATEGORY from the trailing year's trend."""
    months = months or app.cfg["forecast"].get("horizon_months", 3)
    fc = Forecaster.from_config(app.store, app.cfg).forecast(app.user_id, category, months)
    if output_json:
        _echo_json(fc)
        return
    click.echo(
        f"[forecast] {category}: confidence={fc.confidence} "
        f"history={fc.history_months} month(s)"
    )
    if not fc.points:
        click.echo("  (need at least 3 months of history)")
    for p in fc.points:
        click.echo(f"  - {p.month:%Y-%m}: {p.predicted_amount:.2f}")


@cli.command("recategorize")
@click.option("--refresh", is_flag=True, help="Also re-categorize manually categorized expenses.")
@click.option("--dry-run", is_flag=True, help="Show what would change without saving.")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def recategorize_cmd(app, refresh, dry_run, output_json) -> None:
    """Re-run the keyword categorizer over stored expenses."""
    results = app.expenses().recategorize(app.user_id, refresh=refresh, dry_run=dry_run)
    changed = [(e, s) for e, s in results if e.category != s.category]
    if output_json:
        _echo_json(
            {
                "processed": len(results),
                "changed": len(changed),
                "dry_run": dry_run,
                "results": [
                    {
                        "expense_id": e.expense_id,
                        "name": e.name,
                        "old_category": e.category,
                        "category": s.category,
                        "confidence": s.confidence,
                    }
                    for e, s in results
                ],
            }
        )
        return
    for e, s in changed:
        click.echo(f"  [{e.category} -> {s.category}] {e.name} ({s.confidence:.0%})")
    verb = "would change" if dry_run else "changed"
    click.echo(f"[recategorize] {len(results)} processed, {len(changed)} {verb}")


# ----------------------------- Assistant Commands -----------------------------
def _assistant_call(fn, *args, **kwargs):
    from assistant import AssistantError

    try:
        return fn(*args, **kwargs)
    except ValueError as e:
        raise click.UsageError(str(e)) from e
    except AssistantError as e:
        click.echo(f"[error] {e}", err=True)
        raise SystemExit(3)


@cli.command("chat")
@click.argument("message")
@click.option("--context", default="", help="Extra context passed to the assistant.")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def chat_cmd(app, message, context, output_json) -> None:
    """Ask the assistant about your spending."""
    result = _assistant_call(app.assistant().chat, app.user_id, message, context)
    if output_json:
        _echo_json(result)
    else:
        click.echo(result["response"])


@cli.command("insights")
@click.option("--generate", is_flag=True, help="Ask the assistant for a fresh 90-day analysis.")
@click.option(
    "--type",
    "insight_type",
    type=click.Choice(list(INSIGHT_TYPES) + ["all"]),
    default="all",
    show_default=True,
)
@click.option("--limit", default=10, show_default=True, type=click.IntRange(1, 100))
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def insights_cmd(app, generate, insight_type, limit, output_json) -> None:
    """Show saved insights, or generate a new spending analysis."""
    svc = app.assistant()
    if generate:
        result = _assistant_call(svc.generate_insights, app.user_id)
        if output_json:
            _echo_json(result)
            return
        meta = result["metadata"]
        click.echo(
            f"[insights] {meta['expense_count']} expenses, total={meta['total_spent']:.2f}, "
            f"top={meta['top_category']}"
        )
        click.echo(result["insights"] or result["message"])
        return

    items = svc.list_insights(app.user_id, insight_type=insight_type, limit=limit)
    if output_json:
        _echo_json(items)
        return
    if not items:
        click.echo("[insights] None saved yet.")
    for ins in items:
        click.echo(f"[{ins.insight_type}] {ins.created_at} {ins.title}")
        click.echo(f"  {ins.content[:200]}")


@cli.command("search")
@click.argument("query")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def search_cmd(app, query, output_json) -> None:
    """Find expenses matching a natural-language QUERY."""
    matches = _assistant_call(app.assistant().semantic_search, app.user_id, query)
    if output_json:
        _echo_json({"query": query, "total_matches": len(matches), "results": matches})
        return
    if not matches:
        click.echo("[search] No matching expenses found.")
    for exp in matches:
        click.echo(_expense_line(exp))


# ----------------------------- Database Management Commands -----------------------------
@cli.command("db")
@click.option("--init", "do_init", is_flag=True, help="Create or migrate the schema.")
@click.option("--check", "do_check", is_flag=True, help="Run integrity checks.")
@click.option("--stats", "do_stats", is_flag=True, help="Show table row counts.")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON.")
@pass_app
def db_cmd(app, do_init, do_check, do_stats, output_json) -> None:
    """
    Database management commands.

    Examples:

        tracker db --init

        tracker db --check --json
    """
    if not any([do_init, do_check, do_stats]):
        click.echo("No action specified. Use --init, --check, or --stats.")
        click.echo("Run 'tracker db --help' for usage.")
        raise SystemExit(1)

    store = SQLiteStore(app.cfg["storage"]["db_path"])
    results: Dict[str, Any] = {"db_path": store.db_path, "actions": []}
    try:
        if do_init:
            result = store.ensure_schema()
            results["init"] = result
            results["actions"].append("init")
            if not output_json:
                click.echo(f"[init] status={result['status']}, schema_version={SCHEMA_VERSION}")
                if result.get("tables_created"):
                    click.echo(f"  - tables: {result['tables_created']}")

        if do_check:
            result = store.check_integrity()
            results["check"] = result
            results["actions"].append("check")
            if not output_json:
                icon = {"ok": "[OK]", "warning": "[WARN]"}.get(result["status"], "[ERR]")
                click.echo(f"[check] {icon} status={result['status']}, version={result['version']}")
                for table, info in result["tables"].items():
                    mark = "[+]" if info.get("exists") else "[-]"
                    click.echo(f"      {mark} {table}: {info.get('rows', 0)} rows")
                for issue in result["issues"]:
                    click.echo(f"      ! {issue}")
            if result["status"] == "error":
                results["exit_code"] = 3
            elif result["status"] == "warning":
                results["exit_code"] = 2

        if do_stats:
            stats = store.get_stats()
            results["stats"] = stats
            results["actions"].append("stats")
            if not output_json:
                click.echo("[stats] Table row counts:")
                for table, count in stats.items():
                    shown = count if count >= 0 else "(not found)"
                    click.echo(f"  - {table}: {shown}")
    finally:
        store.close()

    if output_json:
        _echo_json(results)

    exit_code = results.get("exit_code", 0)
    if exit_code != 0:
        raise SystemExit(exit_code)


if __name__ == "__main__":
    cli()
