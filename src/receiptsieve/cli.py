"""ReceiptSieve CLI: Typer app with all subcommands."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="receiptsieve",
    help="Turn order and receipt emails into tracked purchases.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """ReceiptSieve: purchase extraction from your inbox."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_store(config):
    from receiptsieve.database import get_db, init_db
    from receiptsieve.store import SqliteStore

    conn = get_db(config)
    init_db(conn)
    return conn, SqliteStore(conn)


def _resolve_model(model_arg: str | None, config) -> str:
    """Use --model when given, otherwise provider:model from config (and .env)."""
    if model_arg:
        return model_arg
    return config.ai.model_spec


def _build_orchestrator(config, model_arg: str | None = None):
    from receiptsieve.ai import get_provider
    from receiptsieve.stages.extract import ExtractionOrchestrator

    provider, model_name = get_provider(_resolve_model(model_arg, config), config.ai.to_provider_dict())
    orchestrator = ExtractionOrchestrator(
        provider,
        model=model_name,
        max_retries=config.ai.max_retries,
        max_tokens=config.ai.max_tokens,
        strict=config.ai.strict_validation,
    )
    return orchestrator, model_name


def _recognizers(config):
    from receiptsieve.stages.merchant import default_recognizers, load_merchant_domains

    return default_recognizers(load_merchant_domains(config.merchant_domains_file))


# --- Database commands ---

db_app = typer.Typer(help="Database management commands.")
app.add_typer(db_app, name="db")


@db_app.callback(invoke_without_command=True)
def db_callback(
    ctx: typer.Context,
    reset: bool = typer.Option(False, "--reset", help="Wipe and recreate the database."),
    stats: bool = typer.Option(False, "--stats", help="Show row counts for all tables."),
    migrate: bool = typer.Option(False, "--migrate", help="Add columns missing from older databases."),
):
    """Database management."""
    from receiptsieve.config import load_config
    from receiptsieve.database import db_stats, get_db, init_db, migrate_db, reset_db

    config = load_config()

    if reset:
        conn = reset_db(config)
        typer.echo("Database reset and initialized.")
        conn.close()
        return

    if stats:
        conn = get_db(config)
        init_db(conn)
        typer.echo("Table row counts:")
        for table, count in db_stats(conn).items():
            status = f"{count}" if count >= 0 else "missing"
            typer.echo(f"  {table:20s} {status}")
        conn.close()
        return

    if migrate:
        conn = get_db(config)
        init_db(conn)
        actions = migrate_db(conn)
        for action in actions:
            typer.echo(f"  {action}")
        typer.echo(f"Schema migrations applied ({len(actions)} change(s)).")
        conn.close()
        return

    typer.echo(ctx.get_help())


# --- Merchant defaults ---

merchants_app = typer.Typer(help="Per-merchant warranty and return defaults.")
app.add_typer(merchants_app, name="merchants")


@merchants_app.command("add")
def merchants_add(
    name: str = typer.Argument(..., help="Merchant name pattern, matched case-insensitively."),
    warranty_months: Optional[int] = typer.Option(None, "--warranty-months", "-w", min=0),
    return_days: Optional[int] = typer.Option(None, "--return-days", "-r", min=0),
):
    """Add or update a merchant's defaults."""
    from receiptsieve.config import load_config
    from receiptsieve.models import MerchantDefaults

    conn, store = _open_store(load_config())
    store.upsert_merchant_defaults(MerchantDefaults(name, warranty_months, return_days))
    typer.echo(f"Saved defaults for {name}.")
    conn.close()


@merchants_app.command("list")
def merchants_list():
    """List merchant defaults."""
    from receiptsieve.config import load_config

    conn, store = _open_store(load_config())
    items = store.list_merchant_defaults()
    if not items:
        typer.echo("No merchant defaults configured.")
    for item in items:
        warranty = "-" if item.default_warranty_months is None else f"{item.default_warranty_months} mo"
        returns = "-" if item.default_return_days is None else f"{item.default_return_days} d"
        typer.echo(f"  {item.merchant_name_pattern:30s} warranty {warranty:>6s}  returns {returns:>5s}")
    conn.close()


# --- Pipeline commands ---

@app.command()
def hint(
    subject: str = typer.Option("", "--subject", "-s", help="Email subject line."),
    sender: str = typer.Option("", "--sender", help='Sender, e.g. "Zara <noreply@zara.com>".'),
):
    """Show how a merchant hint is resolved for a subject and sender."""
    from receiptsieve.config import load_config
    from receiptsieve.stages.merchant import resolve_merchant_hint

    config = load_config()
    result = resolve_merchant_hint(subject, sender, recognizers=_recognizers(config))
    if result is None:
        typer.echo("No merchant hint.")
        raise typer.Exit(1)
    typer.echo(f"{result.name} (source: {result.source.value})")


@app.command()
def extract(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Saved .eml message."),
    merchant_hint: Optional[str] = typer.Option(None, "--hint", help="Trusted merchant name."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="AI model as provider:model. Default: from config/env."),
    show_context: bool = typer.Option(False, "--context", help="Print the pre-extraction hints too."),
):
    """Extract purchase data from one message and print it as JSON."""
    from receiptsieve.config import load_config
    from receiptsieve.gmail.client import load_eml
    from receiptsieve.stages.extract import build_context_hints, prepare_context

    config = load_config()
    message = load_eml(path)
    context = prepare_context(
        message,
        merchant_hint=merchant_hint,
        max_content_chars=config.ai.max_content_chars,
        recognizers=_recognizers(config),
    )
    if show_context:
        typer.echo(build_context_hints(context))

    orchestrator, model_name = _build_orchestrator(config, model)
    typer.echo(f"Extracting with model: {model_name}", err=True)
    outcome = orchestrator.extract(context)
    if not outcome.success:
        typer.echo(f"Extraction failed after {outcome.retries} retries: {outcome.error}", err=True)
        raise typer.Exit(1)

    typer.echo(json.dumps(outcome.data.model_dump(mode="json"), indent=2, ensure_ascii=False))


@app.command()
def sync(
    user: str = typer.Option(..., "--user", "-u", help="User id the purchases belong to."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="AI model as provider:model. Default: from config/env."),
    lookback_days: Optional[int] = typer.Option(None, "--days", help="Override gmail.lookback_days."),
):
    """Sync recent order emails from Gmail into purchases."""
    from receiptsieve.config import load_config
    from receiptsieve.gmail.auth import get_gmail_service
    from receiptsieve.gmail.client import GmailMailbox, order_search_query
    from receiptsieve.stages.materialize import PurchaseMaterializer
    from receiptsieve.sync import PurchaseSyncEngine

    config = load_config()
    conn, store = _open_store(config)

    typer.echo("Authenticating with Gmail...")
    mailbox = GmailMailbox(get_gmail_service(config))

    orchestrator, model_name = _build_orchestrator(config, model)
    materializer = PurchaseMaterializer(
        store,
        default_warranty_months=config.purchases.default_warranty_months,
        default_return_days=config.purchases.default_return_days,
        days_per_month=config.purchases.days_per_month,
    )
    engine = PurchaseSyncEngine(
        orchestrator,
        store,
        materializer,
        max_content_chars=config.ai.max_content_chars,
        recognizers=_recognizers(config),
    )

    query = order_search_query(lookback_days if lookback_days is not None else config.gmail.lookback_days)
    typer.echo(f"Searching: {query}")
    typer.echo(f"Extracting with model: {model_name}")

    def progress(i, outcome):
        status = outcome.result.value if outcome.result else "skipped"
        if not outcome.ok and outcome.error:
            status = f"{status} ({outcome.error})"
        typer.echo(f"  [{i}] {outcome.email_id}: {status}")

    report = engine.sync_mailbox(user, mailbox, query, config.gmail.max_results, progress_callback=progress)

    typer.echo(
        f"Sync complete: {report.synced} purchases created, {report.ignored} ignored, "
        f"{report.not_order} not orders, {report.failed} failed, {report.skipped} already processed."
    )
    for error in report.errors:
        typer.echo(f"  ERROR {error}", err=True)
    conn.close()


@app.command()
def expiry(
    user: str = typer.Option(..., "--user", "-u", help="User id to check."),
):
    """Create warranty and return-deadline reminders."""
    from receiptsieve.config import load_config
    from receiptsieve.stages.expiry import check_expiry_notifications

    config = load_config()
    conn, store = _open_store(config)
    created = check_expiry_notifications(
        store,
        user,
        warranty_days=config.notifications.warranty_expiring_days,
        return_days=config.notifications.return_deadline_days,
    )
    typer.echo(f"{created} notification(s) created.")
    conn.close()


@app.command()
def purchases(
    user: str = typer.Option(..., "--user", "-u", help="User id to list."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table."),
):
    """List stored purchases for a user."""
    from dataclasses import asdict

    from receiptsieve.config import load_config
    from receiptsieve.stages.amounts import format_currency

    conn, store = _open_store(load_config())
    items = store.list_purchases(user)

    if as_json:
        typer.echo(json.dumps([asdict(p) for p in items], indent=2, ensure_ascii=False))
    elif not items:
        typer.echo("No purchases found.")
    else:
        for p in items:
            price = format_currency(p.price, p.currency) if p.price is not None else "-"
            flag = " [review]" if p.needs_review else ""
            typer.echo(
                f"  #{p.id} {p.purchase_date}  {p.merchant or '-':20s} {p.item_name[:40]:40s} {price:>14s}"
                f"  returns {p.return_deadline or '-'}  warranty {p.warranty_expires_at or '-'}{flag}"
            )
    conn.close()
