"""CLI commands for rule administration and WBS confirmations."""

import asyncio
import datetime as dt
from typing import Optional

import click
from tabulate import tabulate

from app.business.rules.exceptions import ProgressError, RuleViolation
from app.main import lifespan
from app.observability.metrics import render_metrics
from app.schemas.confirmation import ConfirmationSummary, EntityType
from app.storage.db import create_all
from app.storage.seed import seed_demo_data


ENTITY_CHOICE = click.Choice([e.value for e in EntityType], case_sensitive=False)


def _run(coro_factory):
    """Run an async command body inside the application lifespan."""

    async def runner():
        async with lifespan(log_dir="") as app:
            return await coro_factory(app)

    try:
        return asyncio.run(runner())
    except RuleViolation as e:
        message = f"Rule {e.rule_number}: {e.message}"
        if e.hint:
            message += f"\nHint: {e.hint}"
        raise click.ClickException(message) from e
    except ProgressError as e:
        raise click.ClickException(str(e)) from e


def _echo_summary(summary: ConfirmationSummary) -> None:
    rows = [
        ["Entity", f"{summary.entity_type.value} {summary.entity_id} {summary.entity_code or ''}".strip()],
        ["Last confirmation", summary.last_confirmation_date or "-"],
        ["Lock date", summary.lock_date or "-"],
        ["Planned qty", summary.planned_qty],
        ["Actual qty", summary.actual_qty],
        ["Confirmed qty to date", summary.confirmed_qty_to_date],
        ["Variance", summary.variance],
    ]
    if summary.preview_date is not None:
        rows.append([f"Recorded qty on {summary.preview_date}", summary.preview_actual_qty])
    click.echo(tabulate(rows, tablefmt="grid"))


@click.group()
def cli():
    """Elina progress tracking administration."""


@cli.command("init-db")
def init_db():
    """Create all tables on the configured database."""

    async def body(app):
        await create_all()
        click.echo("✅ Tables created")

    _run(body)


@cli.command("seed-demo")
@click.option('--user', type=int, help='Acting user ID')
def seed_demo(user: Optional[int]):
    """Create a demo tenant with progress data and default rules."""

    async def body(app):
        tenant_id = await seed_demo_data()
        if tenant_id is None:
            click.echo("Demo data already exists")
            return
        created = await app.rule_admin.seed_defaults(tenant_id, user)
        click.echo(f"✅ Demo tenant {tenant_id} created with {len(created)} rules")

    _run(body)


@cli.command()
def metrics():
    """Print process metrics in Prometheus text format."""
    click.echo(render_metrics().decode("utf-8"))


# ==== RULE COMMANDS ==== #


@cli.group()
def rules():
    """Business rule catalog commands."""


@rules.command("list")
@click.option('--tenant', required=True, type=int, help='Tenant ID')
def list_rules(tenant: int):
    """List the tenant's configured rules."""

    async def body(app):
        configured = await app.rule_admin.list_rules(tenant)
        if not configured:
            click.echo(f"No rules configured for tenant {tenant}")
            return

        table_data = [
            [
                rule.id,
                rule.rule_number,
                rule.control_point,
                rule.applicability,
                rule.rule_value or "",
                "✅" if rule.active else "❌",
                rule.description or "",
            ]
            for rule in configured
        ]
        headers = ["ID", "Rule", "Control Point", "Applicable", "Value", "Active", "Description"]
        click.echo(tabulate(table_data, headers=headers, tablefmt="grid"))

    _run(body)


@rules.command()
@click.option('--tenant', required=True, type=int, help='Tenant ID')
@click.option('--user', type=int, help='Acting user ID')
@click.option('--path', type=click.Path(exists=True, dir_okay=False), help='Rule catalog YAML')
def seed(tenant: int, user: Optional[int], path: Optional[str]):
    """Seed the default rule catalog for a tenant."""

    async def body(app):
        created = await app.rule_admin.seed_defaults(tenant, user, path)
        click.echo(f"✅ Seeded {len(created)} rules for tenant {tenant}")

    _run(body)


@rules.command()
@click.option('--tenant', required=True, type=int, help='Tenant ID')
@click.option('--rule-id', required=True, type=int, help='Rule row ID')
@click.option('--user', type=int, help='Acting user ID')
def toggle(tenant: int, rule_id: int, user: Optional[int]):
    """Activate or deactivate a rule."""

    async def body(app):
        rule = await app.rule_admin.toggle_rule(tenant, user, rule_id)
        state = "active" if rule.active else "inactive"
        click.echo(f"✅ Rule {rule.rule_number} is now {state}")

    _run(body)


@rules.command("control-points")
@click.option('--tenant', required=True, type=int, help='Tenant ID')
def control_points(tenant: int):
    """List control points used by the tenant's rules."""

    async def body(app):
        for point in await app.rule_admin.control_points(tenant):
            click.echo(point)

    _run(body)


# ==== CONFIRMATION COMMANDS ==== #


@cli.group()
def confirmations():
    """WBS and task confirmation commands."""


@confirmations.command()
@click.option('--tenant', required=True, type=int, help='Tenant ID')
@click.option('--entity-id', required=True, type=int, help='WBS or task ID')
@click.option('--date', 'confirmation_date', required=True, type=click.DateTime(formats=["%Y-%m-%d"]))
@click.option('--entity-type', type=ENTITY_CHOICE, default="WBS", show_default=True)
@click.option('--user', type=int, help='Acting user ID')
@click.option('--remarks', help='Confirmation remarks')
def confirm(
    tenant: int,
    entity_id: int,
    confirmation_date: dt.datetime,
    entity_type: str,
    user: Optional[int],
    remarks: Optional[str],
):
    """Confirm progress for a date and advance the lock."""

    async def body(app):
        summary = await app.confirmations.confirm(
            tenant, user, entity_id, confirmation_date.date(), remarks,
            EntityType(entity_type.upper())
        )
        click.echo(f"✅ Confirmed {entity_type.upper()} {entity_id} for {confirmation_date.date()}")
        _echo_summary(summary)

    _run(body)


@confirmations.command()
@click.option('--tenant', required=True, type=int, help='Tenant ID')
@click.option('--confirmation-id', required=True, type=int, help='Confirmation ID')
@click.option('--user', type=int, help='Acting user ID')
def undo(tenant: int, confirmation_id: int, user: Optional[int]):
    """Undo a confirmation within the tenant's undo window."""

    async def body(app):
        summary = await app.confirmations.undo(tenant, user, confirmation_id)
        click.echo(f"✅ Undid confirmation {confirmation_id}")
        _echo_summary(summary)

    _run(body)


@confirmations.command()
@click.option('--tenant', required=True, type=int, help='Tenant ID')
@click.option('--entity-id', required=True, type=int, help='WBS or task ID')
@click.option('--entity-type', type=ENTITY_CHOICE, default="WBS", show_default=True)
@click.option('--preview-date', type=click.DateTime(formats=["%Y-%m-%d"]), help='Report recorded qty for a date')
def summary(tenant: int, entity_id: int, entity_type: str, preview_date: Optional[dt.datetime]):
    """Show lock state and quantities for an entity."""

    async def body(app):
        result = await app.confirmations.summary(
            tenant, entity_id,
            preview_date.date() if preview_date else None,
            EntityType(entity_type.upper())
        )
        _echo_summary(result)

    _run(body)


@confirmations.command()
@click.option('--tenant', required=True, type=int, help='Tenant ID')
@click.option('--entity-id', required=True, type=int, help='WBS or task ID')
@click.option('--entity-type', type=ENTITY_CHOICE, default="WBS", show_default=True)
def history(tenant: int, entity_id: int, entity_type: str):
    """List confirmations, newest date first."""

    async def body(app):
        records = await app.confirmations.history(tenant, entity_id, EntityType(entity_type.upper()))
        if not records:
            click.echo(f"No confirmations for {entity_type.upper()} {entity_id}")
            return

        table_data = [
            [
                record.id,
                record.confirmation_date,
                record.confirmed_qty if record.confirmed_qty is not None else "",
                record.confirmed_by or "",
                record.confirmed_on or "",
                record.remarks or "",
            ]
            for record in records
        ]
        headers = ["ID", "Date", "Confirmed Qty", "By", "On", "Remarks"]
        click.echo(tabulate(table_data, headers=headers, tablefmt="grid"))

    _run(body)


if __name__ == '__main__':
    cli()
