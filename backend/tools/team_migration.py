"""Operator CLI for the legacy → new project data migration.

Why:
    Support staff occasionally need to migrate (or resync) a user's team data
    outside the sign-in flow, e.g. after fixing legacy data or when the
    automatic migration reported a degraded run.

Usage example:

    python -m backend.tools.team_migration migrate OLD_UID NEW_UID
    python -m backend.tools.team_migration remigrate OLD_UID NEW_UID -c plans -c tags
    python -m backend.tools.team_migration lookup coach@example.com

Configuration comes from the environment (see `backend.migration.config`).
Every command prints its result as JSON and exits non-zero on failure.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Sequence

import click

from backend.migration.config import TEAM_SUBCOLLECTIONS
from backend.migration.remigration import ReMigrationProgress
from backend.migration.results import MigrationResult
from backend.migration.service import MigrationService, mask_email


logger = logging.getLogger("coachplan.tools.team_migration")


def _service(ctx: click.Context) -> MigrationService:
    """Service injected via `obj` (tests) or wired from the environment."""
    if ctx.obj is None:
        try:
            from backend.migration.wiring import build_migration_service
        except Exception as exc:
            raise click.ClickException(f"Failed to import migration wiring: {exc}")
        try:
            ctx.obj = build_migration_service()
        except Exception as exc:
            raise click.ClickException(f"Failed to wire stores: {exc}")
    return ctx.obj


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _finish(result: MigrationResult) -> None:
    _echo_json(result.as_dict())
    if not result.success:
        raise click.ClickException(result.error or "Migration failed")


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log debug output.")
def cli(verbose: bool) -> None:
    """Migrate team data from the legacy project into the new project."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("legacy_uid")
@click.argument("new_uid")
@click.pass_context
def migrate(ctx: click.Context, legacy_uid: str, new_uid: str) -> None:
    """Run the full migration of LEGACY_UID into the account NEW_UID."""
    service = _service(ctx)
    click.echo(f"Migrating {legacy_uid} -> {new_uid}", err=True)
    _finish(service.migrate_user_data(legacy_uid, new_uid))


@cli.command()
@click.argument("legacy_uid")
@click.argument("new_uid")
@click.option(
    "-c",
    "--collection",
    "collections",
    multiple=True,
    type=click.Choice(TEAM_SUBCOLLECTIONS),
    help="Subcollection to re-copy (repeatable). Defaults to all.",
)
@click.pass_context
def remigrate(ctx: click.Context, legacy_uid: str, new_uid: str, collections: Sequence[str]) -> None:
    """Re-copy team subcollections for an already migrated user (merge writes)."""
    service = _service(ctx)
    names = list(collections) or list(TEAM_SUBCOLLECTIONS)

    def _progress(event: ReMigrationProgress) -> None:
        click.echo(f"  [{event.current}/{event.total}] {event.step}", err=True)

    _finish(service.remigrate_user_data(legacy_uid, new_uid, names, on_progress=_progress))


@cli.command()
@click.argument("email")
@click.pass_context
def lookup(ctx: click.Context, email: str) -> None:
    """Print the legacy uid registered for EMAIL."""
    service = _service(ctx)
    legacy_uid = service.find_legacy_uid_by_email(email)
    _echo_json({"email": email, "legacyUid": legacy_uid})
    if legacy_uid is None:
        logger.info("No legacy user for %s", mask_email(email))
        raise click.ClickException("No legacy user found for this email")


if __name__ == "__main__":  # pragma: no cover - manual entry
    cli()
