"""
CLI Commands for ledger maintenance.

The verify command is safe to run from cron; it only reads:

# Nightly cache check (exit code 1 when any account drifted)
0 2 * * * cd /app && flask loyalty verify
"""

import click
from flask.cli import with_appcontext

from ..services import LedgerService, LeaderboardService, SettingsService
from ..utils.exceptions import PointsLedgerError

ROLE_CHOICE = click.Choice(['customer', 'representative'])


@click.group('loyalty')
def loyalty_cli():
    """Loyalty points ledger commands."""
    pass


@loyalty_cli.command('seed-settings')
@with_appcontext
def seed_settings():
    """Store the default points-per-order settings that are missing."""
    inserted = SettingsService().seed_defaults()

    if not inserted:
        click.echo("All default settings already present")
        return

    for key, value in inserted.items():
        click.echo(f"  {key} = {value}")
    click.echo(f"Seeded {len(inserted)} setting(s)")


@loyalty_cli.command('verify')
@click.option('--role', type=ROLE_CHOICE, help='Only check one role')
@with_appcontext
def verify_ledger(role):
    """
    Check that every cached balance matches its ledger.

    Exits with status 1 when drift is found.
    """
    drift = LedgerService().reconcile(role)

    if not drift:
        click.echo("OK: all cached balances match the ledger")
        return

    click.echo(f"DRIFT: {len(drift)} account(s) disagree with the ledger")
    for entry in drift:
        click.echo(
            f"  {entry['role']}:{entry['account_id']} "
            f"cached={entry['cached']} expected={entry['expected']}"
        )
    raise SystemExit(1)


@loyalty_cli.command('rebuild')
@click.option('--account-id', required=True, help='Account to rebuild')
@click.option('--role', type=ROLE_CHOICE, required=True, help='Account role')
@with_appcontext
def rebuild_account(account_id, role):
    """Recompute one account's cached balance from its ledger."""
    try:
        account = LedgerService().rebuild_account(account_id, role)
    except PointsLedgerError as e:
        click.echo(f"Error: {e.message}")
        raise SystemExit(1)

    click.echo(
        f"Rebuilt {role}:{account.account_id} "
        f"balance={account.balance} earned={account.total_earned} redeemed={account.total_redeemed}"
    )


@loyalty_cli.command('leaderboard')
@click.option('--role', type=ROLE_CHOICE, default='customer', help='Role to rank')
@click.option('--limit', type=int, default=10, help='Number of entries')
@with_appcontext
def show_leaderboard(role, limit):
    """Print the top accounts for a role."""
    try:
        entries = LeaderboardService().leaderboard(role, limit=limit)
    except PointsLedgerError as e:
        click.echo(f"Error: {e.message}")
        raise SystemExit(1)

    if not entries:
        click.echo(f"No {role} accounts yet")
        return

    click.echo(f"Top {len(entries)} {role} accounts:")
    for entry in entries:
        click.echo(
            f"  {entry['rank_position']:>3}. {entry['display_name']:<30} "
            f"{entry['balance']:>8} pts  {entry['tier']}"
        )


def init_app(app):
    """Register loyalty commands with Flask app."""
    app.cli.add_command(loyalty_cli)
