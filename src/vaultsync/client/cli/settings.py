"""Settings commands for the vaultsync CLI.

Commands:
- settings: Show or update local settings
- reminders: Show or update server-side digest reminders
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import click
import httpx

from vaultsync.client.cli.config import load_settings, save_settings
from vaultsync.client.cli.runtime import build_client, fail, run_async
from vaultsync.client.errors import APIError, RenewalExpiredError
from vaultsync.client.keystore import KeyStoreError
from vaultsync.core.config import MAX_SYNC_INTERVAL, MIN_SYNC_INTERVAL, Settings

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def _show_settings(settings: Settings) -> None:
    click.echo(f"Endpoint:      {settings.endpoint}")
    click.echo(f"Sync interval: {settings.sync_interval_s}s")
    click.echo(f"Vault root:    {settings.vault_path}")
    click.echo(f"Base folder:   {settings.base_folder}")
    click.echo(f"Auto sync:     {'on' if settings.auto_sync else 'off'}")


@click.command("settings")
@click.option("--endpoint", default=None, help="Server URL.")
@click.option(
    "--interval",
    type=int,
    default=None,
    help=f"Seconds between syncs ({MIN_SYNC_INTERVAL}-{MAX_SYNC_INTERVAL}).",
)
@click.option("--vault-root", default=None, help="Root folder of the vault.")
@click.option("--base-folder", default=None, help="Folder inside the vault for notes.")
@click.option("--auto-sync/--no-auto-sync", default=None, help="Sync on a timer in 'run'.")
def settings_cmd(
    endpoint: str | None,
    interval: int | None,
    vault_root: str | None,
    base_folder: str | None,
    auto_sync: bool | None,
) -> None:
    """Show settings, or update the ones given as options."""
    current = load_settings()
    changes: dict[str, object] = {}

    if endpoint:
        changes["endpoint"] = endpoint.rstrip("/")
    if interval is not None:
        changes["sync_interval_s"] = interval
    if vault_root:
        changes["vault_root"] = str(Path(vault_root).expanduser())
    if base_folder:
        changes["base_folder"] = base_folder
    if auto_sync is not None:
        changes["auto_sync"] = auto_sync

    if changes:
        # replace() re-runs __post_init__, which clamps the interval
        updated = replace(current, **changes)
        if interval is not None and updated.sync_interval_s != interval:
            click.echo(f"Note: interval clamped to {updated.sync_interval_s}s")
        save_settings(updated)
        click.echo("Settings saved.\n")
        current = updated

    _show_settings(current)


@click.command()
@click.option("--enable/--disable", default=None, help="Turn digest reminders on or off.")
@click.option("--time", "send_time", type=click.IntRange(0, 23), default=None,
              help="Hour of day to send digests (0-23).")
@click.option("--timezone", default=None, help="IANA timezone, e.g. Europe/Paris.")
@click.option("--weekly-day", type=click.Choice(WEEKDAYS), default=None,
              help="Day for the weekly digest.")
@click.option("--monthly-day", type=click.IntRange(1, 28), default=None,
              help="Day of month for the monthly digest.")
def reminders(
    enable: bool | None,
    send_time: int | None,
    timezone: str | None,
    weekly_day: str | None,
    monthly_day: int | None,
) -> None:
    """Show or update the digest reminders stored on the server."""
    from vaultsync.client.api import ReminderSettings

    settings = load_settings()
    changes = {
        key: value
        for key, value in {
            "enabled": enable,
            "send_time": send_time,
            "timezone": timezone,
            "weekly_day": weekly_day,
            "monthly_day": monthly_day,
        }.items()
        if value is not None
    }

    async def _reminders() -> ReminderSettings:
        async with build_client(settings, notify=click.echo) as client:
            user_settings = await client.get_user_settings()
            current = user_settings.reminders or ReminderSettings()
            if not changes:
                return current
            updated = await client.update_user_settings(replace(current, **changes))
            return updated.reminders or replace(current, **changes)

    try:
        result = run_async(_reminders())
    except RenewalExpiredError:
        fail("Session expired. Run 'vaultsync connect' with a new token.")
    except KeyStoreError as e:
        fail(str(e))
    except (APIError, httpx.HTTPError) as e:
        fail(f"Could not reach the server: {e}")

    if changes:
        click.echo("Reminders updated.\n")
    click.echo(f"Enabled:     {'yes' if result.enabled else 'no'}")
    click.echo(f"Send time:   {result.send_time:02d}:00")
    click.echo(f"Timezone:    {result.timezone or '(server default)'}")
    click.echo(f"Weekly day:  {result.weekly_day}")
    click.echo(f"Monthly day: {result.monthly_day}")
