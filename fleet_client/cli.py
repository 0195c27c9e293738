"""
Operator CLI for the build scheduler.

Talks to the scheduler's HTTP API to inspect builds, trigger polling,
request or cancel builds and manage target branches and maps.
"""

import json
import os
import sys
from typing import NoReturn

import click

from . import client


def get_server_url() -> str:
    """
    Get the scheduler URL from environment variable or use default.

    Environment variables:
    - FLEET_SERVER_URL: Custom server URL
    """
    return os.environ.get("FLEET_SERVER_URL", client.DEFAULT_SERVER_URL)


def fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.group()
@click.option("--server", default=None, help="Scheduler URL (default: FLEET_SERVER_URL)")
@click.pass_context
def cli(ctx: click.Context, server: str | None):
    """Fleet - control the target build scheduler."""
    ctx.ensure_object(dict)
    ctx.obj["server"] = server or get_server_url()


@cli.command("status")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
def status(ctx: click.Context, json_output: bool):
    """Show running builds and queued requests."""
    try:
        state = client.get_status(ctx.obj["server"])
    except RuntimeError as e:
        fail(str(e))

    if json_output:
        click.echo(json.dumps(state, indent=2))
        return

    click.echo(
        f"Builds: {len(state['active'])}/{state['max_jobs']} running, "
        f"{len(state['queued'])} queued"
        + ("" if state.get("polling", True) else " (polling stopped)")
    )
    for job in state["active"]:
        click.echo(f"  running  {job['target_id']:<20} since {job['started_at']}")
    for request in state["queued"]:
        click.echo(f"  queued   {request['target_id']:<20} since {request['queued_at']}")


@cli.command("run")
@click.pass_context
def run(ctx: click.Context):
    """Run one polling cycle now."""
    try:
        submitted = client.trigger_run(ctx.obj["server"])
    except RuntimeError as e:
        fail(str(e))

    if submitted:
        click.echo(f"✓ Submitted: {', '.join(submitted)}")
    else:
        click.echo("Nothing to build.")


@cli.command("build")
@click.argument("target")
@click.option("--fetch", "fetch_repo", is_flag=True, help="Fetch before compiling")
@click.option("--skip-cdn", is_flag=True, help="Skip the CDN publish")
@click.option("--skip-notifier", is_flag=True, help="Do not report the outcome")
@click.option("--map-switch", default=None, help="Map switch forwarded to the report")
@click.pass_context
def build(
    ctx: click.Context,
    target: str,
    fetch_repo: bool,
    skip_cdn: bool,
    skip_notifier: bool,
    map_switch: str | None,
):
    """Request a build of TARGET."""
    try:
        outcome = client.request_build(
            target,
            ctx.obj["server"],
            fetch_repo=fetch_repo,
            skip_cdn=skip_cdn,
            skip_notifier=skip_notifier,
            map_switch=map_switch,
        )
    except RuntimeError as e:
        fail(str(e))

    messages = {
        "started": f"✓ Build started for {target}",
        "queued": f"✓ {target} is building, request queued",
        "dropped": f"{target} is building and already queued, request dropped",
    }
    click.echo(messages.get(outcome, f"{target}: {outcome}"))


@cli.command("cancel")
@click.argument("target")
@click.pass_context
def cancel(ctx: click.Context, target: str):
    """Cancel the running build of TARGET."""
    try:
        client.cancel_build(target, ctx.obj["server"])
    except RuntimeError as e:
        fail(str(e))
    click.echo(f"✓ Cancelling build for {target}")


@cli.command("branch")
@click.argument("target")
@click.argument("name", required=False)
@click.pass_context
def branch(ctx: click.Context, target: str, name: str | None):
    """Show the branch of TARGET, or switch it to NAME."""
    try:
        if name is None:
            click.echo(client.get_branch(target, ctx.obj["server"]))
            return
        client.switch_branch(target, name, ctx.obj["server"])
    except RuntimeError as e:
        fail(str(e))
    click.echo(f"✓ {target} switched to {name}")


@cli.command("map")
@click.argument("target")
@click.argument("name")
@click.option("--build", "build_now", is_flag=True, help="Build right away")
@click.pass_context
def map_override(ctx: click.Context, target: str, name: str, build_now: bool):
    """Set the next map of TARGET to NAME."""
    try:
        result = client.set_map(target, name, build=build_now, server_url=ctx.obj["server"])
    except RuntimeError as e:
        fail(str(e))

    click.echo(f"✓ Map override for {target} set to {result['map']}")
    if "outcome" in result:
        click.echo(f"  Build: {result['outcome']}")


def main() -> None:
    cli(obj={})
