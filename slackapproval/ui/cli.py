"""Main CLI entry point - clean subcommand architecture."""

import json
import sys
from typing import Optional

import typer

from slackapproval.core.configs import get_hook_settings
from slackapproval.daemon.client import DaemonClient, get_default_paths, get_running_daemon_pid
from slackapproval.daemon.protocol import MALFORMED_REPLY
from slackapproval.modes.hook_mode import HookMode, run_notifier
from slackapproval.ui.output import UIManager
from slackapproval.utils.durations import parse_duration

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Slack approval - route agent permission requests to Slack.",
)


# ============================================================================
# Hook commands - invoked by the agent, stdout carries the reply line
# ============================================================================

@app.command()
def hook(
    delay: Optional[str] = typer.Option(
        None, "--delay", help="Wait before notifying Slack (e.g. 30s, 1m, 0)"
    ),
    notify_immediately_on_lock: Optional[bool] = typer.Option(
        None,
        "--notify-immediately-on-lock/--no-notify-immediately-on-lock",
        help="Skip the delay as soon as the screen locks",
    ),
    test: bool = typer.Option(False, "--test", help="Send a test notification"),
) -> None:
    """
    Handle one permission request read from stdin.

    Example (hook command): slackapproval hook --delay 1m
    """
    try:
        settings = get_hook_settings()
        if delay is not None:
            settings.delay = parse_duration(delay)
        if notify_immediately_on_lock is not None:
            settings.notify_immediately_on_lock = notify_immediately_on_lock

        mode = HookMode(settings=settings)
        if test:
            exit_code = mode.send_test_notification()
        else:
            exit_code = mode.run(sys.stdin.read())
    except Exception as e:
        # On error, deny by default for safety
        typer.echo(f"Hook error: {e}", err=True)
        typer.echo(json.dumps(MALFORMED_REPLY))
        exit_code = 1

    raise typer.Exit(exit_code)


@app.command(hidden=True)
def notify(
    request_json: str = typer.Argument(..., help="Question request as JSON"),
) -> None:
    """Forward a question to the daemon (spawned detached by the hook)."""
    raise typer.Exit(run_notifier(request_json))


# ============================================================================
# Operator commands
# ============================================================================

@app.command()
def server(
    daemonize: bool = typer.Option(False, "--daemonize", help="Fork to background"),
) -> None:
    """
    Run the approval daemon in the foreground (or daemonized).

    Performance: Lazy import so hook invocations never load the Slack SDK.
    """
    from slackapproval.daemon.server import run_daemon
    run_daemon(daemonize=daemonize)


@app.command()
def status() -> None:
    """Show whether the daemon is running."""
    socket_path, pid_path, log_path = get_default_paths()
    pid = get_running_daemon_pid(pid_path, socket_path)
    reachable = pid is not None and DaemonClient(socket_path, pid_path).can_connect()

    UIManager().daemon_status(pid, reachable, socket_path, log_path)
    if not reachable:
        raise typer.Exit(1)


@app.command()
def stop() -> None:
    """Stop the running daemon."""
    ui = UIManager()
    if DaemonClient().stop_daemon():
        ui.success("Shutdown requested")
    else:
        ui.warning("Daemon is not running")


@app.command()
def config(
    action: str = typer.Argument(..., help="Action: init, show, or edit"),
) -> None:
    """
    Manage Slack and hook configuration.

    Actions:
        init - Interactive configuration wizard
        show - Display current configuration (tokens masked)
        edit - Open config file in $EDITOR

    Performance: Lazy import config_commands to avoid loading Rich in hooks.
    """
    from slackapproval.ui.config_commands import handle_config
    handle_config(action)


def run() -> None:
    """Entry point for console script mapping."""
    app()


if __name__ == "__main__":
    run()
