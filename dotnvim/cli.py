"""Command-line interface for dotnvim."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable, Sequence

from rich.markup import escape
from rich.table import Table

from . import __version__
from .commands import Command, CommandResult, run_command
from .components import COMPONENT_SPECS, SKIP_GROUP_HELP, SKIP_GROUPS
from .config import DotnvimConfig
from .errors import ComponentFailure, StateError, UnsupportedPlatformError
from .installers import Session, run_installers
from .state import StateStore, Status
from .utils import console, detect_platform, setup_logging

logger = logging.getLogger(__name__)

_STATUS_STYLES = {
    Status.INSTALLED: "green",
    Status.NOTINSTALLED: "red",
    Status.NOTCHECKEDYET: "yellow",
}


def create_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog="dotnvim",
        description="dotnvim - Idempotent Neovim configuration installer",
        epilog=(
            "Examples:\n"
            "  dotnvim                  # Full installation\n"
            "  dotnvim --skip-fonts     # Install without fonts\n"
            "  dotnvim --show-state     # Check installation status\n"
            "  dotnvim --reset-state    # Reset state for fresh install"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )
    for group in SKIP_GROUPS:
        parser.add_argument(
            f"--skip-{group}",
            dest="skip",
            action="append_const",
            const=group,
            help=SKIP_GROUP_HELP.get(group),
        )
    parser.add_argument(
        "--show-state",
        action="store_true",
        help="Show current installation state and exit",
    )
    parser.add_argument(
        "--reset-state",
        action="store_true",
        help="Reset all installation states and exit",
    )
    parser.add_argument(
        "--verify",
        action="store_true",
        help="Re-check components recorded as installed and repair missing ones",
    )
    parser.add_argument(
        "--config-file",
        type=str,
        help="Path to a dotnvim settings file",
    )
    parser.add_argument(
        "--source-dir",
        type=str,
        help="Directory holding the Neovim configuration to install",
    )
    parser.add_argument(
        "--state-file",
        type=str,
        help="Path to the installation state file",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"dotnvim {__version__}",
    )
    return parser


def show_state(store: StateStore) -> None:
    """Print the persisted state of every component."""
    table = Table(title="Current installation state")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    for component, status in store.summary():
        style = _STATUS_STYLES[status]
        table.add_row(component, f"[{style}]{status.value}[/{style}]")
    console.print(table)


def print_next_steps(skipped: set[str]) -> None:
    """Print what to do after installation."""
    console.print("\n[green]Next steps:[/green]")
    console.print("1. Open Neovim: [yellow]nvim[/yellow]")
    if "plugins" in skipped:
        console.print("2. Run [yellow]:Lazy sync[/yellow] to install plugins")
    else:
        console.print("2. Wait for plugins to install automatically")
    console.print("3. Run [yellow]:checkhealth[/yellow] to verify setup")
    if "tmux" not in skipped:
        console.print("4. Start tmux: [yellow]tmux[/yellow] (config installed)")
    console.print("\n[green]Happy coding! 🎉[/green]")
    console.print(
        "\n[blue]💡 Tip: Run 'dotnvim --show-state' to check installation status anytime[/blue]",
    )


def run(
    argv: Sequence[str] | None = None,
    *,
    config: DotnvimConfig | None = None,
    runner: Callable[[Command], CommandResult] = run_command,
    system: str | None = None,
    machine: str | None = None,
) -> int:
    """Run the installer and return the process exit code."""
    parser = create_parser()
    try:
        args, unknown = parser.parse_known_args(argv)
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 1
    if unknown:
        console.print(f"Unknown option: {unknown[0]}")
        console.print("Use --help for usage information")
        return 1

    setup_logging(args.verbose)
    skipped = set(args.skip or ())

    if config is None:
        config = DotnvimConfig.load_from_file(
            args.config_file,
            source_dir=args.source_dir,
            state_file=args.state_file,
        )
    store = StateStore(config.state_file)

    try:
        store.init()
        if args.show_state:
            show_state(store)
            return 0
        if args.reset_state:
            store.reset_all()
            console.print("All states reset to 'notcheckedyet'")
            return 0

        platform = detect_platform(system, machine)
        logger.debug("Detected platform %s/%s", platform.os_family, platform.arch)
        session = Session.with_skip_groups(
            config,
            platform,
            store,
            skipped,
            verify_installed=args.verify,
            runner=runner,
        )

        console.print("🚀 [bold]Installing Neovim Configuration (Idempotent Mode)...[/bold]")
        console.print("\n[yellow]Checking installation state...[/yellow]")
        try:
            run_installers(session)
        except ComponentFailure as e:
            label = COMPONENT_SPECS[e.component].display_name
            console.print(
                f"\n❌ [bold red]{label} is required, aborting installation[/bold red]",
            )
            show_state(store)
            return 1

        console.print("\n[green]✅ Installation process complete![/green]")
        show_state(store)
        print_next_steps(skipped)
        return 0

    except UnsupportedPlatformError as e:
        console.print(f"❌ [bold red]{escape(str(e))}[/bold red]")
        return 1
    except StateError as e:
        console.print(f"❌ [bold red]State error: {escape(str(e))}[/bold red]")
        console.print(f"Fix or remove {store.path} and run again")
        return 1


def main() -> None:
    """Main function to parse arguments and execute commands."""
    sys.exit(run())


if __name__ == "__main__":
    main()
