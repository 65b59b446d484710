"""Command line interface for synpick."""

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import nest_asyncio
from InquirerPy import inquirer
from InquirerPy.base.control import Choice
from rich import box
from rich.console import Console
from rich.table import Table

from . import __version__
from .cache import ModelCache
from .catalog import CatalogFetcher
from .config import (
    AppConfig,
    get_cache_path,
    get_config_dir,
    get_config_path,
    load_environment,
    mask_secret,
    resolve_api_key,
)
from .constants import (
    ENV_AUTH_TOKEN,
    ENV_BASE_URL,
    ENV_DEFAULT_MODEL,
    ENV_DISABLE_TRAFFIC,
    ENV_MAX_TOKEN_SIZE,
    ENV_SYSTEM_PROMPT,
    ENV_THINKING_MODEL,
    ENV_TIER_MODELS,
    OVERRIDE_TIERS,
)
from .coordinator import ModelCoordinator
from .errors import ConfigError, SynpickError
from .launcher import ProcessLauncher
from .logging_setup import setup_logging
from .models import ModelRecord
from .tool_manager import ExternalToolManager

logger = logging.getLogger(__name__)
console = Console()

LAUNCH_ENV_KEYS = (
    ENV_BASE_URL,
    ENV_AUTH_TOKEN,
    ENV_DEFAULT_MODEL,
    *ENV_TIER_MODELS.values(),
    ENV_THINKING_MODEL,
    ENV_MAX_TOKEN_SIZE,
    ENV_SYSTEM_PROMPT,
    ENV_DISABLE_TRAFFIC,
)


class Services:
    """The collaborators one CLI invocation works with."""

    def __init__(self, config: AppConfig, config_dir: Path):
        self.config = config
        self.config_dir = config_dir
        self.config_path = get_config_path(config_dir)
        self.api_key = resolve_api_key(config)
        self.coordinator = ModelCoordinator(
            cache=ModelCache.for_hours(get_cache_path(config_dir), config.cache_duration_hours),
            fetcher=CatalogFetcher(),
            api_key=self.api_key,
            models_api_url=config.models_api_url,
        )
        self.launcher = ProcessLauncher(
            claude_path=config.claude_path,
            base_url=config.anthropic_base_url,
        )
        self.tool_manager = ExternalToolManager(self.launcher)

    def save_config(self) -> None:
        self.config.save_to_file(self.config_path)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="synpick",
        description="Pick a Synthetic model and launch Claude Code with it",
        epilog="Unrecognised options (e.g. --dangerously-skip-permissions) are passed through to Claude Code.",
        allow_abbrev=False,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-m", "--model", help="Use specific model (skip selection)")
    parser.add_argument("-t", "--thinking-model", help="Use specific thinking model for this launch")
    parser.add_argument(
        "--tier",
        action="append",
        default=[],
        metavar="TIER=MODEL",
        help=f"Override a tier model for this launch ({', '.join(OVERRIDE_TIERS)})",
    )
    parser.add_argument("--select", action="store_true", help="Choose the default model interactively and save it")
    parser.add_argument("--select-thinking", action="store_true", help="Choose the thinking model interactively and save it")
    parser.add_argument("--list-models", action="store_true", help="List available models and exit")
    parser.add_argument("--search", metavar="QUERY", help="Search available models and exit")
    parser.add_argument("--refresh", action="store_true", help="Force refresh of model cache")
    parser.add_argument("--cache-info", action="store_true", help="Show model cache information")
    parser.add_argument("--clear-cache", action="store_true", help="Delete the model cache")
    parser.add_argument("--show-config", action="store_true", help="Show current configuration")
    parser.add_argument("--set-config", metavar="KEY=VALUE", help="Set a configuration value")
    parser.add_argument("--reset-config", action="store_true", help="Reset configuration to defaults")
    parser.add_argument("--doctor", action="store_true", help="Check Claude Code installation and updates")
    parser.add_argument("--update", action="store_true", help="Update Claude Code to the latest version")
    parser.add_argument("--dry-run", action="store_true", help="Show launch environment without starting Claude Code")
    parser.add_argument("--config-dir", type=Path, help="Configuration directory (default: ~/.config/synpick)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress non-error output")
    # Additional arguments are passed through to Claude Code
    parser.add_argument("claude_args", nargs=argparse.REMAINDER, help="Arguments passed to Claude Code")
    args, unknown = parser.parse_known_args(argv)
    # unknown options belong to Claude Code
    args.claude_args = unknown + args.claude_args
    return args


def parse_tier_overrides(values: Sequence[str]) -> Dict[str, str]:
    overrides: Dict[str, str] = {}
    for value in values:
        tier, sep, model = value.partition("=")
        tier = tier.strip()
        if not sep or not model.strip():
            raise ConfigError(f"Invalid --tier value {value!r}. Use TIER=MODEL")
        if tier not in OVERRIDE_TIERS:
            raise ConfigError(f"Unknown tier '{tier}'. Choose from: {', '.join(OVERRIDE_TIERS)}")
        overrides[tier] = model.strip()
    return overrides


def format_context(record: ModelRecord) -> str:
    if record.context_length is None:
        return "-"
    if record.context_length >= 1000:
        return f"{record.context_length // 1000}K"
    return str(record.context_length)


def render_models(records: Sequence[ModelRecord], title: str, current: Optional[str] = None) -> None:
    table = Table(title=title, box=box.MINIMAL_HEAVY_HEAD)
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Provider", style="magenta")
    table.add_column("Context", style="yellow", justify="right")
    table.add_column("Quantization")
    table.add_column("Current", style="bold green")

    for record in records:
        table.add_row(
            record.id,
            record.display_name or "",
            record.provider or "",
            format_context(record),
            record.quantization or "",
            "✓" if record.id == current else "",
        )
    console.print(table)


def select_model_interactive(
    models: Sequence[ModelRecord],
    current: Optional[str] = None,
    message: str = "Select model:",
    allow_none: bool = False,
) -> Optional[ModelRecord]:
    """Fuzzy-pick a model. Returns None when "(none)" is picked."""
    choices: List[Choice] = []
    if allow_none:
        choices.append(Choice(value=None, name="(none)"))
    for model in models:
        marker = " (current)" if model.id == current else ""
        choices.append(Choice(value=model.id, name=f"{model.label} ({model.id}){marker}"))

    try:
        selected_id = inquirer.fuzzy(
            message=message,
            choices=choices,
            max_height="70%",
        ).execute()
    except KeyboardInterrupt:
        console.print("\n[bold yellow]Selection cancelled.[/bold yellow]")
        sys.exit(0)

    for model in models:
        if model.id == selected_id:
            return model
    return None


async def list_models_command(services: Services, refresh: bool) -> int:
    with console.status("[bold green]Fetching available models...[/bold green]"):
        models = await services.coordinator.fetch_models(refresh)
    if not models:
        console.print("[bold red]No models found.[/bold red]")
        return 1
    for provider, records in services.coordinator.categorize(models).items():
        render_models(records, f"{provider} ({len(records)})", services.config.selected_model)
    return 0


async def search_command(services: Services, query: str, refresh: bool) -> int:
    with console.status("[bold green]Fetching available models...[/bold green]"):
        models = await services.coordinator.fetch_models(refresh)
    matches = await services.coordinator.search(query, models)
    if not matches:
        console.print(f"[yellow]No models match '{query}'.[/yellow]")
        return 1
    render_models(matches, f"Models matching '{query}'", services.config.selected_model)
    return 0


def cache_info_command(services: Services) -> int:
    info = services.coordinator.cache_info()
    table = Table(title="Model Cache", box=box.MINIMAL_HEAVY_HEAD)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Path", str(info.path))
    table.add_row("Exists", "✓" if info.exists else "✗")
    if info.exists:
        table.add_row("Modified", info.modified_at.strftime("%Y-%m-%d %H:%M:%S %Z") if info.modified_at else "-")
        table.add_row("Size", f"{(info.size_bytes or 0) / 1024:.1f} KB")
        table.add_row("Models", str(info.record_count) if info.record_count is not None else "unreadable")
        table.add_row("Valid", "✓" if info.is_valid else "✗ (stale or corrupt)")
    table.add_row("Duration", f"{services.config.cache_duration_hours} hours")
    console.print(table)
    return 0


def clear_cache_command(services: Services) -> int:
    if services.coordinator.clear_cache():
        console.print("[bold green]Model cache cleared.[/bold green]")
        return 0
    console.print("[bold red]Error:[/bold red] Could not clear model cache.")
    return 1


def show_config_command(services: Services) -> int:
    table = Table(title=f"Configuration ({services.config_path})", box=box.MINIMAL_HEAVY_HEAD)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in services.config.public_dict().items():
        if isinstance(value, dict):
            value = ", ".join(f"{k}={v}" for k, v in sorted(value.items())) or "-"
        elif isinstance(value, list):
            value = " ".join(value) or "-"
        table.add_row(key, str(value) if value != "" else "-")
    console.print(table)
    return 0


def set_config_command(services: Services, assignment: str) -> int:
    key, sep, value = assignment.partition("=")
    if not sep:
        raise ConfigError(f"Invalid --set-config value {assignment!r}. Use KEY=VALUE")
    services.config.set_value(key.strip(), value.strip())
    services.save_config()
    shown = mask_secret(value.strip()) if key.strip() == "api_key" else value.strip()
    console.print(f"[bold green]✓ {key.strip()} = {shown}[/bold green]")
    return 0


def reset_config_command(services: Services) -> int:
    services.config = AppConfig()
    services.save_config()
    console.print("[bold green]Configuration reset to defaults.[/bold green]")
    return 0


async def doctor_command(services: Services) -> int:
    manager = services.tool_manager
    with console.status("[bold green]Checking Claude Code...[/bold green]"):
        installed = await manager.is_installed()
        status = await manager.check_for_update() if installed else None

    table = Table(title="synpick doctor", box=box.MINIMAL_HEAVY_HEAD)
    table.add_column("Check", style="cyan")
    table.add_column("Result", style="green")
    table.add_row("Config", str(services.config_path))
    table.add_row("API key", "✓ configured" if services.api_key else "✗ missing")
    table.add_row("Claude Code", f"✓ {services.launcher.claude_path}" if installed else "✗ not found")
    if status is not None:
        table.add_row("Installed version", status.current_version or "unknown")
        table.add_row("Latest version", status.latest_version or "unknown")
        table.add_row("Update available", "yes (run --update)" if status.update_available else "no")
    console.print(table)
    return 0 if installed and services.api_key else 1


async def update_command(services: Services) -> int:
    with console.status("[bold green]Updating Claude Code...[/bold green]"):
        updated = await services.tool_manager.update()
    if not updated:
        console.print("[bold red]Error:[/bold red] Claude Code update failed.")
        return 1
    version = await services.tool_manager.get_current_version()
    console.print(f"[bold green]✓ Claude Code updated[/bold green] ({version or 'unknown version'})")
    return 0


async def choose_thinking_model(services: Services, refresh: bool) -> int:
    with console.status("[bold green]Fetching available models...[/bold green]"):
        models = await services.coordinator.fetch_models(refresh)
    if not models:
        console.print("[bold red]Error:[/bold red] No models found.")
        return 1
    selected = select_model_interactive(
        models, services.config.selected_thinking_model, "Select thinking model:", allow_none=True
    )
    services.config.selected_thinking_model = selected.id if selected else ""
    services.save_config()
    console.print(f"[bold green]Thinking model:[/bold green] {services.config.selected_thinking_model or 'none'}")
    return 0


async def resolve_default_model(services: Services, args: argparse.Namespace) -> Optional[str]:
    """The model to launch with: --model, else the saved model, else an interactive pick."""
    if args.model:
        return args.model
    if services.config.selected_model and not args.select:
        return services.config.selected_model

    with console.status("[bold green]Fetching available models...[/bold green]"):
        models = await services.coordinator.fetch_models(args.refresh)
    if not models:
        console.print("[bold red]Error:[/bold red] No models found.")
        console.print("Please check your API key and network connection.")
        return None

    selected = select_model_interactive(models, services.config.selected_model)
    if selected is None:
        return None
    services.config.selected_model = selected.id
    services.config.first_run_completed = True
    services.save_config()
    return selected.id


def print_launch_environment(env: Dict[str, str], command: List[str]) -> None:
    table = Table(title="Launch environment", box=box.MINIMAL_HEAVY_HEAD)
    table.add_column("Variable", style="cyan")
    table.add_column("Value", style="green")
    for key in LAUNCH_ENV_KEYS:
        if key in env:
            value = mask_secret(env[key]) if key == ENV_AUTH_TOKEN else env[key]
            table.add_row(key, value)
    console.print(table)
    console.print(f"[bold]Would execute:[/bold] {' '.join(command)}")


async def wait_for_exit(process: asyncio.subprocess.Process) -> int:
    """Wait for Claude Code to exit; Ctrl-C belongs to the child meanwhile."""
    loop = asyncio.get_running_loop()
    handled = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, lambda: None)
        handled = True
    try:
        code = await process.wait()
    finally:
        if handled:
            loop.remove_signal_handler(signal.SIGINT)
    if code < 0:
        # killed by signal -N; report it the way a shell does
        logger.debug("Claude Code terminated by signal %d", -code)
        return 128 - code
    return code


async def launch_command(services: Services, args: argparse.Namespace) -> int:
    config = services.config
    if args.select_thinking:
        code = await choose_thinking_model(services, args.refresh)
        if code:
            return code

    model_id = await resolve_default_model(services, args)
    if not model_id:
        return 1

    tiers = config.tier_selection()
    for tier, tier_model in parse_tier_overrides(args.tier).items():
        setattr(tiers, tier, tier_model)
    tiers.default = model_id
    if args.thinking_model:
        tiers.thinking = args.thinking_model

    if not services.api_key:
        console.print("[bold yellow]Warning:[/bold yellow] No API key configured; Claude Code will not be able to authenticate.")

    claude_args = list(config.default_args) + [a for a in args.claude_args if a != "--"]
    launch_kwargs = dict(
        tiers=tiers,
        max_token_size=config.max_token_size,
        api_key=services.api_key or None,
        system_prompt=config.system_prompt or None,
    )

    if args.dry_run:
        env = services.launcher.build_environment(**launch_kwargs)
        print_launch_environment(env, [services.launcher.claude_path] + claude_args)
        return 0

    if not args.quiet:
        console.print(f"[bold green]Launching Claude Code with model:[/bold green] {model_id}")
    outcome = await services.launcher.launch(additional_args=claude_args, **launch_kwargs)
    if not outcome.success:
        console.print(f"[bold red]Error:[/bold red] Failed to launch Claude Code: {outcome.error}")
        console.print("Please ensure Claude Code is installed and in your PATH (see --doctor).")
        return 1
    return await wait_for_exit(outcome.process)


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main function."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose, quiet=args.quiet)
    load_environment()

    config_dir = get_config_dir(args.config_dir)
    services = Services(AppConfig.load_from_file(get_config_path(config_dir)), config_dir)

    if args.verbose:
        console.print(f"[bold]Config path:[/bold] {services.config_path}")
        console.print(f"[bold]Cache duration:[/bold] {services.config.cache_duration_hours} hours")

    try:
        if args.show_config:
            return show_config_command(services)
        if args.set_config:
            return set_config_command(services, args.set_config)
        if args.reset_config:
            return reset_config_command(services)
        if args.cache_info:
            return cache_info_command(services)
        if args.clear_cache:
            return clear_cache_command(services)
        if args.doctor:
            return await doctor_command(services)
        if args.update:
            return await update_command(services)
        if args.list_models:
            return await list_models_command(services, args.refresh)
        if args.search is not None:
            return await search_command(services, args.search, args.refresh)
        return await launch_command(services, args)
    except SynpickError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1


def run() -> None:
    """Console script entry point."""
    # allow running from an environment that already has a loop (e.g. notebooks)
    nest_asyncio.apply()
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        console.print("\n[bold yellow]Operation cancelled by user.[/bold yellow]")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    run()
