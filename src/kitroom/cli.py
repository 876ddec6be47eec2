import argparse
import asyncio
import json
from pathlib import Path
import sys

from loguru import logger
from rich import print_json
from rich.console import Console
from rich.table import Table

from .core.config import KitroomConfig
from .core.grammar import interpret_many
from .core.inventory import InventoryRow, InventoryView
from .core.session import TurnResult, VoiceSession
from .core.store import MemoryInventoryStore
from .integrations.speech import ConsoleSpeaker


def resource_path(relative_path: str) -> Path:
    """Return the absolute path of a file shipped at the project root."""
    return Path(__file__).resolve().parents[2] / relative_path


DEFAULT_CONFIG = resource_path("configs/kitroom_config.yaml")
DEFAULT_INVENTORY = "inventory.json"

EXIT_WORDS = frozenset({"quit", "exit", "bye"})


def load_config(config_path: str | Path) -> KitroomConfig:
    """
    Load the configuration, falling back to defaults when the file is missing.

    Parameters:
        config_path (str | Path): Path to the configuration YAML file.
    """
    path = Path(config_path)
    if not path.exists():
        logger.info("No config at {}, using defaults", path)
        return KitroomConfig()
    return KitroomConfig.from_yaml(path)


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)


def inventory_table(rows: list[InventoryRow], low_stock_threshold: int = 1) -> Table:
    table = Table(title="Inventory")
    table.add_column("Player")
    table.add_column("Edition")
    table.add_column("Size", justify="right")
    table.add_column("On hand", justify="right")
    table.add_column("Due LVA", justify="right")
    for row in rows:
        on_hand = str(row.qty_inventory)
        if row.qty_inventory <= low_stock_threshold:
            on_hand = f"[bold red]{on_hand}[/bold red]"
        table.add_row(row.player_name, row.edition.value, row.size, on_hand, str(row.qty_due_lva))
    return table


def _print_turn(console: Console, turn: TurnResult | None) -> None:
    if turn is None:
        return
    for result in turn.results:
        status = "[green]ok[/green]" if result.success else f"[red]{result.error}[/red]"
        console.print(f"  {result.command.type.value}: {status}")
        for warning in result.warnings:
            console.print(f"  [yellow]warning:[/yellow] {warning}")


async def _repl(session: VoiceSession, console: Console, low_stock_threshold: int) -> None:
    console.print("[bold]Type a command, 'table' to show inventory, or 'quit' to exit.[/bold]")
    while True:
        try:
            text = await asyncio.to_thread(console.input, "[bold magenta]> [/bold magenta]")
        except EOFError:
            break
        text = text.strip()
        if not text:
            continue
        if text.lower() in EXIT_WORDS:
            break
        if text.lower() == "table":
            console.print(inventory_table(session.view.snapshot(), low_stock_threshold))
            continue
        turn = await session.submit_transcript(text)
        _print_turn(console, turn)


def run(config_path: str | Path = DEFAULT_CONFIG, inventory_path: str | None = None) -> None:
    """
    Start an interactive text session against an inventory file.

    Each line typed is processed as one voice turn: interpreted, resolved,
    executed and confirmed.
    """
    config = load_config(config_path)
    store = MemoryInventoryStore(path=inventory_path or config.inventory_path or DEFAULT_INVENTORY)
    view = InventoryView(store.rows())
    console = Console()
    session = VoiceSession.from_config(config, store, view, speaker=ConsoleSpeaker(console))
    try:
        asyncio.run(_repl(session, console, config.low_stock_threshold))
    except KeyboardInterrupt:
        pass


def parse(text: str) -> None:
    """Print the grammar interpretation of a transcript as JSON."""
    commands = [command.to_dict() for command in interpret_many(text)]
    print_json(json.dumps(commands))


def show(config_path: str | Path = DEFAULT_CONFIG, inventory_path: str | None = None) -> None:
    config = load_config(config_path)
    store = MemoryInventoryStore(path=inventory_path or config.inventory_path or DEFAULT_INVENTORY)
    Console().print(inventory_table(store.rows(), config.low_stock_threshold))


def main() -> int:
    """
    Command-line interface entry point.

    Provides three commands:
    - 'run': Interactive text session against an inventory file
    - 'parse': Show how the grammar interprets a transcript
    - 'show': Print the inventory table
    """
    parser = argparse.ArgumentParser(description="Jersey inventory voice commands")
    parser.add_argument(
        "--log-level",
        type=str,
        default="SUCCESS",
        help="Log level for stderr output (default: SUCCESS)",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    for name, help_text in (("run", "Start an interactive session"), ("show", "Print the inventory table")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--config",
            type=str,
            default=DEFAULT_CONFIG,
            help=f"Path to configuration file (default: {DEFAULT_CONFIG})",
        )
        sub.add_argument(
            "--inventory",
            type=str,
            default=None,
            help=f"Path to inventory JSON file (default: config value or {DEFAULT_INVENTORY})",
        )

    parse_parser = subparsers.add_parser("parse", help="Interpret a transcript without executing it")
    parse_parser.add_argument("text", type=str, help="Transcript to interpret")

    args = parser.parse_args()
    configure_logging(args.log_level)

    if args.command == "parse":
        parse(args.text)
    elif args.command == "show":
        show(args.config, args.inventory)
    elif args.command == "run":
        run(args.config, args.inventory)
    else:
        parser.print_help()
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
