"""KAAPI entry point: CLI args, async loop, and the text chat."""

import argparse
import asyncio
import logging
import sys

from rich.console import Console

from kaapi.config import get_config
from kaapi.utils.logger import setup_logging

console = Console()

_EXIT_WORDS = ("exit", "quit", "bye")
_RESET_COMMAND = "/reset"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="kaapi",
        description="KAAPI: coffee-shop chat assistant",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check connectivity to the LLM providers and the menu store",
    )
    return parser.parse_args(argv)


async def _run_check() -> bool:
    """Report availability of every configured backend."""
    from kaapi.assistant import build_llm_router
    from kaapi.shop.menu import MenuStore

    config = get_config()
    console.print("\n[bold]KAAPI System Check[/]\n")

    all_ok = True
    router = build_llm_router(config)
    for provider in router.providers:
        if await provider.is_available():
            console.print(f"  [green]✅[/] llm/{provider.name}: reachable")
        else:
            console.print(f"  [red]❌[/] llm/{provider.name}: unavailable")
            all_ok = False

    store = MenuStore(config)
    if not store.configured:
        console.print("  [dim]ℹ️[/]  menu_store: not configured")
    elif await store.is_available():
        console.print("  [green]✅[/] menu_store: reachable")
    else:
        console.print("  [red]❌[/] menu_store: unavailable")
        all_ok = False

    console.print()
    if all_ok:
        console.print("[bold green]All systems operational.[/]\n")
    else:
        console.print("[bold yellow]Some components unavailable.[/]\n")
    return all_ok


async def _text_mode(assistant) -> None:
    """Run the interactive chat loop."""
    console.print(
        f"[bold cyan]Assistant:[/] {assistant.welcome_text}\n"
        f"[dim]Type '{_RESET_COMMAND}' to start over, 'exit' to quit.[/]\n"
    )
    loop = asyncio.get_running_loop()

    while True:
        try:
            user_input = await loop.run_in_executor(None, lambda: input("You: "))
        except EOFError:
            break

        user_input = user_input.strip()
        if not user_input:
            continue
        if user_input.lower() in _EXIT_WORDS:
            break
        if user_input.lower() == _RESET_COMMAND:
            assistant.reset()
            console.print("[dim]Conversation reset.[/]\n")
            continue

        response = await assistant.handle_message(user_input)
        console.print(f"[bold cyan]Assistant:[/] {response}\n")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    config = get_config()
    setup_logging(verbose=args.verbose, log_level=config.log_level)
    logger = logging.getLogger(__name__)

    if args.check:
        return 0 if asyncio.run(_run_check()) else 1

    try:
        config.validate_api_keys()
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        return 1

    from kaapi.assistant import CoffeeShopAssistant

    assistant = CoffeeShopAssistant(config=config)
    try:
        asyncio.run(_text_mode(assistant))
    except KeyboardInterrupt:
        pass
    logger.info("Chat session ended")
    console.print("[dim]Goodbye! ☕[/]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
