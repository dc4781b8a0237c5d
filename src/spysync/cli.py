import logging
import sys

import typer
from rich.console import Console, Group
from rich.table import Table

from spysync.client import GameClient
from spysync.config import get_config
from spysync.exceptions import SpySyncException
from spysync.feedback import Notifier
from spysync.reconciler import StateReconciler
from spysync.storage import FileStore, RoomCache

app = typer.Typer(help="Join a spy party room from the terminal.")
cache_app = typer.Typer(help="Inspect or drop the persisted room.")
app.add_typer(cache_app, name="cache")

console = Console()


class ConsoleNotifier(Notifier):
    def error(self, error: SpySyncException) -> None:
        console.print(f"[red]✗ {error}[/red]")


def render_room(room) -> Table:
    table = Table(title=f"Room {room.room_code} ({room.status.value})")
    table.add_column("#", justify="right")
    table.add_column("Player")
    table.add_column("Ready")
    for index, player in enumerate(room.players, start=1):
        table.add_row(str(index), player.display_name, "✓" if player.is_ready else "")
    return table


def render_state(state: StateReconciler, chat_lines: int = 10) -> Group:
    """Room roster, game phase, chat tail and typing line."""
    parts = []
    if state.room is not None:
        parts.append(render_room(state.room))
    else:
        parts.append("[dim]Not in a room[/dim]")
    if state.game is not None:
        parts.append(f"[bold]Game[/bold] {state.game.game_id} phase: {state.game.phase}")
    for message in state.messages[-chat_lines:]:
        name = "You" if state.is_own_message(message) else message.sender.username
        marker = ""
        if message.failed:
            marker = " [red](not delivered)[/red]"
        elif message.pending:
            marker = " [dim](sending)[/dim]"
        parts.append(f"[cyan]{name}[/cyan]: {message.text}{marker}")
    if label := state.typing_label():
        parts.append(f"[italic dim]{label}[/italic dim]")
    return Group(*parts)


def handle_line(client: GameClient, line: str) -> bool:
    """Run one line of input. Returns False when the session should end."""
    command, _, argument = line.partition(" ")
    argument = argument.strip()
    state = client.state
    if command == "/leave":
        state.leave_room()
        return False
    if command == "/quit":
        return False
    if command == "/ready":
        state.toggle_ready()
    elif command == "/start":
        state.start_game(argument or None)
    elif command == "/clue":
        state.submit_clue(argument)
    elif command == "/vote":
        state.cast_vote(argument)
    elif command == "/guess":
        state.submit_spy_guess(argument)
    elif command == "/name":
        state.update_name(argument)
    elif command == "/avatar":
        state.update_avatar(argument)
    else:
        client.send_message(line)
    return True


def _configure_logging(level: str, verbose: bool) -> None:
    if verbose:
        level = "DEBUG"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@app.command()
def join(
    room_code: str = typer.Argument(..., help="Room code to join."),
    token: str = typer.Option(..., envvar="SPYSYNC_TOKEN", help="Session token."),
    user_id: str = typer.Option(..., envvar="SPYSYNC_USER_ID", help="Your user id."),
    username: str | None = typer.Option(None, envvar="SPYSYNC_USERNAME"),
    url: str | None = typer.Option(None, envvar="SPYSYNC_SERVER_URL"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Join ROOM_CODE and chat from stdin.

    Lines are sent as chat messages; /ready, /start [category], /clue TEXT,
    /vote USER_ID, /guess WORD, /name NAME, /avatar REF, /leave and /quit
    are commands.
    """
    config = get_config()
    _configure_logging(config.log_level, verbose)

    client = GameClient(
        url=url,
        token=token,
        user={"_id": user_id, "username": username},
        notifier=ConsoleNotifier(),
        config=config,
    )
    client.state.add_listener(lambda state: console.print(render_state(state)))
    with client:
        if not client.state.join_room(room_code):
            typer.echo(f"✗ Could not join room {room_code}", err=True)
            raise typer.Exit(1)
        for line in sys.stdin:
            line = line.strip()
            if not line:
                continue
            if not handle_line(client, line):
                break


def _room_cache(storage_path: str | None) -> RoomCache:
    config = get_config()
    return RoomCache(
        FileStore(storage_path or config.storage_path), key=config.room_storage_key
    )


@cache_app.command("show")
def cache_show(
    storage_path: str | None = typer.Option(None, envvar="SPYSYNC_STORAGE_PATH"),
):
    """Print the persisted room, if any."""
    room = _room_cache(storage_path).load()
    if room is None:
        typer.echo("No persisted room")
        raise typer.Exit(0)
    console.print(render_room(room))


@cache_app.command("clear")
def cache_clear(
    storage_path: str | None = typer.Option(None, envvar="SPYSYNC_STORAGE_PATH"),
):
    """Drop the persisted room."""
    if not _room_cache(storage_path).clear():
        typer.echo("✗ Failed to clear persisted room", err=True)
        raise typer.Exit(1)
    typer.echo("✓ Persisted room cleared")
