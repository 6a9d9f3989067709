"""Terminal front end for Opening Blitz.

Plays timed drills and replays in the terminal with a Rich-rendered
board, and prints session history, stats and the blunder practice queue.

Usage:
    openingblitz play --level 1200 --time 60 --color white
    openingblitz replay <session_id>
    openingblitz history [--blunders]
    openingblitz stats
    openingblitz blunders [--color white]
"""

from __future__ import annotations

import argparse
import sys

import chess
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from openingblitz.blunders import BlunderStore
from openingblitz.drill import DrillSession
from openingblitz.explorer import OpeningExplorer
from openingblitz.logging_setup import setup_logging
from openingblitz.models import COLORS, DrillConfig, DrillPhase, MoveResult, ReplayAlert
from openingblitz.replay import ReplaySession
from openingblitz.sessions import SessionStore, session_stats
from openingblitz.settings import Settings
from openingblitz.store import FileStore

# Unicode piece symbols
_PIECE_SYMBOLS = {
    "K": "♔", "Q": "♕", "R": "♖", "B": "♗",
    "N": "♘", "P": "♙",
    "k": "♚", "q": "♛", "r": "♜", "b": "♝",
    "n": "♞", "p": "♟",
}

_LIGHT_SQ = "grey85"
_DARK_SQ = "grey50"

_RATING_STYLES = {
    "best": "bold green",
    "good": "bold blue",
    "ok": "yellow",
    "offbook": "dim",
    "inaccuracy": "magenta",
    "blunder": "bold red",
}

_ALERT_MESSAGES = {
    ReplayAlert.FIXED: "[green]Great! You found a better move than {original}![/green]",
    ReplayAlert.BLUNDER_REPEATED: "[red]Same blunder again! Try a different move ('u' to undo)[/red]",
    ReplayAlert.DEVIATION: "[yellow]Different move! Original was {original} ('u' to undo)[/yellow]",
}


def render_board(fen: str, player_color: str) -> Table:
    """Render a position as a Rich table, oriented for the player.

    Args:
        fen: Position to render.
        player_color: "white" or "black"; black flips the board.

    Returns:
        Rich Table with rank and file labels.
    """
    board = chess.Board(fen)
    is_flipped = player_color == "black"

    table = Table(show_header=False, show_edge=False, pad_edge=False,
                  box=None, padding=(0, 0))
    table.add_column(width=2, justify="right")
    for _ in range(8):
        table.add_column(width=3, justify="center")

    ranks = range(8) if is_flipped else range(7, -1, -1)
    files = list(range(7, -1, -1)) if is_flipped else list(range(8))

    for rank in ranks:
        row: list[Text] = [Text(str(rank + 1), style="bold")]
        for file in files:
            piece = board.piece_at(chess.square(file, rank))
            bg = _LIGHT_SQ if (rank + file) % 2 == 1 else _DARK_SQ
            symbol = _PIECE_SYMBOLS.get(piece.symbol(), "?") if piece else " "
            row.append(Text(f" {symbol} ", style=f"black on {bg}"))
        table.add_row(*row)

    labels = [Text("  ")]
    for f in files:
        labels.append(Text(f" {chr(ord('a') + f)} ", style="bold"))
    table.add_row(*labels)
    return table


def render_status(drill: DrillSession) -> Panel:
    """Render score, clock, streak and opening name for a drill."""
    mode = "REPLAY" if isinstance(drill, ReplaySession) else "DRILL"
    parts = [
        f"[bold]{mode}[/bold]  {drill.config.rating_level} | "
        f"{drill.config.time_limit}s | {drill.config.player_color}",
        f"Score: [bold]{drill.score}[/bold]   Streak: {drill.streak}   "
        f"Time: {drill.time_remaining:.0f}s",
        f"[italic]{drill.opening_name}[/italic]",
    ]
    return Panel("\n".join(parts), border_style="blue")


def render_move_result(result: MoveResult) -> str:
    rating = result.rating.value
    style = _RATING_STYLES.get(rating, "")
    line = f"{result.move}: [{style}]{rating.upper()}[/{style}] ({result.points:+d})"
    if result.replay_alert is not None:
        line += "\n" + _ALERT_MESSAGES[result.replay_alert].format(
            original=result.original_move
        )
    return line


def render_hints(drill: DrillSession) -> Table:
    table = Table(title="Top moves")
    table.add_column("#", justify="right")
    table.add_column("Move")
    table.add_column("Games", justify="right")
    table.add_column("Played", justify="right")
    table.add_column("Score", justify="right")
    for i, hint in enumerate(drill.hints(), 1):
        table.add_row(
            str(i), hint.san, str(hint.games),
            f"{hint.frequency * 100:.0f}%", f"{hint.win_rate * 100:.0f}%",
        )
    return table


def _parse_move(text: str) -> tuple[str, str, str | None] | None:
    """Split 'e2e4', 'e2 e4' or 'e7e8q' into squares and promotion."""
    compact = text.replace(" ", "").replace("-", "").lower()
    if len(compact) not in (4, 5):
        return None
    promotion = compact[4] if len(compact) == 5 else None
    return compact[:2], compact[2:4], promotion


def _run_drill(console: Console, drill: DrillSession) -> None:
    """Interactive loop: read moves until the drill ends or the player quits."""
    drill.start()

    while drill.is_running:
        console.print(render_board(drill.fen, drill.config.player_color))
        console.print(render_status(drill))
        user_input = console.input("Your move (e2e4, 'h' hints, 'u' undo, 'q' quit): ").strip()

        if drill.check_clock():
            break
        if user_input.lower() == "q":
            drill.cancel()
            console.print("Drill abandoned.")
            return
        if user_input.lower() == "h":
            console.print(render_hints(drill))
            continue
        if user_input.lower() == "u":
            if isinstance(drill, ReplaySession) and drill.undo():
                console.print("Move undone.")
            else:
                console.print("[dim]Nothing to undo.[/dim]")
            continue

        parsed = _parse_move(user_input)
        result = drill.submit_move(*parsed) if parsed else None
        if result is None:
            console.print("[red]Illegal move. Try again.[/red]")
            continue
        console.print(render_move_result(result))

    summary = drill.summary
    if summary is None or drill.phase is not DrillPhase.ENDED:
        return
    title = "Out of Book!" if summary.end_reason.value == "out_of_book" else "Time's Up!"
    console.print(Panel(
        f"{summary.moves_played} moves | {summary.score} points | "
        f"{summary.blunder_count} blunders\n{summary.opening_name}"
        + (f"\nSaved as {summary.session_id}" if summary.session_id else ""),
        title=title,
        border_style="green",
    ))


def _print_history(console: Console, sessions) -> None:
    table = Table(title="Sessions")
    table.add_column("ID")
    table.add_column("When")
    table.add_column("Level", justify="right")
    table.add_column("Color")
    table.add_column("Score", justify="right")
    table.add_column("Moves", justify="right")
    table.add_column("Blunders", justify="right")
    table.add_column("Opening")
    for s in sessions:
        table.add_row(
            s.id[:8], s.timestamp[:16].replace("T", " "), str(s.rating_level),
            s.player_color, str(s.total_score), str(s.moves_played),
            str(s.blunder_count), s.opening_name,
        )
    console.print(table)


def _print_stats(console: Console, stats: dict) -> None:
    console.print(
        f"Sessions: {stats['total_sessions']}  Moves: {stats['total_moves']}  "
        f"Blunders: {stats['total_blunders']}  Accuracy: {stats['avg_accuracy']}%"
    )
    table = Table(title="By opening")
    table.add_column("Opening")
    table.add_column("Played", justify="right")
    table.add_column("Blunders", justify="right")
    table.add_column("Avg score", justify="right")
    for name, entry in stats["opening_stats"].items():
        table.add_row(name, str(entry["played"]), str(entry["blunders"]), str(entry["avg_score"]))
    console.print(table)


def _print_blunders(console: Console, records) -> None:
    table = Table(title="Practice queue")
    table.add_column("ID")
    table.add_column("Color")
    table.add_column("Wrong move")
    table.add_column("Seen", justify="right")
    table.add_column("Fixed", justify="right")
    table.add_column("Opening")
    for r in records:
        table.add_row(
            r.id[:8], r.player_color, r.wrong_move, str(r.times_seen),
            str(r.times_fixed), r.opening_name or "",
        )
    console.print(table)


def _resolve_id(ids, prefix: str) -> str | None:
    """Match a full id or a unique prefix as printed in the tables."""
    matches = [i for i in ids if i.startswith(prefix)]
    return matches[0] if len(matches) == 1 else None


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Opening Blitz - timed opening drills against the Lichess book"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    play_parser = subparsers.add_parser("play", help="Start a timed drill")
    play_parser.add_argument("--level", type=int, default=1200, help="Rating band (800-1600)")
    play_parser.add_argument("--time", type=int, default=60, help="Time limit in seconds")
    play_parser.add_argument("--color", choices=COLORS, default="white", help="Your colour")

    replay_parser = subparsers.add_parser("replay", help="Replay a saved session")
    replay_parser.add_argument("session_id", type=str, help="Session ID (or prefix)")

    history_parser = subparsers.add_parser("history", help="List saved sessions")
    history_parser.add_argument(
        "--blunders", action="store_true", help="Only sessions with blunders"
    )

    subparsers.add_parser("stats", help="Show session statistics")

    blunders_parser = subparsers.add_parser("blunders", help="Show the practice queue")
    blunders_parser.add_argument("--color", choices=COLORS, default=None)

    del_session = subparsers.add_parser("delete-session", help="Delete a session")
    del_session.add_argument("session_id", type=str)

    del_blunder = subparsers.add_parser("delete-blunder", help="Delete a blunder record")
    del_blunder.add_argument("blunder_id", type=str)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    settings = Settings.from_env(reply_delay=0.3)
    setup_logging(settings.log_level)
    console = Console()

    store = FileStore(settings.data_dir)
    session_store = SessionStore(store)
    blunder_store = BlunderStore(store)
    explorer = OpeningExplorer(
        url=settings.explorer_url,
        timeout=settings.explorer_timeout,
        token=settings.lichess_token,
    )

    if args.command == "play":
        try:
            config = DrillConfig(
                rating_level=args.level, time_limit=args.time, player_color=args.color
            )
        except ValueError as exc:
            console.print(f"[red]{exc}[/red]")
            sys.exit(1)
        drill = DrillSession(
            config, explorer,
            session_store=session_store,
            blunder_store=blunder_store,
            reply_delay=settings.reply_delay,
        )
        _run_drill(console, drill)
    elif args.command == "replay":
        sessions = session_store.get_sessions()
        session_id = _resolve_id([s.id for s in sessions], args.session_id)
        recorded = session_store.get_session(session_id) if session_id else None
        if recorded is None:
            console.print(f"[red]Session not found: {args.session_id}[/red]")
            sys.exit(1)
        replay = ReplaySession(
            recorded, explorer,
            blunder_store=blunder_store,
            reply_delay=settings.reply_delay,
        )
        _run_drill(console, replay)
    elif args.command == "history":
        sessions = (
            session_store.get_blunder_sessions() if args.blunders
            else session_store.get_sessions()
        )
        _print_history(console, sessions)
    elif args.command == "stats":
        _print_stats(console, session_stats(session_store.get_sessions()))
    elif args.command == "blunders":
        _print_blunders(console, blunder_store.get_blunders_for_practice(args.color))
    elif args.command == "delete-session":
        session_id = _resolve_id([s.id for s in session_store.get_sessions()], args.session_id)
        if session_id is None or not session_store.delete_session(session_id):
            console.print(f"[red]Session not found: {args.session_id}[/red]")
            sys.exit(1)
        console.print(f"Deleted session {session_id}")
    elif args.command == "delete-blunder":
        blunder_id = _resolve_id([r.id for r in blunder_store.get_blunders()], args.blunder_id)
        if blunder_id is None or not blunder_store.delete_blunder(blunder_id):
            console.print(f"[red]Blunder not found: {args.blunder_id}[/red]")
            sys.exit(1)
        console.print(f"Deleted blunder {blunder_id}")


if __name__ == "__main__":
    main()
