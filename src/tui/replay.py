"""
Session replay viewer.

Steps through a recorded STOMP-Lite session frame by frame in the terminal.
"""

import argparse
import sys
from datetime import datetime
from typing import Dict, List, Any

from rich import box
from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..stomplite.session import SessionLoader


TRUNCATE_AT = 100
TIMELINE_WINDOW = 10

STYLES = {
    "request": "blue",
    "response": "green",
    "event": "yellow",
}


def truncate(value: str, limit: int = TRUNCATE_AT) -> str:
    if len(value) > limit:
        return value[:limit - 3] + "..."
    return value


def interaction_style(interaction: Dict[str, Any]) -> str:
    """Pick a color: errors red, otherwise by interaction type."""
    if "error" in interaction.get("event_type", "").lower():
        return "red"
    if interaction.get("command") == "ERROR":
        return "red"
    return STYLES.get(interaction.get("type"), "white")


class SessionReplayTUI:
    """
    Interactive replay of a recorded session.

    Keybindings:
    - N/n: Next step
    - P/p: Previous step
    - Q/q: Quit
    """

    def __init__(self, session_file: str):
        self.session_file = session_file
        self.console = Console()
        self.session_data: Dict[str, Any] = {}
        self.interactions: List[Dict[str, Any]] = []
        self.current_step = 0
        self.load_session()

    def load_session(self) -> None:
        """
        Load session data from file.

        Raises:
            FileNotFoundError: If the session file doesn't exist
            json.JSONDecodeError: If the file is not valid JSON
            ValueError: If the session has no interactions
        """
        self.session_data = SessionLoader.load_session(self.session_file)
        self.interactions = self.session_data.get("interactions", [])
        if not self.interactions:
            raise ValueError(f"No interactions found in session file: {self.session_file}")

    @property
    def current(self) -> Dict[str, Any]:
        return self.interactions[self.current_step]

    def next_step(self) -> bool:
        """Move to the next step. Returns True if moved, False if at end."""
        if self.current_step < len(self.interactions) - 1:
            self.current_step += 1
            return True
        return False

    def previous_step(self) -> bool:
        """Move to the previous step. Returns True if moved, False if at beginning."""
        if self.current_step > 0:
            self.current_step -= 1
            return True
        return False

    def create_header_panel(self) -> Panel:
        start_time = self.session_data.get("start_time") or 0
        started = datetime.fromtimestamp(start_time).strftime("%Y-%m-%d %H:%M:%S")

        text = Text()
        text.append("STOMP-LITE SESSION REPLAY\n", style="bold cyan")
        text.append(f"Session ID: {self.session_data.get('session_id', 'Unknown')}\n")
        text.append(f"Start Time: {started}\n")
        text.append(f"Duration: {self.session_data.get('duration') or 0:.2f}s\n")
        text.append(f"Total Interactions: {len(self.interactions)}")
        return Panel(text, title="Session Information", border_style="blue")

    def create_navigation_panel(self) -> Panel:
        text = Text()
        text.append(f"Step {self.current_step + 1} of {len(self.interactions)}\n\n", style="bold yellow")
        text.append("N/n - Next step\n", style="green")
        text.append("P/p - Previous step\n", style="green")
        text.append("Q/q - Quit", style="red")
        return Panel(text, title="Navigation", border_style="green")

    def create_interaction_panel(self) -> Panel:
        """Show every recorded field of the current step."""
        interaction = self.current

        table = Table(show_header=True, header_style="bold magenta", box=box.ROUNDED)
        table.add_column("Field", style="cyan", width=20)
        table.add_column("Value")

        timestamp = datetime.fromtimestamp(interaction.get("timestamp", 0))
        table.add_row("Timestamp", timestamp.strftime("%H:%M:%S.%f")[:-3])
        table.add_row("Relative Time", f"{interaction.get('relative_time', 0):.3f}s")
        table.add_row("Type", interaction.get("type", "unknown"))

        if interaction.get("type") in ("request", "response"):
            table.add_row("Direction", interaction.get("direction", ""))
            table.add_row("Command", interaction.get("command", ""))
            if interaction.get("destination"):
                table.add_row("Destination", interaction["destination"])
            for name, value in interaction.get("headers", {}).items():
                table.add_row(f"  {name}", truncate(str(value)))
            table.add_row("Payload Length", str(interaction.get("payload_length", 0)))
            if interaction.get("payload"):
                table.add_row("Payload", truncate(interaction["payload"]))
            table.add_row("Frame Length", str(interaction.get("raw_frame_length", 0)))
        else:
            table.add_row("Event Type", interaction.get("event_type", ""))
            details = interaction.get("details") or {}
            if details:
                table.add_row("Details", truncate(", ".join(f"{k}: {v}" for k, v in details.items())))

        if interaction.get("description"):
            table.add_row("Description", interaction["description"])

        return Panel(table, title="Current Interaction", border_style=interaction_style(interaction))

    def create_timeline_panel(self) -> Panel:
        """List the steps around the current one."""
        start = max(0, self.current_step - TIMELINE_WINDOW // 2)
        end = min(len(self.interactions), start + TIMELINE_WINDOW)

        text = Text()
        for index in range(start, end):
            interaction = self.interactions[index]
            offset = interaction.get("relative_time", 0)
            kind = interaction.get("type")
            if kind == "request":
                entry = f"{offset:6.2f}s → {interaction.get('command', '?')}"
            elif kind == "response":
                entry = f"{offset:6.2f}s ← {interaction.get('command', '?')}"
            else:
                entry = f"{offset:6.2f}s • {interaction.get('event_type', 'event')}"

            if index == self.current_step:
                text.append(f"► {entry}\n", style="bold yellow on blue")
            else:
                text.append(f"  {entry}\n", style=interaction_style(interaction))

        return Panel(text, title="Timeline", border_style="magenta")

    def create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(self.create_header_panel(), name="header", size=8),
            Layout(name="main"),
            Layout(name="footer", size=3),
        )
        layout["main"].split_row(
            Layout(name="left"),
            Layout(self.create_interaction_panel(), name="right", ratio=2),
        )
        layout["left"].split_column(
            Layout(self.create_navigation_panel(), name="navigation", size=9),
            Layout(self.create_timeline_panel(), name="timeline"),
        )
        layout["footer"].update(Panel(
            Text("N (next)  P (previous)  Q (quit)", justify="center"),
            border_style="white",
        ))
        return layout

    def handle_key(self, key: str) -> bool:
        """Apply one keypress. Returns False when the viewer should exit."""
        key = key.lower()
        if key == "q":
            return False
        if key == "n":
            self.next_step()
        elif key == "p":
            self.previous_step()
        return True

    def run(self) -> None:
        """Run the viewer, reading single keypresses where the terminal allows."""
        try:
            import termios
            import tty
        except ImportError:
            self._run_line_mode()
            return

        old_settings = termios.tcgetattr(sys.stdin)
        with Live(self.create_layout(), refresh_per_second=10, screen=True) as live:
            try:
                tty.setraw(sys.stdin.fileno())
                while self.handle_key(sys.stdin.read(1)):
                    live.update(self.create_layout())
            finally:
                termios.tcsetattr(sys.stdin, termios.TCSADRAIN, old_settings)

    def _run_line_mode(self) -> None:
        """Fallback for terminals without termios: one command per line."""
        while True:
            self.console.clear()
            self.console.print(self.create_layout())
            if not self.handle_key(input("\nCommand (n/p/q): ").strip() or " "):
                break


def list_sessions_command(sessions_dir: str = "sessions") -> None:
    """Print a table of the recorded sessions in sessions_dir."""
    console = Console()
    sessions = SessionLoader.list_sessions(sessions_dir)

    if not sessions:
        console.print(f"[yellow]No session files found in {sessions_dir}[/yellow]")
        return

    table = Table(title="Available Sessions", show_header=True, header_style="bold magenta")
    table.add_column("Session ID", style="cyan")
    table.add_column("Recorded At")
    table.add_column("Duration", style="green")
    table.add_column("Interactions", style="yellow")
    table.add_column("Destinations")
    table.add_column("Sent/Received", style="green")
    table.add_column("File", style="blue")

    for session in sessions:
        duration = session.get("duration")
        recorded_at = session.get("recorded_at") or "Unknown"
        try:
            recorded_at = datetime.fromisoformat(recorded_at).strftime("%Y-%m-%d %H:%M:%S")
        except ValueError:
            pass

        table.add_row(
            session.get("session_id") or "Unknown",
            recorded_at,
            f"{duration:.2f}s" if duration else "Unknown",
            str(session.get("total_interactions") or 0),
            ", ".join(session.get("destinations") or []) or "-",
            f"{session.get('messages_sent') or 0}/{session.get('messages_received') or 0}",
            session.get("filename", ""),
        )

    console.print(table)


def main(argv: List[str] = None) -> int:
    """Entry point for the stomplite-replay command."""
    parser = argparse.ArgumentParser(description="STOMP-Lite Session Replay")
    parser.add_argument("--session", "-s", help="Session file to replay")
    parser.add_argument("--list", "-l", action="store_true", help="List available sessions")
    parser.add_argument("--sessions-dir", default="sessions", help="Directory containing session files")
    args = parser.parse_args(argv)

    console = Console()
    if args.list:
        list_sessions_command(args.sessions_dir)
        return 0

    if not args.session:
        console.print("[red]Error: No session file specified[/red]")
        console.print("Use --session <file> to replay a session, or --list to see available sessions")
        return 1

    try:
        SessionReplayTUI(args.session).run()
        return 0
    except KeyboardInterrupt:
        print("\nReplay interrupted by user")
        return 1
    except (OSError, ValueError) as e:
        # json.JSONDecodeError is a ValueError
        console.print(f"[red]Error: {e}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
