"""
Session recording functionality for the STOMP-Lite client.

This module provides session recording capabilities to capture all
client-broker interactions for later replay and analysis.
"""

import json
import time
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Any, Optional
from .protocol import Commands, ProtocolFrame, ProtocolHandler


PAYLOAD_PREVIEW_LIMIT = 1024


class SessionRecorder:
    """
    Records all client-broker interactions during a STOMP-Lite session.
    """

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id or self._generate_session_id()
        self.interactions: List[Dict[str, Any]] = []
        self.start_time = time.time()
        self.protocol_handler = ProtocolHandler()

    def _generate_session_id(self) -> str:
        """Generate a unique session ID based on timestamp."""
        return f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"

    def _frame_interaction(self, kind: str, direction: str, frame: ProtocolFrame,
                           description: str) -> Dict[str, Any]:
        now = time.time()
        return {
            "timestamp": now,
            "relative_time": now - self.start_time,
            "type": kind,
            "direction": direction,
            "command": self.protocol_handler.get_command_name(frame.command),
            "headers": dict(frame.headers),
            "destination": frame.headers.get("destination", ""),
            "payload_length": len(frame.body),
            "payload": frame.body[:PAYLOAD_PREVIEW_LIMIT].decode("utf-8", errors="replace"),
            "description": description,
            "raw_frame_length": len(frame.encode()),
        }

    def record_request(self, frame: ProtocolFrame, description: str = "") -> None:
        """
        Record a frame sent by the client.

        Args:
            frame: The protocol frame being sent
            description: Optional description of the request
        """
        self.interactions.append(
            self._frame_interaction("request", "client -> broker", frame, description)
        )

    def record_response(self, frame: ProtocolFrame, description: str = "") -> None:
        """
        Record a frame received from the broker.

        Args:
            frame: The protocol frame received
            description: Optional description of the response
        """
        self.interactions.append(
            self._frame_interaction("response", "broker -> client", frame, description)
        )

    def record_event(self, event_type: str, description: str, details: Dict[str, Any] = None) -> None:
        """
        Record a general event (connection, disconnection, error, etc.).

        Args:
            event_type: Type of event (connection, disconnection, error, etc.)
            description: Description of the event
            details: Additional event details
        """
        now = time.time()
        self.interactions.append({
            "timestamp": now,
            "relative_time": now - self.start_time,
            "type": "event",
            "event_type": event_type,
            "description": description,
            "details": details or {},
        })

    def get_session_summary(self) -> Dict[str, Any]:
        """
        Summarize the session so far.

        Alongside the frame counts, the summary lists every destination the
        session touched and how many SEND, MESSAGE and ERROR frames it saw.
        """
        sent = [i.get("command") for i in self.interactions if i.get("type") == "request"]
        received = [i.get("command") for i in self.interactions if i.get("type") == "response"]

        summary = {
            "session_id": self.session_id,
            "duration": time.time() - self.start_time,
            "total_interactions": len(self.interactions),
            "requests": len(sent),
            "responses": len(received),
            "events": len(self.interactions) - len(sent) - len(received),
            "commands_sent": sent,
            "responses_received": received,
        }
        summary.update(summarize_traffic(self.interactions))
        return summary

    def save_session(self, output_dir: str = "sessions") -> str:
        """
        Write the session to <output_dir>/<session_id>.json and return the path.

        The file carries a "traffic" block (see summarize_traffic) so session
        listings can show destinations without reading every interaction.
        """
        directory = Path(output_dir)
        directory.mkdir(parents=True, exist_ok=True)

        finished = time.time()
        document = {
            "session_id": self.session_id,
            "start_time": self.start_time,
            "end_time": finished,
            "duration": finished - self.start_time,
            "total_interactions": len(self.interactions),
            "metadata": {
                "protocol_version": "STOMP 1.0-1.2 (STOMP-Lite subset)",
                "client_version": "1.0.0",
                "recorded_at": datetime.now().isoformat(),
            },
            "traffic": summarize_traffic(self.interactions),
            "interactions": self.interactions,
        }

        target = directory / f"{self.session_id}.json"
        target.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
        return str(target)


def summarize_traffic(interactions: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Count the STOMP traffic in a list of recorded interactions.

    Returns the sorted destinations named by any recorded frame, the number of
    SEND frames published, MESSAGE frames delivered, ERROR frames sent by the
    broker and error events raised on the client side.
    """
    destinations = set()
    commands = Counter()
    client_errors = 0

    for interaction in interactions:
        if interaction.get("type") == "event":
            if interaction.get("event_type") == "error":
                client_errors += 1
            continue
        commands[interaction.get("command")] += 1
        if interaction.get("destination"):
            destinations.add(interaction["destination"])

    return {
        "destinations": sorted(destinations),
        "messages_sent": commands[Commands.SEND],
        "messages_received": commands[Commands.MESSAGE],
        "broker_errors": commands[Commands.ERROR],
        "errors": client_errors,
    }


class SessionLoader:
    """
    Reads session files written by SessionRecorder.
    """

    @staticmethod
    def load_session(filepath: str) -> Dict[str, Any]:
        """
        Load a session from a JSON file.

        Raises:
            FileNotFoundError: If session file doesn't exist
            json.JSONDecodeError: If session file is invalid JSON
        """
        with open(filepath, 'r', encoding='utf-8') as f:
            return json.load(f)

    @staticmethod
    def describe_session(session_file: Path, session_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Build the listing entry for one session file.

        Files saved without a "traffic" block get it computed from their
        interactions.
        """
        traffic = session_data.get("traffic") or summarize_traffic(session_data.get("interactions", []))
        entry = {
            "filename": session_file.name,
            "filepath": str(session_file),
            "session_id": session_data.get("session_id"),
            "start_time": session_data.get("start_time"),
            "duration": session_data.get("duration"),
            "total_interactions": session_data.get("total_interactions"),
            "recorded_at": session_data.get("metadata", {}).get("recorded_at"),
        }
        entry.update(traffic)
        return entry

    @staticmethod
    def list_sessions(sessions_dir: str = "sessions") -> List[Dict[str, Any]]:
        """
        Describe every session file in sessions_dir, newest first.

        JSON files that are not sessions are skipped.
        """
        sessions_path = Path(sessions_dir)
        if not sessions_path.exists():
            return []

        sessions = []
        for session_file in sessions_path.glob("*.json"):
            try:
                session_data = SessionLoader.load_session(str(session_file))
                sessions.append(SessionLoader.describe_session(session_file, session_data))
            except (json.JSONDecodeError, AttributeError):
                continue

        sessions.sort(key=lambda s: s.get("start_time") or 0, reverse=True)
        return sessions

    @staticmethod
    def get_session_interactions(filepath: str) -> List[Dict[str, Any]]:
        return SessionLoader.load_session(filepath).get("interactions", [])
