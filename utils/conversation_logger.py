import os
import json
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from openbook.schema.core_schema import ChatResponse, ChatSession


class ConversationLogger:
    """
    Simple JSONL transcript logger for the demos.
    Each line is a JSON object with at least: session_id, role, content, timestamp.
    Assistant lines carry metadata: context_mode, matched_repository, tokens_used.
    """

    def __init__(self, log_path: str):
        self.log_path = log_path
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

    def seed_from_session(self, session: ChatSession) -> None:
        """
        Overwrite the log file with a stored session's transcript (e.g. when
        resuming a session). Subsequent log_exchange() calls will append.
        """
        with open(self.log_path, "w", encoding="utf-8") as f:
            for msg in session.messages:
                entry: Dict[str, Any] = {
                    "session_id": session.session_id,
                    "role": msg.role,
                    "content": msg.content,
                    "timestamp": msg.timestamp.isoformat(),
                }
                f.write(json.dumps(entry, ensure_ascii=False) + "\n")

    def log_exchange(self, session_id: str, user_text: str, response: ChatResponse) -> None:
        """Append one user line and one assistant line."""
        self.log_message(session_id, "user", user_text)
        self.log_message(
            session_id,
            "assistant",
            response.message,
            metadata={
                "context_mode": response.context_mode.value,
                "matched_repository": response.matched_repository,
                "tokens_used": response.tokens_used,
            },
        )

    def log_message(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
        timestamp: Optional[str] = None,
    ) -> None:
        """Append a single message to the log file as JSON."""
        entry: Dict[str, Any] = {
            "session_id": session_id,
            "role": role,
            "content": content,
            "timestamp": timestamp or datetime.now(timezone.utc).isoformat(),
        }
        if metadata:
            entry["metadata"] = metadata

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, ensure_ascii=False) + "\n")

