"""Conversation export renderers."""

from __future__ import annotations

import json
from collections.abc import Sequence

from grant_agent.types import ConversationMessage

_SPEAKERS = {"user": "User", "model": "Dr. Win"}


def _speaker(message: ConversationMessage) -> str:
    return _SPEAKERS.get(message.role, message.role)


def export_markdown(
    messages: Sequence[ConversationMessage], title: str = "Conversation with Dr. Win"
) -> str:
    lines = [f"# {title}", "", f"_{len(messages)} messages_", ""]
    for message in messages:
        header = f"## {_speaker(message)} ({message.timestamp})"
        if message.priority:
            header += f" [priority: {message.priority}]"
        lines.extend([header, "", message.text.rstrip(), ""])
        if message.attachments:
            names = ", ".join(item.name for item in message.attachments)
            lines.extend([f"_Attachments: {names}_", ""])
        if message.tool_invocations:
            tools = ", ".join(item.name for item in message.tool_invocations)
            lines.extend([f"_Tools used: {tools}_", ""])
    return "\n".join(lines).rstrip() + "\n"


def export_json(messages: Sequence[ConversationMessage]) -> str:
    """Full-fidelity export; attachment payloads are kept."""
    return json.dumps(
        {"messages": [message.to_dict() for message in messages]},
        ensure_ascii=False,
        indent=2,
    )


def export_text(messages: Sequence[ConversationMessage]) -> str:
    blocks = [f"[{message.timestamp}] {_speaker(message)}:\n{message.text.rstrip()}" for message in messages]
    return "\n\n".join(blocks) + ("\n" if blocks else "")


EXPORTERS = {
    "markdown": export_markdown,
    "json": export_json,
    "text": export_text,
}
