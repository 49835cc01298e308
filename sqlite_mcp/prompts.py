from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import InvalidArguments, UnknownPrompt

DEMO_PROMPT_NAME = "mcp-demo"
DEMO_PROMPT_DESCRIPTION = "A prompt to demonstrate SQLite MCP Server capabilities"
TOPIC_ARGUMENT = "topic"
TOPIC_DESCRIPTION = "Topic to seed the database with initial data"

PROMPT_TEMPLATE = """
Oh, Hey there! I see you've chosen the topic {topic}. Let's get started! 🚀

I'll help you create a comprehensive business scenario using our SQLite database. We'll:
1. Set up relevant database tables
2. Populate them with sample data
3. Run some insightful queries
4. Generate business insights
5. Create a dashboard
"""


@dataclass(frozen=True)
class RenderedPrompt:
    description: str
    text: str


def render_prompt(name: str, arguments: dict[str, Any] | None) -> RenderedPrompt:
    if name != DEMO_PROMPT_NAME:
        raise UnknownPrompt(name)
    topic = (arguments or {}).get(TOPIC_ARGUMENT)
    if not topic:
        raise InvalidArguments(f"Missing required argument: {TOPIC_ARGUMENT}")
    # first placeholder only
    text = PROMPT_TEMPLATE.replace("{topic}", str(topic), 1).strip()
    return RenderedPrompt(description=f"Demo template for {topic}", text=text)
