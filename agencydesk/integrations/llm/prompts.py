# Rev 0.3.0
from __future__ import annotations


def build_insight_prompt(context: str) -> str:
    return (
        "Role: senior digital-marketing expert and agency analyst.\n"
        "Task: analyse the agency KPIs below and propose exactly 3 strategic actions.\n"
        "\n"
        "Formatting constraints:\n"
        "- 3 lines maximum.\n"
        "- No Markdown (** or #).\n"
        "- No greetings.\n"
        "- Start each line with an action verb.\n"
        "\n"
        f"Current data: {context}\n"
    )


def build_brainstorm_prompt(topic: str) -> str:
    return f'Generate 5 concrete marketing task ideas for the topic "{topic}". Reply with a JSON array of strings only.'
