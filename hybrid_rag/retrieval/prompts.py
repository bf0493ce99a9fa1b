"""Rescoring prompt."""

RESCORING_PROMPT = """You are a relevance ranking expert. For each given text passage, evaluate its relevance to the query on a scale from 0.0 to 1.0.

- 1.0: Directly answers the query
- 0.7-0.9: Closely related, contains most of what the query asks for
- 0.4-0.6: Partially related
- 0.1-0.3: Loosely related
- 0.0: Unrelated

Query: {query}

Passages:
{passages}

Provide the relevance scores as a JSON array: [score1, score2, ..., scoreN]
Return ONLY the JSON array with exactly {count} numbers, in passage order, nothing else.
Example: [0.95, 0.72, 0.38]"""


def format_passages(texts: list[str]) -> str:
    return "\n\n".join(f"{i}. {text}" for i, text in enumerate(texts, start=1))
