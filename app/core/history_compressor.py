"""Conversation history compression.

Once a conversation runs past the threshold, every turn except the last two
is summarized by the cheap model into a single preamble. When the summary
call fails, the conversation is truncated to its most recent turns instead.
"""

from dataclasses import dataclass
from typing import Any

from app.core.logging import get_logger
from app.core.schemas_ai import TokenUsage

logger = get_logger(__name__)

KEEP_VERBATIM = 2
SNIPPET_CHARS = 300
SUMMARY_MAX_TOKENS = 300
SUMMARY_FALLBACK = "Previous conversation topics discussed."
ACKNOWLEDGEMENT = "Understood. I have the context from our previous discussion."

SUMMARY_PROMPT = (
    "Summarize this conversation between the DG and AI in 2-3 sentences. "
    "Focus on what topics were discussed and key conclusions reached:\n\n{transcript}"
)


@dataclass
class CompressedHistory:
    messages: list[dict[str, str]]
    summarized: bool = False
    usage: TokenUsage | None = None


def truncate_history(messages: list[dict[str, str]], keep: int) -> list[dict[str, str]]:
    """Keep the last ``keep`` turns, dropping leading assistant turns."""
    kept = list(messages[-keep:]) if keep > 0 else []
    while kept and kept[0]["role"] != "user":
        kept.pop(0)
    return kept


def _transcript(messages: list[dict[str, str]]) -> str:
    return "\n".join(
        f"{'DG' if m['role'] == 'user' else 'AI'}: {m['content'][:SNIPPET_CHARS]}" for m in messages
    )


async def compress_history(
    messages: list[dict[str, str]],
    client: Any,
    model: str,
    threshold: int = 10,
    fallback_keep: int = 6,
) -> CompressedHistory:
    """
    Shrink a long conversation before it is sent to the model.

    Args:
        messages: Prior turns followed by the current question
        client: AsyncAnthropic-compatible client
        model: Model used for the summary (the cheap tier)
        threshold: Conversations at or below this length pass through unchanged
        fallback_keep: Turns kept when the summary call fails

    Returns:
        CompressedHistory with the messages to send and the summary call's usage
    """
    if len(messages) <= threshold:
        return CompressedHistory(messages=messages)

    older, recent = messages[:-KEEP_VERBATIM], messages[-KEEP_VERBATIM:]

    try:
        response = await client.messages.create(
            model=model,
            max_tokens=SUMMARY_MAX_TOKENS,
            messages=[{"role": "user", "content": SUMMARY_PROMPT.format(transcript=_transcript(older))}],
        )
    except Exception as e:
        logger.warning(f"History compression failed, truncating to {fallback_keep} turns: {e}")
        return CompressedHistory(messages=truncate_history(messages, fallback_keep))

    block = response.content[0] if response.content else None
    summary = getattr(block, "text", None) or SUMMARY_FALLBACK
    usage = TokenUsage(
        input_tokens=getattr(response.usage, "input_tokens", 0) or 0,
        output_tokens=getattr(response.usage, "output_tokens", 0) or 0,
    )

    compressed = [{"role": "user", "content": f"[Previous conversation summary: {summary}]"}]
    # Turns must alternate after the summary
    if recent[0]["role"] == "user":
        compressed.append({"role": "assistant", "content": ACKNOWLEDGEMENT})
    compressed.extend(recent)

    logger.info(f"Compressed {len(older)} turns into a summary ({usage.output_tokens} tokens)")
    return CompressedHistory(messages=compressed, summarized=True, usage=usage)
