# adaptive_rag/prompts/prompt_builder.py

from typing import Dict, List

from adaptive_rag.models import StrategyDescriptor
from adaptive_rag.prompts.system_prompts import (
    MOBILE_GUIDANCE,
    PROFILE_GUIDANCE,
    REFUSAL_MESSAGE,
)


def build_strategy_prompt(
    question: str,
    context_chunks: List[Dict],
    strategy: StrategyDescriptor,
) -> str:
    """
    Build grounded prompt for the chosen strategy.

    The performance profile picks the answer depth; device-optimized
    strategies also ask for compact answers.
    """

    context_block = "\n\n".join(
        f"[Context {i + 1} | Confidence: {chunk['similarity_score']:.3f}]\n{chunk['text']}"
        for i, chunk in enumerate(context_chunks)
    )

    guidance = PROFILE_GUIDANCE.get(strategy.performance_profile.value, "")
    if strategy.device_optimized:
        guidance += MOBILE_GUIDANCE

    prompt = f"""
DOCUMENT CONTEXT:
----------------
{context_block}
----------------

QUESTION:
{question}
{guidance}

INSTRUCTIONS:

Answer using ONLY the DOCUMENT CONTEXT above.

If the answer does not exist in the context, say:
"{REFUSAL_MESSAGE}"

FINAL ANSWER:
"""

    return prompt.strip()
