from typing import Dict, List, Optional, Sequence

SYSTEM_JUDGE = (
    "You are an impartial legal judge trained on multiple jurisdictions. When asked for a mock "
    "verdict, return a concise JSON object (ONLY JSON) with these fields: verdict (\"Favor of A\", "
    "\"Favor of B\", or \"Neutral\"), confidence (0-100 number), reasoning (short text). Use the case "
    "facts and documents to reason. Be explicit about any assumptions."
)

SYSTEM_RECONSIDER = (
    "You are an impartial legal judge trained on the jurisdiction. The AI previously gave a verdict "
    "and reasoning. A lawyer has submitted a follow-up argument. Re-evaluate the verdict and "
    "reasoning and return only JSON { verdict, confidence, reasoning }."
)

VERDICT_PROMPT = """Case Title: {title}
Description: {description}
Category: {category}
Jurisdiction: {jurisdiction}

{documents}

INSTRUCTIONS:
Give a verdict and reasoning. Return ONLY a JSON object with exactly three fields:
"verdict" ("Favor of A", "Favor of B" or "Neutral"), "confidence" (0-100) and "reasoning".
"""

RECONSIDER_PROMPT = """Case: {title}
Summary: {description}
Previous AI verdict: {previous_verdict}
Previous reasoning: {previous_reasoning}
New argument (Lawyer {side}): {argument}

INSTRUCTIONS:
Re-evaluate the verdict in light of the new argument. Return ONLY a JSON object with exactly
three fields: "verdict" ("Favor of A", "Favor of B" or "Neutral"), "confidence" (0-100)
and "reasoning".
"""

NO_DOCUMENTS = "No document summaries were provided - use case facts only."
NO_PREVIOUS_VERDICT = "No previous verdict"


def _label(value) -> str:
    return getattr(value, "value", value) or ""


def _documents_block(document_summaries: Optional[Sequence]) -> str:
    if not document_summaries:
        return NO_DOCUMENTS
    lines = ["Documents (summaries):"]
    for idx, doc in enumerate(document_summaries, start=1):
        name = doc["name"] if isinstance(doc, dict) else doc.name
        summary = doc["summary"] if isinstance(doc, dict) else doc.summary
        lines.append(f"{idx}. {name} - {summary}")
    return "\n".join(lines)


def build_verdict_messages(case, document_summaries: Optional[Sequence] = None) -> List[Dict[str, str]]:
    user = VERDICT_PROMPT.format(
        title=case.title,
        description=case.description,
        category=_label(case.category),
        jurisdiction=case.jurisdiction,
        documents=_documents_block(document_summaries),
    )
    return [
        {"role": "system", "content": SYSTEM_JUDGE},
        {"role": "user", "content": user},
    ]


def build_reconsideration_messages(case, previous_verdict, argument_text: str, side="") -> List[Dict[str, str]]:
    """``previous_verdict`` is the case's current AiVerdict, or None before the first run."""
    user = RECONSIDER_PROMPT.format(
        title=case.title,
        description=case.description,
        previous_verdict=_label(previous_verdict.verdict) if previous_verdict else NO_PREVIOUS_VERDICT,
        previous_reasoning=previous_verdict.reasoning if previous_verdict else "",
        side=_label(side),
        argument=argument_text,
    )
    return [
        {"role": "system", "content": SYSTEM_RECONSIDER},
        {"role": "user", "content": user},
    ]
