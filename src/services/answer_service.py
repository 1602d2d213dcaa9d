"""Answer synthesis from retrieved document context.

Conditions get a prompt that forces a leading ``WAHR:`` / ``FALSCH:`` /
``UNBEKANNT:`` verdict; questions get a structured direct-answer / details /
source prompt with an explicit "INFORMATION NICHT VERFÜGBAR" fallback.
:func:`parse_verdict` reads the leading token back for display.
"""

from __future__ import annotations

import re

import structlog

from src.config.app_config import AIConfig, RetryConfig
from src.interfaces.llm_provider import ILLMProvider
from src.models.query import Query, QueryType, Verdict
from src.utils.logging import get_logger
from src.utils.retry import retry_on_rate_limit

logger: structlog.BoundLogger = get_logger(__name__)

INFORMATION_UNAVAILABLE = "INFORMATION NICHT VERFÜGBAR"

_SYSTEM_PROMPT = "Sie sind ein Experte für deutsche Ausschreibungen."

# English tokens appear when the model ignores the German answer format.
_VERDICT_TOKENS: dict[str, Verdict] = {
    "WAHR": Verdict.TRUE,
    "TRUE": Verdict.TRUE,
    "FALSCH": Verdict.FALSE,
    "FALSE": Verdict.FALSE,
    "UNBEKANNT": Verdict.UNKNOWN,
    "UNKNOWN": Verdict.UNKNOWN,
}
# Skips leading whitespace and markdown markers before the first word.
_VERDICT_PATTERN = re.compile(r"^[\s*_#>-]*([A-Za-zÄÖÜäöü]+)")


def build_condition_prompt(condition: str, context: list[str]) -> str:
    context_text = "\n\n".join(context)
    return f"""Bewerten Sie die folgende Bedingung basierend auf dem Kontext und geben Sie eine klare, definitive Antwort.

**KONTEXT:**
{context_text}

**BEDINGUNG:** {condition}

**ANTWORTFORMAT:**
Antworten Sie NUR mit einem der folgenden Formate:

WAHR: [Präzise Begründung mit Verweis auf spezifische Dokumentstelle]
FALSCH: [Präzise Begründung mit Verweis auf spezifische Dokumentstelle]
UNBEKANNT: [Spezifische Erklärung, warum die Information nicht verfügbar ist]

**WICHTIGE REGELN:**
- Seien Sie präzise und verweisen Sie auf konkrete Dokumentstellen
- Nutzen Sie nur Informationen aus dem bereitgestellten Kontext
- Wenn die Information nicht explizit im Kontext steht, wählen Sie UNBEKANNT
- Geben Sie kurze, aber vollständige Begründungen"""


def build_question_prompt(question: str, context: list[str]) -> str:
    context_text = "\n\n".join(context)
    return f"""Beantworten Sie die Frage basierend auf dem Kontext präzise und vollständig.

**KONTEXT:**
{context_text}

**FRAGE:** {question}

**ANTWORTFORMAT:**
Geben Sie eine strukturierte Antwort mit:
1. **Direkte Antwort:** [Hauptantwort in 1-2 Sätzen]
2. **Details:** [Relevante Einzelheiten aus dem Kontext]
3. **Quelle:** [Verweis auf spezifische Dokumentstelle]

**WICHTIGE REGELN:**
- Seien Sie konkret und präzise
- Verwenden Sie nur Informationen aus dem bereitgestellten Kontext
- Wenn die Information nicht verfügbar ist, sagen Sie dies explizit
- Geben Sie spezifische Zahlen, Daten und Details an
- Strukturieren Sie die Antwort logisch und verständlich
- Vermeiden Sie unnötige Wiederholungen

Wenn die Information nicht im Kontext verfügbar ist, antworten Sie mit:
**{INFORMATION_UNAVAILABLE}:** [Spezifische Erklärung, was fehlt und wo es normalerweise stehen würde]"""


def parse_verdict(answer: str) -> Verdict | None:
    """Map the leading token of a condition answer to a :class:`Verdict`.

    Leading markdown emphasis is ignored, so ``**WAHR:** ...`` parses too.
    Returns ``None`` when the answer does not start with a known token.
    """
    match = _VERDICT_PATTERN.match(answer)
    if not match:
        return None
    return _VERDICT_TOKENS.get(match.group(1).upper())


def no_match_answer(query: Query) -> str:
    """Answer text used when retrieval found nothing for *query*."""
    reason = "Im Dokument wurden keine relevanten Inhalte zu dieser Anfrage gefunden."
    if query.query_type is QueryType.CONDITION:
        return f"UNBEKANNT: {reason}"
    return f"**{INFORMATION_UNAVAILABLE}:** {reason}"


class AnswerService:
    """Synthesizes answers for classified queries from retrieved context."""

    def __init__(
        self,
        llm_provider: ILLMProvider,
        ai_config: AIConfig,
        retry_config: RetryConfig,
    ) -> None:
        self._llm = llm_provider
        self._max_tokens = ai_config.answering_max_tokens
        self._temperature = ai_config.answering_temperature
        self._retry = retry_config

    async def synthesize(self, query: Query, context: list[str]) -> str:
        """Return the LLM's answer to *query* given *context* passages.

        Raises:
            LLMError: If the call fails for a reason other than rate limiting.
            RateLimitError: If rate limiting persists past the retry budget.
        """
        if query.query_type is QueryType.CONDITION:
            prompt = build_condition_prompt(query.text, context)
        else:
            prompt = build_question_prompt(query.text, context)

        # A fresh coroutine per attempt; an awaited one cannot be retried.
        answer = await retry_on_rate_limit(
            lambda: self._llm.complete(
                system_prompt=_SYSTEM_PROMPT,
                user_prompt=prompt,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            ),
            max_retries=self._retry.max_retries,
            base_delay_ms=self._retry.base_delay_ms,
            max_delay_ms=self._retry.max_delay_ms,
            operation="synthesize_answer",
        )
        logger.debug(
            "answer_synthesized",
            query_type=query.query_type.value,
            context_passages=len(context),
            answer_length=len(answer),
        )
        return answer.strip()
