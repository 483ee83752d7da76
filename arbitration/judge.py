"""
The AI judge: initial verdicts and argument-driven reconsideration.

Both flows load the case, build a prompt, make exactly one model call, and
normalise whatever comes back. Submitting an argument commits the argument
before the model is called, so a slow or failing model can cost the counter
and the new verdict but never the argument itself.
"""
import logging
from datetime import datetime
from typing import Callable, NamedTuple, Optional, Sequence

from . import config, prompts
from .errors import CounterSuperseded, ModelUnavailable, NotAParty
from .models import AiVerdict, ArgumentEntry, Case, Side
from .services import Generator, ModelOptions, parse_model_response
from .store import CaseStore, ai_verdict_of

logger = logging.getLogger(__name__)


class ArgumentOutcome(NamedTuple):
    side: Side
    argument: ArgumentEntry
    verdict: AiVerdict


def resolve_side(case: Case, user_id: int) -> Side:
    if case.lawyer_a_id == user_id:
        return Side.A
    if case.lawyer_b_id is not None and case.lawyer_b_id == user_id:
        return Side.B
    raise NotAParty(case.id, user_id)


class VerdictOrchestrator:
    def __init__(self, store: CaseStore, generate: Generator, options: ModelOptions,
                 max_arguments: Optional[int] = None, clock: Callable[[], datetime] = datetime.utcnow):
        self.store = store
        self.generate = generate
        self.options = options
        self.max_arguments = config.MAX_ARGUMENTS if max_arguments is None else max_arguments
        self.clock = clock

    def _call_model(self, messages, case_id, argument=None, side=None) -> str:
        try:
            return self.generate(messages, self.options)
        except Exception as e:
            logger.error("Case %s: model call failed: %s", case_id, e)
            raise ModelUnavailable(f"LLM call failed: {e}", argument=argument, side=side) from e

    def request_verdict(self, case_id: int, document_summaries: Optional[Sequence] = None) -> AiVerdict:
        case = self.store.load_case(case_id)
        messages = prompts.build_verdict_messages(case, document_summaries or [])
        raw = self._call_model(messages, case_id)
        record = parse_model_response(raw)
        verdict = self.store.save_verdict(case_id, record, self.clock())
        logger.info("Case %s: verdict %s (%d%%)", case_id, record.verdict.value, record.confidence)
        return verdict

    def submit_argument(self, case_id: int, user_id: int, text: str) -> ArgumentOutcome:
        case = self.store.load_case(case_id)
        side = resolve_side(case, user_id)
        entry = self.store.append_argument(case_id, side, text, self.max_arguments, self.clock())

        # Re-read so the prompt sees the verdict as of the append
        previous = ai_verdict_of(self.store.load_case(case_id))
        messages = prompts.build_reconsideration_messages(case, previous, text, side)
        raw = self._call_model(messages, case_id, argument=entry, side=side)
        record = parse_model_response(raw)
        try:
            patched, verdict = self.store.save_reconsideration(
                case_id, side, entry.position, record, self.clock(), self.max_arguments
            )
        except CounterSuperseded as e:
            logger.warning("Case %s: reconsideration of argument %d discarded: %s", case_id, entry.position, e)
            e.argument = entry
            raise
        logger.info(
            "Case %s: side %s argument %d reconsidered, verdict %s (%d%%)",
            case_id, side.value, entry.position, record.verdict.value, record.confidence,
        )
        return ArgumentOutcome(side=side, argument=patched, verdict=verdict)
