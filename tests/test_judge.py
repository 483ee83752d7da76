"""Verdict and argument flows against an in-memory database and a fake model."""

import pytest

from arbitration.errors import (
    ArgumentLimitReached,
    CaseNotFound,
    CounterSuperseded,
    ModelUnavailable,
    NotAParty,
)
from arbitration.judge import VerdictOrchestrator, resolve_side
from arbitration.models import Case, DocumentSummary, Side, Verdict
from arbitration.services import ModelOptions
from arbitration.store import ai_verdict_of

FAVOR_A = '{"verdict": "Favor of A", "confidence": 72, "reasoning": "Delivery records support the seller."}'
FAVOR_B = '```json\n{"verdict": "Favor of B", "confidence": "64", "reasoning": "Late delivery voids the claim."}\n```'


# =============================================================================
# Initial verdict
# =============================================================================


def test_initial_verdict_is_saved(judge, store, fake_model, case_id):
    fake_model.replies = [FAVOR_A]
    verdict = judge.request_verdict(case_id)
    assert verdict.verdict == Verdict.FAVOR_A
    assert verdict.confidence == 72
    assert ai_verdict_of(store.load_case(case_id)) == verdict
    assert "No document summaries were provided" in fake_model.last_user_message


def test_initial_verdict_uses_document_summaries(judge, fake_model, case_id):
    judge.request_verdict(case_id, [DocumentSummary(name="Delivery challan", summary="Signed 3 May")])
    assert "1. Delivery challan - Signed 3 May" in fake_model.last_user_message


def test_initial_verdict_passes_model_options(store, fake_model, case_id):
    seen = {}

    def generate(messages, options):
        seen["options"] = options
        return FAVOR_A

    options = ModelOptions(model="gpt-4o-mini", max_output_tokens=300, temperature=0.0)
    VerdictOrchestrator(store, generate, options).request_verdict(case_id)
    assert seen["options"] == options


def test_verdict_for_missing_case(judge, fake_model):
    with pytest.raises(CaseNotFound):
        judge.request_verdict(12345)
    assert fake_model.calls == []


def test_model_failure_leaves_case_untouched(judge, store, fake_model, case_id):
    version = store.load_case(case_id).version
    fake_model.error = TimeoutError("model took too long")
    with pytest.raises(ModelUnavailable) as exc:
        judge.request_verdict(case_id)
    assert not exc.value.argument_saved
    case = store.load_case(case_id)
    assert case.ai_verdict is None
    assert case.version == version


def test_garbage_output_becomes_neutral_verdict(judge, fake_model, case_id):
    fake_model.replies = ["I think A should probably win."]
    verdict = judge.request_verdict(case_id)
    assert verdict.verdict == Verdict.NEUTRAL
    assert verdict.confidence == 50
    assert "I think A should probably win." in verdict.reasoning


def test_each_run_replaces_the_verdict(judge, store, fake_model, case_id):
    fake_model.replies = [FAVOR_A, FAVOR_B]
    judge.request_verdict(case_id)
    second = judge.request_verdict(case_id)
    current = ai_verdict_of(store.load_case(case_id))
    assert current == second
    assert current.verdict == Verdict.FAVOR_B
    assert current.reasoning == "Late delivery voids the claim."


# =============================================================================
# Arguments
# =============================================================================


def test_resolve_side(lawyers):
    case = Case(id=1, case_number="X", title="t", description="d", category="Civil",
                lawyer_a_id=lawyers.a, lawyer_b_id=lawyers.b)
    assert resolve_side(case, lawyers.a) == Side.A
    assert resolve_side(case, lawyers.b) == Side.B
    with pytest.raises(NotAParty):
        resolve_side(case, lawyers.outsider)


def test_resolve_side_before_b_joins(lawyers):
    case = Case(id=1, case_number="X", title="t", description="d", category="Civil", lawyer_a_id=lawyers.a)
    with pytest.raises(NotAParty):
        resolve_side(case, lawyers.b)


def test_argument_is_answered_and_verdict_replaced(judge, store, fake_model, case_id, lawyers):
    fake_model.replies = [FAVOR_A, FAVOR_B]
    judge.request_verdict(case_id)
    outcome = judge.submit_argument(case_id, lawyers.b, "The rods arrived two weeks late.")

    assert outcome.side == Side.B
    assert outcome.argument.position == 0
    assert outcome.argument.counter == "Late delivery voids the claim."
    assert outcome.verdict.verdict == Verdict.FAVOR_B
    assert outcome.verdict.confidence == 64

    prompt = fake_model.last_user_message
    assert "Previous AI verdict: Favor of A" in prompt
    assert "Delivery records support the seller." in prompt
    assert "The rods arrived two weeks late." in prompt

    ledger = store.load_ledger(case_id, Side.B, 5)
    assert [e.counter for e in ledger.entries] == ["Late delivery voids the claim."]
    assert store.load_case(case_id).argument_count_b == 1


def test_argument_before_any_verdict(judge, fake_model, case_id, lawyers):
    judge.submit_argument(case_id, lawyers.a, "Payment terms were 30 days.")
    assert "Previous AI verdict: No previous verdict" in fake_model.last_user_message


def test_outsider_cannot_argue(judge, store, fake_model, case_id, lawyers):
    with pytest.raises(NotAParty):
        judge.submit_argument(case_id, lawyers.outsider, "I have an opinion too.")
    case = store.load_case(case_id)
    assert (case.argument_count_a, case.argument_count_b) == (0, 0)
    assert fake_model.calls == []


def test_argument_for_missing_case(judge, lawyers):
    with pytest.raises(CaseNotFound):
        judge.submit_argument(4242, lawyers.a, "Anyone there?")


def test_fifth_argument_then_limit(judge, store, fake_model, case_id, lawyers):
    for i in range(4):
        judge.submit_argument(case_id, lawyers.a, f"point {i}")
    assert store.load_case(case_id).argument_count_a == 4

    judge.submit_argument(case_id, lawyers.a, "final point")
    assert store.load_case(case_id).argument_count_a == 5

    calls_before = len(fake_model.calls)
    before = store.load_ledger(case_id, Side.A, 5).entries
    with pytest.raises(ArgumentLimitReached):
        judge.submit_argument(case_id, lawyers.a, "one more thing")
    assert store.load_ledger(case_id, Side.A, 5).entries == before
    assert store.load_case(case_id).argument_count_a == 5
    assert len(fake_model.calls) == calls_before


def test_sides_have_separate_quotas(judge, store, case_id, lawyers):
    for i in range(5):
        judge.submit_argument(case_id, lawyers.a, f"a{i}")
    with pytest.raises(ArgumentLimitReached):
        judge.submit_argument(case_id, lawyers.a, "a5")
    outcome = judge.submit_argument(case_id, lawyers.b, "b0")
    assert outcome.side == Side.B
    case = store.load_case(case_id)
    assert (case.argument_count_a, case.argument_count_b) == (5, 1)


def test_configured_limit(store, fake_model, case_id, lawyers):
    judge = VerdictOrchestrator(store, fake_model, ModelOptions(model="m"), max_arguments=2)
    judge.submit_argument(case_id, lawyers.a, "one")
    judge.submit_argument(case_id, lawyers.a, "two")
    with pytest.raises(ArgumentLimitReached):
        judge.submit_argument(case_id, lawyers.a, "three")


def test_zero_limit_is_not_replaced_by_default(store, fake_model, case_id, lawyers):
    judge = VerdictOrchestrator(store, fake_model, ModelOptions(model="m"), max_arguments=0)
    assert judge.max_arguments == 0
    with pytest.raises(ArgumentLimitReached):
        judge.submit_argument(case_id, lawyers.a, "one")
    assert fake_model.calls == []
    assert store.load_case(case_id).argument_count_a == 0


def test_model_failure_keeps_the_argument(judge, store, fake_model, case_id, lawyers):
    fake_model.replies = [FAVOR_A]
    before = judge.request_verdict(case_id)

    fake_model.error = ConnectionError("provider down")
    with pytest.raises(ModelUnavailable) as exc:
        judge.submit_argument(case_id, lawyers.a, "The buyer accepted the goods.")

    assert exc.value.argument_saved
    assert exc.value.side == Side.A
    assert exc.value.argument.text == "The buyer accepted the goods."

    entries = store.load_ledger(case_id, Side.A, 5).entries
    assert [(e.text, e.counter) for e in entries] == [("The buyer accepted the goods.", "")]
    case = store.load_case(case_id)
    assert case.argument_count_a == 1
    assert ai_verdict_of(case) == before


def test_oversized_confidence_still_answers_the_argument(judge, store, fake_model, case_id, lawyers):
    fake_model.replies = [
        '{"verdict": "Favor of A", "confidence": 1%s, "reasoning": "Overwhelming."}' % ("0" * 400),
    ]
    outcome = judge.submit_argument(case_id, lawyers.a, "The buyer signed the delivery challan.")

    assert outcome.verdict.confidence == 100
    assert outcome.argument.counter == "Overwhelming."
    entries = store.load_ledger(case_id, Side.A, 5).entries
    assert [(e.text, e.counter) for e in entries] == [("The buyer signed the delivery challan.", "Overwhelming.")]
    assert ai_verdict_of(store.load_case(case_id)).confidence == 100


def test_failed_reconsideration_still_uses_a_slot(judge, store, fake_model, case_id, lawyers):
    fake_model.error = RuntimeError("quota exceeded")
    for i in range(5):
        with pytest.raises(ModelUnavailable):
            judge.submit_argument(case_id, lawyers.b, f"point {i}")
    fake_model.error = None
    with pytest.raises(ArgumentLimitReached):
        judge.submit_argument(case_id, lawyers.b, "point 5")
    assert store.load_case(case_id).argument_count_b == 5


def test_newer_argument_supersedes_pending_counter(judge, store, fake_model, case_id, lawyers):
    fake_model.replies = [FAVOR_A]
    before = judge.request_verdict(case_id)

    # A second submission from the same side lands while the model is thinking
    def sneak_in():
        fake_model.before_reply = None
        store.append_argument(case_id, Side.A, "second point", 5)

    fake_model.before_reply = sneak_in
    with pytest.raises(CounterSuperseded) as exc:
        judge.submit_argument(case_id, lawyers.a, "first point")

    assert exc.value.argument.text == "first point"
    entries = store.load_ledger(case_id, Side.A, 5).entries
    assert [(e.text, e.counter) for e in entries] == [("first point", ""), ("second point", "")]
    assert ai_verdict_of(store.load_case(case_id)) == before
