import uuid
from sqlmodel import SQLModel, Session, create_engine
from arbitration import config, models, services
from arbitration.errors import ArgumentLimitReached, ModelUnavailable
from arbitration.judge import VerdictOrchestrator
from arbitration.store import CaseStore, next_case_number

# Case metadata
TITLE = "BSNL vs M/S S D Constructions"
DESCRIPTION = "A dispute regarding the installation of telecom equipment on a building."
CATEGORY = models.Category.CIVIL


def create_demo_case(engine):
    with Session(engine) as sess:
        lawyer_a = models.User(name="Demo Lawyer A", email=f"a-{uuid.uuid4().hex[:8]}@demo.local")
        lawyer_b = models.User(name="Demo Lawyer B", email=f"b-{uuid.uuid4().hex[:8]}@demo.local",
                               role=models.Role.LAWYER_B)
        sess.add(lawyer_a)
        sess.add(lawyer_b)
        sess.commit()
        case = models.Case(
            case_number=next_case_number(sess),
            title=TITLE,
            description=DESCRIPTION,
            category=CATEGORY,
            jurisdiction=config.DEFAULT_JURISDICTION,
            lawyer_a_id=lawyer_a.id,
            lawyer_b_id=lawyer_b.id,
            status=models.CaseStatus.IN_HEARING,
        )
        sess.add(case)
        sess.commit()
        return case.id, lawyer_a.id, lawyer_b.id


def print_verdict(verdict):
    print(f"Verdict: {verdict.verdict.value} ({verdict.confidence}%)")
    print(f"Reasoning: {verdict.reasoning}\n")


def main():
    print("=== Arbitration CLI ===\n")
    print(f"Provider: {config.LLM_PROVIDER}, database: {config.DATABASE_URL}\n")

    engine = create_engine(config.DATABASE_URL, echo=False)
    SQLModel.metadata.create_all(engine)
    case_id, lawyer_a, lawyer_b = create_demo_case(engine)

    judge = VerdictOrchestrator(
        CaseStore(engine),
        services.select_generator(config.LLM_PROVIDER),
        services.default_options(config.LLM_PROVIDER),
        config.MAX_ARGUMENTS,
    )

    summary = input("Optional document summary (blank for none): ").strip()
    summaries = [models.DocumentSummary(name="Submitted document", summary=summary)] if summary else []

    print("\nRequesting initial verdict...\n")
    try:
        print_verdict(judge.request_verdict(case_id, summaries))
    except ModelUnavailable as e:
        print(f"LLM call failed: {e}")
        return

    lawyers = {"A": lawyer_a, "B": lawyer_b}
    exhausted = set()
    while len(exhausted) < 2:
        side = input("Argue for side (A/B, blank to quit): ").strip().upper()
        if not side:
            break
        if side not in lawyers:
            continue
        text = input(f"Lawyer {side} argument: ").strip()
        if not text:
            continue
        try:
            outcome = judge.submit_argument(case_id, lawyers[side], text)
        except ArgumentLimitReached as e:
            print(f"{e}\n")
            exhausted.add(side)
            continue
        except ModelUnavailable as e:
            print(f"Argument saved, AI reconsideration failed: {e}\n")
            continue
        print(f"\n[COUNTER] {outcome.argument.counter}")
        print_verdict(outcome.verdict)


if __name__ == "__main__":
    main()
