"""
Case persistence for the judge.

Every write that touches the ledger or the verdict goes through a
compare-and-set on ``Case.version``: the update only lands when the version
is still the one that was read, otherwise the whole read-modify-write is
retried from a fresh load.
"""
import logging
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from . import config
from .errors import CaseNotFound, ConcurrentUpdate
from .ledger import ArgumentLedger
from .models import AiVerdict, Argument, ArgumentEntry, Case, CaseRead, Side, VerdictRecord

logger = logging.getLogger(__name__)

COUNT_FIELDS = {Side.A: "argument_count_a", Side.B: "argument_count_b"}


def next_case_number(sess: Session) -> str:
    """CASE-YYYY-NNNNN, numbered after the most recent case."""
    last = sess.exec(select(Case).order_by(Case.id.desc())).first()
    number = 1
    if last and last.case_number:
        tail = last.case_number.rsplit("-", 1)[-1]
        number = int(tail) + 1 if tail.isdigit() else last.id + 1
    return f"CASE-{datetime.utcnow().year}-{number:05d}"


def ai_verdict_of(case: Case) -> Optional[AiVerdict]:
    if case.ai_verdict is None:
        return None
    return AiVerdict(
        verdict=case.ai_verdict,
        reasoning=case.ai_reasoning or "",
        confidence=case.ai_confidence if case.ai_confidence is not None else 50,
        decided_at=case.ai_decided_at or case.updated_at,
    )


def _entry(row: Argument) -> ArgumentEntry:
    return ArgumentEntry(
        position=row.position,
        text=row.text,
        counter=row.counter,
        timestamp=row.timestamp,
        countered_at=row.countered_at,
    )


def load_ledger(sess: Session, case_id: int, side: Side, limit: int) -> ArgumentLedger:
    rows = sess.exec(
        select(Argument).where((Argument.case_id == case_id) & (Argument.side == side))
    ).all()
    return ArgumentLedger(side, [_entry(r) for r in rows], limit)


def case_to_read(sess: Session, case: Case, limit: Optional[int] = None) -> CaseRead:
    if limit is None:
        limit = config.MAX_ARGUMENTS
    ledger_a = load_ledger(sess, case.id, Side.A, limit)
    ledger_b = load_ledger(sess, case.id, Side.B, limit)
    return CaseRead(
        id=case.id,
        case_number=case.case_number,
        title=case.title,
        description=case.description,
        category=case.category,
        jurisdiction=case.jurisdiction,
        status=case.status,
        lawyer_a_id=case.lawyer_a_id,
        lawyer_b_id=case.lawyer_b_id,
        ai_verdict=ai_verdict_of(case),
        arguments_a=ledger_a.entries,
        arguments_b=ledger_b.entries,
        argument_count_a=case.argument_count_a,
        argument_count_b=case.argument_count_b,
        created_at=case.created_at,
        updated_at=case.updated_at,
    )


class CaseStore:
    def __init__(self, engine, max_attempts: Optional[int] = None):
        self.engine = engine
        self.max_attempts = config.STORE_MAX_ATTEMPTS if max_attempts is None else max_attempts

    def load_case(self, case_id: int) -> Case:
        with Session(self.engine) as sess:
            case = sess.get(Case, case_id)
            if case is None:
                raise CaseNotFound(case_id)
            sess.expunge(case)
            return case

    def load_ledger(self, case_id: int, side: Side, limit: int) -> ArgumentLedger:
        with Session(self.engine) as sess:
            return load_ledger(sess, case_id, side, limit)

    def _bump(self, sess: Session, case_id: int, expected_version: int, values: Dict) -> bool:
        """Compare-and-set on the case version. False when another writer got there first."""
        stmt = (
            update(Case)
            .where((Case.id == case_id) & (Case.version == expected_version))
            .values(version=expected_version + 1, updated_at=datetime.utcnow(), **values)
        )
        result = sess.connection().execute(stmt)
        return result.rowcount == 1

    def append_argument(self, case_id: int, side: Side, text: str, limit: int,
                        now: Optional[datetime] = None) -> ArgumentEntry:
        """Check the cap, append and bump the count in one transaction."""
        side = Side(side)
        for attempt in range(1, self.max_attempts + 1):
            with Session(self.engine) as sess:
                case = sess.get(Case, case_id)
                if case is None:
                    raise CaseNotFound(case_id)
                version = case.version
                ledger = load_ledger(sess, case_id, side, limit)
                entry = ledger.submit(text, now)
                if self._bump(sess, case_id, version, {COUNT_FIELDS[side]: ledger.count}):
                    sess.add(Argument(case_id=case_id, side=side, **entry.model_dump()))
                    sess.commit()
                    logger.info("Case %s: argument %d recorded for side %s", case_id, entry.position, side.value)
                    return entry
                sess.rollback()
            logger.info("Case %s changed during argument append (attempt %d), retrying", case_id, attempt)
        raise ConcurrentUpdate(case_id, self.max_attempts)

    def save_verdict(self, case_id: int, record: VerdictRecord, decided_at: datetime) -> AiVerdict:
        for attempt in range(1, self.max_attempts + 1):
            with Session(self.engine) as sess:
                case = sess.get(Case, case_id)
                if case is None:
                    raise CaseNotFound(case_id)
                if self._bump(sess, case_id, case.version, self._verdict_values(record, decided_at)):
                    sess.commit()
                    return AiVerdict(decided_at=decided_at, **record.model_dump())
                sess.rollback()
            logger.info("Case %s changed during verdict save (attempt %d), retrying", case_id, attempt)
        raise ConcurrentUpdate(case_id, self.max_attempts)

    def save_reconsideration(self, case_id: int, side: Side, position: int, record: VerdictRecord,
                             decided_at: datetime, limit: int):
        """Patch the counter of the latest argument and replace the verdict together."""
        side = Side(side)
        for attempt in range(1, self.max_attempts + 1):
            with Session(self.engine) as sess:
                case = sess.get(Case, case_id)
                if case is None:
                    raise CaseNotFound(case_id)
                version = case.version
                ledger = load_ledger(sess, case_id, side, limit)
                entry = ledger.patch_latest_counter(position, record.reasoning, decided_at)
                if self._bump(sess, case_id, version, self._verdict_values(record, decided_at)):
                    row = sess.exec(
                        select(Argument).where(
                            (Argument.case_id == case_id)
                            & (Argument.side == side)
                            & (Argument.position == position)
                        )
                    ).one()
                    row.counter = entry.counter
                    row.countered_at = entry.countered_at
                    sess.add(row)
                    sess.commit()
                    return entry, AiVerdict(decided_at=decided_at, **record.model_dump())
                sess.rollback()
            logger.info("Case %s changed during reconsideration save (attempt %d), retrying", case_id, attempt)
        raise ConcurrentUpdate(case_id, self.max_attempts)

    @staticmethod
    def _verdict_values(record: VerdictRecord, decided_at: datetime) -> Dict:
        return {
            "ai_verdict": record.verdict,
            "ai_reasoning": record.reasoning,
            "ai_confidence": record.confidence,
            "ai_decided_at": decided_at,
        }
