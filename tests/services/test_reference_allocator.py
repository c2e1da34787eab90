"""
Tests for reference allocation (ledger_kernel/services/reference_allocator.py).

Verifies:
- Reference format
- Known-taken candidates are skipped by the pre-check
- A uniqueness violation at insert time is retried in a fresh savepoint
- Bounded attempts end in ReferenceExhaustedError
- Integrity errors that are not about the reference propagate
"""

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.exceptions import ReferenceExhaustedError
from ledger_kernel.models.transaction import Transaction
from ledger_kernel.services.reference_allocator import ReferenceAllocator

REFERENCE_RE = re.compile(r"^TXN-\d{8}-\d{6}[0-9a-f]{4}$")


class ScriptedAllocator(ReferenceAllocator):
    """Hands out a fixed list of candidates; optionally blind to existing rows."""

    def __init__(self, candidates, blind=False, **kwargs):
        super().__init__(**kwargs)
        self._candidates = iter(candidates)
        self._blind = blind

    def generate(self) -> str:
        return next(self._candidates)

    def exists(self, session, reference):
        if self._blind:
            return False
        return super().exists(session, reference)


def _header_factory(session, actor_id):
    def insert(reference: str) -> Transaction:
        header = Transaction(
            reference_number=reference,
            transaction_date=date(2024, 1, 15),
            description="Allocator test",
            total_amount=Decimal("1.00"),
            created_by=actor_id,
        )
        session.add(header)
        return header

    return insert


@pytest.fixture
def existing_reference(session, test_actor_id):
    session.add(
        Transaction(
            reference_number="TXN-20240115-000000dup0",
            transaction_date=date(2024, 1, 15),
            description="Already there",
            total_amount=Decimal("1.00"),
            created_by=test_actor_id,
        )
    )
    session.commit()
    return "TXN-20240115-000000dup0"


class TestGenerate:

    def test_format(self):
        allocator = ReferenceAllocator(clock=DeterministicClock())
        reference = allocator.generate()
        assert REFERENCE_RE.match(reference), reference
        assert reference.startswith("TXN-20240115-")

    def test_millisecond_digits(self):
        clock = DeterministicClock(datetime(2024, 1, 15, 9, 0, 0, 123000, tzinfo=timezone.utc))
        reference = ReferenceAllocator(clock=clock).generate()
        expected_millis = str(clock.timestamp_ms())[-6:]
        assert reference[len("TXN-20240115-"):][:6] == expected_millis

    def test_prefix(self):
        allocator = ReferenceAllocator(clock=DeterministicClock(), prefix="JRN")
        assert allocator.generate().startswith("JRN-20240115-")

    def test_random_suffix_varies(self):
        allocator = ReferenceAllocator(clock=DeterministicClock())
        assert len({allocator.generate() for _ in range(50)}) > 1

    def test_max_attempts_validated(self):
        with pytest.raises(ValueError):
            ReferenceAllocator(max_attempts=0)


class TestAllocate:

    def test_happy_path(self, session, test_actor_id, db_tables):
        allocator = ReferenceAllocator(clock=DeterministicClock())
        header = allocator.allocate(session, _header_factory(session, test_actor_id))
        assert REFERENCE_RE.match(header.reference_number)
        assert header.id is not None

    def test_precheck_skips_taken_reference(
        self, session, existing_reference, test_actor_id, captured_logs
    ):
        allocator = ScriptedAllocator([existing_reference, "TXN-20240115-000000new0"])
        header = allocator.allocate(session, _header_factory(session, test_actor_id))

        assert header.reference_number == "TXN-20240115-000000new0"
        collisions = [r for r in captured_logs() if r["message"] == "reference_collision"]
        assert [c["stage"] for c in collisions] == ["precheck"]

    def test_insert_violation_retried(
        self, session, existing_reference, test_actor_id, captured_logs
    ):
        """The constraint, not the pre-check, is what guarantees uniqueness."""
        allocator = ScriptedAllocator(
            [existing_reference, "TXN-20240115-000000new1"], blind=True
        )
        header = allocator.allocate(session, _header_factory(session, test_actor_id))
        session.commit()

        assert header.reference_number == "TXN-20240115-000000new1"
        collisions = [r for r in captured_logs() if r["message"] == "reference_collision"]
        assert [(c["stage"], c["attempt"]) for c in collisions] == [("insert", 1)]
        allocated = next(r for r in captured_logs() if r["message"] == "reference_allocated")
        assert allocated["attempt"] == 2

    def test_retry_keeps_the_outer_transaction(
        self, session, existing_reference, test_actor_id
    ):
        """A collision rolls back its savepoint only, not earlier work."""
        earlier = Transaction(
            reference_number="TXN-20240115-000000early",
            transaction_date=date(2024, 1, 15),
            description="Earlier in the same transaction",
            total_amount=Decimal("2.00"),
            created_by=test_actor_id,
        )
        session.add(earlier)
        session.flush()

        allocator = ScriptedAllocator(
            [existing_reference, "TXN-20240115-000000new2"], blind=True
        )
        allocator.allocate(session, _header_factory(session, test_actor_id))
        session.commit()

        assert session.get(Transaction, earlier.id) is not None

    def test_exhaustion(self, session, existing_reference, test_actor_id, captured_logs):
        allocator = ScriptedAllocator([existing_reference] * 3, blind=True, max_attempts=3)
        with pytest.raises(ReferenceExhaustedError) as exc_info:
            allocator.allocate(session, _header_factory(session, test_actor_id))

        assert exc_info.value.attempts == 3
        assert exc_info.value.is_retryable
        messages = [r["message"] for r in captured_logs()]
        assert messages.count("reference_collision") == 3
        assert "reference_exhausted" in messages

    def test_other_integrity_errors_propagate(self, session, db_tables):
        """A NOT NULL violation is a bug in the caller, not a collision."""
        allocator = ScriptedAllocator(["TXN-20240115-000000null"])

        def insert_without_actor(reference):
            header = Transaction(
                reference_number=reference,
                transaction_date=date(2024, 1, 15),
                description="No actor",
                total_amount=Decimal("1.00"),
                created_by=None,
            )
            session.add(header)
            return header

        with pytest.raises(IntegrityError):
            allocator.allocate(session, insert_without_actor)

    def test_exists(self, session, existing_reference):
        allocator = ReferenceAllocator()
        assert allocator.exists(session, existing_reference)
        assert not allocator.exists(session, f"TXN-20240115-{uuid4().hex[:10]}")
