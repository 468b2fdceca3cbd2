from __future__ import annotations

import random
import re
import unittest
from unittest.mock import patch

from sqlalchemy import select

from campus_api.errors import ConflictError
from campus_api.models import IdentifierPool, IdentifierPoolEntry
from campus_api.services.identifier_pools import (
    RandomCodeStrategy,
    SequentialStrategy,
    auto_generate,
    available_count,
    initialize_pool,
    is_available,
    list_available,
    mark_used,
    pool_size,
    reset_pool,
)
from helpers import DatabaseTestCase

REG = IdentifierPool.REGISTRATION_NUMBER
STAFF = IdentifierPool.STAFF_ID


class IdentifierPoolServiceTests(DatabaseTestCase):
    def test_initialize_creates_zero_padded_sequence(self) -> None:
        result = initialize_pool(self.db, REG, prefix="CMS/2025/", start=2, count=3)

        self.assertTrue(result.initialized)
        self.assertEqual(result.count, 3)
        self.assertEqual(
            list_available(self.db, REG),
            ["CMS/2025/0000002", "CMS/2025/0000003", "CMS/2025/0000004"],
        )

    def test_initialize_is_noop_when_pool_has_entries(self) -> None:
        initialize_pool(self.db, REG, prefix="CMS/2025/", start=2, count=3)

        again = initialize_pool(self.db, REG, prefix="CMS/2025/", start=50, count=10)

        self.assertFalse(again.initialized)
        self.assertEqual(again.count, 3)
        self.assertEqual(pool_size(self.db, REG), 3)

    def test_pools_are_independent(self) -> None:
        initialize_pool(self.db, REG, prefix="CMS/2025/", start=2, count=3)
        staff = initialize_pool(self.db, STAFF, prefix="CMS/STAFF/2025/", start=1, count=2)

        self.assertTrue(staff.initialized)
        self.assertEqual(list_available(self.db, STAFF), ["CMS/STAFF/2025/0000001", "CMS/STAFF/2025/0000002"])

    def test_mark_used_claims_value_once(self) -> None:
        initialize_pool(self.db, REG, prefix="CMS/2025/", start=2, count=3)

        first = mark_used(self.db, REG, "CMS/2025/0000003", "student-1")
        second = mark_used(self.db, REG, "CMS/2025/0000003", "student-2")

        self.assertTrue(first)
        self.assertFalse(second)
        self.assertFalse(is_available(self.db, REG, "CMS/2025/0000003"))
        self.assertEqual(list_available(self.db, REG), ["CMS/2025/0000002", "CMS/2025/0000004"])

        entry = self.db.scalar(
            select(IdentifierPoolEntry).where(IdentifierPoolEntry.value == "CMS/2025/0000003")
        )
        self.db.refresh(entry)
        self.assertEqual(entry.used_by, "student-1")
        self.assertIsNotNone(entry.used_at)

    def test_mark_used_unknown_value_returns_false(self) -> None:
        self.assertFalse(mark_used(self.db, REG, "CMS/2025/9999999", "student-1"))
        self.assertFalse(is_available(self.db, REG, "CMS/2025/9999999"))

    def test_auto_generate_skips_when_above_threshold(self) -> None:
        initialize_pool(self.db, REG, prefix="CMS/2025/", start=1, count=5)

        result = auto_generate(self.db, REG, threshold=3, batch_size=10)

        self.assertEqual(result.generated, 0)
        self.assertEqual(result.new_count, 5)

    def test_auto_generate_continues_after_highest_registration_number(self) -> None:
        initialize_pool(self.db, REG, prefix="CMS/2025/", start=2, count=3)
        strategy = SequentialStrategy("CMS/2025/", suffix_pattern=r"^CMS/\d{4}/(\d+)$")

        result = auto_generate(self.db, REG, threshold=10, batch_size=4, strategy=strategy)

        self.assertEqual(result.generated, 4)
        self.assertEqual(result.new_count, 7)
        available = list_available(self.db, REG)
        self.assertEqual(len(available), len(set(available)))
        self.assertEqual(available[-1], "CMS/2025/0000008")

    def test_auto_generate_random_staff_ids_are_unique(self) -> None:
        result = auto_generate(
            self.db,
            STAFF,
            threshold=10,
            batch_size=25,
            strategy=RandomCodeStrategy(rng=random.Random(7)),
        )

        values = list_available(self.db, STAFF)
        self.assertEqual(result.generated, 25)
        self.assertEqual(result.new_count, 25)
        self.assertEqual(len(values), len(set(values)))
        self.assertTrue(all(re.fullmatch(r"[A-Z]{2}\d{4}", value) for value in values))

    def test_auto_generate_uses_configured_defaults(self) -> None:
        result = auto_generate(self.db, REG)

        self.assertEqual(result.generated, 50)
        self.assertEqual(available_count(self.db, REG), 50)

    def test_reset_refuses_pool_with_used_entries(self) -> None:
        initialize_pool(self.db, REG, prefix="CMS/2025/", start=2, count=3)
        mark_used(self.db, REG, "CMS/2025/0000002", "student-1")

        with self.assertRaises(ConflictError) as ctx:
            reset_pool(self.db, REG, prefix="CMS/2026/", start=1, count=2)
        self.assertEqual(ctx.exception.code, "POOL_HAS_USED_ENTRIES")

        result = reset_pool(self.db, REG, prefix="CMS/2026/", start=1, count=2, force=True)
        self.assertTrue(result.initialized)
        self.assertEqual(list_available(self.db, REG), ["CMS/2026/0000001", "CMS/2026/0000002"])


class GenerationStrategyTests(unittest.TestCase):
    def test_sequential_strategy_skips_existing_values(self) -> None:
        strategy = SequentialStrategy("CMS/2025/", default_start=2)
        existing = {"CMS/2025/0000002", "CMS/2025/0000005", "unrelated"}

        self.assertEqual(strategy.next_start(existing), 6)
        self.assertEqual(strategy.generate(existing, 2), ["CMS/2025/0000006", "CMS/2025/0000007"])
        self.assertEqual(strategy.generate(set(), 1), ["CMS/2025/0000002"])

    def test_random_strategy_gives_up_after_bounded_attempts(self) -> None:
        strategy = RandomCodeStrategy(letters=1, digits=0, rng=random.Random(1))

        with patch("campus_api.services.identifier_pools.logger") as fake_logger:
            values = strategy.generate(set(), 30)

        # Only 26 distinct single-letter codes exist.
        self.assertLessEqual(len(values), 26)
        self.assertEqual(len(values), len(set(values)))
        fake_logger.warning.assert_called_once()


if __name__ == "__main__":
    unittest.main()
