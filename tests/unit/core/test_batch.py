"""
Unit tests for batch folding.
"""

import pytest

from core.domain.batch import BatchResult, CancellationToken, fold_batch
from core.domain.exceptions import DomainException


async def double_unless_three(value: int) -> int:
    if value == 3:
        raise DomainException("three is not allowed", code="NO_THREES")
    return value * 2


class TestFoldBatch:
    """Tests for fold_batch."""

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_the_batch(self):
        """Test a failing item is recorded and later items still run."""
        result = await fold_batch([1, 2, 3, 4], double_unless_three)

        assert result.successes == [2, 4, 8]
        assert result.failed == 1
        failure = result.failures[0]
        assert failure.item == 3
        assert failure.error_code == "NO_THREES"
        assert result.processed == 4
        assert result.aborted is False

    @pytest.mark.asyncio
    async def test_describe_controls_failure_item(self):
        """Test failures are recorded by their description."""
        result = await fold_batch([3], double_unless_three, describe=lambda v: f"item-{v}")
        assert result.failures[0].item == "item-3"

    @pytest.mark.asyncio
    async def test_cancellation_between_items(self):
        """Test cancellation stops before the next item and counts the rest."""
        token = CancellationToken()

        async def cancel_after_first(value: int) -> int:
            token.cancel()
            return value

        result = await fold_batch([1, 2, 3], cancel_after_first, token)

        assert result.successes == [1]
        assert result.aborted is True
        assert result.remaining == 2

    def test_merge(self):
        """Test merging two results."""
        first = BatchResult(successes=[1], aborted=False)
        second = BatchResult(successes=[2], aborted=True, remaining=3)

        merged = first.merge(second)

        assert merged.successes == [1, 2]
        assert merged.aborted is True
        assert merged.remaining == 3
