"""Tests for the per-event contribution bank."""

import numpy as np
import pytest

pytestmark = pytest.mark.unit

from qnflow.core.datavector import ContributionBank


class TestContributionBank:
    """Test filling, growth and reuse of the bank."""

    def test_extend_defaults(self):
        """Weights default to 1, channels to -1, equalized weights to the weights."""
        bank = ContributionBank()
        bank.extend([0.1, 0.2])

        assert len(bank) == 2
        np.testing.assert_array_equal(bank.weight, [1.0, 1.0])
        np.testing.assert_array_equal(bank.equalized_weight, bank.weight)
        np.testing.assert_array_equal(bank.channel, [-1, -1])

    def test_bank_grows_beyond_capacity(self):
        """Appending past the capacity keeps earlier contributions."""
        bank = ContributionBank(capacity=2)
        bank.extend([0.0, 1.0], [1.0, 2.0])
        bank.extend([2.0, 3.0, 4.0], [3.0, 4.0, 5.0])

        assert bank.capacity >= 5
        np.testing.assert_array_equal(bank.phi, [0.0, 1.0, 2.0, 3.0, 4.0])
        np.testing.assert_array_equal(bank.weight, [1.0, 2.0, 3.0, 4.0, 5.0])

    def test_equalized_weight_is_writable_view(self):
        """Input-data stages rewrite equalized weights in place."""
        bank = ContributionBank()
        bank.extend([0.0, 1.0], [2.0, 4.0])
        bank.equalized_weight[:] = [1.0, 1.0]

        np.testing.assert_array_equal(bank.equalized_weight, [1.0, 1.0])
        np.testing.assert_array_equal(bank.weight, [2.0, 4.0])

    def test_clear_keeps_storage(self):
        bank = ContributionBank(capacity=4)
        bank.extend(np.zeros(10))
        capacity = bank.capacity
        bank.clear()

        assert len(bank) == 0
        assert bank.capacity == capacity
        assert bank.phi.size == 0

    def test_length_mismatch_raises(self):
        bank = ContributionBank()
        with pytest.raises(ValueError, match="differ in length"):
            bank.extend([0.0, 1.0], [1.0])
