"""Pure points rules: premium bypass and ledger descriptions."""

import pytest

from matchpoint.messaging.message_service import message_cost
from matchpoint.points import ledger


class TestPremiumBypass:
    def test_premium_skips_consumption(self):
        assert ledger.needs_point_consumption(True) is False

    def test_free_users_pay(self):
        assert ledger.needs_point_consumption(False) is True


class TestDefaultDescription:
    @pytest.mark.parametrize(
        ("transaction_type", "amount", "is_addition", "expected"),
        [
            (ledger.LIKE, 5, False, "Spent 5 points on a like"),
            (ledger.MESSAGE, -10, False, "Spent 10 points on a message"),
            (ledger.MATCH_BONUS, 2, True, "Earned 2 points for a new match"),
            (ledger.PURCHASE, 100, True, "Purchased 100 points"),
            (ledger.REVIEW, 3, True, "Earned 3 points for posting a review"),
            (ledger.REVIEW, 3, False, "Lost 3 points for a withdrawn review"),
        ],
    )
    def test_known_types(self, transaction_type, amount, is_addition, expected):
        assert ledger.default_description(transaction_type, amount, is_addition) == expected

    def test_unknown_type_falls_back(self):
        assert ledger.default_description("mystery", 4, True) == "Earned 4 points"
        assert ledger.default_description("mystery", 4, False) == "Spent 4 points"


class TestMessageCost:
    def test_regular_message(self):
        assert message_cost(False) == 1

    def test_highlighted_message(self):
        assert message_cost(True) == 10
