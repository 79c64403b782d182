"""Age calculation for profile cards."""

from datetime import date

from matchpoint.matching.profiles import calculate_age


class TestCalculateAge:
    def test_birthday_already_passed(self):
        assert calculate_age(date(1990, 3, 1), today=date(2024, 6, 1)) == 34

    def test_birthday_not_yet_reached(self):
        assert calculate_age(date(1990, 9, 1), today=date(2024, 6, 1)) == 33

    def test_birthday_today(self):
        assert calculate_age(date(2000, 6, 1), today=date(2024, 6, 1)) == 24

    def test_unknown_birth_date(self):
        assert calculate_age(None) is None
