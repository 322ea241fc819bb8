import unittest
from datetime import date
from decimal import Decimal

from billing_schedule.calendar_feed import (
    FeedEntry,
    build_ical_feed,
    build_rrule,
    ical_escape,
    ical_fold,
)
from billing_schedule.recurrence import (
    IntervalRecurrence,
    MonthlyByDate,
    OneTime,
    YearlyByDate,
)


class BuildRRuleTests(unittest.TestCase):
    def test_interval_units_map_to_frequencies(self) -> None:
        expected = {
            "day": "FREQ=DAILY;INTERVAL=3",
            "week": "FREQ=WEEKLY;INTERVAL=3",
            "month": "FREQ=MONTHLY;INTERVAL=3",
            "year": "FREQ=YEARLY;INTERVAL=3",
        }
        for unit, rule in expected.items():
            with self.subTest(unit=unit):
                self.assertEqual(build_rrule(IntervalRecurrence(3, unit)), rule)

    def test_fixed_date_rules(self) -> None:
        self.assertEqual(build_rrule(MonthlyByDate(monthly_day=31)), "FREQ=MONTHLY;BYMONTHDAY=31")
        self.assertEqual(
            build_rrule(YearlyByDate(yearly_month=2, yearly_day=29)),
            "FREQ=YEARLY;BYMONTH=2;BYMONTHDAY=29",
        )

    def test_no_rule_for_one_time_or_invalid_schedules(self) -> None:
        cases = [
            None,
            OneTime(next_billing_date=date(2024, 1, 1)),
            IntervalRecurrence(0, "day"),
            IntervalRecurrence(1, "hour"),
            MonthlyByDate(monthly_day=0),
            YearlyByDate(yearly_month=13, yearly_day=1),
        ]
        for descriptor in cases:
            with self.subTest(descriptor=descriptor):
                self.assertIsNone(build_rrule(descriptor))


class EscapeAndFoldTests(unittest.TestCase):
    def test_escapes_special_characters(self) -> None:
        self.assertEqual(ical_escape("a\\b;c,d\r\ne"), "a\\\\b\\;c\\,d\\ne")

    def test_short_lines_are_unchanged(self) -> None:
        self.assertEqual(ical_fold("SUMMARY:short"), "SUMMARY:short")

    def test_long_lines_fold_at_75_octets(self) -> None:
        folded = ical_fold("DESCRIPTION:" + "x" * 100)
        parts = folded.split("\r\n")

        self.assertEqual(len(parts), 2)
        self.assertEqual(len(parts[0]), 75)
        self.assertTrue(parts[1].startswith(" "))
        self.assertEqual(folded.replace("\r\n ", ""), "DESCRIPTION:" + "x" * 100)

    def test_fold_does_not_split_multibyte_characters(self) -> None:
        line = "SUMMARY:" + "é" * 60
        folded = ical_fold(line)

        for part in folded.split("\r\n"):
            self.assertLessEqual(len(part.encode("utf-8")), 75)
        self.assertEqual(folded.replace("\r\n ", ""), line)


class BuildICalFeedTests(unittest.TestCase):
    def test_feed_contains_events_with_rules(self) -> None:
        entries = [
            FeedEntry(
                subscription_id=7,
                name="Music, Family",
                amount=Decimal("12.5"),
                currency="USD",
                descriptor=MonthlyByDate(monthly_day=31, next_billing_date=date(2024, 1, 31)),
                notes="Shared; with family",
            ),
            FeedEntry(
                subscription_id=8,
                name="Course",
                amount=Decimal("199"),
                currency="EUR",
                descriptor=OneTime(next_billing_date=date(2024, 6, 1)),
            ),
            FeedEntry(
                subscription_id=9,
                name="Unscheduled",
                amount=Decimal("1"),
                currency="USD",
                descriptor=MonthlyByDate(monthly_day=5),
            ),
        ]

        feed = build_ical_feed(entries)
        lines = feed.split("\r\n")

        self.assertTrue(feed.endswith("END:VCALENDAR\r\n"))
        self.assertEqual(lines[0], "BEGIN:VCALENDAR")
        self.assertEqual(lines.count("BEGIN:VEVENT"), 2)
        self.assertIn("UID:billing-schedule-sub-7@billing-schedule", lines)
        self.assertIn("DTSTART;VALUE=DATE:20240131", lines)
        self.assertIn("SUMMARY:Music\\, Family - 12.50 USD", lines)
        self.assertIn("DESCRIPTION:Shared\\; with family", lines)
        self.assertIn("RRULE:FREQ=MONTHLY;BYMONTHDAY=31", lines)
        self.assertIn("SUMMARY:Course - 199.00 EUR", lines)
        self.assertEqual(sum(1 for line in lines if line.startswith("RRULE:")), 1)
        self.assertNotIn("UID:billing-schedule-sub-9@billing-schedule", lines)

    def test_empty_feed_is_a_valid_calendar(self) -> None:
        feed = build_ical_feed([])

        self.assertTrue(feed.startswith("BEGIN:VCALENDAR\r\nVERSION:2.0\r\n"))
        self.assertNotIn("BEGIN:VEVENT", feed)


if __name__ == "__main__":
    unittest.main()
