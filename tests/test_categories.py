"""
Category Bank Tests — config parsing and matcher behaviour.

Covers:
  - Section / prefix parsing, including unprefixed broad lines
  - Strict defaulting to broad when no split is given
  - Fragment splitting that respects regex quantifiers
  - Malformed and empty fragments
  - Stateless matching
  - Load failures degrading to an empty bank
"""

from __future__ import annotations

import logging
import re

import pytest

from darkscan.categories import (
    compile_matcher,
    load_category_bank,
    parse_category_config,
    read_category_config,
    split_fragments,
)
from darkscan.config import settings
from darkscan.errors import ConfigLoadError


# ============================================================
# PARSING
# ============================================================

class TestParseConfig:

    def test_sections_in_order(self, bank):
        assert bank.names() == ["Urgency", "Scarcity"]
        assert bank.source == "test"

    def test_message_prefix(self, bank):
        assert bank.get("Urgency").message == "Creates false urgency to rush your decision."

    def test_strict_split(self, bank):
        urgency = bank.get("Urgency")
        assert urgency.has_strict_split
        assert urgency.broad.matches("Ends soon!")
        assert not urgency.strict.matches("Ends soon!")

    def test_unprefixed_lines_are_broad(self):
        bank = parse_category_config("[Nagging]\nremind me later, not now\n")
        nag = bank.get("Nagging")
        assert nag.broad.matches("Remind me later")
        assert nag.strict is nag.broad
        assert not nag.has_strict_split

    def test_comments_and_blank_lines_ignored(self):
        bank = parse_category_config("# header\n\n[A]\n# inside\nbroad: foo\n")
        assert bank.names() == ["A"]
        assert bank.get("A").broad.fragments == ("foo",)

    def test_lines_before_first_section_ignored(self):
        bank = parse_category_config("broad: stray\n[A]\nbroad: foo\n")
        assert len(bank) == 1

    def test_get_unknown_returns_none(self, bank):
        assert bank.get("Nope") is None

    def test_describe(self, bank):
        info = bank.describe()
        assert info[0]["name"] == "Urgency"
        assert info[0]["strict_split"] is True
        assert info[0]["broad_fragments"] == 5

    def test_shipped_config_loads(self):
        bank = load_category_bank(settings.CATEGORY_CONFIG)
        assert len(bank) == 10
        assert "Confirmshaming" in bank.names()
        assert bank.get("Urgency").strict.matches("Hurry! Limited time offer!")


class TestSplitFragments:

    def test_plain_commas(self):
        assert split_fragments("hurry, act now , rush") == ["hurry", "act now", "rush"]

    def test_quantifier_comma_kept(self):
        assert split_fragments(r"time.{0,5}running out, rush") == [r"time.{0,5}running out", "rush"]

    def test_escaped_comma_kept(self):
        assert split_fragments(r"no thanks\, really, later") == [r"no thanks\, really", "later"]

    def test_character_class_comma_kept(self):
        assert split_fragments("no thanks[,] i don't want, x") == ["no thanks[,] i don't want", "x"]

    def test_empty_parts_dropped(self):
        assert split_fragments("a,, b,") == ["a", "b"]


# ============================================================
# MATCHERS
# ============================================================

class TestMatcher:

    def test_word_boundaries(self):
        m = compile_matcher(["rush"])
        assert m.matches("Don't rush me")
        assert not m.matches("brushing")

    def test_case_insensitive(self):
        assert compile_matcher(["act now"]).matches("ACT NOW!")

    def test_regex_fragment(self):
        m = compile_matcher([r"only \d+ left"])
        assert m.matches("Only 3 left in stock")
        assert m.find("Only 3 left in stock") == "Only 3 left"

    def test_matching_is_stateless(self):
        m = compile_matcher(["hurry"])
        text = "hurry hurry"
        assert [m.matches(text) for _ in range(5)] == [True] * 5
        assert m.matches("other text") is False
        assert m.matches(text) is True

    def test_malformed_fragment_dropped(self, caplog):
        m = compile_matcher(["good", "bad(", "fine"], "Test")
        assert m.fragments == ("good", "fine")
        assert m.matches("fine")
        assert any("malformed" in r.getMessage().lower() for r in caplog.records)

    def test_no_fragments_never_fires(self):
        m = compile_matcher([])
        assert m.never_fires
        assert not m.matches("anything")
        assert m.find("anything") is None

    def test_empty_category_warns(self, caplog):
        bank = parse_category_config("[Empty]\nmessage: nothing here\n")
        assert bank.get("Empty").broad.never_fires
        assert any("no broad fragments" in r.getMessage() for r in caplog.records)

    def test_pattern_is_compiled_regex(self):
        assert isinstance(compile_matcher(["x"]).pattern, re.Pattern)


# ============================================================
# LOADING
# ============================================================

class TestLoading:

    def test_read_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigLoadError):
            read_category_config(tmp_path / "missing.txt")

    def test_load_missing_file_returns_empty_bank(self, tmp_path):
        bank = load_category_bank(tmp_path / "missing.txt")
        assert bank.is_empty
        assert len(bank) == 0

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "cats.txt"
        path.write_text("[A]\nbroad: alpha\n", encoding="utf-8")
        bank = load_category_bank(path)
        assert bank.names() == ["A"]
        assert bank.source == str(path)


# ============================================================
# SHIPPED CONFIG
# ============================================================

# One sample per strict fragment, in file order.
STRICT_SAMPLES = {
    "Urgency": [
        "Hurry up!", "Don't rush", "Act now", "Time is running out", "Offer ends in 2 hours",
        "Only 3 left", "Limited time deal", "Don't miss this", "Never miss a deal",
        "Prices may go up soon", "Offer expires at midnight", "Sale ends soon", "Last day to save",
        "Countdown to the sale", "Flash sale now on", "Today only: 20% off",
    ],
    "Scarcity": [
        "High demand right now", "This is in high demand", "Seats reserved for you", "Selling fast",
        "Almost gone!", "Low stock", "Only a few left", "Last chance to buy", "While supplies last",
        "Limited edition print", "An exclusive deal", "Running low on sizes", "Almost sold out",
    ],
    "Social Proof": [
        "12 people are viewing this", "5 people viewing", "Purchased by 40 people today",
        "In 8 carts right now", "Loved by 300 customers", "This item is trending", "A bestseller",
        "Our most popular plan", "People bought this too", "3 people looking at this",
    ],
    "Confirmshaming": [
        "No thanks, I don't want to save", "I prefer paying full price", "I don't want to save money",
        "I hate saving", "Continue without discount", "Skip this offer", "I'll pay more",
        "I don't care about deals",
    ],
    "Hidden Costs": [
        "Service fee applies", "Processing fee: $2", "Handling charge included", "Convenience fee",
        "Booking fee", "Plus additional taxes", "Platform fee", "Admin fee", "Delivery surcharge",
        "Fees added at checkout",
    ],
    "Hidden Subscription": [
        "Free trial, then $9.99 a month", "Cancel anytime after the first month",
        "Plan automatically renews", "Your subscription continues", "Recurring monthly charges",
        "Auto-renewal is on", "Charged after trial", "Renews annually", "Billed monthly until cancelled",
    ],
    "Nagging": [
        "You still haven't finished", "Don't forget to check out", "You're missing out",
        "Complete your purchase", "You left items in your cart", "Your cart is waiting",
        "Come back and save", "Unfinished business", "Your trial is ending",
    ],
    "Obstruction": [
        "To cancel, please give us a call", "Cancellation requires a phone call",
        "Are you sure you want to leave?", "Wait, before you go", "We're sorry to see you leave",
        "You'll lose these benefits", "Cancelling will delete your data", "See what you're giving up",
        "You will lose access",
    ],
    "Preselection": [
        "Sign me up for offers", "I agree to receive emails", "Add a bag for $2",
        "Include extended warranty", "Donate $1 to charity", "Priority shipping",
        "Subscribe to our newsletter", "Opt-in to partner offers",
    ],
    "Forced Action": [
        "Create an account to continue", "Sign up to view prices", "Enter your email to unlock",
        "Share with 3 friends", "Download our app to continue", "Turn on notifications to proceed",
        "Enable location to continue", "Invite friends to get rewards",
    ],
}


@pytest.fixture(scope="module")
def shipped():
    return load_category_bank(settings.CATEGORY_CONFIG)


class TestShippedConfig:

    def test_every_category_has_samples(self, shipped):
        assert sorted(shipped.names()) == sorted(STRICT_SAMPLES)

    @pytest.mark.parametrize("name", sorted(STRICT_SAMPLES))
    def test_broad_catches_every_strict_match(self, shipped, name):
        category = shipped.get(name)
        assert category.has_strict_split
        samples = STRICT_SAMPLES[name]
        assert len(samples) == len(category.strict.fragments)
        for fragment, sample in zip(category.strict.fragments, samples):
            assert compile_matcher([fragment]).matches(sample), (fragment, sample)
            assert category.broad.matches(sample), (fragment, sample)

    def test_no_coverage_warnings(self, caplog):
        with caplog.at_level(logging.WARNING, logger="darkscan.categories"):
            load_category_bank(settings.CATEGORY_CONFIG)
        assert [r for r in caplog.records if r.levelno >= logging.WARNING] == []

    def test_confirmshaming_needs_the_comma(self, shipped):
        category = shipped.get("Confirmshaming")
        assert category.strict.matches("No thanks, I don't want it")
        assert not category.strict.matches("No thanks I don't want it")
        assert category.broad.matches("No thanks I don't want it")

    def test_question_mark_fragment_matches(self, shipped):
        assert shipped.get("Obstruction").strict.matches("Are you sure? You will miss out.")


class TestCoverageWarning:

    def test_uncovered_literal_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="darkscan.categories"):
            parse_category_config("[A]\nbroad: hurry\nstrict: hurry, expires\n")
        messages = [r.getMessage() for r in caplog.records]
        assert any("'expires'" in m and "never fire" in m for m in messages)
        assert not any("'hurry'" in m for m in messages)

    def test_regex_fragments_not_checked(self, caplog):
        with caplog.at_level(logging.WARNING, logger="darkscan.categories"):
            parse_category_config("[A]\nbroad: hurry\nstrict: only \\d+ left\n")
        assert not any("never fire" in r.getMessage() for r in caplog.records)
