"""
Canonical example phrases per category.

These are the semantic reference points the verifier embeds once at
startup. Category keys here are the labels the verifier reports; they
do not have to match the names in the category config.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping


DARK_PATTERN_EXAMPLES: dict[str, tuple[str, ...]] = {
    "fakeUrgency": (
        "Hurry! Limited time offer!", "Act now!", "Offer ends soon!", "Time is running out!",
        "Flash sale ends in minutes!", "Order now to guarantee delivery!", "Ends in 24h",
    ),
    "fakeScarcity": (
        "Only 2 left in stock!", "Almost sold out!", "High demand!",
        "30 people are looking at this!", "Selling fast!", "Last chance to buy!",
    ),
    "fakeSocialProof": (
        "1000+ people bought this", "Trending now", "Bestseller", "Highly rated by 500 users",
        "Join 10,000 satisfied customers", "Most popular choice",
    ),
    "confirmshaming": (
        "No thanks, I hate saving money", "I don't want protection", "Skip the discount",
        "I like paying full price",
    ),
    "hiddenCosts": (
        "Handling fee", "Service charge", "Processing fee", "Administrative fee",
    ),
    "hiddenSubscription": (
        "Free trial then $9.99/month", "Auto-renews annually", "Subscription starts after trial",
    ),
    "nagging": (
        "Are you sure?", "Don't leave yet!", "Complete your profile", "Turn on notifications",
    ),
    "obstruction": (
        "Call to cancel", "Cancellation available via phone", "Hard to find unsubscribe",
    ),
    "preselection": (
        "Sign me up for newsletter (checked)", "Add insurance (checked)",
    ),
    "forcedAction": (
        "Create account to view", "Download app to continue", "Register to read more",
    ),
}


class ExampleBank:
    """Immutable mapping of category label -> ordered canonical phrases."""

    def __init__(self, examples: Mapping[str, tuple[str, ...] | list[str]]):
        frozen = {label: tuple(phrases) for label, phrases in examples.items()}
        self._examples = MappingProxyType(frozen)

    @property
    def examples(self) -> Mapping[str, tuple[str, ...]]:
        return self._examples

    def flatten(self) -> tuple[list[str], list[str]]:
        """Return parallel lists (phrases, labels) in bank order."""
        phrases: list[str] = []
        labels: list[str] = []
        for label, items in self._examples.items():
            for phrase in items:
                phrases.append(phrase)
                labels.append(label)
        return phrases, labels

    def __len__(self) -> int:
        return sum(len(v) for v in self._examples.values())

    def __contains__(self, label: str) -> bool:
        return label in self._examples


default_example_bank = ExampleBank(DARK_PATTERN_EXAMPLES)
