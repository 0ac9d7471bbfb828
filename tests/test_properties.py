"""
Property-based Testing with Hypothesis.

Invariants that must hold for any input: sanitized text never carries
markup, names stay unique, and no identifier ever exceeds its window.
"""

import asyncio

from hypothesis import given, settings, strategies as st

from chat_gateway.components.connection.rate_limiter import SlidingWindowRateLimiter
from chat_gateway.core.connection.registry import ConnectionRegistry
from shared.utils.exceptions import ChatError
from shared.utils.validators import escape_html, validate_message_content, validate_username

from tests.conftest import FakeTransport


class TestSanitizationProperties:
    """Property-based tests for input sanitization."""

    @given(text=st.text(max_size=200))
    @settings(max_examples=100)
    def test_escaped_text_has_no_markup(self, text):
        """Property: escaped text contains none of < > " ' /."""
        escaped = escape_html(text)

        for char in "<>\"'/":
            assert char not in escaped

    @given(text=st.text(alphabet=st.characters(blacklist_characters="&<>\"'/"), max_size=100))
    @settings(max_examples=50)
    def test_plain_text_unchanged(self, text):
        assert escape_html(text) == text

    @given(content=st.text(max_size=600))
    @settings(max_examples=100)
    def test_accepted_content_is_trimmed_and_bounded(self, content):
        """Property: accepted content is trimmed and 1..500 characters long."""
        try:
            result = validate_message_content(content)
        except ChatError:
            assert not 1 <= len(content.strip()) <= 500
            return

        assert result == result.strip()
        assert 1 <= len(result) <= 500

    @given(username=st.text(max_size=40))
    @settings(max_examples=100)
    def test_accepted_usernames_are_escape_stable(self, username):
        """Property: a valid username has nothing for the HTML escaper to change."""
        try:
            name = validate_username(username)
        except ChatError:
            return

        assert 2 <= len(name) <= 30
        assert escape_html(name) == name


class TestRegistryProperties:
    """Property-based tests for display name uniqueness."""

    @given(requests=st.lists(st.sampled_from(["Ana", "Bob", "Eva"]), min_size=1, max_size=12))
    @settings(max_examples=30)
    def test_names_unique_under_concurrent_claims(self, requests):
        """Property: however claims interleave, no name is held twice."""

        async def scenario():
            registry = ConnectionRegistry()
            ids = [await registry.add(FakeTransport(), "10.0.0.1") for _ in requests]
            await asyncio.gather(
                *[registry.claim_name(client_id, name) for client_id, name in zip(ids, requests)],
                return_exceptions=True,
            )
            return [c.username for c in await registry.snapshot() if c.is_named]

        names = asyncio.run(scenario())

        assert len(names) == len(set(names))
        assert set(names) == set(requests)


class TestRateLimiterProperties:
    """Property-based tests for the sliding window bound."""

    @given(
        offsets=st.lists(st.floats(min_value=0, max_value=300, allow_nan=False), min_size=1, max_size=60),
        limit=st.integers(min_value=1, max_value=10),
    )
    @settings(max_examples=50)
    def test_window_never_exceeds_limit(self, offsets, limit):
        """Property: within any window of W seconds at most M messages are accepted."""
        window = 60.0

        async def scenario():
            limiter = SlidingWindowRateLimiter(max_messages=limit, window_seconds=window)
            accepted = []
            for now in sorted(offsets):
                if (await limiter.check_and_record("ip:10.0.0.1", now=now)).allowed:
                    accepted.append(now)
            return accepted

        accepted = asyncio.run(scenario())

        for t in accepted:
            in_window = [a for a in accepted if t - window < a <= t]
            assert len(in_window) <= limit
