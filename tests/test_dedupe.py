"""
Tests for transcript de-duplication.
"""

from types import SimpleNamespace

from provider_resilience.dedupe import ConversationItem, dedupe, same_content


def user(text, item_id=None):
    return {
        "type": "message",
        "role": "user",
        "id": item_id,
        "content": [{"type": "input_text", "text": text}],
    }


def assistant(text, item_id=None):
    return {
        "type": "message",
        "role": "assistant",
        "id": item_id,
        "content": [{"type": "output_text", "text": text}],
    }


class TestIdentityRule:
    """Items sharing an id are kept once."""

    def test_repeated_id_dropped_anywhere(self):
        first = assistant("hello", item_id="msg_1")
        items = [first, user("q"), assistant("other", item_id="msg_2"), dict(first)]

        result = dedupe(items)

        assert result == items[:3]
        assert result[0] is first

    def test_first_occurrence_wins(self):
        early = assistant("early", item_id="msg_1")
        late = assistant("late", item_id="msg_1")

        assert dedupe([early, late]) == [early]

    def test_items_without_id_are_exempt(self):
        items = [
            {"type": "function_call_output", "output": "ok"},
            {"type": "function_call_output", "output": "ok"},
        ]
        assert dedupe(items) == items

    def test_empty_id_counts_as_missing(self):
        items = [assistant("a", item_id=""), assistant("a", item_id="")]
        assert dedupe(items) == items


class TestAdjacentUserRule:
    """Consecutive identical user messages collapse."""

    def test_double_submit_collapses(self):
        items = [user("hi"), user("hi")]
        assert dedupe(items) == [items[0]]

    def test_interleaved_repeat_is_kept(self):
        items = [user("hi"), assistant("hello"), user("hi")]
        assert dedupe(items) == items

    def test_different_content_is_kept(self):
        items = [user("hi"), user("hi there")]
        assert dedupe(items) == items

    def test_assistant_repeats_are_kept(self):
        items = [assistant("same"), assistant("same")]
        assert dedupe(items) == items

    def test_compares_against_last_kept_item(self):
        """A dropped duplicate id does not break the adjacency chain."""
        repeated = assistant("x", item_id="msg_1")
        items = [repeated, user("hi"), dict(repeated), user("hi")]

        assert dedupe(items) == [repeated, items[1]]

    def test_key_order_does_not_matter(self):
        a = {"type": "message", "role": "user", "content": [{"type": "input_text", "text": "q"}]}
        b = {"role": "user", "content": [{"text": "q", "type": "input_text"}], "type": "message"}

        assert dedupe([a, b]) == [a]

    def test_list_and_tuple_content_compare_equal(self):
        a = ConversationItem("message", role="user", content=[{"type": "input_text", "text": "q"}])
        b = ConversationItem("message", role="user", content=({"type": "input_text", "text": "q"},))

        assert same_content(a, b)
        assert dedupe([a, b]) == [a]


class TestItemShapes:
    def test_dataclass_items(self):
        items = [
            ConversationItem("message", role="user", content="hi", id="u1"),
            ConversationItem("message", role="user", content="hi", id="u1"),
            ConversationItem("message", role="assistant", content="hey", id="a1"),
        ]
        assert dedupe(items) == items[::2]

    def test_arbitrary_objects(self):
        first = SimpleNamespace(type="message", role="user", content="hi", id=None)
        second = SimpleNamespace(type="message", role="user", content="hi", id=None)

        result = dedupe([first, second])

        assert result == [first]
        assert result[0] is first

    def test_empty_input(self):
        assert dedupe([]) == []

    def test_accepts_generators(self):
        assert dedupe(user(t) for t in ("a", "b")) == [user("a"), user("b")]
