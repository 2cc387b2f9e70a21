import unittest

from llm_gateway.errors import RateLimitedError
from llm_gateway.normalizer import StreamNormalizer
from llm_gateway.types import ContentEvent, DoneEvent, ErrorEvent, ThinkingEvent, ToolCall, Usage


def _feed(normalizer: StreamNormalizer, *fragments: str) -> list:
    events = []
    for fragment in fragments:
        events += normalizer.content(fragment)
    return events


class InlineThinkingTests(unittest.TestCase):
    def test_single_fragment_partition(self) -> None:
        normalizer = StreamNormalizer()
        events = normalizer.content("A<thinking>B</thinking>C") + normalizer.done()

        self.assertEqual(
            [(e.type, getattr(e, "delta", None)) for e in events],
            [("content", "A"), ("thinking", "B"), ("content", "C"), ("done", None)],
        )
        done = events[-1]
        self.assertIsInstance(done, DoneEvent)
        self.assertEqual(done.final_content, "AC")
        self.assertEqual(done.final_thinking, "B")

    def test_region_spanning_several_fragments(self) -> None:
        normalizer = StreamNormalizer()
        events = _feed(normalizer, "Hi <thinking>let me", " think", "</thinking> there")

        self.assertEqual(normalizer.accumulated_content, "Hi  there")
        self.assertEqual(normalizer.accumulated_thinking, "let me think")
        self.assertFalse(normalizer.in_thinking_region)
        thinking = [e for e in events if isinstance(e, ThinkingEvent)]
        self.assertEqual([e.accumulated for e in thinking], ["let me", "let me think"])

    def test_tags_ignored_when_scanning_disabled(self) -> None:
        normalizer = StreamNormalizer(scan_thinking_tags=False)
        normalizer.content("A<thinking>B</thinking>C")
        self.assertEqual(normalizer.accumulated_content, "A<thinking>B</thinking>C")
        self.assertEqual(normalizer.accumulated_thinking, "")

    def test_split_tag_is_treated_as_text(self) -> None:
        normalizer = StreamNormalizer()
        _feed(normalizer, "<thin", "king>x")
        self.assertEqual(normalizer.accumulated_content, "<thinking>x")
        self.assertFalse(normalizer.in_thinking_region)

    def test_explicit_and_inline_thinking_in_one_stream(self) -> None:
        normalizer = StreamNormalizer()
        normalizer.thinking("plan. ")
        normalizer.content("<thinking>more</thinking>answer")
        done = normalizer.done()[0]
        self.assertEqual(done.final_thinking, "plan. more")
        self.assertEqual(done.final_content, "answer")


class AccumulationTests(unittest.TestCase):
    def test_content_accumulation_only_grows(self) -> None:
        normalizer = StreamNormalizer()
        events = _feed(normalizer, "a", "<thinking>x</thinking>", "bc", "", "d<thinking>y")
        accumulated = [e.accumulated for e in events if isinstance(e, ContentEvent)]
        self.assertEqual(accumulated, ["a", "abc", "abcd"])
        for before, after in zip(accumulated, accumulated[1:]):
            self.assertTrue(after.startswith(before))
            self.assertGreater(len(after), len(before))

    def test_tool_calls_replace_previous_list(self) -> None:
        normalizer = StreamNormalizer()
        normalizer.tool_calls([ToolCall(function_name="a")])
        normalizer.tool_calls([ToolCall(function_name="b"), ToolCall(function_name="c")])
        done = normalizer.done()[0]
        self.assertEqual([c.function_name for c in done.tool_calls], ["b", "c"])

    def test_usage_and_finish_reason_reach_done(self) -> None:
        normalizer = StreamNormalizer()
        self.assertEqual(normalizer.usage(Usage.from_counts(3, 2), emit=False), [])
        normalizer.finish("length")
        done = normalizer.done()[0]
        self.assertEqual(done.usage.total_tokens, 5)
        self.assertEqual(done.finish_reason, "length")
        self.assertIsNone(done.final_thinking)


class TerminalEventTests(unittest.TestCase):
    def test_nothing_after_done(self) -> None:
        normalizer = StreamNormalizer()
        events = normalizer.start() + normalizer.content("x") + normalizer.done()
        self.assertEqual(normalizer.content("late"), [])
        self.assertEqual(normalizer.thinking("late"), [])
        self.assertEqual(normalizer.done(), [])
        self.assertEqual(normalizer.error("boom"), [])
        self.assertEqual([e.type for e in events], ["start", "content", "done"])

    def test_error_is_terminal_and_keeps_kind(self) -> None:
        normalizer = StreamNormalizer()
        events = normalizer.error(RateLimitedError("ollama", "slow down", status_code=429))
        self.assertEqual(len(events), 1)
        error = events[0]
        self.assertIsInstance(error, ErrorEvent)
        self.assertEqual((error.kind, error.message, error.status_code), ("rate_limited", "slow down", 429))
        self.assertEqual(normalizer.done(), [])

    def test_start_emitted_once(self) -> None:
        normalizer = StreamNormalizer()
        self.assertEqual(len(normalizer.start()), 1)
        self.assertEqual(normalizer.start(), [])


if __name__ == "__main__":
    unittest.main()
