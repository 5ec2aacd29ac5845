"""Tests for the tag-delimited reasoning classifier."""

import pytest

from lmstream.tags import Segment, SegmentKind, TagMatcher

TEXT = SegmentKind.TEXT
REASONING = SegmentKind.REASONING


def _run(deltas: list[str], tag: str = "think") -> list[Segment]:
    matcher = TagMatcher(tag)
    segments: list[Segment] = []
    for delta in deltas:
        segments.extend(matcher.update(delta))
    segments.extend(matcher.final())
    return segments


def _by_kind(segments: list[Segment]) -> dict[SegmentKind, str]:
    out = {TEXT: "", REASONING: ""}
    for segment in segments:
        out[segment.kind] += segment.content
    return out


SAMPLES = [
    "plain answer with no tags",
    "<think>just reasoning</think>",
    "<think>step 1</think>The answer is 42.",
    "Before <think>middle</think> after",
    "<think>a</think><think>b</think>c",
    "<think>one</think>x<think>two</think>y",
    "a < b and <thinking> is not a tag",
    "<think>unterminated reasoning",
    "trailing partial <thi",
]


class TestClassification:
    def test_no_tags_is_text(self):
        assert _run(["Hello"]) == [Segment(TEXT, "Hello")]

    def test_reasoning_then_text(self):
        segments = _run(["<think>plan</think>Answer"])
        assert segments == [Segment(REASONING, "<think>plan</think>"), Segment(TEXT, "Answer")]

    def test_text_reasoning_text(self):
        segments = _run(["Hi <think>hmm</think> there"])
        assert [s.kind for s in segments] == [TEXT, REASONING, TEXT]
        assert segments[1].content == "<think>hmm</think>"

    def test_back_to_back_spans(self):
        by_kind = _by_kind(_run(["<think>a</think><think>b</think>c"]))
        assert by_kind[REASONING] == "<think>a</think><think>b</think>"
        assert by_kind[TEXT] == "c"

    def test_similar_tag_is_text(self):
        assert _by_kind(_run(["<thinking>x</thinking>"]))[REASONING] == ""

    def test_custom_tag(self):
        segments = _run(["<reasoning>r</reasoning>t"], tag="reasoning")
        assert segments == [Segment(REASONING, "<reasoning>r</reasoning>"), Segment(TEXT, "t")]

    def test_inside_state(self):
        matcher = TagMatcher()
        list(matcher.update("<think>abc"))
        assert matcher.inside is True
        list(matcher.update("</think>"))
        assert matcher.inside is False


class TestSplitTags:
    def test_open_tag_split_across_updates(self):
        matcher = TagMatcher()
        assert list(matcher.update("a<th")) == [Segment(TEXT, "a")]
        assert list(matcher.update("ink>b</think>c")) == [
            Segment(REASONING, "<think>b</think>"),
            Segment(TEXT, "c"),
        ]

    def test_partial_prefix_resolved_as_text(self):
        matcher = TagMatcher()
        assert list(matcher.update("<thi")) == []
        assert list(matcher.update("s is text")) == [Segment(TEXT, "<this is text")]

    def test_char_by_char(self):
        text = "x<think>yz</think>w"
        assert _by_kind(_run(list(text))) == {TEXT: "xw", REASONING: "<think>yz</think>"}


class TestFinal:
    def test_final_outside_flushes_as_text(self):
        matcher = TagMatcher()
        assert list(matcher.update("x<")) == [Segment(TEXT, "x")]
        assert list(matcher.final()) == [Segment(TEXT, "<")]

    def test_final_inside_flushes_as_reasoning(self):
        matcher = TagMatcher()
        list(matcher.update("<think>abc"))
        assert list(matcher.update("</thi")) == []
        assert list(matcher.final()) == [Segment(REASONING, "</thi")]

    def test_final_with_nothing_buffered(self):
        matcher = TagMatcher()
        list(matcher.update("done"))
        assert list(matcher.final()) == []


class TestLossless:
    @pytest.mark.parametrize("text", SAMPLES)
    def test_concatenation_reproduces_input(self, text):
        for split in range(len(text) + 1):
            segments = _run([text[:split], text[split:]])
            assert "".join(s.content for s in segments) == text

    @pytest.mark.parametrize("text", SAMPLES)
    def test_classification_independent_of_chunking(self, text):
        expected = _by_kind(_run([text]))
        assert _by_kind(_run(list(text))) == expected
        for split in range(len(text) + 1):
            assert _by_kind(_run([text[:split], text[split:]])) == expected

    def test_no_empty_segments(self):
        segments = _run(["<think>", "</think>", "", "x"])
        assert all(s.content for s in segments)
