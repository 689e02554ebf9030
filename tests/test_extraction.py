from conceptforge.errors import ExtractionFailure
from conceptforge.extraction import Shape, extract


def test_extracts_array_surrounded_by_prose() -> None:
    raw = 'Here are your ideas:\n[{"id": 1}, {"id": 2}]\nHope these help!'
    result = extract(raw, Shape.ARRAY)
    assert result.ok
    assert result.value == [{"id": 1}, {"id": 2}]


def test_extracts_object() -> None:
    raw = 'Sure. {"title": "Refined", "frames": [1, 2]} Done.'
    result = extract(raw, Shape.OBJECT)
    assert result.ok
    assert result.value == {"title": "Refined", "frames": [1, 2]}


def test_markdown_fences_are_discarded() -> None:
    raw = '```json\n[{"id": 1}]\n```'
    assert extract(raw, Shape.ARRAY).value == [{"id": 1}]


def test_no_match() -> None:
    result = extract("I could not come up with anything.", Shape.ARRAY)
    assert not result.ok
    assert result.error.reason is ExtractionFailure.NO_MATCH


def test_none_input_is_no_match() -> None:
    result = extract(None, Shape.OBJECT)
    assert result.error.reason is ExtractionFailure.NO_MATCH


def test_truncated_output_is_parse_failure() -> None:
    raw = '[{"id": 1, "title": "Cut off"}, {"id": 2, "title": "Cut'
    # The last "]" is missing, but the first object still closes with "}".
    result = extract(raw + "]", Shape.ARRAY)
    assert not result.ok
    assert result.error.reason is ExtractionFailure.PARSE_FAILURE
    assert result.error.details


def test_trailing_bracketed_prose_is_swallowed() -> None:
    # Known fragility of the greedy match: a bracketed aside after the payload
    # extends the match and breaks parsing.
    raw = '[{"id": 1}] Note: see [1] for details.'
    result = extract(raw, Shape.ARRAY)
    assert result.error.reason is ExtractionFailure.PARSE_FAILURE
