"""Tests for memory agent reply parsing."""

import json

from src.memory.parsing import MalformedAgentResponse, Parsed, parse_string_list, strip_code_fence


def test_strip_json_fence() -> None:
    assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'


def test_strip_bare_fence() -> None:
    assert strip_code_fence('```\n{"a": 1}\n```\n') == '{"a": 1}'


def test_strip_leaves_plain_text() -> None:
    assert strip_code_fence('  {"a": 1} ') == '{"a": 1}'


def test_parse_valid() -> None:
    result = parse_string_list(json.dumps({"memory": ["Likes tea", "Lives in Oslo"]}), "memory")
    assert result == Parsed(items=["Likes tea", "Lives in Oslo"])


def test_parse_fenced() -> None:
    raw = '```json\n{"relevant_memories": ["Likes tea"]}\n```'
    assert parse_string_list(raw, "relevant_memories") == Parsed(items=["Likes tea"])


def test_parse_empty_array() -> None:
    assert parse_string_list('{"memory": []}', "memory") == Parsed(items=[])


def test_parse_not_json() -> None:
    result = parse_string_list("Sure! Here is what I learned.", "memory")
    assert isinstance(result, MalformedAgentResponse)
    assert "JSON" in result.reason


def test_parse_wrong_shape() -> None:
    assert isinstance(parse_string_list('["a"]', "memory"), MalformedAgentResponse)
    assert isinstance(parse_string_list('{"other": []}', "memory"), MalformedAgentResponse)
    assert isinstance(parse_string_list('{"memory": "a"}', "memory"), MalformedAgentResponse)
    assert isinstance(parse_string_list('{"memory": [1, 2]}', "memory"), MalformedAgentResponse)
