"""
PromptLens Backend - Response Parser Tests
============================================

What:  System prompt variants and the JSON / heuristic reply parser.
"""

from promptlens.services.response_parser import (
    BASE_SYSTEM_PROMPT,
    COMMON_TAGS,
    DEFAULT_DESCRIPTION,
    DEFAULT_JSON_DESCRIPTION,
    DEFAULT_JSON_PROMPT,
    DEFAULT_JSON_TAGS,
    DEFAULT_PROMPT,
    LANGUAGE_INSTRUCTIONS,
    STYLE_INSTRUCTIONS,
    build_system_prompt,
    extract_description,
    extract_prompt,
    extract_tags,
    parse_analysis_text,
)


class TestBuildSystemPrompt:

    def test_base_prompt_for_no_style(self):
        assert build_system_prompt() == BASE_SYSTEM_PROMPT
        assert build_system_prompt("creative") == BASE_SYSTEM_PROMPT

    def test_style_variants_differ(self):
        variants = {build_system_prompt(s) for s in ("artistic", "technical", "photographic")}
        assert len(variants) == 3
        for style, instruction in STYLE_INSTRUCTIONS.items():
            assert build_system_prompt(style).endswith(instruction)

    def test_language_instruction(self):
        assert LANGUAGE_INSTRUCTIONS["zh"] in build_system_prompt(None, "zh")
        assert build_system_prompt(None, "auto") == BASE_SYSTEM_PROMPT


class TestParseJson:

    def test_embedded_json(self):
        text = 'Here you go:\n```json\n{"prompt": "Golden retriever on a beach", "description": "Dog", "tags": ["dog", "beach"]}\n```'

        parsed = parse_analysis_text(text)

        assert parsed == {
            "prompt": "Golden retriever on a beach",
            "description": "Dog",
            "tags": ["dog", "beach"],
        }

    def test_missing_fields_get_defaults(self):
        parsed = parse_analysis_text('{"tags": "not-a-list"}')

        assert parsed["prompt"] == DEFAULT_JSON_PROMPT
        assert parsed["description"] == DEFAULT_JSON_DESCRIPTION
        assert parsed["tags"] == DEFAULT_JSON_TAGS

    def test_invalid_json_falls_back_to_heuristics(self):
        text = "{not json} A wide shot of a foggy harbor with fishing boats at sunrise."

        parsed = parse_analysis_text(text)

        assert "A wide shot of a foggy harbor" in parsed["prompt"]
        assert parsed["tags"]


class TestHeuristics:

    def test_prompt_is_longest_long_sentence(self):
        text = "Short one. This sentence is definitely longer than twenty. This is the very longest sentence in the whole text by far."
        assert extract_prompt(text) == "This is the very longest sentence in the whole text by far"

    def test_prompt_default_when_nothing_qualifies(self):
        assert extract_prompt("Too short. Also short.") == DEFAULT_PROMPT
        assert extract_prompt("") == DEFAULT_PROMPT

    def test_description_is_first_medium_sentence(self):
        text = "Hi. A calm lake at dawn. " + "x" * 150 + "."
        assert extract_description(text) == "A calm lake at dawn"

    def test_description_default(self):
        assert extract_description("Tiny.") == DEFAULT_DESCRIPTION

    def test_tags_prefer_frequent_words(self):
        text = "sunset sunset sunset ocean ocean waves. The sunset over the ocean."
        tags = extract_tags(text)

        assert tags[:2] == ["sunset", "ocean"]
        assert len(tags) <= 5
        assert len(set(tags)) == len(tags)

    def test_tags_skip_stopwords(self):
        tags = extract_tags("the the the and and with with with with")
        assert tags == COMMON_TAGS[:5]

    def test_empty_reply_never_raises(self):
        parsed = parse_analysis_text(None)
        assert parsed["prompt"] == DEFAULT_PROMPT
        assert parsed["description"] == DEFAULT_DESCRIPTION
        assert len(parsed["tags"]) == 5
