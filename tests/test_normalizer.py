"""Tests for the response normalizer."""

import json

import pytest

from triad3.validation.normalizer import (
    ExtractionSchemaError,
    MalformedExtractionPayloadError,
    NoDataExtractedError,
    ResponseNormalizer,
    count_items,
    replace_typographic_punctuation,
    strip_code_fences,
)

from conftest import HAPPY_PATH_PAYLOAD


@pytest.fixture
def normalizer() -> ResponseNormalizer:
    return ResponseNormalizer()


class TestCleanup:

    def test_strips_markdown_fences(self):
        text = '```json\n{"rendimentos": []}\n```'
        assert strip_code_fences(text) == '{"rendimentos": []}'

    def test_drops_text_around_object(self):
        text = 'Aqui está o JSON:\n{"a": 1}\nEspero ter ajudado.'
        assert strip_code_fences(text) == '{"a": 1}'

    def test_typographic_punctuation(self):
        text = "\u201cx\u201d \u2018y\u2019 a\u2026 1\u20132 3\u20144 z"
        assert replace_typographic_punctuation(text) == "\"x\" 'y' a... 1-2 3-4 z"

    def test_count_items_ignores_missing_and_non_lists(self):
        counts = count_items({"rendimentos": [{}, {}], "dividas": "nada"})
        assert counts["rendimentos_irpf"] == 2
        assert counts["dividas"] == 0
        assert sum(counts.values()) == 2


class TestNormalize:

    def test_happy_path(self, normalizer):
        result = normalizer.normalize(json.dumps(HAPPY_PATH_PAYLOAD))
        assert result.item_counts["rendimentos_irpf"] == 1
        assert result.item_counts["bens_direitos_irpf"] == 1
        assert result.extracted.rendimentos[0].fonte_pagadora == "ACME LTDA"
        assert result.payload == HAPPY_PATH_PAYLOAD
        assert not result.used_whitespace_fallback

    def test_fenced_reply_with_curly_quotes(self, normalizer):
        """Curly quotes around keys and values are repaired before parsing."""
        raw = "```json\n{\u201crendimentos\u201d: [{\u201cfonte_pagadora\u201d: \u201cACME LTDA\u201d}]}\n```"
        result = normalizer.normalize(raw)
        assert result.extracted.rendimentos[0].fonte_pagadora == "ACME LTDA"

    def test_raw_newline_inside_string_uses_fallback(self, normalizer):
        """A literal newline inside a string breaks strict JSON; the second pass fixes it."""
        raw = '{"bens_direitos": [{"codigo": "01", "discriminacao": "Apartamento\nCentro"}]}'
        result = normalizer.normalize(raw)
        assert result.used_whitespace_fallback
        assert result.extracted.bens_direitos[0].discriminacao == "Apartamento Centro"

    def test_broken_json_is_malformed(self, normalizer):
        with pytest.raises(MalformedExtractionPayloadError) as exc_info:
            normalizer.normalize("{ broken json")
        assert exc_info.value.preview == "{ broken json"

    def test_preview_is_capped(self, normalizer):
        raw = "{" + "x" * 2000
        with pytest.raises(MalformedExtractionPayloadError) as exc_info:
            normalizer.normalize(raw)
        assert len(exc_info.value.preview) == 500

    def test_top_level_array_is_malformed(self, normalizer):
        with pytest.raises(MalformedExtractionPayloadError):
            normalizer.normalize("[1, 2, 3]")

    def test_all_sections_empty_is_no_data(self, normalizer):
        payload = {key: [] for key in HAPPY_PATH_PAYLOAD if key != "declaracao"}
        payload["declaracao"] = {"valor_pagar": 100}
        with pytest.raises(NoDataExtractedError):
            normalizer.normalize(json.dumps(payload))

    def test_missing_sections_is_no_data(self, normalizer):
        with pytest.raises(NoDataExtractedError):
            normalizer.normalize("{}")

    def test_schema_mismatch(self, normalizer):
        with pytest.raises(ExtractionSchemaError):
            normalizer.normalize('{"rendimentos": ["ACME LTDA"]}')

    def test_non_finite_numbers_become_missing(self, normalizer):
        """NaN and Infinity are valid for json.loads; they must not fail the import."""
        raw = (
            '{"rendimentos": [{"fonte_pagadora": "ACME", "valor": NaN, "irrf": -Infinity}],'
            ' "dividas": [{"nome": "Financiamento", "numero_parcelas": Infinity}]}'
        )
        result = normalizer.normalize(raw)
        assert result.extracted.rendimentos[0].valor is None
        assert result.extracted.rendimentos[0].irrf is None
        assert result.extracted.dividas[0].numero_parcelas is None
