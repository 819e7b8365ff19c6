"""Tests for the learned -> rules -> LLM classification pipeline"""

import json

import pytest

from commesse_router.core import classifier
from commesse_router.core.classifier import (
    FALLBACK_PATH,
    LlmParseFailure,
    LlmSuggestion,
    classify_file,
    classify_files,
    parse_llm_response,
)
from commesse_router.core.errors import ValidationError
from commesse_router.core.learning import LearningStore
from commesse_router.core.session import RoutingSession
from commesse_router.utils.env import AiConfig

from conftest import FakeLLM


def _reply(path, confidence=0.9, alternatives=None, reasoning="Documento di progetto"):
    return json.dumps(
        {
            "suggestedPath": path,
            "confidence": confidence,
            "reasoning": reasoning,
            "alternatives": alternatives or [],
        }
    )


# ---------------------------------------------------------------------------
# Lookup order
# ---------------------------------------------------------------------------

def test_learned_pattern_wins(session, fake_llm, make_file):
    session.learning.record("Pianta_piano_terra.dwg", "5_CANTIERE/IMPRESA/DOCUMENTI/")

    result = classify_file(make_file("Pianta_piano_terra.dwg"), "LUNGO", session)

    assert result.method == "learned"
    assert result.confidence == 1.0
    assert result.suggested_path == "5_CANTIERE/IMPRESA/DOCUMENTI/"
    assert fake_llm.calls == []


def test_learning_disabled_skips_learned_patterns(session, fake_llm, make_file):
    session.learning.record("Pianta_piano_terra.dwg", "5_CANTIERE/")
    session.ai_config.learning = False

    result = classify_file(make_file("Pianta_piano_terra.dwg"), "LUNGO", session)

    assert result.method == "rules"


def test_rule_keyword_hit(session, fake_llm, make_file):
    result = classify_file(make_file("Pianta_piano_terra.dwg"), "LUNGO", session)

    assert result.method == "rules"
    assert result.confidence == pytest.approx(0.8)
    assert result.suggested_path == "3_PROGETTO/ARC/"
    assert result.alternatives == ["3_PROGETTO/"]
    assert fake_llm.calls == []


def test_llm_used_without_rule_hit(session, fake_llm, make_file):
    fake_llm.replies.append(_reply("2_PERMIT/", 0.92, ["1_CONSEGNA/", "NOT_A_FOLDER/"]))

    result = classify_file(make_file("documento.pdf"), "LUNGO", session)

    assert result.method == "ai"
    assert result.suggested_path == "2_PERMIT/"
    assert result.confidence == pytest.approx(0.92)
    assert result.alternatives == ["1_CONSEGNA/"]
    prompt = fake_llm.calls[0]["messages"][0]["content"]
    assert "documento.pdf" in prompt
    assert "- 3_PROGETTO/ARC/" in prompt
    assert fake_llm.calls[0]["model"] == session.ai_config.model


def test_llm_invalid_path_is_corrected(session, fake_llm, make_file):
    fake_llm.replies.append(_reply("PROGETTO/STRUTTURE", 0.9))

    result = classify_file(make_file("documento.pdf"), "LUNGO", session)

    assert result.method == "ai"
    assert result.suggested_path == "3_PROGETTO/"
    assert result.confidence == pytest.approx(0.72)
    assert "corrected" in result.reasoning


def test_missing_api_key_falls_back(storage, make_file):
    session = RoutingSession(storage=storage, ai_config=AiConfig(), learning=LearningStore(storage))

    result = classify_file(make_file("documento.pdf"), "LUNGO", session)

    assert result.method == "fallback"
    assert result.suggested_path == FALLBACK_PATH
    assert result.confidence == 0.5
    assert "OPENAI_API_KEY" in result.reasoning
    assert result.alternatives == ["3_PROGETTO/"]


def test_llm_error_falls_back(session, make_file):
    session.llm = FakeLLM(error=RuntimeError("connection reset"))

    result = classify_file(make_file("documento.pdf"), "LUNGO", session)

    assert result.method == "fallback"
    assert "connection reset" in result.reasoning


def test_unparsable_llm_answer_falls_back(session, fake_llm, make_file):
    fake_llm.replies.append("Sorry, I cannot help with that.")

    result = classify_file(make_file("documento.pdf"), "LUNGO", session)

    assert result.method == "fallback"
    assert result.suggested_path == "MATERIALE_RICEVUTO/"


def test_auto_routing_disabled_never_calls_llm(session, fake_llm, make_file):
    session.ai_config.auto_routing = False

    result = classify_file(make_file("documento.pdf"), "LUNGO", session)

    assert result.method == "fallback"
    assert fake_llm.calls == []


def test_classify_files_is_sequential_and_keeps_order(session, fake_llm, make_file):
    fake_llm.replies.extend([_reply("2_PERMIT/"), _reply("9_PARCELLA/")])
    files = [
        make_file("a.pdf"),
        make_file("Pianta.dwg"),
        make_file("b.pdf"),
    ]
    progress = []

    results = classify_files(files, "LUNGO", session, on_progress=lambda i, n, s: progress.append((i, n)))

    assert [r.file.name for r in results] == ["a.pdf", "Pianta.dwg", "b.pdf"]
    assert [r.suggested_path for r in results] == ["2_PERMIT/", "3_PROGETTO/ARC/", "9_PARCELLA/"]
    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert len(fake_llm.calls) == 2


def test_classify_files_requires_template(session, make_file):
    with pytest.raises(ValidationError):
        classify_files([make_file("a.pdf")], "", session)


def test_classify_files_adds_text_preview(session, fake_llm, tmp_path, make_file):
    (tmp_path / "note.txt").write_text("Verbale della riunione di cantiere del 3 marzo")
    fake_llm.replies.append(_reply("6_VERBALI_NOTIF_COMUNICAZIONI/VERBALI/"))

    classify_files([make_file("note.txt", mime_type="text/plain", size=46)], "LUNGO", session, root=tmp_path)

    assert "Verbale della riunione" in fake_llm.calls[0]["messages"][0]["content"]


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def test_parse_extracts_json_from_prose():
    text = "Here you go:\n" + _reply("ELABORAZIONI/", 0.8) + "\nHope it helps."

    result = parse_llm_response(text, "BREVE")

    assert isinstance(result, LlmSuggestion)
    assert result.suggested_path == "ELABORAZIONI/"
    assert not result.corrected


def test_parse_clamps_confidence():
    assert parse_llm_response(_reply("CONSEGNA", 1.7), "BREVE").confidence == 1.0
    assert parse_llm_response(_reply("CONSEGNA", -3), "BREVE").confidence == 0.0
    assert parse_llm_response(_reply("CONSEGNA", "high"), "BREVE").confidence == 0.0


def test_parse_failures_are_tagged():
    assert isinstance(parse_llm_response("no json here", "BREVE"), LlmParseFailure)
    assert isinstance(parse_llm_response("{not json}", "BREVE"), LlmParseFailure)
    assert isinstance(parse_llm_response('{"confidence": 0.5}', "BREVE"), LlmParseFailure)


def test_rules_route_returns_extension_default_without_keyword(make_file):
    hit, default = classifier.rules_route(make_file("foto_001.png"), "BREVE")
    assert hit is not None and hit.suggested_path == "SOPRALLUOGHI/"

    hit, default = classifier.rules_route(make_file("tabella.xlsx"), "BREVE")
    assert hit is None
    assert default == "ELABORAZIONI/"

    assert classifier.rules_route(make_file("LEGGIMI"), "BREVE") == (None, None)


def test_parse_non_finite_confidence_is_zero():
    text = '{"suggestedPath": "2_PERMIT/", "confidence": NaN, "reasoning": "x"}'

    result = parse_llm_response(text, "LUNGO")

    assert isinstance(result, LlmSuggestion)
    assert result.confidence == 0.0
    assert parse_llm_response(_reply("CONSEGNA", float("inf")), "BREVE").confidence == 0.0


def test_nan_confidence_does_not_abort_batch(session, fake_llm, make_file):
    fake_llm.replies.extend(
        [
            '{"suggestedPath": "2_PERMIT/", "confidence": NaN, "reasoning": "x"}',
            _reply("9_PARCELLA/", 0.9),
        ]
    )

    results = classify_files([make_file("documento.bin"), make_file("fattura.bin")], "LUNGO", session)

    assert [r.suggested_path for r in results] == ["2_PERMIT/", "9_PARCELLA/"]
    assert results[0].confidence == 0.0
    assert results[0].level == "low"


@pytest.mark.parametrize(
    "bad_reply",
    [RuntimeError("rate limited"), "I would put it in the permits folder."],
    ids=["api-error", "unparsable"],
)
def test_one_failing_file_still_yields_a_suggestion_per_file(session, fake_llm, make_file, bad_reply):
    fake_llm.replies.extend([_reply("2_PERMIT/", 0.9), bad_reply, _reply("9_PARCELLA/", 0.85)])
    files = [make_file("documento.pdf"), make_file("allegato.pdf"), make_file("nota.pdf")]

    results = classify_files(files, "LUNGO", session)

    assert len(results) == 3
    assert [r.method for r in results] == ["ai", "fallback", "ai"]
    assert results[1].suggested_path == FALLBACK_PATH
    assert results[1].confidence == 0.5
    assert [r.confidence for r in (results[0], results[2])] == [pytest.approx(0.9), pytest.approx(0.85)]
