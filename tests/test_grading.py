"""Tests for LLM answer grading and question generation (LLM mocked)."""

import json
from unittest.mock import MagicMock

import anthropic
import httpx
import pytest
from tenacity import wait_none

from backend.llm_client import LLMClient, LLMUnavailableError, get_llm_client, strip_code_fences
from backend.question_generator import generate_questions
from backend.srs.categories import Category, Difficulty
from backend.srs.grading import (
    GradingError,
    _request_evaluation,
    evaluate_answer,
    parse_evaluation,
    translate_api_error,
    validate_answer,
)

GOOD_VERDICT = {
    "score": 4,
    "whatWasCoveredWell": "Defined the null hypothesis correctly.",
    "whatWasMissing": "Did not mention the significance level.",
    "missedConcepts": ["significance level"],
    "modelAnswer": "A p-value is the probability...",
    "fullFeedback": "Solid answer, tighten the definition of alpha.",
}

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(cls: type, status: int) -> anthropic.APIStatusError:
    response = httpx.Response(status, request=_REQUEST)
    return cls("error", response=response, body=None)


@pytest.fixture
def no_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    """Skip the exponential backoff between grading retries."""
    monkeypatch.setattr(_request_evaluation.retry, "wait", wait_none())


class TestStripCodeFences:
    def test_plain_json_untouched(self) -> None:
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'

    def test_json_fence(self) -> None:
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self) -> None:
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'


class TestParseEvaluation:
    def test_parses_all_fields(self) -> None:
        evaluation = parse_evaluation(json.dumps(GOOD_VERDICT))
        assert evaluation.score == 4
        assert evaluation.covered_well == "Defined the null hypothesis correctly."
        assert evaluation.missing == "Did not mention the significance level."
        assert evaluation.missed_concepts == ["significance level"]
        assert evaluation.model_answer.startswith("A p-value")
        assert evaluation.feedback.startswith("Solid answer")

    def test_fenced_response(self) -> None:
        evaluation = parse_evaluation(f"```json\n{json.dumps(GOOD_VERDICT)}\n```")
        assert evaluation.score == 4

    def test_integral_float_score_accepted(self) -> None:
        assert parse_evaluation(json.dumps({"score": 5.0})).score == 5

    def test_missing_optional_fields_default_empty(self) -> None:
        evaluation = parse_evaluation(json.dumps({"score": 2, "missedConcepts": "bias"}))
        assert evaluation.feedback == ""
        assert evaluation.missed_concepts == []

    @pytest.mark.parametrize("score", [0, 6, 3.5, "4", None, True])
    def test_invalid_score_is_retryable(self, score: object) -> None:
        with pytest.raises(GradingError) as exc_info:
            parse_evaluation(json.dumps({"score": score}))
        assert exc_info.value.code == "INVALID_RESPONSE"
        assert exc_info.value.retryable

    def test_not_json(self) -> None:
        with pytest.raises(GradingError) as exc_info:
            parse_evaluation("I think this deserves a 4.")
        assert exc_info.value.code == "INVALID_RESPONSE"
        assert not exc_info.value.retryable

    def test_not_an_object(self) -> None:
        with pytest.raises(GradingError) as exc_info:
            parse_evaluation("[4]")
        assert exc_info.value.code == "INVALID_RESPONSE"


class TestValidateAnswer:
    def test_strips_whitespace(self) -> None:
        assert validate_answer("  an answer \n") == "an answer"

    @pytest.mark.parametrize("answer", ["", "   ", "\n\t"])
    def test_empty_rejected(self, answer: str) -> None:
        with pytest.raises(GradingError) as exc_info:
            validate_answer(answer)
        assert exc_info.value.code == "INVALID_INPUT"

    def test_too_long_rejected(self) -> None:
        with pytest.raises(GradingError) as exc_info:
            validate_answer("x" * 10_001)
        assert exc_info.value.code == "INVALID_INPUT"


class TestTranslateApiError:
    def test_rate_limit(self) -> None:
        error = translate_api_error(_status_error(anthropic.RateLimitError, 429))
        assert error.code == "RATE_LIMIT"
        assert error.retryable

    def test_authentication(self) -> None:
        error = translate_api_error(_status_error(anthropic.AuthenticationError, 401))
        assert error.code == "AUTH_ERROR"
        assert not error.retryable

    def test_timeout(self) -> None:
        error = translate_api_error(anthropic.APITimeoutError(request=_REQUEST))
        assert error.code == "TIMEOUT"

    def test_connection(self) -> None:
        error = translate_api_error(anthropic.APIConnectionError(request=_REQUEST))
        assert error.code == "NETWORK"

    def test_other_status(self) -> None:
        error = translate_api_error(_status_error(anthropic.InternalServerError, 500))
        assert error.code == "UNKNOWN"


class TestEvaluateAnswer:
    def test_grades_answer(self) -> None:
        llm = MagicMock()
        llm.create_message.return_value = json.dumps(GOOD_VERDICT)

        evaluation = evaluate_answer(
            "Explain p-values.", ["null hypothesis", "significance level"], "It is a probability.", llm
        )

        assert evaluation.score == 4
        llm.create_message.assert_called_once()
        prompt = llm.create_message.call_args.kwargs["prompt"]
        assert "Explain p-values." in prompt
        assert "null hypothesis, significance level" in prompt
        assert "It is a probability." in prompt

    def test_empty_answer_skips_llm(self) -> None:
        llm = MagicMock()
        with pytest.raises(GradingError):
            evaluate_answer("Explain p-values.", [], "   ", llm)
        llm.create_message.assert_not_called()

    def test_retries_invalid_score(self, no_wait: None) -> None:
        llm = MagicMock()
        llm.create_message.side_effect = [json.dumps({"score": 9}), json.dumps(GOOD_VERDICT)]

        evaluation = evaluate_answer("Explain p-values.", [], "An answer.", llm)

        assert evaluation.score == 4
        assert llm.create_message.call_count == 2

    def test_gives_up_after_retries(self, no_wait: None) -> None:
        llm = MagicMock()
        llm.create_message.return_value = json.dumps({"score": 0})

        with pytest.raises(GradingError) as exc_info:
            evaluate_answer("Explain p-values.", [], "An answer.", llm)

        assert exc_info.value.code == "INVALID_RESPONSE"
        assert llm.create_message.call_count == 3

    def test_unparseable_response_not_retried(self, no_wait: None) -> None:
        llm = MagicMock()
        llm.create_message.return_value = "not json"

        with pytest.raises(GradingError):
            evaluate_answer("Explain p-values.", [], "An answer.", llm)

        assert llm.create_message.call_count == 1

    def test_api_error_translated(self) -> None:
        llm = MagicMock()
        llm.create_message.side_effect = _status_error(anthropic.AuthenticationError, 401)

        with pytest.raises(GradingError) as exc_info:
            evaluate_answer("Explain p-values.", [], "An answer.", llm)

        assert exc_info.value.code == "AUTH_ERROR"
        assert llm.create_message.call_count == 1


class TestGenerateQuestions:
    def test_parses_questions(self) -> None:
        llm = MagicMock()
        llm.create_message.return_value = json.dumps(
            {
                "questions": [
                    {
                        "prompt": "Explain window functions.",
                        "keyConcepts": ["PARTITION BY", "ORDER BY"],
                        "difficulty": "advanced",
                    },
                    {"prompt": "No concepts here.", "keyConcepts": []},
                    {"keyConcepts": ["orphan"]},
                ]
            }
        )

        questions = generate_questions(Category.SQL, Difficulty.INTERMEDIATE, 3, llm)

        assert len(questions) == 1
        assert questions[0].prompt == "Explain window functions."
        assert questions[0].key_concepts == ["PARTITION BY", "ORDER BY"]
        assert questions[0].difficulty is Difficulty.ADVANCED

    def test_bare_list_and_default_difficulty(self) -> None:
        llm = MagicMock()
        llm.create_message.return_value = (
            '```json\n[{"prompt": "Explain joins.", "keyConcepts": ["inner", "outer"]}]\n```'
        )

        questions = generate_questions(Category.SQL, Difficulty.BEGINNER, 1, llm)

        assert questions[0].difficulty is Difficulty.BEGINNER

    @pytest.mark.parametrize("count", [0, 11])
    def test_count_out_of_range(self, count: int) -> None:
        llm = MagicMock()
        with pytest.raises(GradingError) as exc_info:
            generate_questions(Category.SQL, Difficulty.BEGINNER, count, llm)
        assert exc_info.value.code == "INVALID_INPUT"
        llm.create_message.assert_not_called()

    def test_bad_json(self) -> None:
        llm = MagicMock()
        llm.create_message.return_value = "Here are some questions!"
        with pytest.raises(GradingError) as exc_info:
            generate_questions(Category.SQL, Difficulty.BEGINNER, 2, llm)
        assert exc_info.value.code == "INVALID_RESPONSE"


class TestLLMClient:
    def test_joins_text_blocks_and_counts_tokens(self) -> None:
        llm = LLMClient(api_key="test-key")
        llm.client = MagicMock()
        response = MagicMock()
        response.usage.input_tokens = 120
        response.usage.output_tokens = 30
        response.content = [
            MagicMock(type="text", text='{"score": '),
            MagicMock(type="text", text="5}"),
        ]
        llm.client.messages.create.return_value = response

        assert llm.create_message("prompt", system="system") == '{"score": 5}'

        kwargs = llm.client.messages.create.call_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]
        cost = llm.get_cost_estimate()
        assert cost["input_tokens"] == 120
        assert cost["output_tokens"] == 30
        assert cost["estimated_cost_usd"] > 0

    def test_no_api_key(self) -> None:
        with pytest.raises(LLMUnavailableError):
            get_llm_client()
