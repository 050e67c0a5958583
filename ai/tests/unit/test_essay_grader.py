import asyncio
import json

import pytest

from upsc_ai.providers import Tier
from upsc_ai.semantic import EssayGrader, GradingValidationError, ParseTier, parse_grading
from tests.fixtures.sample_data import GRADING_JSON


@pytest.mark.unit
def test_strict_grading_json():
    result, tier = parse_grading(GRADING_JSON)
    assert tier == ParseTier.STRICT
    assert result.total_score == 7
    assert result.breakdown.content == 2.5
    assert result.strengths == ['Clear introduction']
    assert result.model_answer.startswith('Define federalism')


@pytest.mark.unit
def test_out_of_range_scores_are_clamped():
    text = 'Here is the evaluation: {"totalScore": 14, "breakdown": {"content": 5, "structure": -1, "accuracy": "2", "examples": "lots"}}'
    result, tier = parse_grading(text)
    assert tier == ParseTier.SUBSTRING
    assert result.total_score == 10
    assert result.breakdown.content == 3
    assert result.breakdown.structure == 0
    assert result.breakdown.accuracy == 2
    assert result.breakdown.examples == 0
    assert result.strengths == []


@pytest.mark.unit
def test_missing_total_uses_breakdown_sum():
    text = json.dumps({'breakdown': {'content': 2, 'structure': 1, 'accuracy': 2, 'examples': 1}})
    result, _ = parse_grading(text)
    assert result.total_score == 6


@pytest.mark.unit
def test_unparseable_grading_falls_back_to_zero():
    result, tier = parse_grading('The answer is decent but lacks depth.')
    assert tier == ParseTier.FALLBACK
    assert result.total_score == 0
    assert result.breakdown.content == 0
    assert result.weaknesses
    assert result.suggestions


@pytest.mark.unit
def test_validate_request():
    grader = EssayGrader(client=object())
    grader.validate_request('Discuss federalism.', 'Federalism is...', 250, 'standard')
    with pytest.raises(GradingValidationError):
        grader.validate_request('', 'text', 250, 'standard')
    with pytest.raises(GradingValidationError):
        grader.validate_request('Q', '   ', 250, 'standard')
    with pytest.raises(GradingValidationError):
        grader.validate_request('Q', 'text', 0, 'standard')
    with pytest.raises(GradingValidationError):
        grader.validate_request('Q', 'text', 250, 'lenient')


@pytest.mark.unit
def test_request_uses_smart_tier(mock_openai_client):
    grader = EssayGrader.get_instance()
    resp = asyncio.run(grader.request('Discuss federalism.', 'Federalism is...', 150, 'deep_pro'))
    call = mock_openai_client.calls[-1]
    assert call['model'] == grader.client.model_for(Tier.SMART)
    assert 'line-by-line' in call['messages'][0]['content']
    result, tier = grader.parse(resp, mode='deep_pro')
    assert tier == ParseTier.STRICT
    assert result.total_score == 7
