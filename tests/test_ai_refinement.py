"""Tests for AI refinement: proposal validation, acceptance rule and transport."""

import json

import httpx
import pytest

from forecast_optimizer.ai_refinement import (
    AdvisorResponse,
    AIRefinementClient,
    HttpAdvisorTransport,
    decide,
    extract_json_payload,
)
from forecast_optimizer.errors import ProviderError
from forecast_optimizer.grid_search import GridSearchOptimizer, GridSearchResult
from forecast_optimizer.models import BusinessContext
from forecast_optimizer.validation import WalkForwardValidator

SES = 'simple_exponential_smoothing'


def _worst_alpha(series):
    validator = WalkForwardValidator()
    scored = [(validator.validate(SES, series, {'alpha': a}).composite, a)
              for a in GridSearchOptimizer().parameter_grid(SES, len(series))['alpha']]
    return max(scored)[1]


class TestDecide:

    def test_significant_improvement_accepted(self):
        assert decide(10.0, 7.0, 50).accepted
        assert decide(10.0, 8.0, 50).accepted  # exactly the tolerance

    def test_small_improvement_needs_high_confidence(self):
        assert decide(10.0, 9.0, 80).accepted
        assert not decide(10.0, 9.0, 60).accepted

    def test_worse_proposal_rejected_even_when_confident(self):
        decision = decide(10.0, 11.0, 95)
        assert not decision.accepted
        assert decision.improvement == pytest.approx(-1.0)

    def test_thresholds_are_configurable(self):
        assert not decide(10.0, 7.0, 50, tolerance=5.0).accepted
        assert decide(10.0, 9.0, 60, high_confidence_threshold=50).accepted


class TestRefine:

    @pytest.mark.asyncio
    async def test_worse_proposal_returns_none(self, a123_series, fake_transport):
        grid = GridSearchOptimizer().search(SES, a123_series)
        worst = _worst_alpha(a123_series)
        transport = fake_transport({'alpha': worst}, confidence=90)
        client = AIRefinementClient(transport)

        result = await client.refine(SES, a123_series, grid)

        assert result is None
        assert client.last_decision is not None
        assert not client.last_decision.accepted
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_better_proposal_accepted(self, a123_series, fake_transport):
        baseline = GridSearchResult(parameters={'alpha': 0.1}, accuracy=70.0, confidence=70.0)
        transport = fake_transport({'alpha': 1.0}, confidence=70)
        client = AIRefinementClient(transport)

        result = await client.refine(SES, a123_series, baseline)

        assert result is not None
        assert result.parameters == {'alpha': 1.0}
        assert result.improvement >= 2.0
        assert 70 < result.confidence <= 95
        assert client.last_decision.accepted

    @pytest.mark.asyncio
    async def test_provider_failures_disable_client(self, a123_series, failing_transport):
        grid = GridSearchResult(parameters={'alpha': 0.3}, accuracy=80.0, confidence=80.0)
        client = AIRefinementClient(failing_transport)

        for _ in range(3):
            assert await client.refine(SES, a123_series, grid) is None

        assert not client.available
        assert await client.refine(SES, a123_series, grid) is None
        assert len(failing_transport.requests) == 3

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, a123_series, fake_transport):
        grid = GridSearchResult(parameters={'alpha': 0.3}, accuracy=80.0, confidence=80.0)
        client = AIRefinementClient(fake_transport({'alpha': 0.3}))
        client.consecutive_failures = 2

        await client.refine(SES, a123_series, grid)

        assert client.consecutive_failures == 0
        assert client.available

    @pytest.mark.asyncio
    async def test_disabled_by_config(self, a123_series, fake_transport):
        transport = fake_transport({'alpha': 1.0})
        client = AIRefinementClient(transport, ai_config={'enabled': False})
        grid = GridSearchResult(parameters={'alpha': 0.1}, accuracy=70.0, confidence=70.0)

        assert await client.refine(SES, a123_series, grid) is None
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_proposal_without_allowed_parameters(self, a123_series, fake_transport):
        client = AIRefinementClient(fake_transport({'gamma': 0.5}))
        grid = GridSearchResult(parameters={'alpha': 0.1}, accuracy=70.0, confidence=70.0)

        assert await client.refine(SES, a123_series, grid) is None
        assert client.last_decision.reason == 'no valid parameters proposed'

    @pytest.mark.asyncio
    async def test_non_finite_advisor_values_count_as_unavailable(self, a123_series):
        body = b'{"optimizedParameters": {"window": NaN}, "confidence": 90}'
        client = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, content=body,
                                           headers={'Content-Type': 'application/json'})
        ))
        refiner = AIRefinementClient(HttpAdvisorTransport(base_url='http://advisor.test/api',
                                                          client=client))
        grid = GridSearchResult(parameters={'window': 3}, accuracy=80.0, confidence=80.0)

        assert await refiner.refine('moving_average', a123_series, grid) is None
        assert refiner.consecutive_failures == 1


class TestRequest:

    def test_sanitize_proposal(self, fake_transport):
        client = AIRefinementClient(fake_transport())

        assert client.sanitize_proposal(SES, {'alpha': 5.0, 'foo': 1}, {'alpha': 0.3}, 24) == {'alpha': 1.0}
        assert client.sanitize_proposal(SES, {'foo': 1}, {'alpha': 0.3}, 24) is None
        assert client.sanitize_proposal('moving_average', {'window': float('nan')},
                                        {'window': 3}, 24) is None
        assert client.sanitize_proposal(
            'double_exponential_smoothing', {'alpha': 0.5, 'beta': float('inf')},
            {'alpha': 0.4, 'beta': 0.2}, 24
        ) == {'alpha': 0.5, 'beta': 0.2}
        assert client.sanitize_proposal(
            'double_exponential_smoothing', {'beta': 0.05}, {'alpha': 0.4, 'beta': 0.2}, 24
        ) == {'alpha': 0.4, 'beta': 0.1}

    def test_build_request(self, a123_series, fake_transport):
        client = AIRefinementClient(fake_transport(), ai_config={'history_points': 10})
        grid = GridSearchResult(parameters={'alpha': 0.4}, accuracy=88.0, confidence=81.0)

        request = client.build_request(SES, a123_series, grid,
                                       BusinessContext(cost_of_error='high'), 12)

        assert request['modelType'] == SES
        assert len(request['historicalData']) == 10
        assert request['currentParameters'] == {'alpha': 0.3}
        assert request['seasonalPeriod'] == 12
        assert request['businessContext']['costOfError'] == 'high'
        assert request['gridBaseline']['parameters'] == {'alpha': 0.4}
        assert request['allowedParameters'] == {'alpha': [0.1, 1.0]}
        assert request['dataStats']['count'] == 24
        json.dumps(request)


class TestHttpTransport:

    @staticmethod
    def _transport(handler, api_key='secret'):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpAdvisorTransport(base_url='http://advisor.test/api', api_key=api_key,
                                    client=client)

    @pytest.mark.asyncio
    async def test_posts_request_and_parses_response(self):
        seen = {}

        def handler(request):
            seen['url'] = str(request.url)
            seen['auth'] = request.headers.get('Authorization')
            seen['body'] = json.loads(request.content)
            return httpx.Response(200, json={
                'optimizedParameters': {'alpha': 0.6},
                'expectedAccuracy': 91.5,
                'confidence': 82,
                'reasoning': 'tracks trend',
            })

        response = await self._transport(handler).optimize({'modelType': SES})

        assert seen['url'] == 'http://advisor.test/api/ai/optimize-parameters'
        assert seen['auth'] == 'Bearer secret'
        assert seen['body'] == {'modelType': SES}
        assert response.optimized_parameters == {'alpha': 0.6}
        assert response.expected_accuracy == 91.5
        assert response.confidence == 82

    @pytest.mark.asyncio
    async def test_no_auth_header_without_key(self):
        seen = {}

        def handler(request):
            seen['auth'] = request.headers.get('Authorization')
            return httpx.Response(200, json={'optimizedParameters': {'alpha': 0.5}})

        response = await self._transport(handler, api_key='').optimize({})

        assert seen['auth'] is None
        assert response.confidence == 75.0

    @pytest.mark.asyncio
    async def test_error_status_raises_provider_error(self):
        transport = self._transport(lambda request: httpx.Response(503, text='unavailable'))

        with pytest.raises(ProviderError) as exc_info:
            await transport.optimize({})
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_network_error_raises_provider_error(self):
        def handler(request):
            raise httpx.ConnectError('connection refused', request=request)

        with pytest.raises(ProviderError):
            await self._transport(handler).optimize({})

    @pytest.mark.asyncio
    async def test_json_embedded_in_text(self):
        body = 'Here you go: {"optimizedParameters": {"alpha": 0.7}, "confidence": 60} Thanks'
        transport = self._transport(lambda request: httpx.Response(200, text=body))

        response = await transport.optimize({})
        assert response.optimized_parameters == {'alpha': 0.7}

    @pytest.mark.asyncio
    async def test_enveloped_response(self):
        transport = self._transport(lambda request: httpx.Response(200, json={
            'result': {'optimizedParameters': {'window': 4}}
        }))

        response = await transport.optimize({})
        assert response.optimized_parameters == {'window': 4}

    @pytest.mark.asyncio
    async def test_invalid_body_raises_provider_error(self):
        transport = self._transport(lambda request: httpx.Response(200, json={'answer': 42}))

        with pytest.raises(ProviderError):
            await transport.optimize({})


def test_extract_json_payload():
    assert extract_json_payload('x {"a": 1} y') == {'a': 1}
    with pytest.raises(ProviderError):
        extract_json_payload('no json here')
    with pytest.raises(ProviderError):
        extract_json_payload('{not: valid}')


def test_advisor_response_accepts_field_names():
    response = AdvisorResponse(optimized_parameters={'alpha': 0.2})
    assert response.optimized_parameters == {'alpha': 0.2}
    assert response.reasoning == ''
