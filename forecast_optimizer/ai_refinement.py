"""
AI Refinement Module

Asks an external advisor to improve on the grid-search baseline, then checks
the proposal by re-simulating it over the same walk-forward splits. A proposal
replaces the baseline only when it beats it by the configured tolerance, or
when the advisor is highly confident and the proposal is at least better.

Advisor outages never propagate: transport and parse failures are logged and
turned into "no AI result".
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config import AI_CONFIG, PARAMETER_BOUNDS
from forecast_optimizer.errors import ProviderError
from forecast_optimizer.grid_search import GridSearchResult, clamp_parameter
from forecast_optimizer.models import BusinessContext, ModelConfig, get_default_models
from forecast_optimizer.series_features import describe_series
from forecast_optimizer.validation import WalkForwardValidator

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r'\{[\s\S]*\}')


class AdvisorResponse(BaseModel):
    """Structured advisor reply"""
    model_config = ConfigDict(populate_by_name=True, allow_inf_nan=False)

    optimized_parameters: Dict[str, float] = Field(alias='optimizedParameters')
    expected_accuracy: Optional[float] = Field(default=None, alias='expectedAccuracy')
    confidence: float = 75.0
    reasoning: str = ''
    factors: Optional[Dict[str, Any]] = None


def extract_json_payload(text: str) -> Dict[str, Any]:
    """
    Pull the first JSON object out of a free-text advisor reply

    Raises:
        ProviderError: if no JSON object can be parsed
    """
    match = _JSON_OBJECT.search(text or '')
    if not match:
        raise ProviderError("Unable to parse optimization response")
    try:
        return json.loads(match.group(0))
    except ValueError as e:
        raise ProviderError(f"Malformed JSON in advisor response: {e}") from e


class HttpAdvisorTransport:
    """Advisor transport over HTTP (JSON in, JSON out)"""

    def __init__(self,
                 base_url: str = None,
                 endpoint: str = None,
                 api_key: str = None,
                 timeout: float = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or AI_CONFIG['base_url']).rstrip('/')
        self.endpoint = endpoint or AI_CONFIG['endpoint']
        self.api_key = api_key if api_key is not None else AI_CONFIG['api_key']
        self.timeout = timeout or AI_CONFIG['timeout_seconds']
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def optimize(self, request: Dict[str, Any]) -> AdvisorResponse:
        """
        Submit an optimization request

        Raises:
            ProviderError: on network errors, non-success status or an
                unparseable body
        """
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f"Bearer {self.api_key}"

        url = f"{self.base_url}{self.endpoint}"
        try:
            response = await self._get_client().post(url, json=request, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderError(f"Advisor request failed: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(f"Advisor returned HTTP {response.status_code}",
                                status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            payload = extract_json_payload(response.text)

        if isinstance(payload, dict) and 'optimizedParameters' not in payload:
            payload = payload.get('result') or payload.get('data') or payload

        try:
            return AdvisorResponse.model_validate(payload)
        except ValidationError as e:
            raise ProviderError(f"Invalid advisor response: {e}") from e


@dataclass
class RefinementDecision:
    """Outcome of checking a proposal against the grid baseline"""
    accepted: bool
    reason: str
    baseline_composite: Optional[float] = None
    proposal_composite: Optional[float] = None
    improvement: float = 0.0


@dataclass
class RefinementResult:
    """Accepted AI parameter set"""
    parameters: Dict[str, float]
    accuracy: float
    confidence: float
    expected_accuracy: Optional[float]
    reasoning: str
    composite_score: float
    improvement: float
    factors: Optional[Dict[str, Any]] = field(default=None, repr=False)


def decide(baseline_composite: float,
           proposal_composite: float,
           advisor_confidence: float,
           tolerance: float = None,
           high_confidence_threshold: float = None) -> RefinementDecision:
    """
    Accept or reject a validated proposal

    Args:
        baseline_composite: Grid baseline composite error
        proposal_composite: Proposal composite error on the same splits
        advisor_confidence: Confidence reported by the advisor
        tolerance: Improvement required for outright acceptance
        high_confidence_threshold: Confidence allowing a smaller improvement

    Returns:
        RefinementDecision
    """
    if tolerance is None:
        tolerance = AI_CONFIG['tolerance']
    if high_confidence_threshold is None:
        high_confidence_threshold = AI_CONFIG['high_confidence_threshold']

    improvement = baseline_composite - proposal_composite
    decision = RefinementDecision(
        accepted=False,
        reason='',
        baseline_composite=baseline_composite,
        proposal_composite=proposal_composite,
        improvement=improvement
    )

    if improvement >= tolerance:
        decision.accepted = True
        decision.reason = 'significant improvement'
    elif improvement > 0 and advisor_confidence >= high_confidence_threshold:
        decision.accepted = True
        decision.reason = 'high confidence with smaller improvement'
    else:
        decision.reason = (f'improvement {improvement:.2f} below tolerance {tolerance} '
                           f'(confidence {advisor_confidence:.0f})')
    return decision


class AIRefinementClient:
    """Refines grid-search baselines with an external advisor"""

    def __init__(self,
                 transport: Optional[HttpAdvisorTransport] = None,
                 validator: Optional[WalkForwardValidator] = None,
                 models: Optional[List[ModelConfig]] = None,
                 ai_config: Optional[Dict] = None):
        """
        Initialize refinement client

        Args:
            transport: Object with an async optimize(request) -> AdvisorResponse
            validator: Walk-forward validator shared with the grid search
            models: Model registry (parameter allow-lists and defaults)
            ai_config: Settings (defaults to AI_CONFIG)
        """
        self.config = {**AI_CONFIG, **(ai_config or {})}
        self.transport = transport or HttpAdvisorTransport()
        self.validator = validator or WalkForwardValidator()
        self.models = {m.id: m for m in (models if models is not None else get_default_models())}
        self.consecutive_failures = 0
        self.last_decision: Optional[RefinementDecision] = None

    @property
    def available(self) -> bool:
        """False once disabled by config or by repeated advisor failures"""
        return (self.config['enabled']
                and self.consecutive_failures < self.config['failure_threshold'])

    def allowed_parameters(self, model_id: str) -> Dict[str, List[float]]:
        model = self.models.get(model_id)
        if model is None:
            return {}
        return {name: list(PARAMETER_BOUNDS[name]) for name in model.optimizable_parameters}

    def build_request(self,
                      model_id: str,
                      series: np.ndarray,
                      grid_baseline: GridSearchResult,
                      business_context: Optional[BusinessContext] = None,
                      seasonal_period: Optional[int] = None) -> Dict[str, Any]:
        """Assemble the advisor request payload"""
        model = self.models.get(model_id)
        history = np.asarray(series, dtype=float)[-self.config['history_points']:]
        context = business_context or BusinessContext()

        return {
            'modelType': model_id,
            'historicalData': [round(float(v), 4) for v in history],
            'currentParameters': dict(model.parameters) if model else {},
            'seasonalPeriod': seasonal_period,
            'targetMetric': self.config['target_metric'],
            'businessContext': context.to_request(),
            'gridBaseline': {
                'parameters': dict(grid_baseline.parameters),
                'accuracy': round(float(grid_baseline.accuracy), 2),
                'confidence': round(float(grid_baseline.confidence), 2),
            },
            'allowedParameters': self.allowed_parameters(model_id),
            'dataStats': describe_series(series),
        }

    def sanitize_proposal(self,
                          model_id: str,
                          proposal: Dict[str, float],
                          baseline: Dict[str, float],
                          n_obs: int) -> Optional[Dict[str, float]]:
        """
        Restrict a proposal to the model's allow-list

        Unknown names and non-finite values are dropped, missing names are
        taken from the baseline and values are clamped to their bounds.

        Returns:
            Sanitised parameters, or None if no usable allowed value was proposed
        """
        allowed = self.allowed_parameters(model_id)
        proposed = {name: value for name, value in proposal.items()
                    if name in allowed and np.isfinite(value)}
        dropped = sorted(set(proposal) - set(proposed))
        if dropped:
            logger.warning("Advisor proposed parameters not valid for %s: %s", model_id, dropped)
        if not proposed:
            return None

        parameters = {}
        for name in allowed:
            value = proposed.get(name, baseline.get(name))
            if value is None:
                return None
            parameters[name] = clamp_parameter(name, value, n_obs)
        return parameters

    async def refine(self,
                     model_id: str,
                     series: np.ndarray,
                     grid_baseline: GridSearchResult,
                     business_context: Optional[BusinessContext] = None,
                     seasonal_period: int = 12) -> Optional[RefinementResult]:
        """
        Ask the advisor for a better parameter set and validate it

        Args:
            model_id: Model identifier
            series: Date-ordered values
            grid_baseline: Grid search result for this same run
            business_context: Planning context forwarded to the advisor
            seasonal_period: Observations per seasonal cycle

        Returns:
            RefinementResult if accepted, None if rejected or the advisor is
            unavailable
        """
        self.last_decision = None
        if not self.available:
            logger.info("AI refinement unavailable for %s, keeping grid baseline", model_id)
            return None

        series = np.asarray(series, dtype=float)
        request = self.build_request(model_id, series, grid_baseline,
                                     business_context, seasonal_period)

        try:
            response = await self.transport.optimize(request)
        except ProviderError as e:
            self.consecutive_failures += 1
            logger.warning("AI advisor unavailable for %s (%d/%d consecutive failures): %s",
                           model_id, self.consecutive_failures,
                           self.config['failure_threshold'], e)
            if not self.available:
                logger.error("AI refinement disabled after %d consecutive failures",
                             self.consecutive_failures)
            return None

        self.consecutive_failures = 0

        parameters = self.sanitize_proposal(model_id, response.optimized_parameters,
                                            grid_baseline.parameters, len(series))
        if parameters is None:
            self.last_decision = RefinementDecision(False, 'no valid parameters proposed')
            logger.info("AI proposal for %s rejected: no valid parameters", model_id)
            return None

        baseline_result = self.validator.validate(model_id, series, grid_baseline.parameters,
                                                  seasonal_period)
        proposal_result = self.validator.validate(model_id, series, parameters,
                                                  seasonal_period)
        if baseline_result is None or proposal_result is None:
            self.last_decision = RefinementDecision(False, 'proposal could not be validated')
            logger.info("AI proposal for %s rejected: not enough data to validate", model_id)
            return None

        decision = decide(
            baseline_result.composite,
            proposal_result.composite,
            response.confidence,
            self.config['tolerance'],
            self.config['high_confidence_threshold']
        )
        self.last_decision = decision

        if not decision.accepted:
            logger.info("AI proposal for %s rejected: %s", model_id, decision.reason)
            return None

        confidence = min(95.0, response.confidence + max(0.0, decision.improvement * 2))
        logger.info("AI proposal for %s accepted (%s): %s improvement %.2f",
                    model_id, decision.reason, parameters, decision.improvement)

        return RefinementResult(
            parameters=parameters,
            accuracy=proposal_result.accuracy,
            confidence=confidence,
            expected_accuracy=response.expected_accuracy,
            reasoning=response.reasoning,
            composite_score=proposal_result.composite,
            improvement=decision.improvement,
            factors=response.factors
        )
