"""
Portfolio assistant orchestrator.

Entry point consumed by the HTTP layer. Each question flows through:
classify -> blocklist -> cache -> budget check -> route -> prompt ->
model call -> usage -> disclaimers/citations -> cache store -> audit.

Cancelling `ask` (or hitting its timeout) while the model call is in flight
aborts the request with no usage, cache or audit side effects.
"""

import asyncio
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import structlog

from .llm_client import ModelClient
from .prompts import (
    BLOCKED_DISCLAIMER,
    BLOCKED_RESPONSE_TEXT,
    build_system_prompt,
    build_user_prompt,
    disclaimers_for,
    extract_sources,
)
from ..config.loader import AssistantConfig, resolve_api_key
from ..core.cache import CacheSweeper, SemanticQueryCache
from ..core.guardrails import UsageLimiter
from ..core.intent import Intent, classify_intent
from ..core.logging import get_logger
from ..core.models import Query, Response, new_id, utcnow
from ..core.portfolio import Portfolio
from ..core.router import ModelRouter
from ..core.tax import TaxOptimizer, TaxSummary
from ..core.token_counter import TokenUsage, estimate_tokens
from ..storage.audit import AuditLogger
from ..storage.models import AuditEntry

logger = get_logger(__name__)


class PortfolioAssistant:
    """Answers portfolio questions within compliance, cost and audit guardrails.

    The cache, usage limiter and audit log are owned by this instance and are
    safe to share between concurrent requests. Nothing is coordinated across
    processes: each instance has its own cache and budgets.
    """

    def __init__(
        self,
        config: Optional[AssistantConfig] = None,
        client: Optional[ModelClient] = None,
        router: Optional[ModelRouter] = None,
        cache: Optional[SemanticQueryCache] = None,
        limiter: Optional[UsageLimiter] = None,
        auditor: Optional[AuditLogger] = None,
        tax_optimizer: Optional[TaxOptimizer] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """Initialize the assistant.

        Components not passed in are built from `config`.

        Args:
            config: Assistant configuration (defaults used when omitted)
            client: Remote model client
            router: Model router
            cache: Semantic query cache
            limiter: Per-user token budget
            auditor: Audit log
            tax_optimizer: Tax-loss harvesting analyzer
            clock: Source of the current time
        """
        self.config = config or AssistantConfig()
        self._clock = clock

        if client is None:
            client = ModelClient(self.config.api, api_key=resolve_api_key(self.config))
        if router is None:
            router = ModelRouter(self.config.routing)
        if cache is None:
            cache = SemanticQueryCache(
                ttl=timedelta(seconds=self.config.cache.ttl_seconds),
                similarity_threshold=self.config.cache.similarity_threshold,
                max_entries=self.config.cache.max_entries,
                clock=clock,
            )
        if limiter is None:
            limiter = UsageLimiter(daily_budget=self.config.budget.daily_tokens, clock=clock)
        if auditor is None:
            auditor = AuditLogger(enabled=self.config.compliance.audit_enabled, clock=clock)
        if tax_optimizer is None:
            tax_optimizer = TaxOptimizer(
                min_loss_threshold=self.config.tax.min_loss_threshold,
                blended_rate=self.config.tax.blended_rate,
                clock=clock,
            )

        self.client = client
        self.router = router
        self.cache = cache
        self.limiter = limiter
        self.auditor = auditor
        self.tax_optimizer = tax_optimizer
        self.sweeper = CacheSweeper(cache, self.config.cache.sweep_interval_seconds)

    def start(self) -> None:
        """Start background maintenance (the cache TTL sweep)."""
        self.sweeper.start()

    def stop(self) -> None:
        self.sweeper.stop()

    async def aclose(self) -> None:
        """Release the model client's HTTP connections."""
        await self.client.aclose()

    async def ask(
        self,
        query: Query,
        portfolio: Optional[Portfolio] = None,
        timeout: Optional[float] = None,
    ) -> Response:
        """Answer a question about a portfolio.

        Args:
            query: The user's question
            portfolio: Read-only snapshot the question refers to
            timeout: Seconds to wait for the model before giving up

        Returns:
            The answer; blocked and cached answers are returned as Responses too

        Raises:
            QuotaExceededError: If the user's daily token budget is spent
            UpstreamError: If the model provider fails after retries
            MalformedResponseError: If the model output is unusable
            asyncio.TimeoutError: If `timeout` elapses during the model call
        """
        started = time.monotonic()

        with structlog.contextvars.bound_contextvars(query_id=query.id, user_id=query.user_id):
            intent = classify_intent(query.text)
            logger.info("query_classified", intent=intent.value)

            if intent == Intent.UNSUPPORTED:
                response = self._blocked_response(query, started)
                self._audit(query, response)
                logger.info("query_blocked")
                return response

            portfolio_id = query.portfolio_id or (portfolio.id if portfolio is not None else "")

            if self.config.cache.enabled:
                cached = self.cache.get(query.text, portfolio_id)
                if cached is not None:
                    response = self._from_cache(cached, query, started)
                    self._audit(query, response)
                    logger.info("query_answered_from_cache", response_id=response.id)
                    return response

            # Budget is checked before any paid call
            self.limiter.check_limit(query.user_id)

            tier = self.router.select_model(intent, query.text)
            model = self.router.model_for(tier)
            system_prompt = build_system_prompt(portfolio)
            user_prompt = build_user_prompt(query)

            complexity = self.router.analyze_complexity(query.text)
            estimated_cost = self.router.estimate_cost(
                tier,
                estimate_tokens(system_prompt) + estimate_tokens(user_prompt),
                self.config.api.max_tokens,
            )
            logger.info(
                "query_routed",
                model_tier=tier.value,
                model=model,
                complexity=complexity.complexity,
                has_tickers=complexity.has_tickers,
                max_estimated_cost_usd=round(estimated_cost, 6),
            )

            call = self.client.complete(model, system_prompt, user_prompt)
            if timeout is not None:
                completion = await asyncio.wait_for(call, timeout)
            else:
                completion = await call

            self.limiter.record_usage(query.user_id, completion.usage)

            response = Response(
                query_id=query.id,
                text=completion.text,
                model_tier=tier,
                model=model,
                intent=intent,
                tokens_used=completion.usage,
                timestamp=self._clock(),
            )
            if self.config.compliance.disclaimers_enabled:
                response.disclaimers = disclaimers_for(intent)
            response.sources = extract_sources(completion.text, portfolio)
            response.processing_ms = self._elapsed_ms(started)

            if self.config.cache.enabled:
                self.cache.set(query.text, portfolio_id, response)
            self._audit(query, response)

            logger.info(
                "query_answered",
                response_id=response.id,
                model_tier=tier.value,
                tokens=completion.usage.total_tokens,
                cost_usd=round(self.router.estimate_cost(
                    tier, completion.usage.input_tokens, completion.usage.output_tokens
                ), 6),
                processing_ms=response.processing_ms,
            )
            return response

    def analyze_tax_opportunities(self, portfolio: Optional[Portfolio]) -> TaxSummary:
        return self.tax_optimizer.analyze_tax_opportunities(portfolio)

    def get_usage_stats(self, user_id: str) -> Dict[str, object]:
        return self.limiter.get_usage_stats(user_id)

    def get_audit_entries(self, user_id: str, since: datetime, limit: int = 50) -> List[AuditEntry]:
        return self.auditor.get_entries(user_id, since, limit)

    def get_audit_stats(self, since: datetime) -> Dict[str, object]:
        return self.auditor.get_stats(since)

    def export_audit(self, user_id: str, start: datetime, end: datetime) -> str:
        return self.auditor.export_for_compliance(user_id, start, end)

    def get_cache_stats(self) -> Dict[str, object]:
        return self.cache.stats()

    def invalidate_cache(self, portfolio_id: str) -> int:
        """Drop cached answers for a portfolio, e.g. after its holdings change."""
        return self.cache.invalidate(portfolio_id)

    def _blocked_response(self, query: Query, started: float) -> Response:
        tier = self.config.routing.simple_tier
        return Response(
            query_id=query.id,
            text=BLOCKED_RESPONSE_TEXT,
            model_tier=tier,
            model=self.router.model_for(tier),
            intent=Intent.UNSUPPORTED,
            tokens_used=TokenUsage(),
            disclaimers=[BLOCKED_DISCLAIMER],
            processing_ms=self._elapsed_ms(started),
            timestamp=self._clock(),
        )

    def _from_cache(self, cached: Response, query: Query, started: float) -> Response:
        # The clone is ours to modify; no tokens were spent on this answer
        cached.id = new_id()
        cached.query_id = query.id
        cached.cached = True
        cached.tokens_used = TokenUsage()
        cached.processing_ms = self._elapsed_ms(started)
        cached.timestamp = self._clock()
        return cached

    def _audit(self, query: Query, response: Response) -> None:
        self.auditor.log(query, response)

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
