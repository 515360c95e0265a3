import inspect
import os
import re
import time
import logging
from datetime import datetime, timezone

from dealdesk.models.research import (
    CompanyOverview, NewsItem, ResearchAnalysis, ResearchResult, ResearchUsage, UsageCounter,
)
from dealdesk.services.db_service import DBService
from dealdesk.services.llm_service import LLMService
from dealdesk.services.market_data_service import MarketDataService

logger = logging.getLogger(__name__)

_TICKER_PATTERN = re.compile(r"^[A-Z]{1,5}$")

ANALYST_SYSTEM_PROMPT = (
    "You are a senior M&A analyst. Analyze the company data you are given and produce a concise "
    "research brief plus three comparable public companies. Always respond with valid JSON only, "
    "no markdown formatting."
)


class InvalidTickerError(ValueError):
    pass


class TickerNotFoundError(Exception):
    def __init__(self, ticker: str):
        self.ticker = ticker
        super().__init__(f'Ticker "{ticker}" not found. Please check the symbol and try again.')


class QuotaExhaustedError(Exception):
    def __init__(self, max_uses: int):
        self.max_uses = max_uses
        super().__init__(f"Research quota exhausted. You have used all {max_uses} research analyses.")


def max_research_uses() -> int:
    return int(os.getenv("MAX_RESEARCH_USES", "3"))


def normalise_ticker(raw: str | None) -> str:
    if not raw or not isinstance(raw, str):
        raise InvalidTickerError("Invalid ticker provided")
    ticker = raw.upper().strip()
    if not _TICKER_PATTERN.match(ticker):
        raise InvalidTickerError("Invalid ticker format. Use uppercase letters only, max 5 characters.")
    return ticker


def research_usage(db: DBService, user_id: str) -> ResearchUsage:
    counter = db.get_research_usage(user_id)
    max_uses = max_research_uses()
    return ResearchUsage(
        remaining=max(0, max_uses - counter.usage_count),
        used=counter.usage_count,
        max=max_uses,
        last_used_at=counter.last_used_at,
    )


def _fmt(value) -> str:
    return "None" if value is None else str(value)


def build_analysis_prompt(overview: CompanyOverview, news: list[NewsItem]) -> str:
    headlines = "\n".join(
        f"- {n.title} (Sentiment: {n.overall_sentiment_label or 'n/a'})" for n in news
    ) or "- No recent news"

    return f"""Analyze the following company and provide a comprehensive analysis.

COMPANY DATA:
- Name: {overview.name}
- Ticker: {overview.symbol}
- Sector: {_fmt(overview.sector)}
- Industry: {_fmt(overview.industry)}
- Description: {_fmt(overview.description)}
- Market Cap: {_fmt(overview.market_cap)}
- P/E Ratio: {_fmt(overview.pe_ratio)}
- EPS: {_fmt(overview.eps)}
- Revenue TTM: {_fmt(overview.revenue_ttm)}
- Profit Margin: {_fmt(overview.profit_margin)}
- Operating Margin: {_fmt(overview.operating_margin)}
- ROE: {_fmt(overview.return_on_equity)}
- Beta: {_fmt(overview.beta)}
- 52-Week High: {_fmt(overview.high_52_week)}
- 52-Week Low: {_fmt(overview.low_52_week)}
- Dividend Yield: {_fmt(overview.dividend_yield)}

RECENT NEWS:
{headlines}

The brief needs a 2-3 sentence overview, a 2-3 sentence description of the business model,
a 2-3 sentence financial health assessment, three key risks and three key opportunities.
Then list three comparable public companies with a similarity score from 0 to 100, a short
reasoning and key metrics (marketCap, peRatio, sector) as strings."""


def _raw_data(overview: CompanyOverview) -> dict:
    return {
        "sector": overview.sector,
        "industry": overview.industry,
        "market_cap": overview.market_cap,
        "pe_ratio": overview.pe_ratio,
        "eps": overview.eps,
        "revenue": overview.revenue_ttm,
        "profit_margin": overview.profit_margin,
        "operating_margin": overview.operating_margin,
        "roe": overview.return_on_equity,
        "beta": overview.beta,
        "high_52_week": overview.high_52_week,
        "low_52_week": overview.low_52_week,
        "dividend_yield": overview.dividend_yield,
    }


class ResearchPipeline:
    def __init__(self, llm: LLMService, market: MarketDataService, db: DBService):
        self.llm = llm
        self.market = market
        self.db = db

    async def run(self, user_id: str, raw_ticker: str | None) -> ResearchResult:
        self.llm.call_logs = []  # reset for this run

        usage = self.db.get_research_usage(user_id)
        max_uses = max_research_uses()
        if max_uses - usage.usage_count <= 0:
            logger.info(f"User {user_id} has exhausted research quota")
            raise QuotaExhaustedError(max_uses)

        ticker = normalise_ticker(raw_ticker)
        logger.info(f"=== Research started for {ticker} (user={user_id}) ===")

        overview = await self._run_step("fetch_overview", self.market.fetch_company_overview, ticker)
        if overview is None:
            raise TickerNotFoundError(ticker)

        news = await self._run_step("fetch_news", self.market.fetch_company_news, ticker)
        analysis: ResearchAnalysis = await self._run_step("analyze", self._analyze, overview, news)

        updated: UsageCounter = await self._run_step(
            "increment_usage", self._increment_usage, user_id, usage.usage_count
        )

        result = ResearchResult(
            ticker=ticker,
            company_name=overview.name,
            raw_data=_raw_data(overview),
            brief=analysis.brief,
            comparables=analysis.comparables,
            news_count=len(news),
            analyzed_at=datetime.now(timezone.utc),
            remaining=max(0, max_uses - updated.usage_count),
        )
        await self._run_step("persist", self._persist, user_id, result)

        logger.info(f"=== Research complete for {ticker}: user {user_id} has {result.remaining} remaining ===")
        return result

    async def _run_step(self, name: str, fn, *args):
        start = time.time()
        logger.info(f"Step '{name}' started")
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Step '{name}' failed in {(time.time() - start) * 1000:.0f}ms: {e}")
            raise
        logger.info(f"Step '{name}' completed in {(time.time() - start) * 1000:.0f}ms")
        return result

    async def _analyze(self, overview: CompanyOverview, news: list[NewsItem]) -> ResearchAnalysis:
        return await self.llm.structured_completion(
            system_prompt=ANALYST_SYSTEM_PROMPT,
            user_prompt=build_analysis_prompt(overview, news),
            response_model=ResearchAnalysis,
            step_name="research_analysis",
        )

    def _increment_usage(self, user_id: str, expected_count: int) -> UsageCounter:
        return self.db.increment_research_usage(user_id, expected_count)

    def _persist(self, user_id: str, result: ResearchResult) -> str:
        return self.db.save_company_report(user_id, result, list(self.llm.call_logs))
