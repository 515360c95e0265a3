import asyncio
import os
import logging
from datetime import datetime, timezone

from dealdesk.models.research import CompanyOverview, NewsItem

logger = logging.getLogger(__name__)

# Hardcoded overview data for common tickers across sectors
MOCK_OVERVIEWS: dict[str, dict] = {
    # Technology
    "MSFT": {"name": "Microsoft", "exchange": "NASDAQ", "sector": "Technology", "industry": "Software - Infrastructure", "market_cap": 3_000_000_000_000, "pe_ratio": 35.2, "dividend_yield": 0.0072, "eps": 11.8, "revenue_ttm": 236_000_000_000, "profit_margin": 0.36, "operating_margin": 0.44, "return_on_equity": 0.37, "beta": 0.9, "high_52_week": 468.35, "low_52_week": 366.5, "description": "Microsoft develops and licenses software, cloud services, devices and business solutions."},
    "AAPL": {"name": "Apple", "exchange": "NASDAQ", "sector": "Technology", "industry": "Consumer Electronics", "market_cap": 2_800_000_000_000, "pe_ratio": 29.1, "dividend_yield": 0.0051, "eps": 6.4, "revenue_ttm": 383_000_000_000, "profit_margin": 0.25, "operating_margin": 0.30, "return_on_equity": 1.47, "beta": 1.25, "high_52_week": 237.23, "low_52_week": 164.08, "description": "Apple designs, manufactures and markets smartphones, personal computers, tablets, wearables and services."},
    "CRM": {"name": "Salesforce", "exchange": "NYSE", "sector": "Technology", "industry": "Software - Application", "market_cap": 280_000_000_000, "pe_ratio": 48.0, "dividend_yield": 0.0055, "eps": 6.1, "revenue_ttm": 35_000_000_000, "profit_margin": 0.16, "operating_margin": 0.19, "return_on_equity": 0.10, "beta": 1.3, "high_52_week": 318.71, "low_52_week": 212.0, "description": "Salesforce provides customer relationship management technology that brings companies and customers together."},
    "SNOW": {"name": "Snowflake", "exchange": "NYSE", "sector": "Technology", "industry": "Software - Application", "market_cap": 65_000_000_000, "pe_ratio": None, "dividend_yield": None, "eps": -2.5, "revenue_ttm": 3_400_000_000, "profit_margin": -0.25, "operating_margin": -0.33, "return_on_equity": -0.18, "beta": 1.1, "high_52_week": 237.72, "low_52_week": 107.13, "description": "Snowflake provides a cloud-based data platform for data warehousing, data lakes and data sharing."},
    # Consumer Defensive
    "ADM": {"name": "Archer-Daniels-Midland", "exchange": "NYSE", "sector": "Consumer Defensive", "industry": "Farm Products", "market_cap": 25_000_000_000, "pe_ratio": 11.5, "dividend_yield": 0.037, "eps": 4.6, "revenue_ttm": 93_000_000_000, "profit_margin": 0.024, "operating_margin": 0.03, "return_on_equity": 0.09, "beta": 0.7, "high_52_week": 77.0, "low_52_week": 50.72, "description": "Archer-Daniels-Midland procures, transports, stores, processes and merchandises agricultural commodities."},
    # Healthcare
    "JNJ": {"name": "Johnson & Johnson", "exchange": "NYSE", "sector": "Healthcare", "industry": "Drug Manufacturers - General", "market_cap": 380_000_000_000, "pe_ratio": 15.4, "dividend_yield": 0.031, "eps": 10.3, "revenue_ttm": 85_000_000_000, "profit_margin": 0.41, "operating_margin": 0.27, "return_on_equity": 0.36, "beta": 0.5, "high_52_week": 175.97, "low_52_week": 143.13, "description": "Johnson & Johnson researches, develops, manufactures and sells healthcare products worldwide."},
    # Financial Services
    "JPM": {"name": "JPMorgan Chase", "exchange": "NYSE", "sector": "Financial Services", "industry": "Banks - Diversified", "market_cap": 580_000_000_000, "pe_ratio": 12.1, "dividend_yield": 0.023, "eps": 16.2, "revenue_ttm": 158_000_000_000, "profit_margin": 0.33, "operating_margin": 0.42, "return_on_equity": 0.16, "beta": 1.1, "high_52_week": 210.38, "low_52_week": 135.19, "description": "JPMorgan Chase operates as a financial services company worldwide."},
    # Industrials
    "CAT": {"name": "Caterpillar", "exchange": "NYSE", "sector": "Industrials", "industry": "Farm & Heavy Construction Machinery", "market_cap": 180_000_000_000, "pe_ratio": 16.3, "dividend_yield": 0.015, "eps": 21.9, "revenue_ttm": 67_000_000_000, "profit_margin": 0.16, "operating_margin": 0.20, "return_on_equity": 0.55, "beta": 1.1, "high_52_week": 382.01, "low_52_week": 223.76, "description": "Caterpillar manufactures construction and mining equipment, engines and turbines."},
}

MOCK_NEWS: list[dict] = [
    {"title": "{name} reports quarterly results ahead of consensus", "summary": "Revenue and margins came in above analyst expectations.", "source": "Mock Wire", "overall_sentiment_label": "Somewhat-Bullish"},
    {"title": "Analysts weigh {name} outlook amid sector rotation", "summary": "Sell-side coverage remains mixed on near-term multiples.", "source": "Mock Wire", "overall_sentiment_label": "Neutral"},
]


class MarketDataService:
    def __init__(self):
        self.use_mock = os.getenv("MOCK_MARKET_DATA", "false").lower() == "true"

    async def fetch_company_overview(self, ticker: str) -> CompanyOverview | None:
        if not self.use_mock:
            try:
                overview = await asyncio.to_thread(self._fetch_overview_yfinance, ticker)
                if overview:
                    return overview
                logger.warning(f"yfinance has no profile for {ticker}, falling back to mock")
            except Exception as e:
                logger.warning(f"yfinance failed for {ticker}: {e}, falling back to mock")

        return self._get_mock_overview(ticker)

    def _fetch_overview_yfinance(self, ticker: str) -> CompanyOverview | None:
        import yfinance as yf
        info = yf.Ticker(ticker).info or {}

        name = info.get("longName") or info.get("shortName")
        if not name:
            return None

        return CompanyOverview(
            symbol=ticker,
            name=name,
            description=info.get("longBusinessSummary"),
            exchange=info.get("exchange"),
            sector=info.get("sector"),
            industry=info.get("industry"),
            market_cap=info.get("marketCap"),
            pe_ratio=info.get("trailingPE"),
            dividend_yield=info.get("dividendYield"),
            eps=info.get("trailingEps"),
            revenue_ttm=info.get("totalRevenue"),
            profit_margin=info.get("profitMargins"),
            operating_margin=info.get("operatingMargins"),
            return_on_equity=info.get("returnOnEquity"),
            beta=info.get("beta"),
            high_52_week=info.get("fiftyTwoWeekHigh"),
            low_52_week=info.get("fiftyTwoWeekLow"),
            data_source="live_yfinance",
            fetched_at=datetime.now(timezone.utc),
        )

    def _get_mock_overview(self, ticker: str) -> CompanyOverview | None:
        upper = ticker.upper()
        if upper in MOCK_OVERVIEWS:
            return CompanyOverview(
                symbol=upper,
                **MOCK_OVERVIEWS[upper],
                data_source="mock",
                fetched_at=datetime.now(timezone.utc),
            )
        logger.warning(f"No mock data for {ticker}")
        return None

    async def fetch_company_news(self, ticker: str, limit: int = 5) -> list[NewsItem]:
        """Recent headlines; an empty list when no source has any."""
        if not self.use_mock:
            try:
                return await asyncio.to_thread(self._fetch_news_yfinance, ticker, limit)
            except Exception as e:
                logger.warning(f"yfinance news fetch failed for {ticker}: {e}, falling back to mock")

        return self._get_mock_news(ticker, limit)

    def _fetch_news_yfinance(self, ticker: str, limit: int) -> list[NewsItem]:
        import yfinance as yf
        items = []
        for raw in (yf.Ticker(ticker).news or [])[:limit]:
            # Newer yfinance releases nest the article under "content"
            content = raw.get("content") or raw
            provider = content.get("provider") or {}
            published = content.get("pubDate") or raw.get("providerPublishTime")
            items.append(NewsItem(
                title=content.get("title") or "",
                summary=content.get("summary"),
                source=provider.get("displayName") or raw.get("publisher"),
                time_published=str(published) if published is not None else None,
            ))
        return items

    def _get_mock_news(self, ticker: str, limit: int) -> list[NewsItem]:
        upper = ticker.upper()
        if upper not in MOCK_OVERVIEWS:
            return []
        name = MOCK_OVERVIEWS[upper]["name"]
        return [
            NewsItem(**{**item, "title": item["title"].format(name=name)})
            for item in MOCK_NEWS[:limit]
        ]
