from functools import lru_cache
from fastapi import Depends
from dealdesk.services.llm_service import LLMService
from dealdesk.services.market_data_service import MarketDataService
from dealdesk.services.db_service import DBService
from dealdesk.pipeline.negotiation import NegotiationWorkflow
from dealdesk.pipeline.research import ResearchPipeline


@lru_cache
def get_llm_service() -> LLMService:
    return LLMService()


@lru_cache
def get_market_data_service() -> MarketDataService:
    return MarketDataService()


@lru_cache
def get_db_service() -> DBService:
    return DBService()


def get_research_pipeline(
    llm: LLMService = Depends(get_llm_service),
    market: MarketDataService = Depends(get_market_data_service),
    db: DBService = Depends(get_db_service),
) -> ResearchPipeline:
    return ResearchPipeline(llm=llm, market=market, db=db)


def get_negotiation_workflow(db: DBService = Depends(get_db_service)) -> NegotiationWorkflow:
    return NegotiationWorkflow(db=db)
