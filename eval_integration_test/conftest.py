import os
import pytest
from dealdesk.services.db_service import DBService
from dealdesk.services.llm_service import LLMService
from dealdesk.services.market_data_service import MarketDataService

# Skip entire directory if no API key is available
pytestmark = pytest.mark.skipif(
    not os.getenv("OPENAI_API_KEY"),
    reason="OPENAI_API_KEY not set, skipping live LLM eval tests",
)


@pytest.fixture
def llm_service():
    """Provide a real LLMService instance backed by the live OpenAI API."""
    return LLMService()


@pytest.fixture
def market_service():
    return MarketDataService()


@pytest.fixture
def db_service(tmp_path):
    return DBService(f"sqlite:///{tmp_path}/eval.db")
