import logging
import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

load_dotenv()

# Configure file + console logging
log_file = os.getenv("LOG_FILE") or os.path.join(os.path.dirname(__file__), "..", "logs.txt")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.FileHandler(log_file, mode="a"),
        logging.StreamHandler(),
    ],
)
logger = logging.getLogger(__name__)

from dealdesk.api.financial_models import router as financial_models_router
from dealdesk.api.negotiations import router as negotiations_router
from dealdesk.api.research import router as research_router

app = FastAPI(title="Deal Desk", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(financial_models_router)
app.include_router(negotiations_router)
app.include_router(research_router)

logger.info("Deal Desk API started")


@app.get("/")
async def root():
    return {"message": "Deal Desk API", "docs": "/docs"}
