import os
import logging
from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routes.chat import router as chat_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="LifeSync Chat")
WEB_ORIGIN = os.getenv("WEB_ORIGIN", "")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o for o in ["http://localhost:5173", WEB_ORIGIN] if o],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)


@app.get("/health")
def health():
    return {"ok": True}
