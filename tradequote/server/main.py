from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tradequote.server.db.session import init_db
from tradequote.server.api.quotes import router as quotes_router, customers_router
from tradequote.server.settings.config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    print("Initierar databasen...")
    init_db()
    yield
    print("Avslutar appen...")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# CORS – så frontenden kan prata med backend under utveckling
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(quotes_router)       # /quotes...
app.include_router(customers_router)    # /customers


@app.get("/health", tags=["system"])
def health():
    return {"message": "ok"}
