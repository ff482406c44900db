from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
import uvicorn

from kyoture.api.scrape import router as scrape_router
from kyoture.core.env import load_env
from kyoture.db.session import init_db
from kyoture.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    load_env()
    configure_logging()
    init_db()
    yield


app = FastAPI(lifespan=lifespan)
app.include_router(scrape_router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": jsonable_encoder(exc.errors())},
    )


@app.get("/ping")
async def ping():
    return {"message": "pong"}


if __name__ == "__main__":
    uvicorn.run("kyoture.main:app", host="0.0.0.0", port=8000, reload=True)
