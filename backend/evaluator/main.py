import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from evaluator.config import settings
from evaluator.services.llm import ProviderRegistry, close_registry, get_registry

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    registry = get_registry()
    missing = [name for name, ok in registry.configured().items() if not ok]
    if missing:
        logger.warning("no api key for: %s", ", ".join(missing))
    logger.info("ready")
    yield
    await close_registry()


app = FastAPI(
    title="Text Evaluator",
    description="streams cognitive and psychological text analysis from four llm providers",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        {"error": "invalid request data", "details": jsonable_errors(exc)},
        status_code=400,
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


from evaluator.routers import analysis, chat, documents  # noqa: E402

app.include_router(documents.router, prefix="/api", tags=["documents"])
app.include_router(analysis.router, prefix="/api", tags=["analysis"])
app.include_router(chat.router, prefix="/api", tags=["chat"])


@app.get("/api/health")
async def health(registry: ProviderRegistry = Depends(get_registry)):
    return {
        "status": "ok",
        "providers": registry.configured(),
    }
