# backend/app.py

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config.settings import settings
from .bfl_client import BFLClient
from .model import GenerateRequest

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="FLUX.2 klein Proxy")

# One stateless client shared by every request
bfl_client = BFLClient()


def get_bfl_client() -> BFLClient:
    return bfl_client


def describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "Invalid request: " + "; ".join(parts)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Same {error} shape and 400 status as a missing prompt or key
    message = describe_validation_errors(exc)
    logger.warning("Rejected request to %s: %s", request.url.path, message)
    return JSONResponse(content={"error": message}, status_code=400)


@app.get("/")
async def root():
    return {"name": "FLUX.2 klein Proxy", "generate": "/api/generate"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/generate")
async def generate(req: GenerateRequest, client: BFLClient = Depends(get_bfl_client)):
    """
    Submit a prompt (and optional reference image) to FLUX.2 klein.
    Returns {url} on success, otherwise {error} with the failure's status code.
    """
    result = await client.submit(req)
    return JSONResponse(content=result.body(), status_code=result.status_code)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("backend.app:app", host="0.0.0.0", port=8000)
