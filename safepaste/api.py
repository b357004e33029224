"""
SafePaste API — hosted prompt injection scanning service.

Start:
    safepaste server --port 3000
    # or: uvicorn safepaste.api:app --port 3000

Endpoints:
    GET  /v1/health        — Health check (no auth)
    POST /v1/scan          — Scan a single text
    POST /v1/scan/batch    — Scan 1-20 texts
    GET  /v1/patterns      — List the detection rules
    GET  /v1/usage         — Current usage for the calling key

Authentication: ``Authorization: Bearer <api-key>``.
"""

import logging
import time
from typing import Optional

from safepaste import __version__
from safepaste.batch import MAX_BATCH_ITEMS, MAX_TEXT_LENGTH, batch_analyze
from safepaste.engine.catalog import PATTERNS
from safepaste.engine.detector import analyze
from safepaste.keys import APIKey, KeyStore

logger = logging.getLogger("safepaste.api")


def _error(code: str, message: str, **extra) -> dict:
    return {"error": code, "message": message, **extra}


def _strict_from(body: dict) -> bool:
    options = body.get("options")
    return bool(isinstance(options, dict) and options.get("strictMode"))


# ── FastAPI App Factory ──────────────────────────────────────────

def create_app(key_store: Optional[KeyStore] = None):
    """Create the FastAPI application.

    Args:
        key_store: Key registry and rate limiter. Defaults to demo keys
            seeded from the environment.
    """
    try:
        from fastapi import FastAPI, HTTPException, Request, Depends, Header
        from fastapi.middleware.cors import CORSMiddleware
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Run: pip install safepaste[api]"
        )

    store = key_store if key_store is not None else KeyStore.from_env()

    app = FastAPI(
        title="SafePaste API",
        version=__version__,
        description="Prompt injection detection for text headed to AI assistants",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.key_store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Auth dependency ──────────────────────────────────────────

    async def get_api_key(authorization: Optional[str] = Header(None)) -> APIKey:
        """Validate the bearer key and enforce its per-minute rate limit."""
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(
                status_code=401,
                detail=_error("unauthorized", "Missing or invalid Authorization header. Use: Bearer <your-api-key>"),
            )

        api_key = store.lookup(authorization[7:].strip())
        if api_key is None:
            logger.info("Rejected request with unknown API key")
            raise HTTPException(status_code=401, detail=_error("unauthorized", "Invalid API key."))

        decision = store.check_rate(api_key)
        if not decision.allowed:
            raise HTTPException(
                status_code=429,
                detail=_error(
                    "rate_limit_exceeded",
                    f"Rate limit of {api_key.rate_limit} requests/minute exceeded for your plan ({api_key.plan}).",
                    retryAfterMs=decision.retry_after_ms,
                ),
            )

        return api_key

    async def read_body(request: Request) -> dict:
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail=_error("invalid_request", "Request body must be JSON."))
        if not isinstance(body, dict):
            raise HTTPException(status_code=400, detail=_error("invalid_request", "Request body must be a JSON object."))
        return body

    # ── Endpoints ────────────────────────────────────────────────

    @app.get("/v1/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.post("/v1/scan")
    async def scan_text(request: Request, api_key: APIKey = Depends(get_api_key)):
        """Scan a single text for prompt injection."""
        body = await read_body(request)
        text = body.get("text")

        if not isinstance(text, str):
            raise HTTPException(
                status_code=400,
                detail=_error("invalid_request", "Request body must include a 'text' field (string)."),
            )
        if not text:
            raise HTTPException(status_code=400, detail=_error("invalid_request", "The 'text' field must not be empty."))
        if len(text) > MAX_TEXT_LENGTH:
            raise HTTPException(status_code=400, detail=_error("text_too_long", "Text exceeds the 50,000 character limit."))

        t0 = time.perf_counter()
        result = analyze(text, strict_mode=_strict_from(body))
        elapsed_ms = (time.perf_counter() - t0) * 1000

        payload = result.to_dict()
        payload["meta"]["latencyMs"] = round(elapsed_ms, 2)
        if result.flagged:
            logger.info("Flagged scan for key %s: score=%d risk=%s", api_key.id, result.score, result.risk)
        return payload

    @app.post("/v1/scan/batch")
    async def scan_batch(request: Request, api_key: APIKey = Depends(get_api_key)):
        """Scan 1-20 texts in one request."""
        body = await read_body(request)
        items = body.get("items")

        if not isinstance(items, list):
            raise HTTPException(
                status_code=400,
                detail=_error("invalid_request", "Request body must include an 'items' array of strings."),
            )
        if not 1 <= len(items) <= MAX_BATCH_ITEMS:
            raise HTTPException(
                status_code=400,
                detail=_error("invalid_request", f"Batch must contain between 1 and {MAX_BATCH_ITEMS} items."),
            )

        return batch_analyze(items, strict_mode=_strict_from(body))

    @app.get("/v1/patterns")
    async def list_patterns(api_key: APIKey = Depends(get_api_key)):
        """List the detection rules (id, category, weight, explanation)."""
        summary = [rule.to_dict() for rule in PATTERNS]
        return {"count": len(summary), "patterns": summary}

    @app.get("/v1/usage")
    async def usage(api_key: APIKey = Depends(get_api_key)):
        """Report usage for the calling key in the current window."""
        return {
            "keyId": api_key.id,
            "plan": api_key.plan,
            "rateLimit": api_key.rate_limit,
            "requestsThisWindow": store.usage(api_key),
        }

    return app


# Convenience: allow `uvicorn safepaste.api:app`
try:
    app = create_app()
except ImportError:
    app = None
