"""Ollama chat client used by the AI runsheet extractor.

The lease-check engine never calls this module.  Only the extraction chain
does, and only when AI extraction is switched on.

  - JSON Schema structured output (Ollama ``format: {schema}``)
  - Retry with jittered exponential backoff; a schema the model cannot
    satisfy downgrades the retry to plain JSON mode
  - Recovery of JSON wrapped in prose, code fences or <think> blocks
"""

import re
import json
import time
import random
import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from leasecheck.config import (
    OLLAMA_BASE_URL, OLLAMA_MODEL, LLM_TIMEOUT, LLM_MAX_RETRIES,
    LLM_CONTEXT_WINDOW, LLM_MAX_INPUT_CHARS,
)

logger = logging.getLogger(__name__)

# async fn(stage, message, details)
LLMProgressCallback = Callable[[str, str, dict], Awaitable[None]]

_RETRY_INSTRUCTION = (
    "Your previous response was not valid JSON. Reply with the JSON object only: "
    "no commentary, no markdown."
)
_TRUNCATION_MARGIN = 300
_MAX_BACKOFF_SECONDS = 30
_STATUS_TTL_SECONDS = 120


async def _ignore_progress(stage: str, message: str, details: dict) -> None:
    return None


def _build_messages(prompt: str, system_prompt: str, label: str) -> list[dict]:
    """System + user messages, with the user prompt cut to the input cap."""
    messages = [{"role": "system", "content": system_prompt}] if system_prompt else []
    overflow = len(system_prompt) + len(prompt) - LLM_MAX_INPUT_CHARS
    if overflow > 0:
        kept = prompt[: max(len(prompt) - overflow - _TRUNCATION_MARGIN, 0)]
        logger.warning(f"[{label}] Runsheet text truncated: {len(prompt):,} → {len(kept):,} chars")
        prompt = f"{kept}\n\n[... INPUT TRUNCATED: {len(prompt) - len(kept):,} chars of runsheet omitted ...]"
    messages.append({"role": "user", "content": prompt})
    return messages


def _chat_body(messages: list[dict], fmt, temperature: float) -> dict:
    return {
        "model": OLLAMA_MODEL,
        "messages": messages,
        "stream": False,
        "format": fmt,
        "think": False,
        "options": {"temperature": temperature, "num_ctx": LLM_CONTEXT_WINDOW},
    }


async def _post_chat(body: dict) -> str:
    # A client per request: batch runs extract several runsheets concurrently
    async with httpx.AsyncClient(timeout=LLM_TIMEOUT) as client:
        response = await client.post(f"{OLLAMA_BASE_URL}/api/chat", json=body)
        response.raise_for_status()
        payload = response.json()
    return payload["message"].get("content", "")


async def call_llm(
    prompt: str,
    system_prompt: str = "",
    temperature: float = 0.1,
    expect_json: bool | dict = True,
    task_label: str = "",
    on_progress: LLMProgressCallback | None = None,
) -> dict | str:
    """Send one chat request to the configured Ollama model.

    ``expect_json`` is a JSON Schema dict for structured output, True for
    plain JSON mode, or False for free text.  JSON calls never raise: after
    the last failed attempt they return ``{"_fallback": True, "_error": ...}``
    so the extraction chain can record the reason.  Free-text calls raise
    RuntimeError instead.
    """
    progress = on_progress or _ignore_progress
    label = task_label or "runsheet extraction"
    base_messages = _build_messages(prompt, system_prompt, label)
    messages = base_messages

    if isinstance(expect_json, dict):
        fmt = expect_json
    else:
        fmt = "json" if expect_json else ""

    await progress("llm_start", f"Reading {label}", {
        "task": label,
        "prompt_chars": sum(len(m["content"]) for m in messages),
        "schema_enforced": isinstance(fmt, dict),
    })

    last_error: Exception | None = None
    content = ""
    for attempt in range(1, LLM_MAX_RETRIES + 1):
        if attempt > 1:
            delay = min(2 ** (attempt - 1) + random.uniform(0, 1), _MAX_BACKOFF_SECONDS)
            await progress("llm_retry", f"{label}: attempt {attempt} of {LLM_MAX_RETRIES}", {
                "task": label, "attempt": attempt, "reason": str(last_error), "delay": round(delay, 2),
            })
            await asyncio.sleep(delay)

        started = time.time()
        try:
            content = await _post_chat(_chat_body(messages, fmt, temperature))
            elapsed = round(time.time() - started, 2)
            await progress("llm_response", f"{label}: {len(content):,} chars in {elapsed}s", {
                "task": label, "elapsed_seconds": elapsed, "response_chars": len(content),
            })
            if not expect_json:
                return content
            parsed = _parse_json_response(content)
            await progress("llm_done", f"{label}: rows received", {
                "task": label, "attempts": attempt,
            })
            return parsed

        except httpx.HTTPError as e:
            last_error = e
            logger.warning(f"[{label}] Ollama request failed (attempt {attempt}): {e}")
        except (json.JSONDecodeError, KeyError) as e:
            last_error = e
            preview = repr(content[:300]) if content else "(empty)"
            logger.warning(f"[{label}] Response is not JSON (attempt {attempt}): {preview}")
            if isinstance(fmt, dict):
                fmt = "json"
            messages = base_messages + [{"role": "user", "content": _RETRY_INSTRUCTION}]

    reason = f"Ollama chat failed after {LLM_MAX_RETRIES} attempts: {last_error}"
    await progress("llm_failed", f"{label}: gave up", {"task": label, "error": str(last_error)})
    if not expect_json:
        raise RuntimeError(reason)
    logger.error(f"[{label}] {reason}")
    return {"_fallback": True, "_error": reason}


# ═══════════════════════════════════════════════════
# JSON RECOVERY
# ═══════════════════════════════════════════════════

_THINK_RE = re.compile(r'<think>.*?</think>', re.DOTALL)
_FENCE_RE = re.compile(r'```(?:json)?\s*\n?(.*?)```', re.DOTALL)
_TRAILING_COMMA_RE = re.compile(r',\s*([}\]])')


def _json_candidates(text: str):
    yield text
    for match in _FENCE_RE.finditer(text):
        block = match.group(1).strip()
        if block[:1] in ("{", "["):
            yield block
    first, last = text.find("{"), text.rfind("}")
    if 0 <= first < last:
        span = text[first:last + 1]
        yield span
        yield _TRAILING_COMMA_RE.sub(r"\1", span)


def _parse_json_response(text: str) -> dict:
    """Parse the model's reply, tolerating the usual wrappers.

    Tries the whole reply, then fenced code blocks, then the outermost brace
    span with trailing commas removed.
    """
    text = _THINK_RE.sub("", text or "").strip()
    if not text:
        raise json.JSONDecodeError("Empty response", "", 0)
    for candidate in _json_candidates(text):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise json.JSONDecodeError("No JSON object in response", text[:200], 0)


# ═══════════════════════════════════════════════════
# STATUS
# ═══════════════════════════════════════════════════

# Last successful status check: {"result": dict, "checked_at": float}
_status_cache: dict = {}


async def check_ollama_status() -> dict:
    """Report whether Ollama is reachable and has the configured model.

    Online results are cached for two minutes; offline results are not.
    """
    now = time.time()
    if _status_cache and now - _status_cache["checked_at"] < _STATUS_TTL_SECONDS:
        return _status_cache["result"]

    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.get(f"{OLLAMA_BASE_URL}/api/tags")
            resp.raise_for_status()
            installed = [m["name"] for m in resp.json().get("models", [])]
    except httpx.HTTPError as e:
        return {"status": "offline", "error": str(e)}

    result = {
        "status": "online",
        "models": installed,
        "configured_model": OLLAMA_MODEL,
        "model_available": any(OLLAMA_MODEL in name for name in installed),
    }
    _status_cache.update(result=result, checked_at=now)
    return result
