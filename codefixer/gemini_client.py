"""
codefixer/gemini_client.py
-----------------------------------------------------------------------------
Thin synchronous wrapper around the Gemini ``generateContent`` REST API.

Why synchronous?
----------------
FastAPI runs plain ``def`` route handlers in a thread-pool executor, so a
blocking HTTP call here never stalls the event loop.  One model call per
request keeps the code simple and the failure modes obvious.

Gemini generateContent reference
--------------------------------
POST {base}/models/{model}:generateContent
Header: x-goog-api-key: <key>
{
    "systemInstruction": {"parts": [{"text": "<system instruction>"}]},
    "contents": [{"role": "user", "parts": [{"text": "<prompt>"}]}],
    "generationConfig": {"responseMimeType": "application/json"},
    "safetySettings": [{"category": "...", "threshold": "BLOCK_NONE"}, ...]
}

Response:
{
    "candidates": [
        {"content": {"parts": [{"text": "<generated text>"}]}, "finishReason": "STOP"}
    ],
    "usageMetadata": {"promptTokenCount": <int>, "candidatesTokenCount": <int>, ...}
}

The API key travels in a header rather than the ``?key=`` query string so
it never shows up in logged URLs.
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

# Connecting should be quick; generating a patched project may not be.
_CONNECT_TIMEOUT: float = 10.0
_DEFAULT_READ_TIMEOUT: float = 300.0

# Source code routinely trips the default filters (exploit fixes, security
# tooling, profanity in comments), so all four harm categories are opened.
SAFETY_SETTINGS: list[dict[str, str]] = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_NONE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_NONE"},
]


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def gemini_generate(
    *,
    api_key: str,
    model: str,
    system_instruction: str,
    prompt: str,
    base_url: str = DEFAULT_API_BASE,
    read_timeout: float = _DEFAULT_READ_TIMEOUT,
    response_mime_type: str = "application/json",
) -> tuple[str, dict]:
    """
    Call ``generateContent`` once and return the generated text.

    Parameters
    ----------
    api_key            : Gemini API key.
    model              : Model identifier, e.g. "gemini-1.5-flash".
    system_instruction : System-role text framing the model's behaviour.
    prompt             : The user turn (directive + bundled project files).
    base_url           : REST root; a trailing slash is tolerated.
    read_timeout       : Seconds to wait for the full response body.
    response_mime_type : Requested output MIME type.  JSON mode makes the
                         model far less likely to wrap its reply in prose.

    Returns
    -------
    A tuple of:
      - str  : Concatenated text of the first candidate's parts.
      - dict : Token usage (keys: "prompt_tokens", "output_tokens",
               "total_tokens"); values are None when not reported.

    Raises
    ------
    httpx.HTTPStatusError  : Non-2xx response from the API.
    httpx.TimeoutException : The request timed out.
    httpx.TransportError   : Connection-level failure.
    ValueError             : The response carries no candidate text (for
                             instance when the prompt itself was blocked).
    """
    url = f"{base_url.rstrip('/')}/models/{model}:generateContent"

    body: dict = {
        "systemInstruction": {"parts": [{"text": system_instruction}]},
        "contents": [{"role": "user", "parts": [{"text": prompt}]}],
        "generationConfig": {"responseMimeType": response_mime_type},
        "safetySettings": SAFETY_SETTINGS,
    }
    headers = {"x-goog-api-key": api_key}

    timeout = httpx.Timeout(connect=_CONNECT_TIMEOUT, read=read_timeout, write=30.0, pool=5.0)

    with httpx.Client(timeout=timeout) as client:
        response = client.post(url, json=body, headers=headers)
        response.raise_for_status()

    data = response.json()
    if not isinstance(data, dict):
        raise ValueError(
            f"Gemini response for model '{model}' is {type(data).__name__}, not a JSON object."
        )

    candidates = data.get("candidates") or []
    if not candidates:
        feedback = data.get("promptFeedback", {})
        raise ValueError(
            f"Gemini response for model '{model}' contains no candidates "
            f"(block reason: {feedback.get('blockReason', 'unknown')})."
        )

    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
    if not text.strip():
        raise ValueError(
            f"Gemini response for model '{model}' has an empty candidate "
            f"(finish reason: {candidates[0].get('finishReason', 'unknown')})."
        )

    meta: dict = data.get("usageMetadata") or {}
    usage: dict = {
        "prompt_tokens": meta.get("promptTokenCount"),
        "output_tokens": meta.get("candidatesTokenCount"),
        "total_tokens": meta.get("totalTokenCount"),
    }
    logger.debug("Gemini %s usage: %s", model, usage)

    return text, usage
