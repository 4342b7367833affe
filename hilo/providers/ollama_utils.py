"""
Shared Ollama utilities: host resolution and model availability check.
"""

import logging
import os

import requests

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_HOST = "http://localhost:11434"


def ollama_base_url(base_url: str | None = None) -> str:
    """Resolve the Ollama server URL: explicit, OLLAMA_HOST, or localhost."""
    url = base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_HOST
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.rstrip("/")


def ollama_check_model(base_url: str, model: str) -> None:
    """Check that an Ollama model is installed.

    Raises RuntimeError if Ollama is unreachable or the model is missing,
    naming the command that fixes it.
    """
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=5)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise RuntimeError(
            f"Cannot reach Ollama at {base_url}. "
            "Is Ollama running? Start it with: ollama serve"
        ) from e

    installed = {m["name"] for m in resp.json().get("models", [])}
    # Ollama lists models as "name:tag"; a bare name means ":latest"
    if model in installed or f"{model}:latest" in installed:
        return
    bare = model.split(":")[0]
    if bare in installed or f"{bare}:latest" in installed:
        return

    raise RuntimeError(
        f"Ollama model '{model}' is not installed at {base_url}. "
        f"Install it with: ollama pull {model}"
    )
