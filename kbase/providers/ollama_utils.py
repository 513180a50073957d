"""
Ollama helpers: server URL resolution and pulling a missing embedding model.
"""

import logging
import os

import requests

from ..errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_HOST = "http://localhost:11434"

# Pulling a model can take minutes on a slow link
PULL_TIMEOUT = 600


def ollama_base_url(base_url: str | None = None) -> str:
    """Resolve the Ollama server URL: explicit value, OLLAMA_HOST, or localhost."""
    url = base_url or os.environ.get("OLLAMA_HOST") or DEFAULT_OLLAMA_HOST
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url.rstrip("/")


def _installed_models(base_url: str) -> set[str]:
    try:
        resp = requests.get(f"{base_url}/api/tags", timeout=5)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise ProviderError(
            f"Cannot reach Ollama at {base_url}. "
            "Is Ollama running? Start it with: ollama serve"
        ) from e
    return {m["name"] for m in resp.json().get("models", [])}


def ollama_ensure_model(base_url: str, model: str) -> None:
    """
    Make sure an embedding model is available on the Ollama server.

    Pulls the model (blocking, no progress stream) when it is missing.

    Raises:
        ProviderError: If Ollama is unreachable or the pull fails
    """
    installed = _installed_models(base_url)
    # Ollama reports "name:tag"; an untagged name means :latest
    bare = model.split(":")[0]
    if {model, f"{model}:latest", bare, f"{bare}:latest"} & installed:
        return

    logger.info("Pulling Ollama model %s (first use)", model)
    try:
        resp = requests.post(
            f"{base_url}/api/pull",
            json={"name": model, "stream": False},
            timeout=PULL_TIMEOUT,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        raise ProviderError(f"Failed to pull Ollama model '{model}': {e}") from e

    status = resp.json()
    if status.get("error"):
        raise ProviderError(f"Ollama pull failed for '{model}': {status['error']}")
    logger.info("Ollama model %s ready", model)
