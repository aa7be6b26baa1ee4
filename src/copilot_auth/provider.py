"""GitHub Copilot provider entry in the router config.

The router keeps a list of providers in ``config.json``; this module knows
what the Copilot entry looks like, how to recognise it, and how to attach a
credential to it. Request routing itself belongs to the router.
"""

from __future__ import annotations

from typing import Optional, Union
from urllib.parse import urlparse

from copilot_auth.models import OAuthCredential, PATCredential, ProviderConfig, RouterConfig

COPILOT_PROVIDER_NAME = "github-copilot"
COPILOT_API_HOST = "api.githubcopilot.com"
COPILOT_API_BASE = f"https://{COPILOT_API_HOST}"
COPILOT_COMPLETIONS_URL = f"{COPILOT_API_BASE}/chat/completions"

COPILOT_MODELS = [
    "claude-sonnet-4",
    "claude-haiku-4",
    "gpt-5",
    "gpt-4o",
    "gpt-4o-mini",
    "o1",
    "o1-mini",
    "gemini-2.5-pro",
    "gemini-2.5-flash",
]

# Claude model names without a Copilot counterpart fall back to these.
_MODEL_ALIASES = {
    "claude-3.5-sonnet": "gpt-4o",
    "claude-3-haiku": "claude-haiku-4",
}


def create_copilot_provider(
    credential: Union[OAuthCredential, PATCredential],
) -> ProviderConfig:
    """Build a fresh Copilot provider entry carrying *credential*."""
    return ProviderConfig(
        name=COPILOT_PROVIDER_NAME,
        api_base_url=COPILOT_COMPLETIONS_URL,
        auth=credential.model_dump(mode="json", exclude_none=True),
        models=list(COPILOT_MODELS),
        transformer={"use": ["anthropic"]},
    )


def is_copilot_provider(provider: ProviderConfig) -> bool:
    """Return True for the Copilot entry.

    Matches on the provider name, or on an ``api_base_url`` whose host is
    exactly the Copilot API host.
    """
    if provider.name == COPILOT_PROVIDER_NAME:
        return True
    if not provider.api_base_url:
        return False
    try:
        return urlparse(provider.api_base_url).hostname == COPILOT_API_HOST
    except ValueError:
        return False


def find_copilot_provider(config: RouterConfig) -> Optional[ProviderConfig]:
    """Return the first Copilot entry in *config*, or ``None``."""
    for provider in config.providers:
        if is_copilot_provider(provider):
            return provider
    return None


def update_provider_auth(
    config: RouterConfig,
    credential: Union[OAuthCredential, PATCredential],
) -> ProviderConfig:
    """Attach *credential* to the Copilot entry, creating the entry if missing.

    Returns:
        The provider entry that now holds the credential.
    """
    provider = find_copilot_provider(config)
    if provider is None:
        provider = create_copilot_provider(credential)
        config.providers.append(provider)
    else:
        provider.auth = credential.model_dump(mode="json", exclude_none=True)
    return provider


def routes_to_copilot(provider: ProviderConfig, model: str) -> bool:
    """Whether a request for *model* is served by *provider*.

    The router addresses models as ``"<provider>,<model>"``, so a substring
    match against the provider name or any of its model names is enough.
    A bare Claude model name is also routed when its Copilot counterpart
    (see :func:`normalize_model_name`) is one of the provider's models.
    """
    if not model:
        return False
    if COPILOT_PROVIDER_NAME in model:
        return True
    if any(m in model for m in provider.models):
        return True
    if "," in model:
        return False
    return normalize_model_name(model) in provider.models


def normalize_model_name(model: str) -> str:
    """Map a Claude model name onto the Copilot model that serves it."""
    return _MODEL_ALIASES.get(model, model)


def bearer_header(access_token: str) -> str:
    """Return the ``Authorization`` header value for *access_token*."""
    return f"Bearer {access_token}"
