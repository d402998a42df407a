"""Environment-variable lookup of provider API keys."""

import os
from typing import Mapping, Optional

from .errors import MissingCredentialError, UnsupportedProviderError

PROVIDER_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "moonshot": "MOONSHOT_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GOOGLE_API_KEY",
}


def resolve_api_key(provider: str, environ: Optional[Mapping[str, str]] = None) -> str:
    if provider not in PROVIDER_ENV_VARS:
        raise UnsupportedProviderError(provider, PROVIDER_ENV_VARS)
    environ = os.environ if environ is None else environ
    env_var = PROVIDER_ENV_VARS[provider]
    key = environ.get(env_var, "").strip()
    if not key:
        raise MissingCredentialError(provider, env_var)
    return key
