"""Constants for the provider resilience layer.

This module defines constants used across the credential manager, the model
catalog cache and the model info helpers, following the principle of single
source of truth.

Timing Philosophy:
- All timestamps are epoch seconds (float), matching ``time.time()``
- Tokens are refreshed 5 minutes before they expire
- Support checks never block startup for longer than 2 seconds
- Nothing in this package retries automatically; failures degrade immediately

═══════════════════════════════════════════════════════════════════════════════
TOKEN EXCHANGE (GitHub Copilot)
═══════════════════════════════════════════════════════════════════════════════

The long-lived OAuth token found in the environment or in ``hosts.json`` is
NOT an API key. It is exchanged for a short-lived token at one of two
endpoints. The endpoints differ in their Authorization scheme:

  - api.githubcopilot.com  →  "Bearer <oauth>"
  - api.github.com         →  "token <oauth>"   (legacy scheme)

If both reject the OAuth token, the OAuth token itself is used as the access
token for FALLBACK_TOKEN_TTL seconds. This is logged at WARNING level every
time it happens because the token's audience may not match the API.
"""

from __future__ import annotations

# Token lifecycle
TOKEN_REFRESH_BUFFER_SECONDS = 5 * 60.0
FALLBACK_TOKEN_TTL_SECONDS = 3600.0

# HTTP timeout for a single exchange or listing call
DEFAULT_HTTP_TIMEOUT = 10.0

# Upper bound for is_supported() before failing open
MODEL_SUPPORT_TIMEOUT_SECONDS = 2.0

# ═══════════════════════════════════════════════════════════════════════════════
# Provider identifiers
# ═══════════════════════════════════════════════════════════════════════════════

GITHUB_COPILOT_PROVIDER = "githubcopilot"

# Host prefix matched against hosts.json keys.
# Modern format: {"github.com:AppId": {...}}, older format: {"github.com": {...}}
COPILOT_HOSTS_KEY_PREFIX = "github.com"
COPILOT_HOSTS_FILE_NAME = "hosts.json"
COPILOT_CONFIG_DIR_NAME = "github-copilot"

COPILOT_OAUTH_ENV_VAR = "GITHUB_COPILOT_OAUTH_TOKEN"

# Client identification headers sent with every exchange request
COPILOT_CLIENT_HEADERS: dict[str, str] = {
    "Accept": "application/json",
    "User-Agent": "GithubCopilot/1.155.0",
    "Editor-Version": "Codex/0.1.0",
    "Editor-Plugin-Version": "copilot.vim/1.16.0",
}

COPILOT_INTEGRATION_ID = "vscode-chat"

COPILOT_TOKEN_URL = "https://api.githubcopilot.com/copilot_internal/v2/token"
GITHUB_TOKEN_URL = "https://api.github.com/copilot_internal/v2/token"

# Extra headers for Copilot API calls made with an exchanged token
COPILOT_REQUEST_HEADERS: dict[str, str] = {
    "Editor-Version": "Codex/0.1.0",
    "Copilot-Integration-Id": COPILOT_INTEGRATION_ID,
    "Copilot-Vision-Request": "true",
}

# ═══════════════════════════════════════════════════════════════════════════════
# Model catalogs
# ═══════════════════════════════════════════════════════════════════════════════

# Always treated as supported, and served when a listing call fails.
# Must stay non-empty: it is the floor of every catalog.
RECOMMENDED_MODELS: tuple[str, ...] = ("o4-mini", "o3")

# Providers whose catalog is compiled in (no listing call at all)
STATIC_CATALOGS: dict[str, tuple[str, ...]] = {
    GITHUB_COPILOT_PROVIDER: ("o4-mini", "o3-mini"),
}

# Namespace prefixes some providers put in front of model ids (e.g. Gemini)
MODEL_ID_PREFIXES: tuple[str, ...] = ("models/",)

# ═══════════════════════════════════════════════════════════════════════════════
# Context windows
# ═══════════════════════════════════════════════════════════════════════════════

DEFAULT_CONTEXT_WINDOW = 128000

# Checked in order against the lower-cased model id
CONTEXT_WINDOW_HINTS: tuple[tuple[str, int], ...] = (
    ("32k", 32000),
    ("16k", 16000),
    ("8k", 8000),
    ("4k", 4000),
)

# Rough characters-per-token ratio used for transcript accounting
CHARS_PER_TOKEN = 4
