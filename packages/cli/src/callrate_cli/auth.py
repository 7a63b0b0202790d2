"""GitHub token resolution for the Gist rating store.

Only needed when `remote: gist` is configured. Reviewers who already use the
GitHub CLI (gh) are authenticated without creating or copying a PAT.

Resolution order (stops at first success):
  1. CALLRATE_GITHUB_TOKEN environment variable (a token with gist scope)
  2. GITHUB_TOKEN environment variable
  3. `gh auth token` (GitHub CLI session — works after `gh auth login`)
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

_TOKEN_ENV_VARS = ("CALLRATE_GITHUB_TOKEN", "GITHUB_TOKEN")


def _token_from_gh() -> str | None:
    try:
        proc = subprocess.run(["gh", "auth", "token"], capture_output=True, text=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("gh auth token unavailable (%s)", type(e).__name__)
        return None
    if proc.returncode != 0:
        return None
    return proc.stdout.strip() or None


def resolve_github_token() -> str | None:
    """Return a GitHub token or None if no valid source is available.

    Never raises — callers should check for None and fall back to local-only
    rating.
    """
    for env_var in _TOKEN_ENV_VARS:
        if os.environ.get(env_var):
            return os.environ[env_var]

    token = _token_from_gh()
    if token:
        logger.debug("Resolved GitHub token via gh CLI session.")
    return token
