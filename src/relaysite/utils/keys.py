"""Nostr key loading from the environment.

The operator's signing key (nsec1 bech32 or 64-char hex) is read from
``PRIVATE_KEY`` and wrapped by
[KeysSigner][relaysite.services.signer.KeysSigner]. Without a key the site
still syncs and aggregates; only publishing and authenticated scheduler
calls fail with
[NotAuthenticatedError][relaysite.core.exceptions.NotAuthenticatedError].

Warning:
    Private keys must **never** be stored in configuration files or logged.

Examples:
    ```python
    os.environ["PRIVATE_KEY"] = "nsec1..."  # pragma: allowlist secret
    keys = load_keys_from_env("PRIVATE_KEY")
    keys.public_key().to_hex()
    ```
"""

from __future__ import annotations

import os

from nostr_sdk import Keys


ENV_PRIVATE_KEY = "PRIVATE_KEY"  # pragma: allowlist secret


def load_keys_from_env(env_var: str = ENV_PRIVATE_KEY) -> Keys:
    """Parse the private key stored in *env_var*.

    Raises:
        ValueError: If the variable is unset or empty.
        nostr_sdk.NostrError: If the value is not a valid key.
    """
    value = os.getenv(env_var)
    if not value:
        raise ValueError(
            f"{env_var} environment variable is required. Generate one with: openssl rand -hex 32"
        )
    return Keys.parse(value.strip())


def load_optional_keys(env_var: str = ENV_PRIVATE_KEY) -> Keys | None:
    """Like [load_keys_from_env()][relaysite.utils.keys.load_keys_from_env], but
    return ``None`` when the variable is unset."""
    if not os.getenv(env_var):
        return None
    return load_keys_from_env(env_var)

