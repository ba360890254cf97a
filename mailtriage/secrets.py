"""Settings file loading: plain .env, or SOPS-encrypted .env.enc."""

import os
import subprocess
from io import StringIO
from pathlib import Path

from dotenv import dotenv_values

# Environment variables with these prefixes override file values.
_PREFIXES = ("TRIAGE_", "EMAIL_", "MAILTRIAGE_")


def _decrypt(encrypted_path: Path) -> dict[str, str | None]:
    """Decrypt a SOPS-encrypted .env file and return its key-value pairs.

    Raises:
        subprocess.CalledProcessError: If SOPS decryption fails.
    """
    result = subprocess.run(
        ["sops", "--decrypt", str(encrypted_path)],
        capture_output=True,
        text=True,
        check=True,
    )
    return dict(dotenv_values(stream=StringIO(result.stdout)))


def load_settings(path: str | Path, *, environ: dict[str, str] | None = None) -> dict[str, str]:
    """Load settings from an env file, with the process environment taking precedence.

    Args:
        path: A ``.env`` file, or a ``.env.enc`` file decrypted with SOPS.
            A missing file contributes nothing.
        environ: Environment overrides (defaults to ``os.environ``).

    Returns:
        Dictionary of non-empty key-value pairs.
    """
    path = Path(path)
    values: dict[str, str | None] = {}
    if path.exists():
        values = _decrypt(path) if path.suffix == ".enc" else dict(dotenv_values(path))

    merged = {k: v for k, v in values.items() if v}
    overrides = os.environ if environ is None else environ
    merged.update({k: v for k, v in overrides.items() if k in values or k.startswith(_PREFIXES)})
    return merged

