"""SwarmCheck package namespace: redirects imports to the flat repo layout."""
import os as _os

# Point swarmcheck's __path__ to the repo root so that
# `from swarmcheck.core import ...` resolves to `core/...` at the project root.
__path__ = [_os.path.dirname(_os.path.dirname(_os.path.abspath(__file__)))]

_version = "0.4.0"
_commit = _os.getenv("SWARMCHECK_COMMIT", "")

__version__ = f"{_version}-{_commit}" if _commit else f"{_version}-dev"
