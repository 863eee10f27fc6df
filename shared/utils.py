from __future__ import annotations
from urllib.parse import quote

# ========================================
#           URL HELPERS
# ========================================

# Characters encodeURIComponent leaves untouched besides alphanumerics
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_uri_component(s: str) -> str:
    """
    Percent-encode a query value the way browsers do with encodeURIComponent.
    """
    return quote(s, safe=_URI_COMPONENT_SAFE)


def join_url(base: str, path: str) -> str:
    """Join a base address and an absolute path without doubling slashes"""
    return base.rstrip('/') + '/' + path.lstrip('/')
