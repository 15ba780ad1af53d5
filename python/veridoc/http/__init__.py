"""HTTP surface for escrow release and implicit-account funding."""

from veridoc.http.app import create_app

__all__ = ["create_app"]
