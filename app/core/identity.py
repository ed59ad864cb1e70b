from dataclasses import dataclass


@dataclass(frozen=True)
class Viewer:
    """Authenticated caller as forwarded by the upstream identity provider."""

    id: str
    email: str | None = None
