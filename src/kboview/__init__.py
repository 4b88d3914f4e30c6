"""kboview: compare DNA sequence collections with the kbo sequence index.

Public API is intentionally small; most users should use the CLI:

    kboview find --reference ref.fa --query q1.fa q2.fa --outdir ...

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.2.1"
