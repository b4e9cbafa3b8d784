"""
Fleet Kernel

The workflow core for organizational resource requests:
- Declarative stage catalogs and transition tables per request kind
- Pure permission evaluation and next-stage resolution
- Append-only action and correction history
- Optimistic concurrency on every request, driver and vehicle row
- Post-commit notification hooks instead of inline side effects
"""

__version__ = "0.1.0"
