"""
Approval Kernel

Sequential multi-stage approval for business-trip requests and inspection
reports:
- Per-project workflow definitions with ordered stages
- Append-only approval history per request
- Status always derived from history by one pure engine
- Optimistic concurrency on every recorded action
"""

__version__ = "0.1.0"
