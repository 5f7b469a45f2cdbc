"""
Source Registry Domain

Resolves source URIs to scheme handlers and keeps live watches on them:
- registry.py - scheme → handler table and URI dispatch
- handlers/ - per-scheme implementations (file://)
- hasher.py / metadata.py - content hashing and metadata extraction
- watch_manager.py - deduplicated watches with per-URI fan-out
- service.py - request envelope dispatch for the transport layer
"""

__all__ = ["handlers", "registry", "watch_manager", "service"]
