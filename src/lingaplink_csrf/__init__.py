"""
LingapLink CSRF client.

Public entry points:
  - `TokenLifecycleManager` (lingaplink_csrf.csrf)
  - `build_token_manager` / `get_token_manager` (lingaplink_csrf.wiring)
"""

from __future__ import annotations

__version__ = "0.1.0"
