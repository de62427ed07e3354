"""
Frontend UI components for the Face Session demo.
"""

from .session_panel import SessionPanel, PanelConfig

__all__ = [
    "SessionPanel", "PanelConfig",
]
