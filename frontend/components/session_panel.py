"""
Session panel component for the Face Session demo UI.

Turns a SessionView snapshot into display strings and button states.
Kept free of Gradio so it can be tested on its own.
"""

from dataclasses import dataclass
from typing import Dict, Optional

from core.session import SessionView, Stage


@dataclass
class PanelConfig:
    """Display options for the session panel."""
    show_metadata: bool = True


class SessionPanel:
    """
    Formats session state for display.

    Responsibilities:
    - Stage/status line for both flows
    - Error, notification and verification result messages
    - Which action buttons are enabled
    """

    def __init__(self, config: Optional[PanelConfig] = None):
        self.config = config or PanelConfig()

    def format_status(self, view: SessionView) -> str:
        """Status line describing the active flow."""
        if view.fatal_error:
            return "**Status**: 🔴 Unavailable - use Retry to initialize again"
        if Stage.PROCESSING in (view.registration_stage, view.verification_stage):
            return "**Status**: ⏳ Processing..."
        if view.registration_stage is Stage.INPUT:
            return "**Status**: 📝 Registration - enter at least two identifiers and submit"
        if view.verification_stage is Stage.INPUT:
            return "**Status**: 🔓 Verification - check identifiers and credential, then submit"
        return "**Status**: 🟢 Ready"

    def format_error(self, view: SessionView) -> str:
        if view.fatal_error:
            return f"❌ **Error:** {view.fatal_error}"
        if view.error:
            return f"❌ **Error:** {view.error}"
        return ""

    def format_notification(self, view: SessionView) -> str:
        return f"ℹ️ {view.notification}" if view.notification else ""

    def format_verification(self, view: SessionView) -> str:
        if view.verification_result is None:
            return ""
        icon = "✅" if view.verification_matched else "❌"
        return f"{icon} **{view.verification_result}**"

    def format_metadata(self, view: SessionView) -> str:
        """Registration metadata line; empty when absent."""
        meta = view.registration_metadata
        if not self.config.show_metadata or meta is None:
            return ""
        parts = []
        if meta.created_at:
            parts.append(f"**Created:** {meta.created_at}")
        if meta.model_version:
            parts.append(f"**Model:** {meta.model_version}")
        return "  \n".join(parts)

    def button_states(self, view: SessionView) -> Dict[str, bool]:
        """Enabled state per action button."""
        enabled = view.actions_enabled
        return {
            "start_registration": enabled,
            "submit_registration": enabled and view.registration_stage is Stage.INPUT,
            "start_verification": enabled,
            "submit_verification": enabled and view.verification_stage is Stage.INPUT,
            "retry": view.fatal_error is not None,
        }
