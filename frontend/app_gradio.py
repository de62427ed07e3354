"""
Gradio-based demo UI for the Face Session Controller.

This is the main entry point for the frontend application.
Run with: python -m frontend.app_gradio

The page drives one FaceAuthController: a mirrored live preview with the
landmark overlay, identifier and credential fields, start/submit buttons
for registration and verification, and result/error/notification panes.
"""

import asyncio
import logging
from typing import Optional

import cv2
import gradio as gr

from core.config import configure_logging, get_config
from core.controller import FaceAuthController
from core.errors import FaceAuthError, ValidationError
from core.session import SessionStateMachine
from frontend.components.session_panel import SessionPanel

logger = logging.getLogger(__name__)


# ============================================================
# Global State
# ============================================================
panel = SessionPanel()
_controller: Optional[FaceAuthController] = None
_controller_lock: Optional[asyncio.Lock] = None


async def get_controller() -> FaceAuthController:
    """Get or create (and start) the shared controller."""
    global _controller, _controller_lock

    if _controller_lock is None:
        _controller_lock = asyncio.Lock()

    async with _controller_lock:
        if _controller is None or _controller.closed:
            _controller = FaceAuthController(get_config())
            await _controller.start()
    return _controller


async def shutdown_controller() -> None:
    """Close the shared controller when the page goes away."""
    global _controller
    controller, _controller = _controller, None
    if controller is not None:
        await controller.close()


# ============================================================
# Rendering
# ============================================================

def render(session: SessionStateMachine):
    """Map session state to the output components (see OUTPUT order)."""
    view = session.snapshot()
    buttons = panel.button_states(view)

    return (
        panel.format_status(view),
        gr.update(value=view.identifiers_text),
        gr.update(value=view.credential or ""),
        view.registration_result or "",
        panel.format_metadata(view),
        panel.format_verification(view),
        panel.format_error(view),
        panel.format_notification(view),
        gr.update(interactive=buttons["start_registration"]),
        gr.update(interactive=buttons["submit_registration"]),
        gr.update(interactive=buttons["start_verification"]),
        gr.update(interactive=buttons["submit_verification"]),
        gr.update(visible=buttons["retry"]),
    )


# ============================================================
# Event Handlers
# ============================================================

async def on_load():
    controller = await get_controller()
    return render(controller.session)


async def on_retry():
    controller = await get_controller()
    try:
        await controller.retry()
    except FaceAuthError as e:
        gr.Warning(str(e))
    return render(controller.session)


async def on_start_registration():
    controller = await get_controller()
    try:
        controller.session.start_registration()
    except FaceAuthError as e:
        gr.Warning(str(e))
    return render(controller.session)


async def on_start_verification():
    controller = await get_controller()
    try:
        controller.session.start_verification()
    except FaceAuthError as e:
        gr.Warning(str(e))
    return render(controller.session)


async def _run_submit(session: SessionStateMachine, submit):
    """Run a submit coroutine, yielding the processing state first."""
    task = asyncio.ensure_future(submit())
    awaited = False
    try:
        # Let the submit enter the processing stage before the first render
        await asyncio.sleep(0)
        yield render(session)
        awaited = True
        await task
    except ValidationError:
        pass  # recorded on the session
    except FaceAuthError as e:
        gr.Warning(str(e))
    finally:
        if not awaited:
            # Client went away mid-request; the submit still settles the session
            task.add_done_callback(_log_abandoned_submit)
    yield render(session)


def _log_abandoned_submit(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.info(f"Submit finished after the client disconnected: {error}")


async def on_submit_registration(identifiers_text: str):
    controller = await get_controller()
    session = controller.session
    session.set_identifiers_text(identifiers_text)
    async for outputs in _run_submit(session, session.submit_registration):
        yield outputs


async def on_submit_verification(identifiers_text: str, credential: str):
    controller = await get_controller()
    session = controller.session
    session.set_identifiers_text(identifiers_text)
    session.set_credential(credential)
    async for outputs in _run_submit(session, session.submit_verification):
        yield outputs


async def on_tick():
    """Refresh the preview image and expire notifications."""
    controller = await get_controller()
    frame = controller.preview()
    image = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB) if frame is not None else None
    return image, panel.format_notification(controller.session.snapshot())


# ============================================================
# Build Gradio Interface
# ============================================================

def create_demo():
    """Create the Gradio demo interface."""
    ui_config = get_config().get("ui", {})

    with gr.Blocks(title="Face Authentication") as demo:

        gr.Markdown("""
        # 🔐 Face Authentication

        Register your face under a set of identifiers, then verify it with the encrypted face record.
        """)

        status_md = gr.Markdown()

        with gr.Row():
            with gr.Column(scale=2):
                preview = gr.Image(label="Camera", interactive=False)
                notification_md = gr.Markdown()

                with gr.Row():
                    start_reg_btn = gr.Button("📝 Register Face", variant="primary")
                    start_ver_btn = gr.Button("🔓 Verify Face", variant="secondary")
                retry_btn = gr.Button("🔄 Retry Initialization", visible=False)

            with gr.Column(scale=1):
                identifiers_tb = gr.Textbox(
                    label="Identifiers (comma-separated)",
                    placeholder="user123, email@example.com",
                    max_lines=1,
                )
                credential_tb = gr.Textbox(
                    label="Encrypted Face Data",
                    placeholder="Produced by registration; paste one to verify",
                    lines=3,
                    show_copy_button=True,
                )
                with gr.Row():
                    submit_reg_btn = gr.Button("Submit Registration", variant="primary")
                    submit_ver_btn = gr.Button("Submit Verification", variant="primary")

                error_md = gr.Markdown()
                verification_md = gr.Markdown()
                metadata_md = gr.Markdown()
                reg_result = gr.Code(label="Registration Result", language="json")

        outputs = [
            status_md,
            identifiers_tb,
            credential_tb,
            reg_result,
            metadata_md,
            verification_md,
            error_md,
            notification_md,
            start_reg_btn,
            submit_reg_btn,
            start_ver_btn,
            submit_ver_btn,
            retry_btn,
        ]

        # Event handlers
        demo.load(fn=on_load, inputs=[], outputs=outputs)
        demo.unload(shutdown_controller)

        start_reg_btn.click(fn=on_start_registration, inputs=[], outputs=outputs)
        start_ver_btn.click(fn=on_start_verification, inputs=[], outputs=outputs)
        retry_btn.click(fn=on_retry, inputs=[], outputs=outputs)
        submit_reg_btn.click(
            fn=on_submit_registration,
            inputs=[identifiers_tb],
            outputs=outputs,
        )
        submit_ver_btn.click(
            fn=on_submit_verification,
            inputs=[identifiers_tb, credential_tb],
            outputs=outputs,
        )

        timer = gr.Timer(value=float(ui_config.get("preview_interval_sec", 0.1)))
        timer.tick(fn=on_tick, inputs=[], outputs=[preview, notification_md])

    return demo


# ============================================================
# Entry Point
# ============================================================

if __name__ == "__main__":
    configure_logging()
    ui_config = get_config().get("ui", {})

    demo = create_demo()
    demo.launch(
        server_name=ui_config.get("host", "0.0.0.0"),
        server_port=int(ui_config.get("port", 7860)),
        show_error=True,
    )
