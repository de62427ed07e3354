"""
Session Demo Script - Register then Verify

This script runs one full round trip through the face session controller
without the web UI:
1. Load the configured engine and open the camera
2. Start the live landmark overlay (optionally shown in a window)
3. Register the face in view under the given identifiers
4. Start verification (pre-filled from the registration) and verify

Usage:
    # Mock engine (default config.yaml)
    python scripts/demo_session.py --identifiers "user123, email@example.com"

    # Show the mirrored preview with the landmark overlay while running
    python scripts/demo_session.py --identifiers "alice, alice@example.com" --show

    # Verify against a credential from a previous run
    python scripts/demo_session.py --identifiers "alice" --credential "<encrypted face>"

    # Use another config file
    python scripts/demo_session.py --config path/to/config.yaml --identifiers "a, b"

Exit code is 0 when verification matched.
"""

import argparse
import asyncio
import sys
from pathlib import Path

import cv2

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.config import configure_logging, get_config, load_config
from core.controller import FaceAuthController
from core.errors import FaceAuthError

WINDOW_NAME = "Face Session"


async def show_preview(controller: FaceAuthController, stop: asyncio.Event) -> None:
    """Display the mirrored preview until stop is set or 'q' is pressed."""
    while not stop.is_set():
        frame = controller.preview()
        if frame is not None:
            cv2.imshow(WINDOW_NAME, frame)
        if cv2.waitKey(1) & 0xFF == ord("q"):
            stop.set()
        await asyncio.sleep(1 / 30)
    cv2.destroyWindow(WINDOW_NAME)


async def run(args) -> int:
    config = load_config(args.config) if args.config else get_config()
    configure_logging(config)

    async with FaceAuthController(config) as controller:
        session = controller.session
        if session.fatal_error:
            print(f"Initialization failed: {session.fatal_error}")
            return 1

        stop = asyncio.Event()
        viewer = asyncio.ensure_future(show_preview(controller, stop)) if args.show else None

        try:
            # Give the user a moment to face the camera
            await asyncio.sleep(args.warmup)

            if args.credential:
                session.start_verification()
                session.set_credential(args.credential)
            else:
                session.start_registration()
                session.set_identifiers_text(args.identifiers)
                outcome = await session.submit_registration()
                if outcome is None:
                    print(f"Registration failed: {session.error}")
                    return 1
                print("Registration result:")
                print(outcome.display())
                print()
                session.start_verification()

            session.set_identifiers_text(args.identifiers)
            matched = await session.submit_verification()
        except FaceAuthError as e:
            print(f"ERROR: {e}")
            return 1
        finally:
            stop.set()
            if viewer is not None:
                await viewer

        if matched is None:
            print(f"Verification failed: {session.error}")
            return 1

        print(f"Verification: {session.verification_result}")
        print(f"Overlay cycles rendered: {controller.detection_loop.cycles}")
        return 0 if matched else 1


def main():
    parser = argparse.ArgumentParser(
        description="Face Session Demo - register then verify",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--identifiers", type=str, required=True,
        help="Comma-separated identifiers (at least 2 to register)",
    )
    parser.add_argument(
        "--credential", type=str, default=None,
        help="Skip registration and verify against this encrypted face record",
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path to an alternative config.yaml",
    )
    parser.add_argument(
        "--warmup", type=float, default=1.0,
        help="Seconds to wait before registering (default: 1.0)",
    )
    parser.add_argument(
        "--show", action="store_true",
        help="Show the live preview with the landmark overlay",
    )
    args = parser.parse_args()

    print("=" * 60)
    print("Face Session Controller - Demo")
    print("=" * 60)
    print()

    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
