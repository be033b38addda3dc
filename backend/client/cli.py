"""
Push-to-talk terminal client for the relay.

    voice-relay-client --url ws://localhost:3000/ws

Keys (one line each):
    <Enter>        start recording / stop and send
    any text       send a typed turn
    /quit          leave
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from dotenv import load_dotenv

from client.capture import ClientCaptureController
from client.devices import SoundDeviceCapture, SoundDeviceOutput
from client.playback import AudioPlaybackBuffer
from client.transport import RelayClient
from constants import CAPTURE_DEVICE_SAMPLE_RATE_HZ_DEFAULT, PLAYBACK_DEBOUNCE_MS
from errors import TransportError
from observability import logger
from protocol.control import ControlMessage, ErrorMessage, StatusMessage, TextMessage


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Live voice relay push-to-talk client")
    ap.add_argument("--url", default="ws://localhost:3000/ws", help="Relay WebSocket URL")
    ap.add_argument("--input-device", default=None, help="sounddevice input device (index or name)")
    ap.add_argument("--output-device", default=None, help="sounddevice output device (index or name)")
    ap.add_argument(
        "--capture-rate",
        type=int,
        default=CAPTURE_DEVICE_SAMPLE_RATE_HZ_DEFAULT,
        help="Microphone sample rate in Hz",
    )
    ap.add_argument("--debounce-ms", type=int, default=PLAYBACK_DEBOUNCE_MS, help="Playback flush debounce")
    ap.add_argument("--log-level", default="WARNING", help="JSONL log threshold (DEBUG, INFO, WARNING, ERROR)")
    return ap.parse_args(argv)


def _device(value: str | None) -> int | str | None:
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def _print_control(msg: ControlMessage) -> None:
    if isinstance(msg, StatusMessage):
        print(f"[status] {msg.message}")
    elif isinstance(msg, ErrorMessage):
        print(f"[error] {msg.message}")


async def run(args: argparse.Namespace) -> int:
    output = SoundDeviceOutput(device=_device(args.output_device))
    capture = SoundDeviceCapture(
        sample_rate_hz=args.capture_rate,
        device=_device(args.input_device),
    )

    controller: ClientCaptureController | None = None

    def on_drained() -> None:
        if controller is not None:
            controller.on_playback_drained()

    playback = AudioPlaybackBuffer(output, debounce_ms=args.debounce_ms, on_drained=on_drained)

    def on_model_audio(pcm: bytes) -> None:
        if controller is not None:
            controller.on_model_audio(pcm)

    client = RelayClient(args.url, on_model_audio=on_model_audio, on_control=_print_control)
    controller = ClientCaptureController(capture=capture, playback=playback, channel=client)

    try:
        await client.open()
    except TransportError as e:
        print(f"[error] {e}", file=sys.stderr)
        return 1

    receiver = asyncio.create_task(client.run())
    print("Enter: talk / send. Type text for a text turn. /quit to leave.")

    try:
        while not receiver.done():
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line or line.strip() == "/quit":
                break

            text = line.strip()
            if text:
                await client.send_control(TextMessage(text))
            elif controller.is_recording:
                await controller.stop_recording()
                print("[sent]")
            else:
                await controller.start_recording()
                if controller.is_recording:
                    print("[recording] press Enter to send")
                else:
                    print("[error] microphone unavailable", file=sys.stderr)

    except TransportError as e:
        print(f"[error] {e}", file=sys.stderr)
        return 1

    finally:
        playback.interrupt()
        if controller.is_recording:
            await capture.stop()
        await client.close()
        receiver.cancel()
        await asyncio.gather(receiver, return_exceptions=True)

    return 0


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    logger.configure(level=args.log_level)
    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
