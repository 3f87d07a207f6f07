#!/usr/bin/env python3
"""
Generation Jobs - Main Entry Point

Runs the generation job API with SSE progress streaming, or a single job
in process.

Usage:
    # Start server mode (SSE + API)
    python main.py server

    # Generate a single video
    python main.py generate --model wan --prompt "A fox running through snow" -o fox.mp4

    # Monitor a job running on the server
    python main.py monitor job-123

    # List models
    python main.py models
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional
from uuid import uuid4

from core.config import get_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("videojobs")


async def start_server(host: Optional[str] = None, port: Optional[int] = None):
    """Start the job API and SSE server."""
    from services.streaming import SSEServer

    config = get_config()
    for issue in config.validate():
        logger.warning(f"Config: {issue}")

    server = SSEServer.from_config(config)
    if host:
        server.host = host
    if port:
        server.port = port
    await server.start()

    logger.info(f"Generation server running at http://{server.host}:{server.port}")
    logger.info("Press Ctrl+C to stop")

    # Keep running until interrupted
    stop_event = asyncio.Event()

    def handle_signal():
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal)

    await stop_event.wait()
    await server.stop()

    logger.info("Server stopped")


async def generate(
    prompt: str,
    model: str,
    output: str,
    duration: Optional[float] = None,
    image: Optional[str] = None,
    aspect_ratio: Optional[str] = None,
    resolution: Optional[str] = None,
    audio: Optional[bool] = None,
    negative_prompt: Optional[str] = None,
    seed: Optional[int] = None,
) -> int:
    """
    Run one generation job in process and write the artifact to disk.

    Returns:
        Process exit code (0 on success, 1 on failure)
    """
    from cli.progress_monitor import ProgressPrinter
    from core.errors import GenerationError
    from services.generation import GenerationClient, GenerationRequest

    job_id = str(uuid4())
    request = GenerationRequest(
        prompt=prompt,
        model=model,
        duration_seconds=duration,
        image=image,
        aspect_ratio=aspect_ratio,
        resolution=resolution,
        audio=audio,
        negative_prompt=negative_prompt,
        seed=seed,
    )

    logger.info(f"Starting job {job_id} with model {model}")

    async with GenerationClient(config=get_config(), on_progress=ProgressPrinter()) as client:
        try:
            result = await client.generate(request, job_id=job_id)
        except GenerationError as e:
            print(f"\nGeneration failed ({e.status_code} {e.error_code}): {e}", file=sys.stderr)
            return 1

    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.content)

    logger.info(
        f"Saved {result.mime_type} to {output_path} "
        f"({result.size_bytes / 1024 / 1024:.1f} MB, {result.duration_seconds}s, "
        f"usage video={result.usage.video_seconds}s audio={result.usage.audio_seconds}s)"
    )
    return 0


async def monitor_job(job_id: str, server_url: str = "http://localhost:8765"):
    """Monitor an existing job's progress."""
    from cli.progress_monitor import ProgressMonitor

    monitor = ProgressMonitor(job_id=job_id, server_url=server_url)
    await monitor.start()


async def list_models():
    """Print the model catalog."""
    from services.generation import GenerationClient

    async with GenerationClient(config=get_config()) as client:
        models = await client.available_models()

    for entry in models:
        configured = "yes" if entry["configured"] else "no"
        print(
            f"{entry['model']:<14} {entry['provider']:<10} {entry['media_kind']:<6} "
            f"{entry['min_duration']}-{entry['max_duration']}s  "
            f"audio={'yes' if entry['audio'] else 'no'}  configured={configured}"
        )


def _audio_flag(value: str) -> bool:
    return value.lower() in ("1", "true", "yes", "on")


def main():
    parser = argparse.ArgumentParser(
        description="Generation Jobs - async video/image generation over provider APIs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Start the API + SSE server
    python main.py server

    # Generate a 5 second clip
    python main.py generate --model wan --prompt "Product showcase, slow orbit" -d 5 -o out.mp4

    # Image-to-video
    python main.py generate --model kling --prompt "Camera pushes in" --image https://example.com/a.jpg

    # Monitor job progress
    python main.py monitor 3f2a...
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Server command
    server_parser = subparsers.add_parser("server", help="Start API + SSE server")
    server_parser.add_argument("--host", help="Host to bind (default: SERVER_HOST or 0.0.0.0)")
    server_parser.add_argument("--port", type=int, help="Port to bind (default: SERVER_PORT or 8765)")

    # Generate command
    gen_parser = subparsers.add_parser("generate", help="Run one generation job")
    gen_parser.add_argument("--prompt", "-p", required=True, help="Text prompt")
    gen_parser.add_argument("--model", "-m", default="wan", help="Model id (see: models)")
    gen_parser.add_argument("--duration", "-d", type=float, help="Requested duration in seconds")
    gen_parser.add_argument("--image", "-i", help="Source image URL or data URI")
    gen_parser.add_argument("--aspect-ratio", help="Aspect ratio, e.g. 16:9")
    gen_parser.add_argument("--resolution", help="Resolution label, e.g. 720p")
    gen_parser.add_argument("--audio", type=_audio_flag, help="Generate audio (default: on)")
    gen_parser.add_argument("--negative-prompt", help="Things to avoid")
    gen_parser.add_argument("--seed", type=int, help="Random seed")
    gen_parser.add_argument("--output", "-o", default="./output/result.mp4", help="Output file")

    # Monitor command
    mon_parser = subparsers.add_parser("monitor", help="Monitor job progress")
    mon_parser.add_argument("job_id", help="Job ID to monitor")
    mon_parser.add_argument(
        "--server",
        default="http://localhost:8765",
        help="SSE server URL",
    )

    # Models command
    subparsers.add_parser("models", help="List available models")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.getLogger().setLevel(get_config().log_level.upper())

    if args.command == "server":
        asyncio.run(start_server(host=args.host, port=args.port))

    elif args.command == "generate":
        exit_code = asyncio.run(
            generate(
                prompt=args.prompt,
                model=args.model,
                output=args.output,
                duration=args.duration,
                image=args.image,
                aspect_ratio=args.aspect_ratio,
                resolution=args.resolution,
                audio=args.audio,
                negative_prompt=args.negative_prompt,
                seed=args.seed,
            )
        )
        sys.exit(exit_code)

    elif args.command == "monitor":
        asyncio.run(monitor_job(args.job_id, args.server))

    elif args.command == "models":
        asyncio.run(list_models())


if __name__ == "__main__":
    main()
