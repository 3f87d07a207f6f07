#!/usr/bin/env python3
"""
CLI Progress Monitor for Generation Jobs

Connects to the SSE server and displays real-time progress with visual
formatting. ProgressPrinter renders the same output for jobs run in process.

Usage:
    python -m cli.progress_monitor job-123
    python -m cli.progress_monitor --server http://localhost:8765 job-123
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Optional, TextIO

import aiohttp

from services.streaming import EventType, StreamEvent


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"

    # Clear line
    CLEAR_LINE = "\033[2K\r"


def colored(text: str, color: str) -> str:
    """Apply color to text."""
    return f"{color}{text}{Colors.RESET}"


def progress_bar(percent: float, width: int = 30) -> str:
    """Create a visual progress bar."""
    percent = max(0.0, min(100.0, percent))
    filled = int(percent / 100 * width)
    bar = "█" * filled + "░" * (width - filled)

    if percent >= 100:
        color = Colors.GREEN
    elif percent >= 50:
        color = Colors.CYAN
    elif percent >= 25:
        color = Colors.YELLOW
    else:
        color = Colors.WHITE

    return colored(f"[{bar}]", color) + f" {percent:5.1f}%"


def format_duration(seconds: float) -> str:
    """Format duration as HH:MM:SS or MM:SS."""
    if seconds < 0:
        return "--:--"

    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def parse_sse_line(line: str) -> Optional[dict[str, Any]]:
    """Event payload from one SSE line, or None for non-data lines."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    try:
        payload = json.loads(line[5:].strip())
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def format_event(event: dict) -> str:
    """Format event for display."""
    event_type = event.get("type", "info")
    message = event.get("message", "")
    phase = event.get("phase", "")
    percentage = event.get("percentage", 0)
    elapsed = event.get("elapsed_seconds", 0)

    type_config = {
        "started": ("🚀", Colors.GREEN),
        "completed": ("✅", Colors.GREEN),
        "failed": ("❌", Colors.RED),
        "cancelled": ("⏹️", Colors.YELLOW),
        "progress": ("⏳", Colors.DIM),
        "info": ("ℹ️", Colors.BLUE),
    }
    icon, color = type_config.get(event_type, ("•", Colors.WHITE))

    if event_type == "progress":
        return (
            f"{Colors.CLEAR_LINE}"
            f"{icon} {colored(f'[{phase}]', Colors.DIM)} "
            f"{progress_bar(percentage)} "
            f"{colored(message[:40], Colors.WHITE)} "
            f"{colored(format_duration(elapsed), Colors.DIM)}"
        )

    lines = [f"{icon} {colored(message, color)}"]
    data = event.get("data") or {}

    if event_type in ("failed", "cancelled") and "error" in data:
        error = data["error"]
        if isinstance(error, dict):
            lines.append(colored(
                f"    Error {error.get('status_code')}: {error.get('error_code')}",
                Colors.DIM,
            ))
        else:
            lines.append(colored(f"    Error: {error}", Colors.DIM))

    elif event_type == "completed" and data:
        size = data.get("size_bytes", 0)
        lines.append(colored(
            f"    {data.get('mime_type')} | {data.get('duration_seconds')}s | {size / 1024 / 1024:.2f} MB",
            Colors.DIM,
        ))

    return "\n".join(lines)


class ProgressPrinter:
    """Progress sink that prints progress lines for an in-process job."""

    def __init__(self, stream: TextIO = sys.stdout):
        self.stream = stream

    def report(self, job_id: str, percentage: float, phase: str, message: str) -> None:
        line = format_event({
            "type": "progress",
            "phase": phase,
            "percentage": percentage,
            "message": message,
        })
        end = "\n" if phase in ("complete", "failed") else ""
        print(line, end=end, file=self.stream, flush=True)


class ProgressMonitor:
    """CLI progress monitor for a job running on the server."""

    def __init__(
        self,
        job_id: str,
        server_url: str = "http://localhost:8765",
    ):
        self.job_id = job_id
        self.server_url = server_url.rstrip("/")
        self.stream_url = f"{self.server_url}/stream/{job_id}"

        self._running = False
        self._last_percentage = 0.0
        self.final_event: Optional[StreamEvent] = None

    async def start(self):
        """Start monitoring progress."""
        self._running = True

        print(colored("\n╔═══════════════════════════════════════════╗", Colors.CYAN))
        print(colored("║  Generation Progress Monitor              ║", Colors.CYAN))
        print(colored("╚═══════════════════════════════════════════╝", Colors.CYAN))
        print(f"Job:    {colored(self.job_id, Colors.BOLD)}")
        print(f"Server: {colored(self.stream_url, Colors.DIM)}")
        print(colored("─" * 45, Colors.DIM))
        print()

        retry_count = 0
        max_retries = 5

        while self._running and retry_count < max_retries:
            try:
                await self._stream_events()
                break  # Clean exit
            except aiohttp.ClientError as e:
                retry_count += 1
                if retry_count < max_retries:
                    wait = 2 ** retry_count
                    print(
                        colored(
                            f"\n⚠️ Connection lost ({e}). Retrying in {wait}s... ({retry_count}/{max_retries})",
                            Colors.YELLOW,
                        )
                    )
                    await asyncio.sleep(wait)
                else:
                    print(colored(f"\n❌ Failed to connect after {max_retries} attempts", Colors.RED))

        print(colored("\n" + "─" * 45, Colors.DIM))
        print(colored("Monitor stopped.", Colors.DIM))

    async def _stream_events(self):
        """Stream and display events."""
        async with aiohttp.ClientSession() as session:
            async with session.get(self.stream_url) as response:
                if response.status == 404:
                    print(colored(f"❌ Job not found: {self.job_id}", Colors.RED))
                    self._running = False
                    return
                if response.status != 200:
                    raise aiohttp.ClientError(f"Server returned {response.status}")

                async for raw in response.content:
                    if not self._running:
                        break
                    event = parse_sse_line(raw.decode("utf-8"))
                    if event is not None:
                        self.handle_event(event)

    def handle_event(self, payload: dict):
        """Handle incoming event."""
        event = StreamEvent.from_dict(payload)

        if event.event_type == EventType.PROGRESS:
            # Only redraw when progress moved
            if abs(event.percentage - self._last_percentage) >= 0.5 or event.percentage == 0:
                self._last_percentage = event.percentage
                print(format_event(payload), end="", flush=True)
        else:
            print()  # Clear progress line
            print(format_event(payload))

        if event.event_type.terminal:
            self.final_event = event
            self._running = False

    def stop(self):
        """Stop monitoring."""
        self._running = False


async def main():
    parser = argparse.ArgumentParser(
        description="Monitor generation job progress",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s job-123
    %(prog)s --server http://remote:8765 job-456
        """,
    )
    parser.add_argument(
        "job_id",
        help="Job ID to monitor",
    )
    parser.add_argument(
        "--server",
        default="http://localhost:8765",
        help="SSE server URL (default: http://localhost:8765)",
    )

    args = parser.parse_args()

    monitor = ProgressMonitor(
        job_id=args.job_id,
        server_url=args.server,
    )

    try:
        await monitor.start()
    except KeyboardInterrupt:
        print(colored("\n\nInterrupted by user.", Colors.YELLOW))
        monitor.stop()


if __name__ == "__main__":
    asyncio.run(main())
