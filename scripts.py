#!/usr/bin/env python3
"""Development scripts for the Barber Booking Platform."""

import subprocess
import sys

from barber_booking_platform.config import get_settings


def start():
    """Start the development server with auto-reload."""
    settings = get_settings()
    subprocess.run([
        "uvicorn",
        "barber_booking_platform.main:app",
        "--host", settings.host,
        "--port", str(settings.port),
        "--reload"
    ])


def test():
    """Run the test suite; extra arguments go to pytest."""
    sys.exit(subprocess.run(["pytest", "tests/", *sys.argv[2:]]).returncode)


COMMANDS = {"start": start, "test": test}


if __name__ == "__main__":
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print("Usage: python scripts.py <command> [args]")
        print(f"Commands: {', '.join(COMMANDS)}")
        sys.exit(1)

    COMMANDS[sys.argv[1]]()
