#!/usr/bin/env python3
"""Start the route replay API with uvicorn, honouring the PORT environment variable."""

import os
import sys
import subprocess

port = os.environ.get("PORT", "8000")

try:
    port_int = int(port)
except ValueError:
    print(f"Warning: Invalid PORT value '{port}', using default 8000", file=sys.stderr)
    port_int = 8000

# Make the src layout importable when the package is not installed.
src_path = os.path.abspath("src")
if os.path.isdir(src_path):
    pythonpath = os.environ.get("PYTHONPATH", "")
    os.environ["PYTHONPATH"] = f"{src_path}{os.pathsep}{pythonpath}" if pythonpath else src_path
    sys.path.insert(0, src_path)
else:
    print(f"Warning: src directory not found at {src_path}", file=sys.stderr)

# Single worker: playback sessions live in process memory.
cmd = [
    sys.executable,
    "-m",
    "uvicorn",
    "virtual_location.main:app",
    "--host",
    os.environ.get("HOST", "0.0.0.0"),
    "--port",
    str(port_int),
]

try:
    import virtual_location.main  # noqa: F401
except ImportError as e:
    print(f"Failed to import virtual_location.main: {e}", file=sys.stderr)
    print(f"   PYTHONPATH: {os.environ.get('PYTHONPATH', 'NOT SET')}", file=sys.stderr)
    sys.exit(1)

print(f"Starting server on port {port_int}...", file=sys.stderr)
try:
    result = subprocess.call(cmd)
    if result != 0:
        print(f"Uvicorn exited with code {result}", file=sys.stderr)
    sys.exit(result)
except KeyboardInterrupt:
    print("Server interrupted by user", file=sys.stderr)
    sys.exit(0)
