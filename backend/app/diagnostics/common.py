"""
Shared output helpers and the object round-trip used by the storage checks.
"""

import sys
import traceback
from datetime import datetime, timezone
from uuid import uuid4

OK = "✅"
FAIL = "❌"
INFO = "ℹ️ "
WARN = "⚠️ "

# Number of stack frames printed when a check fails
_TRACE_LINES = 5


def ok(message: str) -> None:
    print(f"{OK} {message}")


def fail(message: str) -> None:
    print(f"{FAIL} {message}", file=sys.stderr)


def info(message: str) -> None:
    print(f"{INFO}{message}")


def report_exception(step: str, exc: BaseException) -> None:
    """Print the failing step, the exception class and message, and the innermost frames."""
    fail(f"{step} failed: {type(exc).__name__}: {exc}")
    frames = traceback.format_tb(exc.__traceback__)
    for line in frames[-_TRACE_LINES:]:
        print(line.rstrip(), file=sys.stderr)


def probe_key(prefix: str) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{prefix}-{stamp}-{uuid4().hex[:8]}.txt"


def run_round_trip(storage, key: str) -> int:
    """
    Upload, download and delete one small object through ``storage``.

    Stops at the first failing step. If a step after the upload fails, the
    object is left where it is and its key is printed for manual cleanup.
    Returns the process exit code.
    """
    payload = f"storage check {key}".encode("utf-8")

    try:
        storage.upload(key, payload, content_type="text/plain")
    except Exception as exc:
        report_exception("Upload", exc)
        return 1
    ok(f"Uploaded test object {key} ({len(payload)} bytes)")

    try:
        downloaded = storage.download(key)
        if downloaded != payload:
            raise ValueError(
                f"downloaded {len(downloaded)} bytes that do not match the uploaded content"
            )
    except Exception as exc:
        report_exception("Download", exc)
        print(f"{WARN}Test object {key} was left in storage; delete it manually.", file=sys.stderr)
        return 1
    ok("Downloaded test object and verified its content")

    try:
        storage.delete(key)
    except Exception as exc:
        report_exception("Delete", exc)
        print(f"{WARN}Test object {key} was left in storage; delete it manually.", file=sys.stderr)
        return 1
    ok("Deleted test object")

    return 0
