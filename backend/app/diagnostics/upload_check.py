#!/usr/bin/env python3
"""
Upload, download and delete a test object with the S3_* credentials,
regardless of which storage service the app is configured to use.

Environment / .env
------------------
S3_ENDPOINT_URL, S3_ACCESS_KEY_ID, S3_SECRET_ACCESS_KEY, S3_BUCKET_NAME   (required)
S3_REGION                                                                 (default: us-east-1)
"""

import argparse
import sys
from typing import Mapping, Optional

from app.config import load_settings
from app.diagnostics.common import fail, info, probe_key, report_exception, run_round_trip
from app.logging_config import configure_logging
from app.services.storage import S3StorageService


def main(argv: Optional[list[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="storefront-upload-check",
        description="Round-trip a test object against the S3-compatible bucket.",
    )
    parser.add_argument(
        "--prefix",
        default="diagnostics/upload-check",
        help="Key prefix for the test object (default: diagnostics/upload-check)",
    )
    args = parser.parse_args(argv)
    settings = load_settings(environ)
    configure_logging(settings.log_level)

    s3 = settings.storage.s3
    missing = s3.missing()
    if missing:
        for name in missing:
            fail(f"{name} is not set")
        return 1

    info(f"Endpoint    : {s3.endpoint_url}")
    info(f"Bucket      : {s3.bucket_name}")
    info(f"Region      : {s3.region}")

    try:
        storage = S3StorageService(s3)
    except Exception as exc:
        report_exception("Creating S3 client", exc)
        return 1

    return run_round_trip(storage, probe_key(args.prefix))


if __name__ == "__main__":
    sys.exit(main())
