#!/usr/bin/env python3
"""
Inspect the active storage service.

For the local disk service only the root path is reported. For S3 the
bucket is probed and a small test object is uploaded, downloaded and deleted.

Environment / .env
------------------
STORAGE_SERVICE   "local" (default) or "s3"
STORAGE_ROOT      Root folder for the local service
S3_*              Bucket credentials for the s3 service
"""

import argparse
import sys
from typing import Mapping, Optional

from app.config import ConfigurationError, load_settings
from app.diagnostics.common import fail, info, ok, probe_key, report_exception, run_round_trip
from app.logging_config import configure_logging
from app.services.storage import DiskStorageService, build_storage_service


def main(argv: Optional[list[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    argparse.ArgumentParser(
        prog="storefront-storage-check",
        description="Inspect the active storage service and round-trip a test object on S3.",
    ).parse_args(argv)
    settings = load_settings(environ)
    configure_logging(settings.log_level)

    print(f"Active storage service: {settings.storage.service}")
    try:
        storage = build_storage_service(settings.storage)
    except ConfigurationError as exc:
        fail(str(exc))
        return 1

    if isinstance(storage, DiskStorageService):
        ok("Disk storage service configured")
        info(f"Root path   : {storage.describe()['root']}")
        info("Upload/download/delete checks only run against S3 storage; skipped.")
        return 0

    details = storage.describe()
    info(f"Endpoint    : {details['endpoint']}")
    info(f"Bucket      : {details['bucket']}")

    try:
        storage.check_bucket()
    except Exception as exc:
        report_exception("Bucket access", exc)
        return 1
    ok(f"Bucket {details['bucket']} is reachable")

    return run_round_trip(storage, probe_key("diagnostics/storage-check"))


if __name__ == "__main__":
    sys.exit(main())
