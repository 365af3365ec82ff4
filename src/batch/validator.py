# src/batch/validator.py — v1
"""Static validation of a batch job file.

Nothing is fetched or uploaded. ``valid`` turns False only for structural
problems that would make the orchestrator refuse the job (missing file,
bad JSON, missing marker, a group that is not a list, a non-string
``defaultBucket``). Per-item problems are reported as errors but leave
``valid`` untouched, so an operator can see everything wrong in one pass.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from urllib.parse import urlsplit

from pydantic import BaseModel, Field

from kbcreationtools.batch.models import GROUP_NAMES, JOB_MARKER_KEY

logger = logging.getLogger(__name__)

_BUCKET_RE = re.compile(r"^[a-z0-9][a-z0-9-]*[a-z0-9]$")

KNOWN_SECTIONS: tuple[str, ...] = (JOB_MARKER_KEY, "defaultBucket", *GROUP_NAMES)


class ValidationReport(BaseModel):
    """Errors, warnings and informational notes about a job file."""

    valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    info: list[str] = Field(default_factory=list)

    def fatal(self, message: str) -> None:
        self.errors.append(message)
        self.valid = False


def is_valid_url(value: str) -> bool:
    """Absolute URL with a scheme and a network location."""
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return bool(parts.scheme and parts.netloc)


def check_bucket_name(name: str, report: ValidationReport) -> None:
    """S3 / Spaces bucket naming rules."""
    if not name.strip():
        report.errors.append("Bucket name cannot be empty")
        return
    if not 3 <= len(name) <= 63:
        report.errors.append(f'Bucket name "{name}" must be between 3 and 63 characters')
    elif not _BUCKET_RE.match(name):
        report.errors.append(
            f'Bucket name "{name}" contains invalid characters. '
            "Only lowercase letters, numbers, and hyphens are allowed"
        )


def _required_str(item: dict, field: str, where: str, report: ValidationReport) -> bool:
    value = item.get(field)
    if not value or not isinstance(value, str):
        report.errors.append(f'{where}: missing or invalid "{field}" property')
        return False
    return True


def _optional_str(item: dict, field: str, where: str, report: ValidationReport) -> None:
    value = item.get(field)
    if value and not isinstance(value, str):
        report.errors.append(f'{where}: "{field}" must be a string')


def _check_item_bucket(
    item: dict,
    where: str,
    default_bucket: str | None,
    report: ValidationReport,
    missing: str | None = None,
) -> None:
    """Validate an item's bucket; ``missing`` selects how an absent one is reported."""
    bucket = item.get("bucket")
    if bucket:
        if not isinstance(bucket, str):
            report.errors.append(f'{where}: "bucket" must be a string')
        else:
            check_bucket_name(bucket, report)
    elif not default_bucket and missing == "error":
        report.errors.append(f'{where}: missing "bucket" property and no defaultBucket specified')
    elif not default_bucket and missing == "warning":
        report.warnings.append(f"{where}: no bucket specified, will use defaultBucket if available")


def _check_process_docs(
    item: dict, where: str, default_bucket: str | None, report: ValidationReport,
) -> None:
    options = item.get("processDocs")
    if not options:
        return
    where = f"{where}.processDocs"
    if not isinstance(options, dict):
        report.errors.append(f"{where}: must be an object")
        return
    _optional_str(options, "selector", where, report)
    bucket = options.get("bucket")
    if bucket:
        if not isinstance(bucket, str):
            report.errors.append(f'{where}: "bucket" must be a string')
        else:
            check_bucket_name(bucket, report)
    elif not default_bucket:
        report.warnings.append(f"{where}: no bucket specified")


def _check_documents(
    items: list, job_dir: Path, default_bucket: str | None, report: ValidationReport,
) -> None:
    for index, item in enumerate(items):
        where = f"documents[{index}]"
        if not _required_str(item, "file", where, report):
            continue
        full_path = (job_dir / item["file"]).resolve()
        if not full_path.exists():
            report.errors.append(f"{where}: file not found: {full_path}")
        elif not full_path.is_file():
            report.errors.append(f'{where}: "{full_path}" is not a file')
        else:
            size = full_path.stat().st_size
            report.info.append(f"{where}: found file {item['file']} ({size} bytes)")
        _check_item_bucket(item, where, default_bucket, report, missing="error")


def _check_web_pages(items: list, default_bucket: str | None, report: ValidationReport) -> None:
    for index, item in enumerate(items):
        where = f"webPages[{index}]"
        if not _required_str(item, "url", where, report):
            continue
        if is_valid_url(item["url"]):
            report.info.append(f"{where}: valid URL {item['url']}")
        else:
            report.errors.append(f"{where}: invalid URL format: {item['url']}")
        _optional_str(item, "selector", where, report)
        _check_item_bucket(item, where, default_bucket, report, missing="warning")


def _check_crawl_step(
    group: str, url_field: str, items: list,
    default_bucket: str | None, report: ValidationReport,
) -> None:
    """linkExtraction and sitemaps: a source URL, an output file, optional processDocs."""
    for index, item in enumerate(items):
        where = f"{group}[{index}]"
        if not _required_str(item, url_field, where, report):
            continue
        if not is_valid_url(item[url_field]):
            report.errors.append(f"{where}: invalid URL format: {item[url_field]}")
        _required_str(item, "outputFile", where, report)
        _check_process_docs(item, where, default_bucket, report)


def _check_simple(
    group: str,
    items: list,
    report: ValidationReport,
    required: tuple[str, ...] = (),
    url_field: str | None = None,
) -> None:
    """Groups with a few required strings, an optional output file and bucket."""
    for index, item in enumerate(items):
        where = f"{group}[{index}]"
        if url_field is not None:
            if not _required_str(item, url_field, where, report):
                continue
            if not is_valid_url(item[url_field]):
                report.errors.append(f"{where}: invalid URL format: {item[url_field]}")
        for field in required:
            _required_str(item, field, where, report)
        _optional_str(item, "outputFile", where, report)
        _check_item_bucket(item, where, None, report)


def validate_batch_config(path: str | Path) -> ValidationReport:
    """Validate a batch job file without running it.

    Args:
        path: Path to the JSON job file.

    Returns:
        ValidationReport with errors, warnings and info lines.
    """
    report = ValidationReport()
    path = Path(path)

    if not path.exists():
        report.fatal(f"Configuration file not found: {path}")
        return report

    try:
        config = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        report.fatal(f"Invalid JSON syntax: {e}")
        return report
    except OSError as e:
        report.fatal(f"Cannot read configuration file: {e}")
        return report

    if not isinstance(config, dict):
        report.fatal("Configuration must be a JSON object")
        return report

    marker = config.get(JOB_MARKER_KEY)
    if not marker or not isinstance(marker, str):
        report.fatal(
            f'Missing or invalid "{JOB_MARKER_KEY}" key. '
            f'Expected format: {{"{JOB_MARKER_KEY}": "version"}}'
        )
    else:
        report.info.append(f"Configuration version: {marker}")

    default_bucket = config.get("defaultBucket")
    if default_bucket is not None and not isinstance(default_bucket, str):
        report.fatal('"defaultBucket" must be a string')
        default_bucket = None
    elif default_bucket:
        check_bucket_name(default_bucket, report)

    job_dir = path.resolve().parent
    for group in GROUP_NAMES:
        items = config.get(group)
        if items is None:
            continue
        if not isinstance(items, list):
            report.fatal(f'"{group}" must be an array')
            continue
        objects = [i for i in items if isinstance(i, dict)]
        if len(objects) != len(items):
            report.errors.append(f'"{group}": every entry must be an object')

        if group == "documents":
            _check_documents(objects, job_dir, default_bucket, report)
        elif group == "webPages":
            _check_web_pages(objects, default_bucket, report)
        elif group == "linkExtraction":
            _check_crawl_step(group, "url", objects, default_bucket, report)
        elif group == "sitemaps":
            _check_crawl_step(group, "source", objects, default_bucket, report)
        elif group == "github":
            _check_simple(group, objects, report, required=("owner", "repo"))
        elif group == "intercom":
            _check_simple(group, objects, report)
        elif group == "reddit":
            _check_simple(group, objects, report, required=("query",))
        elif group == "stackoverflow":
            _check_simple(group, objects, report, required=("searchTerm",))
        elif group == "llms":
            _check_simple(group, objects, report, url_field="url")
        elif group == "rss":
            _check_simple(group, objects, report, url_field="feedUrl")

    for key in config:
        if key not in KNOWN_SECTIONS:
            report.warnings.append(f'Unknown configuration section: "{key}"')

    logger.debug(
        "Validated %s: valid=%s errors=%d warnings=%d",
        path, report.valid, len(report.errors), len(report.warnings),
    )
    return report
