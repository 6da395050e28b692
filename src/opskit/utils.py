"""Small standalone utilities: GUIDs, file search, certificate conversion,
and log merging."""

import fnmatch
import logging
import os
import re
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

logger = logging.getLogger(__name__)

EXPIRATION_WARNING_DAYS = 30
TIMESTAMP_PATTERN = re.compile(
    r"^(\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:[.,]\d+)?(?:Z|[+-]\d{2}:?\d{2})?)"
)


class UtilityError(Exception):
    """Raised when a utility cannot complete."""

    pass


def generate_guids(count: int = 1, upper: bool = False) -> list[str]:
    if count < 1:
        raise UtilityError(f"Count must be at least 1, got {count}")
    guids = [str(uuid.uuid4()) for _ in range(count)]
    return [g.upper() for g in guids] if upper else guids


def find_files(root: str | Path, pattern: str, contains: str | None = None) -> list[Path]:
    """Find files under ``root`` whose name matches a glob pattern.

    With ``contains``, only files whose text includes it are returned.
    Unreadable files are skipped.
    """
    root_path = Path(root).expanduser()
    if not root_path.is_dir():
        raise UtilityError(f"Not a directory: {root_path}")

    matches = []
    for dirpath, _dirnames, filenames in os.walk(root_path):
        for filename in filenames:
            if not fnmatch.fnmatch(filename, pattern):
                continue
            path = Path(dirpath) / filename
            if contains is not None:
                try:
                    if contains not in path.read_text(encoding="utf-8", errors="ignore"):
                        continue
                except OSError as e:
                    logger.debug(f"Skipping unreadable file {path}: {e}")
                    continue
            matches.append(path)
    return sorted(matches)


@dataclass
class CertificateSummary:
    """Subject and validity of a converted certificate."""

    subject: str
    expiration_date: datetime
    days_until_expiry: int

    @property
    def is_expired(self) -> bool:
        return self.days_until_expiry < 0

    @property
    def needs_warning(self) -> bool:
        return self.days_until_expiry < EXPIRATION_WARNING_DAYS


def summarize_certificate(cert: x509.Certificate, now: datetime | None = None) -> CertificateSummary:
    expiration_date = cert.not_valid_after_utc
    days_until_expiry = (expiration_date - (now or datetime.now(UTC))).days
    return CertificateSummary(
        subject=cert.subject.rfc4514_string(),
        expiration_date=expiration_date,
        days_until_expiry=days_until_expiry,
    )


def convert_pfx_to_pem(
    pfx_path: str | Path, out_path: str | Path, password: str | None = None
) -> CertificateSummary:
    """Convert a PKCS#12 bundle to a PEM file holding key and certificates.

    The private key is written unencrypted with 0600 permissions.

    Raises:
        UtilityError: If the bundle cannot be read or holds no certificate
    """
    pfx_file = Path(pfx_path).expanduser()
    try:
        data = pfx_file.read_bytes()
    except OSError as e:
        raise UtilityError(f"Cannot read {pfx_file}: {e}") from e

    try:
        key, cert, additional = pkcs12.load_key_and_certificates(
            data, password.encode() if password else None
        )
    except ValueError as e:
        raise UtilityError(f"Failed to load PKCS#12 bundle (wrong password?): {e}") from e
    if cert is None:
        raise UtilityError(f"No certificate found in {pfx_file}")

    parts = []
    if key is not None:
        parts.append(
            key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
    parts.append(cert.public_bytes(serialization.Encoding.PEM))
    for extra in additional or []:
        parts.append(extra.public_bytes(serialization.Encoding.PEM))

    out_file = Path(out_path).expanduser()
    fd = os.open(out_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(b"".join(parts))
    os.chmod(out_file, 0o600)

    summary = summarize_certificate(cert)
    logger.info(f"Wrote {out_file} ({summary.subject})")
    return summary


def parse_log_timestamp(line: str) -> datetime | None:
    """Parse a leading ISO-8601 timestamp; aware times are converted to naive UTC."""
    match = TIMESTAMP_PATTERN.match(line)
    if not match:
        return None
    text = match.group(1).replace(",", ".").replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def merge_logs(paths: list[str | Path]) -> list[str]:
    """Merge log files into one timestamp-ordered list of lines.

    Lines without a timestamp stay with the entry before them. Lines at the
    top of a file before any timestamp sort first. Ties keep file order.
    """
    entries: list[tuple[datetime, int, int, list[str]]] = []
    for file_index, path in enumerate(paths):
        try:
            lines = Path(path).expanduser().read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            raise UtilityError(f"Cannot read {path}: {e}") from e

        current: list[str] | None = None
        for line in lines:
            timestamp = parse_log_timestamp(line)
            if timestamp is not None:
                current = [line]
                entries.append((timestamp, file_index, len(entries), current))
            elif current is None:
                current = [line]
                entries.append((datetime.min, file_index, len(entries), current))
            else:
                current.append(line)

    entries.sort(key=lambda entry: entry[:3])
    return [line for entry in entries for line in entry[3]]


__all__ = [
    "CertificateSummary",
    "UtilityError",
    "convert_pfx_to_pem",
    "find_files",
    "generate_guids",
    "merge_logs",
    "parse_log_timestamp",
    "summarize_certificate",
]
