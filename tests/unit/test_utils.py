"""Unit tests for utils module."""

import os
import uuid
from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from opskit.utils import (
    UtilityError,
    convert_pfx_to_pem,
    find_files,
    generate_guids,
    merge_logs,
    parse_log_timestamp,
    summarize_certificate,
)


def _self_signed(days=90):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "opskit-test")])
    now = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=days))
        .sign(key, hashes.SHA256())
    )
    return key, cert


class TestGuids:
    """Tests for GUID generation."""

    def test_count_and_format(self):
        guids = generate_guids(3)
        assert len(set(guids)) == 3
        for guid in guids:
            assert str(uuid.UUID(guid)) == guid

    def test_upper(self):
        guid = generate_guids(upper=True)[0]
        assert guid == guid.upper()

    def test_invalid_count(self):
        with pytest.raises(UtilityError):
            generate_guids(0)


class TestFindFiles:
    """Tests for recursive file search."""

    def test_pattern_and_contains(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "a" / "app.log").write_text("ERROR disk full\n")
        (tmp_path / "b.log").write_text("all good\n")
        (tmp_path / "c.txt").write_text("ERROR\n")

        assert find_files(tmp_path, "*.log") == [tmp_path / "a" / "app.log", tmp_path / "b.log"]
        assert find_files(tmp_path, "*.log", contains="ERROR") == [tmp_path / "a" / "app.log"]

    def test_missing_root(self, tmp_path):
        with pytest.raises(UtilityError, match="Not a directory"):
            find_files(tmp_path / "nope", "*")


class TestCertificates:
    """Tests for PFX conversion."""

    def test_convert_pfx_to_pem(self, tmp_path):
        key, cert = _self_signed()
        pfx = tmp_path / "client.pfx"
        pfx.write_bytes(
            pkcs12.serialize_key_and_certificates(
                b"client", key, cert, None, serialization.BestAvailableEncryption(b"pw")
            )
        )
        out = tmp_path / "client.pem"

        summary = convert_pfx_to_pem(pfx, out, password="pw")

        text = out.read_text()
        assert "BEGIN PRIVATE KEY" in text
        assert "BEGIN CERTIFICATE" in text
        assert os.stat(out).st_mode & 0o777 == 0o600
        assert summary.subject == "CN=opskit-test"
        assert not summary.is_expired

    def test_wrong_password(self, tmp_path):
        key, cert = _self_signed()
        pfx = tmp_path / "client.pfx"
        pfx.write_bytes(
            pkcs12.serialize_key_and_certificates(
                b"client", key, cert, None, serialization.BestAvailableEncryption(b"pw")
            )
        )
        with pytest.raises(UtilityError, match="wrong password"):
            convert_pfx_to_pem(pfx, tmp_path / "out.pem", password="nope")

    def test_expiry_warning(self):
        _, cert = _self_signed(days=10)
        summary = summarize_certificate(cert)
        assert summary.needs_warning
        assert 8 <= summary.days_until_expiry <= 10


class TestMergeLogs:
    """Tests for timestamp-ordered log merging."""

    def test_parse_timestamps(self):
        assert parse_log_timestamp("2024-05-01 10:00:00,123 INFO x") == datetime(
            2024, 5, 1, 10, 0, 0, 123000
        )
        assert parse_log_timestamp("2024-05-01T10:00:00Z x") == datetime(2024, 5, 1, 10, 0, 0)
        assert parse_log_timestamp("2024-05-01T12:00:00+02:00 x") == datetime(2024, 5, 1, 10, 0, 0)
        assert parse_log_timestamp("Traceback (most recent call last):") is None

    def test_merge_orders_and_keeps_continuations(self, tmp_path):
        first = tmp_path / "web.log"
        first.write_text(
            "2024-05-01T10:00:00 web start\n"
            "2024-05-01T10:00:05 web error\n"
            "  Traceback line\n"
        )
        second = tmp_path / "worker.log"
        second.write_text(
            "banner\n"
            "2024-05-01T10:00:02 worker start\n"
            "2024-05-01T10:00:05 worker tick\n"
        )

        assert merge_logs([first, second]) == [
            "banner",
            "2024-05-01T10:00:00 web start",
            "2024-05-01T10:00:02 worker start",
            "2024-05-01T10:00:05 web error",
            "  Traceback line",
            "2024-05-01T10:00:05 worker tick",
        ]

    def test_missing_file(self, tmp_path):
        with pytest.raises(UtilityError, match="Cannot read"):
            merge_logs([tmp_path / "missing.log"])
