"""Inspect the certificate issued for a deployment."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography import x509
from cryptography.x509.oid import NameOID

CERTIFICATE_FILES = ("cert.pem", "fullchain.pem")


class CertificateInspectionError(RuntimeError):
    """Raised when an issued certificate cannot be parsed."""


@dataclass(frozen=True, slots=True)
class CertificateSummary:
    """Key facts about an issued certificate."""

    path: Path
    subject: str
    names: tuple[str, ...]
    not_valid_before: datetime
    not_valid_after: datetime

    def days_remaining(self, now: datetime | None = None) -> int:
        """Return whole days until expiry (negative once expired)."""
        moment = now or datetime.now(tz=UTC)
        return (self.not_valid_after - _as_utc(moment)).days

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "path": str(self.path),
            "subject": self.subject,
            "names": list(self.names),
            "not_valid_before": self.not_valid_before.isoformat(),
            "not_valid_after": self.not_valid_after.isoformat(),
        }


def locate_certificate(live_dir: Path, cert_name: str) -> Path | None:
    """Return the certificate file stored for *cert_name*, if any."""
    base = live_dir / cert_name
    for filename in CERTIFICATE_FILES:
        candidate = base / filename
        if candidate.is_file():
            return candidate
    return None


def inspect_certificate(path: Path) -> CertificateSummary:
    """Parse the leaf certificate at *path*."""
    try:
        cert = _load_certificate(path)
    except (OSError, ValueError) as exc:
        raise CertificateInspectionError(f"Unable to read certificate {path}: {exc}") from exc

    common_names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    subject = str(common_names[0].value) if common_names else cert.subject.rfc4514_string()
    try:
        extension = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
        names = tuple(extension.value.get_values_for_type(x509.DNSName))
    except x509.ExtensionNotFound:
        names = ()

    return CertificateSummary(
        path=path,
        subject=subject,
        names=names,
        not_valid_before=_as_utc(cert.not_valid_before_utc),
        not_valid_after=_as_utc(cert.not_valid_after_utc),
    )


def _load_certificate(path: Path) -> x509.Certificate:
    # A full chain holds the leaf first; load_pem_x509_certificate reads only it.
    data = path.read_bytes()
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError:
        return x509.load_der_x509_certificate(data)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


__all__ = [
    "CertificateInspectionError",
    "CertificateSummary",
    "inspect_certificate",
    "locate_certificate",
]
