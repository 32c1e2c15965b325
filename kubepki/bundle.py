# bundle.py
# An issued certificate together with its private key.

from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from .errors import BundleError


@dataclass(frozen=True)
class Bundle:
    cert: x509.Certificate
    # PEM bytes; parsed on demand by private_key()
    key: bytes

    def __repr__(self):
        return f"Bundle(subject={self.cert.subject.rfc4514_string()!r}, serial={self.serial})"

    @property
    def serial(self) -> int:
        return self.cert.serial_number

    def to_pem(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.PEM)

    def key_pem(self) -> bytes:
        return self.key

    def private_key(self):
        try:
            return serialization.load_pem_private_key(self.key, password=None)
        except (ValueError, TypeError) as e:
            raise BundleError(f"cannot parse private key of {self!r}: {e}") from e

    @classmethod
    def from_pem(cls, cert_pem: bytes, key_pem: bytes, origin: str = "<memory>") -> "Bundle":
        try:
            cert = x509.load_pem_x509_certificate(cert_pem)
        except ValueError as e:
            raise BundleError(f"{origin}: unparseable certificate: {e}") from e
        b = cls(cert=cert, key=key_pem)
        try:
            key = serialization.load_pem_private_key(key_pem, password=None)
        except (ValueError, TypeError) as e:
            raise BundleError(f"{origin}: unparseable private key: {e}") from e
        if _spki(key.public_key()) != _spki(cert.public_key()):
            raise BundleError(f"{origin}: private key does not match certificate")
        return b

    @classmethod
    def load(cls, directory, name: str) -> "Bundle":
        """Read <directory>/<name>.crt and <directory>/<name>.key (symlinks are followed)."""
        base = Path(directory) / name
        crt, key = Path(directory) / f"{name}.crt", Path(directory) / f"{name}.key"
        try:
            cert_pem = crt.read_bytes()
            key_pem = key.read_bytes()
        except FileNotFoundError as e:
            raise BundleError(f"incomplete bundle {base}: missing {e.filename}") from e
        except OSError as e:
            raise BundleError(f"cannot read bundle {base}: {e}") from e
        return cls.from_pem(cert_pem, key_pem, origin=str(base))


def _spki(public_key) -> bytes:
    return public_key.public_bytes(serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
