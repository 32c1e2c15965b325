"""
X.509 building and signing on top of the `cryptography` library.

The rest of the package only hands over CertificateRequest values and gets
back certificate objects and PEM key bytes; nothing outside this module
touches extensions or names directly.
"""

import ipaddress
from datetime import timedelta
from typing import Optional

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .errors import SigningError
from .ir import CertificateRequest, ExtendedKeyUsage, KeyUsage, X509Meta
from .utils import now_utc, rfc3339

# serial of the self-signed root certificate; issued before the root ledger exists
ROOT_SERIAL = 1

_EKU_OID = {
    ExtendedKeyUsage.SERVER_AUTH: ExtendedKeyUsageOID.SERVER_AUTH,
    ExtendedKeyUsage.CLIENT_AUTH: ExtendedKeyUsageOID.CLIENT_AUTH,
}


def generate_key(bits: int) -> rsa.RSAPrivateKey:
    try:
        return rsa.generate_private_key(public_exponent=65537, key_size=bits)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise SigningError(f"RSA key generation ({bits} bits) failed: {e}") from e


def key_to_pem(key) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_key_pem(key) -> bytes:
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def subject_name(req: CertificateRequest) -> x509.Name:
    attrs = [x509.NameAttribute(NameOID.COMMON_NAME, req.common_name)]
    for oid, value in (
        (NameOID.COUNTRY_NAME, req.country),
        (NameOID.ORGANIZATION_NAME, req.organization),
        (NameOID.ORGANIZATIONAL_UNIT_NAME, req.organization_unit),
        (NameOID.STATE_OR_PROVINCE_NAME, req.state),
        (NameOID.LOCALITY_NAME, req.locality),
    ):
        if value:
            attrs.append(x509.NameAttribute(oid, value))
    return x509.Name(attrs)


def _key_usage(usage) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=KeyUsage.DIGITAL_SIGNATURE in usage,
        content_commitment=KeyUsage.CONTENT_COMMITMENT in usage,
        key_encipherment=KeyUsage.KEY_ENCIPHERMENT in usage,
        data_encipherment=KeyUsage.DATA_ENCIPHERMENT in usage,
        key_agreement=KeyUsage.KEY_AGREEMENT in usage,
        key_cert_sign=KeyUsage.KEY_CERT_SIGN in usage,
        crl_sign=KeyUsage.CRL_SIGN in usage,
        encipher_only=False,
        decipher_only=False,
    )


def _general_name(alt) -> x509.GeneralName:
    if alt.kind == "ip":
        return x509.IPAddress(ipaddress.IPv4Address(alt.value))
    return x509.DNSName(alt.value)


def _builder(req: CertificateRequest, serial: int, key, issuer_name: x509.Name,
             issuer_public_key) -> x509.CertificateBuilder:
    now = now_utc()
    b = (
        x509.CertificateBuilder()
        .subject_name(subject_name(req))
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(serial)
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=req.validity_days))
        .add_extension(_key_usage(req.key_usage), critical=True)
        .add_extension(x509.BasicConstraints(ca=req.is_certificate_authority, path_length=None), critical=True)
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_public_key), critical=False)
    )
    if req.extended_key_usage:
        # fixed order so identical requests produce identical extensions
        oids = [_EKU_OID[u] for u in sorted(req.extended_key_usage, key=lambda u: u.value)]
        b = b.add_extension(x509.ExtendedKeyUsage(oids), critical=False)
    if req.subject_alt_names:
        b = b.add_extension(
            x509.SubjectAlternativeName([_general_name(a) for a in req.subject_alt_names]), critical=False
        )
    return b


def self_sign(req: CertificateRequest, key, serial: int = ROOT_SERIAL) -> x509.Certificate:
    if not req.is_certificate_authority:
        raise SigningError(f"refusing to self-sign non-CA request {req.common_name!r}")
    try:
        b = _builder(req, serial, key, subject_name(req), key.public_key())
        return b.sign(private_key=key, algorithm=hashes.SHA256())
    except ValueError as e:
        raise SigningError(f"signing {req.common_name!r} failed: {e}") from e


def sign(req: CertificateRequest, serial: int, key, issuer_key, issuer_cert: x509.Certificate) -> x509.Certificate:
    try:
        b = _builder(req, serial, key, issuer_cert.subject, issuer_cert.public_key())
        return b.sign(private_key=issuer_key, algorithm=hashes.SHA256())
    except ValueError as e:
        raise SigningError(f"signing {req.common_name!r} failed: {e}") from e


def _cn(name: x509.Name, oid=NameOID.COMMON_NAME) -> Optional[str]:
    attrs = name.get_attributes_for_oid(oid)
    return attrs[0].value if attrs else None


def x509_meta(cert: x509.Certificate) -> X509Meta:
    def ext(cls):
        try:
            return cert.extensions.get_extension_for_class(cls).value
        except x509.ExtensionNotFound:
            return None

    ski = ext(x509.SubjectKeyIdentifier)
    aki = ext(x509.AuthorityKeyIdentifier)
    bc = ext(x509.BasicConstraints)
    san = ext(x509.SubjectAlternativeName)
    pub = cert.public_key()
    return X509Meta(
        not_before=rfc3339(cert.not_valid_before_utc),
        not_after=rfc3339(cert.not_valid_after_utc),
        serial=cert.serial_number,
        sha256=cert.fingerprint(hashes.SHA256()).hex().upper(),
        sig_alg=cert.signature_hash_algorithm.name if cert.signature_hash_algorithm else "",
        pubkey_algo="rsa" if isinstance(pub, rsa.RSAPublicKey) else type(pub).__name__,
        pubkey_bits=getattr(pub, "key_size", 0),
        skid=ski.digest.hex() if ski else None,
        akid=aki.key_identifier.hex() if aki and aki.key_identifier else None,
        issuer_cn=_cn(cert.issuer),
        subject_cn=_cn(cert.subject),
        subject_o=_cn(cert.subject, NameOID.ORGANIZATION_NAME),
        is_ca=bool(bc and bc.ca),
        san=[str(n.value) for n in san] if san else [],
    )
