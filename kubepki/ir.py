from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple


class AuthorityKind(str, Enum):
    ROOT = "root"
    ETCD = "etcd"
    FRONT_PROXY = "front-proxy"


class KeyUsage(str, Enum):
    DIGITAL_SIGNATURE = "digital_signature"
    CONTENT_COMMITMENT = "content_commitment"
    KEY_ENCIPHERMENT = "key_encipherment"
    DATA_ENCIPHERMENT = "data_encipherment"
    KEY_AGREEMENT = "key_agreement"
    KEY_CERT_SIGN = "key_cert_sign"
    CRL_SIGN = "crl_sign"


class ExtendedKeyUsage(str, Enum):
    SERVER_AUTH = "server_auth"
    CLIENT_AUTH = "client_auth"


@dataclass(frozen=True)
class AltName:
    kind: str    # "ip" | "dns"
    value: str


@dataclass(frozen=True)
class CertificateRequest:
    common_name: str
    key_bits: int
    validity_days: int
    organization: Optional[str] = None
    organization_unit: Optional[str] = None
    locality: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    key_usage: FrozenSet[KeyUsage] = frozenset()
    extended_key_usage: FrozenSet[ExtendedKeyUsage] = frozenset()
    subject_alt_names: Tuple[AltName, ...] = ()
    is_certificate_authority: bool = False
    # None means self-signed
    signing_authority: Optional[AuthorityKind] = None

    def __post_init__(self):
        if self.is_certificate_authority and KeyUsage.KEY_CERT_SIGN not in self.key_usage:
            raise ValueError(f"CA request {self.common_name!r} lacks key_cert_sign usage")
        if not self.is_certificate_authority and self.signing_authority is None:
            raise ValueError(f"leaf request {self.common_name!r} cannot be self-signed")


@dataclass(frozen=True)
class Placement:
    """Where a role's certificate lives: versioned file stem and stable link (relative to store root)."""
    stem: str
    link: str


@dataclass
class X509Meta:
    not_before: str
    not_after: str
    serial: int
    sha256: str
    sig_alg: str
    pubkey_algo: str
    pubkey_bits: int
    skid: Optional[str] = None
    akid: Optional[str] = None
    issuer_cn: Optional[str] = None
    subject_cn: Optional[str] = None
    subject_o: Optional[str] = None
    is_ca: bool = False
    san: List[str] = field(default_factory=list)
