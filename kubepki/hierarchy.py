"""
The three authorities of a cluster: root, etcd and front-proxy.

Root is self-signed; etcd and front-proxy are signed by root. Each authority
owns its bundle and its serial ledger. The hierarchy is an explicit value:
build it with bootstrap() or load() and pass it to whatever needs to sign.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from . import profiles, signer
from .bundle import Bundle
from .config import ClusterConfig
from .errors import BundleError, NotBootstrappedError
from .ir import AuthorityKind, CertificateRequest
from .ledger import SerialLedger
from .logger import get_logger
from .store import CAStore

log = get_logger(__name__)


@dataclass(frozen=True)
class Authority:
    kind: AuthorityKind
    bundle: Bundle
    ledger: SerialLedger
    directory: Path


class CAHierarchy:
    def __init__(self, root: Authority, etcd: Authority, front_proxy: Authority):
        self.root = root
        self.etcd = etcd
        self.front_proxy = front_proxy

    def __repr__(self):
        return f"CAHierarchy(root={self.root.bundle!r})"

    def authority(self, kind: AuthorityKind) -> Authority:
        return {
            AuthorityKind.ROOT: self.root,
            AuthorityKind.ETCD: self.etcd,
            AuthorityKind.FRONT_PROXY: self.front_proxy,
        }[AuthorityKind(kind)]

    def sign(self, kind: AuthorityKind, request: CertificateRequest) -> Bundle:
        """Issue a new bundle for request under the given authority.

        The serial is taken from the authority's ledger before signing and is
        spent even if signing fails.
        """
        return sign_under(self.authority(kind), request)

    @classmethod
    def bootstrap(cls, config: ClusterConfig, store: CAStore) -> "CAHierarchy":
        """Create all three authorities in an empty store."""
        store.create_authority_dirs()
        lay = store.layout

        print("Create CA: root")
        req = profiles.authority_request(AuthorityKind.ROOT, config)
        key = signer.generate_key(req.key_bits)
        root_bundle = Bundle(cert=signer.self_sign(req, key, signer.ROOT_SERIAL), key=signer.key_to_pem(key))
        store.write_authority(AuthorityKind.ROOT, root_bundle)
        store.ledger(AuthorityKind.ROOT).advance_to(root_bundle.serial)
        authorities: Dict[AuthorityKind, Authority] = {
            AuthorityKind.ROOT: Authority(AuthorityKind.ROOT, root_bundle, store.ledger(AuthorityKind.ROOT),
                                          lay.authority_dir(AuthorityKind.ROOT)),
        }

        for kind, label in ((AuthorityKind.ETCD, "etcd"), (AuthorityKind.FRONT_PROXY, "front proxy")):
            print(f"Create CA: {label}")
            bundle = sign_under(authorities[AuthorityKind.ROOT], profiles.authority_request(kind, config))
            store.write_authority(kind, bundle)
            authorities[kind] = Authority(kind, bundle, store.ledger(kind), lay.authority_dir(kind))

        for kind in AuthorityKind:
            store.point_authority(kind, lay.link(profiles.AUTHORITY_LINK[kind]))

        return cls(authorities[AuthorityKind.ROOT], authorities[AuthorityKind.ETCD],
                   authorities[AuthorityKind.FRONT_PROXY])

    @classmethod
    def load(cls, store: CAStore) -> "CAHierarchy":
        """Rebuild the hierarchy from persisted authority bundles. Ledgers are read only when signing."""
        store.require_bootstrapped()
        authorities = {}
        for kind in AuthorityKind:
            try:
                bundle = store.load_authority(kind)
            except BundleError as e:
                raise NotBootstrappedError(f"{kind.value} authority unusable: {e}") from e
            if not _is_ca(bundle):
                raise NotBootstrappedError(f"{kind.value} authority certificate is not a CA certificate")
            authorities[kind] = Authority(kind, bundle, store.ledger(kind), store.layout.authority_dir(kind))
        return cls(authorities[AuthorityKind.ROOT], authorities[AuthorityKind.ETCD],
                   authorities[AuthorityKind.FRONT_PROXY])


def _is_ca(bundle: Bundle) -> bool:
    return signer.x509_meta(bundle.cert).is_ca


def sign_under(auth: Authority, request: CertificateRequest) -> Bundle:
    serial = auth.ledger.next_serial()
    log.debug("signing %s under %s with serial %d", request.common_name, auth.kind.value, serial)
    key = signer.generate_key(request.key_bits)
    cert = signer.sign(request, serial, key, auth.bundle.private_key(), auth.bundle.cert)
    return Bundle(cert=cert, key=signer.key_to_pem(key))
