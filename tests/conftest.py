import pytest

from kubepki import signer
from kubepki.bundle import Bundle
from kubepki.config import CaSettings, ClusterConfig, Instance, UserSpec
from kubepki.hierarchy import CAHierarchy
from kubepki.ir import CertificateRequest
from kubepki.profiles import CA_USAGE
from kubepki.store import CAStore

# small keys keep the suite fast; the schema floor is 1024 bits
TEST_BITS = 1024


@pytest.fixture
def config(tmp_path):
    return ClusterConfig(
        cluster_name="test-cluster",
        key_size=TEST_BITS,
        validity_days=30,
        ca=CaSettings(country="PL", organization="Acme", key_size=TEST_BITS, validity_days=100),
        master_san=["10.0.0.10", "api.example.com", "kubernetes"],
        worker=[Instance(hostname="node1.example.com", filename="node1", san=["10.0.0.21"])],
        etcd_server=[Instance(hostname="etcd1", san=["10.0.0.31", "etcd1.example.com"])],
        users=[UserSpec(name="alice", group="developers")],
        etcd_users=["backup"],
        out_dir=str(tmp_path / "certs"),
    )


@pytest.fixture
def store(config):
    return CAStore(config.out_dir)


@pytest.fixture
def hierarchy(config, store):
    return CAHierarchy.bootstrap(config, store)


@pytest.fixture
def make_bundle():
    """Factory for throwaway self-signed bundles with a chosen serial."""
    def _make(serial=1, cn="test"):
        req = CertificateRequest(common_name=cn, key_bits=TEST_BITS, validity_days=1,
                                 key_usage=CA_USAGE, is_certificate_authority=True)
        key = signer.generate_key(TEST_BITS)
        return Bundle(cert=signer.self_sign(req, key, serial), key=signer.key_to_pem(key))
    return _make


def read_tree(root):
    """Snapshot of every regular file (not following links) under root."""
    out = {}
    for p in sorted(root.rglob("*")):
        if p.is_file() and not p.is_symlink():
            out[str(p.relative_to(root))] = p.read_bytes()
    return out


@pytest.fixture
def snapshot():
    return read_tree
