import base64
import os
from dataclasses import replace

import pytest
import yaml
from cryptography import x509
from cryptography.x509.oid import ExtendedKeyUsageOID

from kubepki import roles as r
from kubepki.bundle import Bundle
from kubepki.config import Instance
from kubepki.errors import ResolutionError
from kubepki.hierarchy import CAHierarchy
from kubepki.ir import AuthorityKind
from kubepki.issuance import issue, issue_all, planned_roles
from kubepki.signer import x509_meta
from kubepki.store import CAStore

CONTROL_PLANE_LINKS = {
    "master/admin": AuthorityKind.ROOT,
    "master/apiserver": AuthorityKind.ROOT,
    "master/apiserver-kubelet-client": AuthorityKind.ROOT,
    "master/apiserver-etcd-client": AuthorityKind.ETCD,
    "master/kube-controller-manager": AuthorityKind.ROOT,
    "master/kube-scheduler": AuthorityKind.ROOT,
    "master/kube-proxy": AuthorityKind.ROOT,
    "master/front-proxy-client": AuthorityKind.FRONT_PROXY,
}


def _issuer_of(hierarchy, bundle):
    for kind in AuthorityKind:
        if bundle.cert.issuer == hierarchy.authority(kind).bundle.cert.subject:
            return kind
    return None


def test_end_to_end(config, store, hierarchy):
    issued = issue_all(config, hierarchy, store)
    assert len(issued) == len(planned_roles(config)) == 8 + 2 + 1 + 1 + 1

    expected = dict(CONTROL_PLANE_LINKS)
    expected.update({
        "node1/node": AuthorityKind.ROOT,
        "node1/kubelet": AuthorityKind.ROOT,
        "etcd1/etcd": AuthorityKind.ETCD,
        "users/alice": AuthorityKind.ROOT,
        "etcd-users/backup": AuthorityKind.ETCD,
    })
    for link, kind in expected.items():
        bundle = store.load_stable(link)
        assert _issuer_of(hierarchy, bundle) is kind, link
        bundle.cert.verify_directly_issued_by(hierarchy.authority(kind).bundle.cert)
        assert not x509_meta(bundle.cert).is_ca

    peer = store.load_stable("etcd1/etcd").cert
    eku = peer.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
    assert set(eku) == {ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH}

    root = store.layout.root
    assert (root / "master" / "sa.key").is_file()
    assert (root / "master" / "sa.pub").is_file()
    # no apiserver_address configured
    assert not (root / "master" / "admin.kubeconfig").exists()


def test_root_serials_are_contiguous(config, store, hierarchy):
    issue_all(config, hierarchy, store)
    serials = sorted(
        x509.load_pem_x509_certificate(p.read_bytes()).serial_number
        for p in store.layout.certs_dir(AuthorityKind.ROOT).glob("*.crt")
    )
    # 1..3 went to the root and intermediate CA certificates
    assert serials == list(range(4, 4 + len(serials)))
    assert store.ledger(AuthorityKind.ROOT).current() == serials[-1]


def test_reissue_with_overwrite(config, store, hierarchy):
    first = issue(r.ApiServer(), config, hierarchy, store)
    second = issue(r.ApiServer(), config, hierarchy, store, overwrite=True)
    assert second.bundle.serial > first.bundle.serial
    assert store.load_stable("master/apiserver").to_pem() == second.bundle.to_pem()
    # the earlier versioned pair is kept
    crt, key = store.versioned_paths(AuthorityKind.ROOT, first.versioned_name)
    assert crt.exists() and key.exists()


def test_reissue_without_overwrite_changes_nothing(config, store, hierarchy, snapshot):
    issue(r.KubeletServer("node1"), config, hierarchy, store)
    before = snapshot(store.layout.root)
    assert issue(r.KubeletServer("node1"), config, hierarchy, store, overwrite=False) is None
    assert snapshot(store.layout.root) == before


def test_unknown_host_aborts_before_signing(config, store, hierarchy):
    with pytest.raises(ResolutionError):
        issue(r.KubeletClient("ghost"), config, hierarchy, store)
    assert store.ledger(AuthorityKind.ROOT).current() == 3


def test_issue_after_reload(config, store, hierarchy):
    issue(r.Admin(), config, hierarchy, store)
    reloaded = CAHierarchy.load(CAStore(config.out_dir))
    i = issue(r.ClusterUser("bob", "ops"), config, reloaded, store)
    assert i.bundle.serial == 5
    meta = x509_meta(store.load_stable("users/bob").cert)
    assert (meta.subject_cn, meta.subject_o) == ("bob", "ops")


def test_kubeconfigs(config, store, hierarchy):
    config = replace(config, apiserver_address="10.0.0.10:6443")
    issue_all(config, hierarchy, store)
    root = store.layout.root
    for rel in ("master/admin", "master/kube-controller-manager", "master/kube-scheduler",
                "master/kube-proxy", "node1/node", "users/alice"):
        assert (root / f"{rel}.kubeconfig").is_file(), rel
    assert not (root / "master" / "apiserver.kubeconfig").exists()

    doc = yaml.safe_load((root / "node1" / "node.kubeconfig").read_text())
    assert doc["clusters"][0]["cluster"]["server"] == "https://10.0.0.10:6443"
    assert doc["users"][0]["name"] == "system:node:node1.example.com"
    node = Bundle.load(root / "node1", "node")
    assert base64.b64decode(doc["users"][0]["user"]["client-certificate-data"]) == node.to_pem()
    assert base64.b64decode(doc["users"][0]["user"]["client-key-data"]) == node.key_pem()
    ca = base64.b64decode(doc["clusters"][0]["cluster"]["certificate-authority-data"])
    assert ca == hierarchy.root.bundle.to_pem()


def test_issue_all_keeps_existing_service_account_key(config, store, hierarchy):
    issue_all(config, hierarchy, store)
    sa = (store.layout.root / "master" / "sa.key").read_bytes()
    issue_all(config, hierarchy, store)
    assert (store.layout.root / "master" / "sa.key").read_bytes() == sa


def test_host_named_dotdot_cannot_escape_store(config, store, hierarchy):
    config = replace(config, worker=[Instance(hostname="w", filename="..")])
    with pytest.raises(ResolutionError):
        issue(r.KubeletClient(".."), config, hierarchy, store)
    assert not os.path.lexists(store.layout.root.parent / "node.crt")
    assert store.ledger(AuthorityKind.ROOT).current() == 3


def test_host_named_users_does_not_shadow_user_link(config, store, hierarchy):
    config = replace(config, worker=[Instance(hostname="users")])
    with pytest.raises(ResolutionError):
        issue(r.KubeletClient("users"), config, hierarchy, store)
    issue(r.ClusterUser("node"), config, hierarchy, store)
    assert x509_meta(store.load_stable("users/node").cert).subject_cn == "node"


def test_dangling_links_from_old_store_are_replaced(config, store, hierarchy):
    base = store.layout.link("master/admin")
    for ext, target in ((".crt", "../CA/root/certs/admin-77.crt"), (".key", "../CA/root/keys/admin-77.key")):
        os.symlink(target, str(base) + ext)
    issued = issue(r.Admin(), config, hierarchy, store)
    assert issued is not None
    assert store.load_stable("master/admin").serial == issued.bundle.serial == 4
