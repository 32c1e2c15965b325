import pytest
from dataclasses import dataclass, replace

from kubepki import profiles
from kubepki import roles as r
from kubepki.config import Instance
from kubepki.errors import ResolutionError, UnknownRoleError
from kubepki.ir import AltName, AuthorityKind, CertificateRequest, ExtendedKeyUsage, KeyUsage
from kubepki.profiles import classify_san


@pytest.mark.parametrize("value,kind", [
    ("10.96.0.1", "ip"),
    ("0.0.0.0", "ip"),
    ("255.255.255.255", "ip"),
    ("kubernetes.default.svc.cluster.local", "dns"),
    ("999.1.1.1", "dns"),
    ("1.2.3.256", "dns"),
    ("1.2.3", "dns"),
    ("1.2.3.4.5", "dns"),
    ("1.2.3.", "dns"),
    ("+1.2.3.4", "dns"),
    ("a.b.c.d", "dns"),
    ("", "dns"),
    ("localhost", "dns"),
])
def test_classify_san(value, kind):
    assert classify_san(value).kind == kind
    assert classify_san(value) == classify_san(value)


def test_classify_san_normalises_leading_zeros():
    assert classify_san("010.001.0.1") == AltName("ip", "10.1.0.1")


def test_apiserver_sans(config):
    req = profiles.resolve(r.ApiServer(), config)
    values = [(a.kind, a.value) for a in req.subject_alt_names]
    assert values == [
        ("dns", "kubernetes"),
        ("dns", "kubernetes.default"),
        ("dns", "kubernetes.default.svc"),
        ("dns", "kubernetes.default.svc.cluster.local"),
        ("ip", "10.96.0.1"),
        ("ip", "10.0.0.10"),
        ("dns", "api.example.com"),
    ]
    assert req.extended_key_usage == {ExtendedKeyUsage.SERVER_AUTH}
    assert req.signing_authority is AuthorityKind.ROOT


@pytest.mark.parametrize("role,cn,org,authority", [
    (r.Admin(), "admin", "system:masters", AuthorityKind.ROOT),
    (r.ApiServerKubeletClient(), "kube-apiserver-kubelet-client", "system:masters", AuthorityKind.ROOT),
    (r.ApiServerEtcdClient(), "root", "system:masters", AuthorityKind.ETCD),
    (r.ControllerManager(), "system:kube-controller-manager", "system:masters", AuthorityKind.ROOT),
    (r.Scheduler(), "system:kube-scheduler", "system:masters", AuthorityKind.ROOT),
    (r.Proxy(), "system:kube-proxy", "system:node-proxier", AuthorityKind.ROOT),
    (r.FrontProxyClient(), "front-proxy-client", None, AuthorityKind.FRONT_PROXY),
    (r.KubeletClient("node1"), "system:node:node1.example.com", "system:nodes", AuthorityKind.ROOT),
    (r.EtcdUser("backup"), "backup", None, AuthorityKind.ETCD),
    (r.ClusterUser("alice"), "alice", "developers", AuthorityKind.ROOT),
    (r.ClusterUser("bob", "ops"), "bob", "ops", AuthorityKind.ROOT),
])
def test_client_profiles(config, role, cn, org, authority):
    req = profiles.resolve(role, config)
    assert req.common_name == cn
    assert req.organization == org
    assert req.signing_authority is authority
    assert req.extended_key_usage == {ExtendedKeyUsage.CLIENT_AUTH}
    assert not req.is_certificate_authority
    assert KeyUsage.KEY_CERT_SIGN not in req.key_usage
    assert req.key_bits == config.key_size
    assert req.validity_days == config.validity_days


def test_kubelet_server_and_etcd_peer(config):
    server = profiles.resolve(r.KubeletServer("node1"), config)
    assert server.common_name == "node1.example.com"
    assert [a.value for a in server.subject_alt_names] == ["node1.example.com", "10.0.0.21"]
    assert server.extended_key_usage == {ExtendedKeyUsage.SERVER_AUTH}

    peer = profiles.resolve(r.EtcdPeer("etcd1"), config)
    assert peer.signing_authority is AuthorityKind.ETCD
    assert peer.extended_key_usage == {ExtendedKeyUsage.SERVER_AUTH, ExtendedKeyUsage.CLIENT_AUTH}
    assert [(a.kind, a.value) for a in peer.subject_alt_names] == [
        ("dns", "etcd1"), ("ip", "10.0.0.31"), ("dns", "etcd1.example.com"),
    ]


def test_host_found_by_hostname_or_filename(config):
    by_file = profiles.resolve(r.KubeletClient("node1"), config)
    by_host = profiles.resolve(r.KubeletClient("node1.example.com"), config)
    assert by_file == by_host
    assert profiles.locate(r.KubeletClient("node1.example.com"), config).link == "node1/node"


def test_unknown_host_is_an_error(config):
    with pytest.raises(ResolutionError):
        profiles.resolve(r.KubeletServer("ghost"), config)
    # a worker is not an etcd server
    with pytest.raises(ResolutionError):
        profiles.resolve(r.EtcdPeer("node1"), config)
    with pytest.raises(ResolutionError):
        profiles.locate(r.EtcdPeer("node1"), config)


def test_bad_user_names(config):
    for name in ("", "a/b", ".."):
        with pytest.raises(ResolutionError):
            profiles.resolve(r.ClusterUser(name), config)


def test_unknown_role_type(config):
    @dataclass(frozen=True)
    class Mystery(r.Role):
        kind = "mystery"

    with pytest.raises(UnknownRoleError):
        profiles.resolve(Mystery(), config)
    with pytest.raises(UnknownRoleError):
        profiles.locate(Mystery(), config)


def test_placements(config):
    expected = {
        r.Admin(): ("admin", "master/admin"),
        r.ApiServer(): ("apiserver", "master/apiserver"),
        r.ApiServerKubeletClient(): ("apiserver-kubelet-client", "master/apiserver-kubelet-client"),
        r.ApiServerEtcdClient(): ("apiserver-etcd-client", "master/apiserver-etcd-client"),
        r.ControllerManager(): ("kube-controller-manager", "master/kube-controller-manager"),
        r.Scheduler(): ("kube-scheduler", "master/kube-scheduler"),
        r.Proxy(): ("kube-proxy", "master/kube-proxy"),
        r.FrontProxyClient(): ("front-proxy-client", "master/front-proxy-client"),
        r.KubeletClient("node1"): ("kubelet-client-node1", "node1/node"),
        r.KubeletServer("node1"): ("kubelet-server-node1", "node1/kubelet"),
        r.EtcdPeer("etcd1"): ("etcd-peer-etcd1", "etcd1/etcd"),
        r.EtcdUser("backup"): ("etcd-user-backup", "etcd-users/backup"),
        r.ClusterUser("alice"): ("user-alice", "users/alice"),
    }
    for role, (stem, link) in expected.items():
        place = profiles.locate(role, config)
        assert (place.stem, place.link) == (stem, link)


def test_authority_requests(config):
    root = profiles.authority_request(AuthorityKind.ROOT, config)
    assert root.common_name == "test-cluster"
    assert root.country == "PL"
    assert root.organization == "Acme"
    assert root.signing_authority is None
    assert root.is_certificate_authority
    assert KeyUsage.KEY_CERT_SIGN in root.key_usage
    assert root.key_bits == config.ca.key_size
    assert root.validity_days == config.ca.validity_days

    for kind, cn in ((AuthorityKind.ETCD, "etcd-ca"), (AuthorityKind.FRONT_PROXY, "front-proxy-ca")):
        req = profiles.authority_request(kind, config)
        assert req.common_name == cn
        assert req.signing_authority is AuthorityKind.ROOT
        assert req.is_certificate_authority


def test_request_invariants():
    with pytest.raises(ValueError):
        CertificateRequest(common_name="x", key_bits=2048, validity_days=1, is_certificate_authority=True)
    with pytest.raises(ValueError):
        CertificateRequest(common_name="x", key_bits=2048, validity_days=1, signing_authority=None)


def test_parse_role():
    assert r.parse_role("admin") == r.Admin()
    assert r.parse_role("kubelet-server", host="node1") == r.KubeletServer("node1")
    assert r.parse_role("user", name="bob", group="ops") == r.ClusterUser("bob", "ops")
    assert r.parse_role("etcd-user", name="backup") == r.EtcdUser("backup")
    with pytest.raises(ResolutionError):
        r.parse_role("etcd-peer")
    with pytest.raises(ResolutionError):
        r.parse_role("user")
    with pytest.raises(UnknownRoleError):
        r.parse_role("kubelet")


@pytest.mark.parametrize("filename", ["..", ".", "CA", "master", "users", "etcd-users"])
def test_host_directory_stays_inside_store(config, filename):
    config = replace(config, worker=[Instance(hostname="w1", filename=filename)],
                     etcd_server=[Instance(hostname="e1", filename=filename)])
    for role in (r.KubeletClient(filename), r.KubeletServer(filename), r.EtcdPeer(filename)):
        with pytest.raises(ResolutionError):
            profiles.locate(role, config)
