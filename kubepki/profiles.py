"""
Certificate profile catalog.

Maps every Role to the concrete X.509 request it is issued with, and to the
place it is stored under the CA store. Everything here is pure: no I/O, no
key material.
"""

from typing import Callable, Dict, Iterable, Optional, Tuple, Type

from . import roles as r
from .config import ClusterConfig, Instance
from .errors import ResolutionError, UnknownRoleError
from .ir import AltName, AuthorityKind, CertificateRequest, ExtendedKeyUsage as EKU, KeyUsage as KU, Placement
from .store import RESERVED_DIRS
from .utils import dedupe

APISERVER_SAN = (
    "kubernetes",
    "kubernetes.default",
    "kubernetes.default.svc",
    "kubernetes.default.svc.cluster.local",
    "10.96.0.1",
)

LEAF_USAGE = frozenset({KU.DIGITAL_SIGNATURE, KU.KEY_ENCIPHERMENT})
CA_USAGE = frozenset({KU.DIGITAL_SIGNATURE, KU.KEY_ENCIPHERMENT, KU.KEY_CERT_SIGN, KU.CRL_SIGN})

CLIENT = frozenset({EKU.CLIENT_AUTH})
SERVER = frozenset({EKU.SERVER_AUTH})
DUAL = frozenset({EKU.SERVER_AUTH, EKU.CLIENT_AUTH})

AUTHORITY_CN = {
    AuthorityKind.ETCD: "etcd-ca",
    AuthorityKind.FRONT_PROXY: "front-proxy-ca",
}

# stable link names for the authorities' own certificates, under master/
AUTHORITY_LINK = {
    AuthorityKind.ROOT: "master/ca",
    AuthorityKind.ETCD: "master/etcd-ca",
    AuthorityKind.FRONT_PROXY: "master/front-proxy-ca",
}


def _is_octet(part: str) -> bool:
    return bool(part) and all(c in "0123456789" for c in part) and int(part) <= 255


def classify_san(value: str) -> AltName:
    """Classify a SAN string as an IPv4 literal or a DNS name.

    Exactly four dot-separated decimal octets (0-255) is an IP address and is
    normalised (leading zeros dropped); anything else is a DNS name.
    """
    parts = value.split(".")
    if len(parts) == 4 and all(_is_octet(p) for p in parts):
        return AltName("ip", ".".join(str(int(p)) for p in parts))
    return AltName("dns", value)


def alt_names(values: Iterable[str]) -> Tuple[AltName, ...]:
    return tuple(dedupe(classify_san(v) for v in values))


def _leaf(config: ClusterConfig, cn: str, authority: AuthorityKind, eku, organization: Optional[str] = None,
          san: Iterable[str] = ()) -> CertificateRequest:
    return CertificateRequest(
        common_name=cn,
        organization=organization,
        key_bits=config.key_size,
        validity_days=config.validity_days,
        key_usage=LEAF_USAGE,
        extended_key_usage=eku,
        subject_alt_names=alt_names(san),
        is_certificate_authority=False,
        signing_authority=authority,
    )


def _worker(config: ClusterConfig, ref: str) -> Instance:
    inst = config.find_worker(ref)
    if inst is None:
        raise ResolutionError(f"host {ref!r} is not a configured worker")
    return inst


def _etcd_server(config: ClusterConfig, ref: str) -> Instance:
    inst = config.find_etcd_server(ref)
    if inst is None:
        raise ResolutionError(f"host {ref!r} is not a configured etcd server")
    return inst


def _name(value: str, what: str) -> str:
    if not value or "/" in value or value in (".", ".."):
        raise ResolutionError(f"invalid {what} name: {value!r}")
    return value


def _host_dir(inst: Instance) -> str:
    name = _name(inst.display_name, "host directory")
    if name in RESERVED_DIRS:
        raise ResolutionError(f"host directory {name!r} clashes with a reserved store directory")
    return name


def _user_group(role: r.ClusterUser, config: ClusterConfig) -> Optional[str]:
    if role.group:
        return role.group
    entry = config.find_user(role.name)
    return entry.group if entry else None


_RESOLVERS: Dict[Type[r.Role], Callable[[r.Role, ClusterConfig], CertificateRequest]] = {
    r.Admin: lambda role, c: _leaf(c, "admin", AuthorityKind.ROOT, CLIENT, "system:masters"),
    r.ApiServer: lambda role, c: _leaf(c, "kubernetes", AuthorityKind.ROOT, SERVER,
                                       san=list(APISERVER_SAN) + list(c.master_san)),
    r.ApiServerKubeletClient: lambda role, c: _leaf(c, "kube-apiserver-kubelet-client", AuthorityKind.ROOT,
                                                    CLIENT, "system:masters"),
    # etcd maps the CN to its user; "root" keeps compaction rights
    r.ApiServerEtcdClient: lambda role, c: _leaf(c, "root", AuthorityKind.ETCD, CLIENT, "system:masters"),
    r.ControllerManager: lambda role, c: _leaf(c, "system:kube-controller-manager", AuthorityKind.ROOT,
                                               CLIENT, "system:masters"),
    r.Scheduler: lambda role, c: _leaf(c, "system:kube-scheduler", AuthorityKind.ROOT, CLIENT, "system:masters"),
    r.Proxy: lambda role, c: _leaf(c, "system:kube-proxy", AuthorityKind.ROOT, CLIENT, "system:node-proxier"),
    r.FrontProxyClient: lambda role, c: _leaf(c, "front-proxy-client", AuthorityKind.FRONT_PROXY, CLIENT),
    r.KubeletClient: lambda role, c: _leaf(c, f"system:node:{_worker(c, role.host).hostname}",
                                           AuthorityKind.ROOT, CLIENT, "system:nodes"),
    r.KubeletServer: lambda role, c: _host_leaf(c, _worker(c, role.host), AuthorityKind.ROOT, SERVER,
                                                "system:nodes"),
    r.EtcdPeer: lambda role, c: _host_leaf(c, _etcd_server(c, role.host), AuthorityKind.ETCD, DUAL),
    r.EtcdUser: lambda role, c: _leaf(c, _name(role.name, "etcd user"), AuthorityKind.ETCD, CLIENT),
    r.ClusterUser: lambda role, c: _leaf(c, _name(role.name, "user"), AuthorityKind.ROOT, CLIENT,
                                         _user_group(role, c)),
}


def _host_leaf(config, inst: Instance, authority, eku, organization=None) -> CertificateRequest:
    return _leaf(config, inst.hostname, authority, eku, organization, san=[inst.hostname] + list(inst.san))


def resolve(role: r.Role, config: ClusterConfig) -> CertificateRequest:
    """Return the certificate request for a role. Raises ResolutionError for unknown roles or hosts."""
    fn = _RESOLVERS.get(type(role))
    if fn is None:
        raise UnknownRoleError(f"no certificate profile for role {role!r}")
    return fn(role, config)


def locate(role: r.Role, config: ClusterConfig) -> Placement:
    """Versioned file stem and stable link path (relative to the store root) for a role."""
    if type(role) not in _RESOLVERS:
        raise UnknownRoleError(f"no certificate profile for role {role!r}")
    if isinstance(role, r.KubeletClient):
        host = _host_dir(_worker(config, role.host))
        return Placement(f"kubelet-client-{host}", f"{host}/node")
    if isinstance(role, r.KubeletServer):
        host = _host_dir(_worker(config, role.host))
        return Placement(f"kubelet-server-{host}", f"{host}/kubelet")
    if isinstance(role, r.EtcdPeer):
        host = _host_dir(_etcd_server(config, role.host))
        return Placement(f"etcd-peer-{host}", f"{host}/etcd")
    if isinstance(role, r.EtcdUser):
        name = _name(role.name, "etcd user")
        return Placement(f"etcd-user-{name}", f"etcd-users/{name}")
    if isinstance(role, r.ClusterUser):
        name = _name(role.name, "user")
        return Placement(f"user-{name}", f"users/{name}")
    stem = {
        r.ControllerManager: "kube-controller-manager",
        r.Scheduler: "kube-scheduler",
        r.Proxy: "kube-proxy",
    }.get(type(role), role.kind)
    return Placement(stem, f"master/{stem}")


def authority_request(kind: AuthorityKind, config: ClusterConfig) -> CertificateRequest:
    """Request for one of the three authorities. Root is self-signed, the others are signed by root."""
    ca = config.ca
    if kind is AuthorityKind.ROOT:
        return CertificateRequest(
            common_name=config.cluster_name,
            country=ca.country,
            organization=ca.organization,
            organization_unit=ca.organization_unit,
            locality=ca.locality,
            state=ca.state_or_province_name,
            key_bits=ca.key_size,
            validity_days=ca.validity_days,
            key_usage=CA_USAGE,
            is_certificate_authority=True,
            signing_authority=None,
        )
    return CertificateRequest(
        common_name=AUTHORITY_CN[kind],
        key_bits=ca.key_size,
        validity_days=ca.validity_days,
        key_usage=CA_USAGE,
        is_certificate_authority=True,
        signing_authority=AuthorityKind.ROOT,
    )
