# roles.py
# Logical certificate roles. A closed set of frozen dataclasses; profiles.resolve
# maps each type to its X.509 request.

from dataclasses import dataclass
from typing import Optional

from .errors import ResolutionError, UnknownRoleError


@dataclass(frozen=True)
class Role:
    kind = ""


@dataclass(frozen=True)
class Admin(Role):
    kind = "admin"


@dataclass(frozen=True)
class ApiServer(Role):
    kind = "apiserver"


@dataclass(frozen=True)
class ApiServerKubeletClient(Role):
    kind = "apiserver-kubelet-client"


@dataclass(frozen=True)
class ApiServerEtcdClient(Role):
    kind = "apiserver-etcd-client"


@dataclass(frozen=True)
class ControllerManager(Role):
    kind = "controller-manager"


@dataclass(frozen=True)
class Scheduler(Role):
    kind = "scheduler"


@dataclass(frozen=True)
class Proxy(Role):
    kind = "proxy"


@dataclass(frozen=True)
class FrontProxyClient(Role):
    kind = "front-proxy-client"


@dataclass(frozen=True)
class KubeletClient(Role):
    host: str
    kind = "kubelet-client"


@dataclass(frozen=True)
class KubeletServer(Role):
    host: str
    kind = "kubelet-server"


@dataclass(frozen=True)
class EtcdPeer(Role):
    host: str
    kind = "etcd-peer"


@dataclass(frozen=True)
class EtcdUser(Role):
    name: str
    kind = "etcd-user"


@dataclass(frozen=True)
class ClusterUser(Role):
    name: str
    group: Optional[str] = None
    kind = "user"


CONTROL_PLANE_ROLES = (
    Admin(),
    ApiServer(),
    ApiServerKubeletClient(),
    ApiServerEtcdClient(),
    ControllerManager(),
    Scheduler(),
    Proxy(),
    FrontProxyClient(),
)

HOST_ROLES = {cls.kind: cls for cls in (KubeletClient, KubeletServer, EtcdPeer)}
NAMED_ROLES = {cls.kind: cls for cls in (EtcdUser, ClusterUser)}
KINDS = [r.kind for r in CONTROL_PLANE_ROLES] + list(HOST_ROLES) + list(NAMED_ROLES)


def parse_role(kind: str, host: Optional[str] = None, name: Optional[str] = None,
               group: Optional[str] = None) -> Role:
    """Validate a CLI certificate kind (plus its host/user arguments) into a Role."""
    for r in CONTROL_PLANE_ROLES:
        if r.kind == kind:
            return r
    if kind in HOST_ROLES:
        if not host:
            raise ResolutionError(f"certificate kind {kind!r} requires --host")
        return HOST_ROLES[kind](host=host)
    if kind == ClusterUser.kind:
        if not name:
            raise ResolutionError("certificate kind 'user' requires --name")
        return ClusterUser(name=name, group=group)
    if kind == EtcdUser.kind:
        if not name:
            raise ResolutionError("certificate kind 'etcd-user' requires --name")
        return EtcdUser(name=name)
    raise UnknownRoleError(f"no such certificate kind: {kind!r} (expected one of: {', '.join(KINDS)})")
