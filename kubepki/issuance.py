"""
Issuance of every certificate a cluster needs.

issue() handles one role end to end: profile lookup, signing under the right
authority, commit to the store and stable link update. issue_all() runs it
for the control plane, every configured host and every configured user. Any
exception aborts the run; a role whose stable link already exists is skipped
with a warning unless overwrite is on.
"""

from dataclasses import dataclass
from typing import List, Optional

from . import profiles, roles as r, signer
from .bundle import Bundle
from .config import ClusterConfig
from .hierarchy import CAHierarchy
from .ir import AuthorityKind
from .kubeconfig import build_kubeconfig, render_kubeconfig
from .logger import get_logger
from .store import KEY_MODE, CAStore

log = get_logger(__name__)

# roles that authenticate to the API server and get a kubeconfig when an address is configured
KUBECONFIG_ROLES = (r.Admin, r.ControllerManager, r.Scheduler, r.Proxy, r.KubeletClient, r.ClusterUser)

SA_KEY = "master/sa.key"
SA_PUB = "master/sa.pub"


@dataclass(frozen=True)
class Issued:
    role: r.Role
    authority: AuthorityKind
    versioned_name: str
    link: str
    bundle: Bundle


def planned_roles(config: ClusterConfig) -> List[r.Role]:
    out: List[r.Role] = list(r.CONTROL_PLANE_ROLES)
    for inst in config.worker:
        out.append(r.KubeletClient(host=inst.display_name))
        out.append(r.KubeletServer(host=inst.display_name))
    for inst in config.etcd_server:
        out.append(r.EtcdPeer(host=inst.display_name))
    for u in config.users:
        out.append(r.ClusterUser(name=u.name, group=u.group))
    for name in config.etcd_users:
        out.append(r.EtcdUser(name=name))
    return out


def issue(role: r.Role, config: ClusterConfig, hierarchy: CAHierarchy, store: CAStore,
          overwrite: Optional[bool] = None) -> Optional[Issued]:
    overwrite = store.overwrite if overwrite is None else overwrite
    request = profiles.resolve(role, config)
    place = profiles.locate(role, config)

    if store.stable_exists(place.link) and not overwrite:
        log.warning("%s already exists; skipping (use --overwrite to re-issue)", store.layout.link(place.link))
        return None

    print(f"Creating cert: {place.link} (CN={request.common_name})")
    auth = hierarchy.authority(request.signing_authority)
    bundle = hierarchy.sign(auth.kind, request)
    versioned = store.commit(bundle, auth.kind, place.stem, overwrite)
    if versioned is None:
        return None
    store.point_stable(auth.directory, versioned, store.layout.link(place.link))
    issued = Issued(role, auth.kind, versioned, place.link, bundle)

    if config.apiserver_address and isinstance(role, KUBECONFIG_ROLES):
        write_kubeconfig(issued, request.common_name, config, hierarchy, store, overwrite)
    return issued


def write_kubeconfig(issued: Issued, username: str, config: ClusterConfig, hierarchy: CAHierarchy,
                     store: CAStore, overwrite: Optional[bool] = None) -> bool:
    doc = build_kubeconfig(config.apiserver_address, config.cluster_name, username,
                           issued.bundle, hierarchy.root.bundle)
    return store.write_file(f"{issued.link}.kubeconfig", render_kubeconfig(doc), mode=KEY_MODE,
                            overwrite=overwrite)


def write_service_account_key(config: ClusterConfig, store: CAStore, overwrite: Optional[bool] = None) -> bool:
    """Key pair the API server signs service-account tokens with. Kept as a pair like any bundle."""
    overwrite = store.overwrite if overwrite is None else overwrite
    if (store.layout.root / SA_KEY).exists() and not overwrite:
        log.warning("%s already exists; skipping", store.layout.root / SA_KEY)
        return False
    print("Creating key pair: service account")
    key = signer.generate_key(config.key_size)
    store.write_file(SA_KEY, signer.key_to_pem(key), mode=KEY_MODE, overwrite=True)
    store.write_file(SA_PUB, signer.public_key_pem(key), overwrite=True)
    return True


def issue_all(config: ClusterConfig, hierarchy: CAHierarchy, store: CAStore) -> List[Issued]:
    # resolve everything up front so a bad host or user reference fails before any signing
    planned = planned_roles(config)
    for role in planned:
        profiles.resolve(role, config)
        profiles.locate(role, config)

    issued = []
    for role in planned:
        i = issue(role, config, hierarchy, store)
        if i is not None:
            issued.append(i)
    write_service_account_key(config, store)
    return issued
