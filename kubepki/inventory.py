# inventory.py
# The store is its own index: list issued certificates by scanning each
# authority's certs/ directory and matching stable links back to them.

import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List

from cryptography import x509

from .errors import BundleError
from .ir import AuthorityKind
from .signer import x509_meta
from .store import CAStore
from .utils import days_until


def _stable_links(store: CAStore) -> Dict[str, List[str]]:
    """Map resolved certificate path -> stable link names (relative to the root, no extension)."""
    root = store.layout.root
    links: Dict[str, List[str]] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        # authority trees hold the targets, never links
        if Path(dirpath) == root and "CA" in dirnames:
            dirnames.remove("CA")
        for fn in filenames:
            p = Path(dirpath) / fn
            if not (fn.endswith(".crt") and p.is_symlink()):
                continue
            target = os.path.realpath(p)
            rel = str(p.relative_to(root))[: -len(".crt")]
            links.setdefault(target, []).append(rel)
    return links


def _entry(path: Path, kind: AuthorityKind, links: Dict[str, List[str]]) -> Dict[str, Any]:
    try:
        cert = x509.load_pem_x509_certificate(path.read_bytes())
    except (OSError, ValueError) as e:
        raise BundleError(f"unreadable certificate {path}: {e}") from e
    meta = x509_meta(cert)
    return {
        "name": path.stem,
        "authority": kind.value,
        "subject_cn": meta.subject_cn,
        "subject_o": meta.subject_o or "",
        "serial": meta.serial,
        "not_after": meta.not_after,
        "links": sorted(links.get(os.path.realpath(path), [])),
    }


def extract_certs(store: CAStore, expiring_in: int = None) -> List[Dict[str, Any]]:
    store.require_bootstrapped()
    links = _stable_links(store)
    out = []
    for kind in AuthorityKind:
        ca_path = store.layout.authority_dir(kind) / "ca.crt"
        entry = _entry(ca_path, kind, links)
        entry["name"] = f"{kind.value}-ca"
        out.append(entry)
        certs_dir = store.layout.certs_dir(kind)
        for p in sorted(certs_dir.glob("*.crt"), key=lambda p: p.name):
            out.append(_entry(p, kind, links))
    if expiring_in is not None:
        out = [e for e in out if days_until(e["not_after"]) <= expiring_in]
    return out


def describe(store: CAStore, link: str) -> Dict[str, Any]:
    """Metadata for the bundle behind a stable link such as 'master/apiserver'."""
    store.require_bootstrapped()
    bundle = store.load_stable(link)
    base = store.layout.link(link)
    doc = asdict(x509_meta(bundle.cert))
    doc["link"] = link
    doc["target"] = os.path.relpath(os.path.realpath(base.with_name(base.name + ".crt")),
                                    os.path.realpath(store.layout.root))
    return doc
