"""
On-disk certificate store.

Layout under the output directory::

    CA/<kind>/ca.crt, ca.key        authority bundle (kind: root, etcd, front-proxy)
    CA/<kind>/serial                serial ledger
    CA/<kind>/certs/<stem>-<n>.crt  issued certificates
    CA/<kind>/keys/<stem>-<n>.key   issued keys
    master/<name>.crt|.key          control-plane stable links
    <host>/<name>.crt|.key          per-host stable links
    users/, etcd-users/             identity stable links

Stable links are relative symlinks, so the whole tree can be moved.
"""

import os, tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from .bundle import Bundle
from .errors import AlreadyBootstrappedError, BundleError, NotASymlinkError, NotBootstrappedError, PKIError
from .ir import AuthorityKind
from .ledger import SerialLedger
from .logger import get_logger

log = get_logger(__name__)

KEY_MODE = 0o600
CERT_MODE = 0o644

# top-level directories the store owns; host directories must not reuse them
RESERVED_DIRS = frozenset({"CA", "master", "users", "etcd-users"})


@dataclass(frozen=True)
class StoreLayout:
    root: Path

    @property
    def ca_dir(self) -> Path:
        return self.root / "CA"

    def authority_dir(self, kind: AuthorityKind) -> Path:
        return self.ca_dir / AuthorityKind(kind).value

    def certs_dir(self, kind: AuthorityKind) -> Path:
        return self.authority_dir(kind) / "certs"

    def keys_dir(self, kind: AuthorityKind) -> Path:
        return self.authority_dir(kind) / "keys"

    def ledger_path(self, kind: AuthorityKind) -> Path:
        return self.authority_dir(kind) / "serial"

    @property
    def master_dir(self) -> Path:
        return self.root / "master"

    @property
    def users_dir(self) -> Path:
        return self.root / "users"

    @property
    def etcd_users_dir(self) -> Path:
        return self.root / "etcd-users"

    def host_dir(self, name: str) -> Path:
        return self.root / name

    def link(self, rel: str) -> Path:
        """Stable-link base path (no extension) for a path relative to the root."""
        return self.root / rel


def layout(root_dir) -> StoreLayout:
    return StoreLayout(Path(root_dir))


def _with_suffix(base: Path, ext: str) -> Path:
    return base.with_name(base.name + ext)


def _atomic_write(path: Path, data: bytes, mode: int) -> None:
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}-", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise


def _exclusive_write(path: Path, data: bytes, mode: int) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except BaseException:
        path.unlink()
        raise


def _write_pair(crt: Path, crt_data: bytes, key: Path, key_data: bytes, exclusive: bool = False) -> None:
    """Write a cert/key pair; if the key cannot be written the cert is removed again."""
    write = _exclusive_write if exclusive else _atomic_write
    write(crt, crt_data, CERT_MODE)
    try:
        write(key, key_data, KEY_MODE)
    except BaseException:
        crt.unlink()
        raise


def _replace_symlink(target: Path, link: Path) -> None:
    rel = os.path.relpath(os.path.abspath(target), os.path.abspath(link.parent))
    try:
        os.symlink(rel, link)
        return
    except FileExistsError:
        if not link.is_symlink():
            raise NotASymlinkError(f"{link} exists and is not a symlink; refusing to replace it")
    link.unlink()
    os.symlink(rel, link)


class CAStore:
    """The certificate store rooted at one output directory."""

    def __init__(self, root_dir, overwrite: bool = False):
        self.layout = layout(root_dir)
        self.overwrite = overwrite

    def __repr__(self):
        return f"CAStore({str(self.layout.root)!r})"

    def ledger(self, kind: AuthorityKind) -> SerialLedger:
        return SerialLedger(self.layout.ledger_path(kind))

    # ---- lifecycle ----

    def is_bootstrapped(self) -> bool:
        return self.layout.ca_dir.exists()

    def require_bootstrapped(self) -> None:
        if not self.is_bootstrapped():
            raise NotBootstrappedError(f"no certificate authority in {self.layout.root}; run init-ca first")

    def create_authority_dirs(self) -> None:
        """Create CA/ and the per-authority tree with fresh ledgers. Refuses an existing CA/."""
        lay = self.layout
        lay.root.mkdir(parents=True, exist_ok=True)
        try:
            lay.ca_dir.mkdir()
        except FileExistsError as e:
            raise AlreadyBootstrappedError(f"{lay.ca_dir} already exists; refusing to bootstrap over it") from e
        for kind in AuthorityKind:
            lay.certs_dir(kind).mkdir(parents=True)
            lay.keys_dir(kind).mkdir(parents=True)
            self.ledger(kind).bootstrap()
        for d in (lay.master_dir, lay.users_dir, lay.etcd_users_dir):
            d.mkdir(exist_ok=True)

    # ---- authorities ----

    def write_authority(self, kind: AuthorityKind, bundle: Bundle) -> None:
        d = self.layout.authority_dir(kind)
        try:
            _write_pair(d / "ca.crt", bundle.to_pem(), d / "ca.key", bundle.key_pem(), exclusive=True)
        except FileExistsError as e:
            raise AlreadyBootstrappedError(f"authority bundle already present: {e.filename}") from e

    def load_authority(self, kind: AuthorityKind) -> Bundle:
        self.require_bootstrapped()
        return Bundle.load(self.layout.authority_dir(kind), "ca")

    def point_authority(self, kind: AuthorityKind, destination: Path) -> None:
        d = self.layout.authority_dir(kind)
        self._point_pair(d / "ca.crt", d / "ca.key", Path(destination))

    # ---- issued certificates ----

    def versioned_paths(self, kind: AuthorityKind, versioned_name: str) -> Tuple[Path, Path]:
        return (self.layout.certs_dir(kind) / f"{versioned_name}.crt",
                self.layout.keys_dir(kind) / f"{versioned_name}.key")

    def commit(self, bundle: Bundle, kind: AuthorityKind, stable_name: str,
               overwrite: Optional[bool] = None) -> Optional[str]:
        """Persist an issued bundle as <stable_name>-<serial> under the authority.

        Returns the versioned name, or None when a target exists and overwrite
        is off (nothing is written then). The authority's ledger is advanced to
        the bundle's serial after both files are in place.
        """
        overwrite = self.overwrite if overwrite is None else overwrite
        versioned = f"{stable_name}-{bundle.serial}"
        crt, key = self.versioned_paths(kind, versioned)
        existing = [p for p in (crt, key) if os.path.lexists(p)]
        if existing and not overwrite:
            for p in existing:
                log.warning("File exists: %s (not overwriting)", p)
            return None
        _write_pair(crt, bundle.to_pem(), key, bundle.key_pem())
        # LedgerError propagates: files on disk ahead of the ledger is fatal
        self.ledger(kind).advance_to(bundle.serial)
        return versioned

    def point_stable(self, authority_dir, versioned_name: str, destination) -> None:
        """(Re)point <destination>.crt/.key at a versioned pair under authority_dir."""
        authority_dir = Path(authority_dir)
        self._point_pair(authority_dir / "certs" / f"{versioned_name}.crt",
                         authority_dir / "keys" / f"{versioned_name}.key",
                         Path(destination))

    def _point_pair(self, crt_target: Path, key_target: Path, destination: Path) -> None:
        for t in (crt_target, key_target):
            if not t.is_file():
                raise BundleError(f"cannot link {destination} to missing file {t}")
        links = [(crt_target, _with_suffix(destination, ".crt")), (key_target, _with_suffix(destination, ".key"))]
        for _, link in links:
            if os.path.lexists(link) and not link.is_symlink():
                raise NotASymlinkError(f"{link} exists and is not a symlink; refusing to replace it")
        destination.parent.mkdir(parents=True, exist_ok=True)
        for target, link in links:
            _replace_symlink(target, link)

    def stable_exists(self, rel: str) -> bool:
        """True if either half of the stable pair resolves. Dangling links count as absent."""
        base = self.layout.link(rel)
        found = False
        for ext in (".crt", ".key"):
            p = _with_suffix(base, ext)
            if os.path.exists(p):
                found = True
            elif os.path.lexists(p):
                log.warning("%s is a dangling link; it will be replaced", p)
        return found

    def load_stable(self, rel: str) -> Bundle:
        base = self.layout.link(rel)
        return Bundle.load(base.parent, base.name)

    # ---- plain files (service-account keys, kubeconfigs) ----

    def write_file(self, rel: str, data: bytes, mode: int = CERT_MODE, overwrite: Optional[bool] = None) -> bool:
        overwrite = self.overwrite if overwrite is None else overwrite
        path = self.layout.root / rel
        if os.path.lexists(path):
            if path.is_symlink() or not path.is_file():
                raise PKIError(f"{path} exists and is not a regular file")
            if not overwrite:
                log.warning("File exists: %s (not overwriting)", path)
                return False
        path.parent.mkdir(parents=True, exist_ok=True)
        _atomic_write(path, data, mode)
        return True
