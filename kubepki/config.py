# config.py
# TOML cluster description -> validated dataclasses consumed by the CA engine.

import json, tomllib, importlib.resources as pkg
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator

from .errors import ConfigError
from .store import RESERVED_DIRS

DEFAULT_KEY_SIZE = 2048
DEFAULT_VALIDITY_DAYS = 365
DEFAULT_CA_KEY_SIZE = 4096
DEFAULT_CA_VALIDITY_DAYS = 3650
DEFAULT_OUT_DIR = "certs"

@dataclass(frozen=True)
class Instance:
    hostname: str
    san: List[str] = field(default_factory=list)
    filename: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.filename or self.hostname

@dataclass(frozen=True)
class CaSettings:
    country: Optional[str] = None
    organization: Optional[str] = None
    organization_unit: Optional[str] = None
    locality: Optional[str] = None
    state_or_province_name: Optional[str] = None
    validity_days: int = DEFAULT_CA_VALIDITY_DAYS
    key_size: int = DEFAULT_CA_KEY_SIZE

@dataclass(frozen=True)
class UserSpec:
    name: str
    group: Optional[str] = None

@dataclass(frozen=True)
class ClusterConfig:
    cluster_name: str
    validity_days: int = DEFAULT_VALIDITY_DAYS
    key_size: int = DEFAULT_KEY_SIZE
    ca: CaSettings = field(default_factory=CaSettings)
    master_san: List[str] = field(default_factory=list)
    worker: List[Instance] = field(default_factory=list)
    etcd_server: List[Instance] = field(default_factory=list)
    users: List[UserSpec] = field(default_factory=list)
    etcd_users: List[str] = field(default_factory=list)
    apiserver_address: Optional[str] = None
    out_dir: str = DEFAULT_OUT_DIR
    overwrite: bool = False

    def find_worker(self, ref: str) -> Optional[Instance]:
        return _find_instance(self.worker, ref)

    def find_etcd_server(self, ref: str) -> Optional[Instance]:
        return _find_instance(self.etcd_server, ref)

    def find_user(self, name: str) -> Optional[UserSpec]:
        for u in self.users:
            if u.name == name:
                return u
        return None

def _find_instance(instances: List[Instance], ref: str) -> Optional[Instance]:
    # display name first: two instances may share a hostname but never a directory
    for i in instances:
        if i.display_name == ref:
            return i
    for i in instances:
        if i.hostname == ref:
            return i
    return None

def _schema() -> dict:
    with pkg.files("kubepki").joinpath("schemas/config.schema.json").open("r", encoding="utf-8") as f:
        return json.load(f)

def validate_doc(doc: Dict[str, Any]) -> None:
    validator = Draft202012Validator(_schema())
    errors = sorted(validator.iter_errors(doc), key=lambda e: list(e.absolute_path))
    if errors:
        lines = []
        for e in errors:
            where = ".".join(str(p) for p in e.absolute_path) or "<root>"
            lines.append(f"{where}: {e.message}")
        raise ConfigError("invalid configuration:\n  " + "\n  ".join(lines))

def _instances(items) -> List[Instance]:
    return [Instance(hostname=i["hostname"], san=list(i.get("san", [])), filename=i.get("filename"))
            for i in items or []]

def from_doc(doc: Dict[str, Any]) -> ClusterConfig:
    validate_doc(doc)
    ca = doc.get("ca", {}) or {}
    cfg = ClusterConfig(
        cluster_name=doc["cluster_name"],
        validity_days=doc.get("validity_days", DEFAULT_VALIDITY_DAYS),
        key_size=doc.get("key_size", DEFAULT_KEY_SIZE),
        ca=CaSettings(
            country=ca.get("country"),
            organization=ca.get("organization"),
            organization_unit=ca.get("organization_unit"),
            locality=ca.get("locality"),
            state_or_province_name=ca.get("state_or_province_name"),
            validity_days=ca.get("validity_days", DEFAULT_CA_VALIDITY_DAYS),
            key_size=ca.get("key_size", DEFAULT_CA_KEY_SIZE),
        ),
        master_san=list(doc.get("master_san", [])),
        worker=_instances(doc.get("worker")),
        etcd_server=_instances(doc.get("etcd_server")),
        users=[UserSpec(name=u["name"], group=u.get("group")) for u in doc.get("user", []) or []],
        etcd_users=list(doc.get("etcd_users", [])),
        apiserver_address=doc.get("apiserver_address"),
        out_dir=doc.get("out_dir", DEFAULT_OUT_DIR),
        overwrite=doc.get("overwrite", False),
    )
    _check_unique("worker", [i.display_name for i in cfg.worker])
    _check_unique("etcd_server", [i.display_name for i in cfg.etcd_server])
    _check_unique("user", [u.name for u in cfg.users])
    _check_unique("etcd_users", cfg.etcd_users)
    _check_host_dirs("worker", cfg.worker)
    _check_host_dirs("etcd_server", cfg.etcd_server)
    return cfg

def _check_unique(section: str, names: List[str]) -> None:
    dup = sorted({n for n in names if names.count(n) > 1})
    if dup:
        raise ConfigError(f"{section}: duplicate names {', '.join(dup)}")

def _check_host_dirs(section: str, instances: List[Instance]) -> None:
    # each host gets a directory next to CA/, master/, users/ and etcd-users/
    clash = sorted({i.display_name for i in instances if i.display_name in RESERVED_DIRS})
    if clash:
        raise ConfigError(f"{section}: {', '.join(clash)} collides with a reserved store directory")

def load_config(path: str, **overrides) -> ClusterConfig:
    """Read a TOML config file. Keyword overrides whose value is None are ignored."""
    try:
        with open(path, "rb") as f:
            doc = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"config file not found: {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: {e}") from e
    cfg = from_doc(doc)
    return with_overrides(cfg, **overrides)

def with_overrides(cfg: ClusterConfig, **overrides) -> ClusterConfig:
    changes = {k: v for k, v in overrides.items() if v is not None}
    return replace(cfg, **changes) if changes else cfg
