from .config import ClusterConfig
from .hierarchy import CAHierarchy
from .issuance import issue_all
from .render import fmt_table, output
from .signer import x509_meta
from .store import CAStore

def _authorities_doc(h: CAHierarchy):
    doc = []
    for a in (h.root, h.etcd, h.front_proxy):
        m = x509_meta(a.bundle.cert)
        doc.append({
            "authority": a.kind.value,
            "subject_cn": m.subject_cn,
            "issuer_cn": m.issuer_cn,
            "serial": m.serial,
            "not_after": m.not_after,
            "sha256": m.sha256,
        })
    return doc

def ca_init(config: ClusterConfig, out: str) -> CAHierarchy:
    store = CAStore(config.out_dir, overwrite=config.overwrite)
    h = CAHierarchy.bootstrap(config, store)
    doc = _authorities_doc(h)
    if out == "table":
        rows = [["AUTHORITY","SUBJECT_CN","ISSUER_CN","SERIAL","NOT_AFTER"]]
        for d in doc:
            rows.append([d["authority"], d["subject_cn"], d["issuer_cn"], d["serial"], d["not_after"]])
        print(fmt_table(rows))
    else:
        output({"result": "created", "dir": str(store.layout.root), "authorities": doc}, out)
    return h

def ca_new(config: ClusterConfig, out: str):
    store = CAStore(config.out_dir, overwrite=config.overwrite)
    h = CAHierarchy.bootstrap(config, store)
    issued = issue_all(config, h, store)
    if out == "table":
        rows = [["LINK","AUTHORITY","FILE"]]
        for i in issued:
            rows.append([i.link, i.authority.value, i.versioned_name])
        print(fmt_table(rows))
    else:
        output({
            "result": "created",
            "dir": str(store.layout.root),
            "authorities": _authorities_doc(h),
            "certs": [{"link": i.link, "authority": i.authority.value, "file": i.versioned_name} for i in issued],
        }, out)
    return issued
