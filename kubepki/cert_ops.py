from .config import ClusterConfig
from .hierarchy import CAHierarchy
from .inventory import describe, extract_certs
from .issuance import issue
from .render import fmt_table, output
from .roles import Role
from .store import CAStore

def _store(config: ClusterConfig) -> CAStore:
    return CAStore(config.out_dir, overwrite=config.overwrite)

def cert_issue(config: ClusterConfig, role: Role, out: str):
    store = _store(config)
    h = CAHierarchy.load(store)
    issued = issue(role, config, h, store)
    if issued is None:
        result = {"result": "skipped", "kind": role.kind}
    else:
        result = {
            "result": "created",
            "kind": role.kind,
            "link": issued.link,
            "authority": issued.authority.value,
            "file": issued.versioned_name,
            "serial": issued.bundle.serial,
        }
    if out == "table":
        print(fmt_table([["FIELD","VALUE"]] + [[k, str(v)] for k, v in result.items()]))
    else:
        output(result, out)
    return issued

def cert_list(config: ClusterConfig, expiring_in: int, out: str):
    certs = extract_certs(_store(config), expiring_in)
    if out == "table":
        if not certs:
            print("No certificates found.")
            return certs
        rows = [["NAME","AUTHORITY","CN","O","SERIAL","NOT_AFTER","LINKS"]]
        for c in certs:
            rows.append([c["name"], c["authority"], c["subject_cn"], c["subject_o"], c["serial"],
                         c["not_after"], ", ".join(c["links"])])
        print(fmt_table(rows))
    else:
        output(certs, out)
    return certs

def cert_show(config: ClusterConfig, link: str, out: str):
    doc = describe(_store(config), link)
    if out == "table":
        rows = [["FIELD","VALUE"]]
        for k in ("link","target","subject_cn","subject_o","issuer_cn","serial","not_before","not_after",
                  "sha256","sig_alg","pubkey_algo","pubkey_bits","is_ca"):
            rows.append([k, "" if doc.get(k) is None else str(doc[k])])
        rows.append(["san", ", ".join(doc.get("san") or [])])
        print(fmt_table(rows))
    else:
        output(doc, out)
    return doc
