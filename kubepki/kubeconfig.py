# kubeconfig.py
# Client kubeconfig with embedded credentials for an issued certificate.

import base64
from typing import Any, Dict

import yaml

from .bundle import Bundle


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def build_kubeconfig(apiserver_address: str, cluster_name: str, username: str,
                     cert: Bundle, ca_cert: Bundle) -> Dict[str, Any]:
    server = apiserver_address if apiserver_address.startswith("https://") else f"https://{apiserver_address}"
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{
            "name": cluster_name,
            "cluster": {
                "certificate-authority-data": _b64(ca_cert.to_pem()),
                "server": server,
            },
        }],
        "contexts": [{
            "name": "default",
            "context": {"cluster": cluster_name, "user": username},
        }],
        "current-context": "default",
        "users": [{
            "name": username,
            "user": {
                "client-certificate-data": _b64(cert.to_pem()),
                "client-key-data": _b64(cert.key_pem()),
            },
        }],
    }


def render_kubeconfig(doc: Dict[str, Any]) -> bytes:
    return yaml.safe_dump(doc, sort_keys=False, default_flow_style=False).encode("utf-8")
