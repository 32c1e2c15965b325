# cli.py
# Argument parser and entrypoints wired to ops modules.

import argparse, logging, sys

from . import __version__
from .ca_ops import ca_init, ca_new
from .cert_ops import cert_issue, cert_list, cert_show
from .config import load_config
from .errors import PKIError
from .logger import get_logger
from .roles import KINDS, parse_role

log = get_logger("kubepki.cli")

def build_parser():
    p = argparse.ArgumentParser(
        prog="kubepki",
        description="File-backed certificate authority for Kubernetes clusters"
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-c", "--config", default="config.toml", help="Cluster config file (default: config.toml)")
    p.add_argument("-d", "--dir", dest="out_dir", default=None, help="Output directory (overrides config out_dir)")
    p.add_argument("--overwrite", action="store_true", default=None,
                   help="Re-issue certificates whose files already exist")
    p.add_argument("--output", choices=["table","json","yaml"], default="table", help="Output format")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_new = sub.add_parser("new", help="Create the CA hierarchy and issue every certificate")
    p_new.add_argument("--cluster-name", default=None, help="Override cluster_name from the config")
    p_new.set_defaults(func=cmd_new)

    p_init = sub.add_parser("init-ca", help="Create the CA hierarchy only")
    p_init.add_argument("--cluster-name", default=None, help="Override cluster_name from the config")
    p_init.set_defaults(func=cmd_init_ca)

    p_gen = sub.add_parser("gen-cert", help="Issue one certificate from an existing CA")
    p_gen.add_argument("kind", choices=KINDS, metavar="KIND", help="One of: " + ", ".join(KINDS))
    p_gen.add_argument("--host", default=None, help="Configured worker/etcd host (host kinds)")
    p_gen.add_argument("--name", default=None, help="User name (user, etcd-user)")
    p_gen.add_argument("--group", default=None, help="Group (organization) for a cluster user")
    p_gen.set_defaults(func=cmd_gen_cert)

    p_list = sub.add_parser("list", help="List issued certificates")
    p_list.add_argument("--expiring-in", type=int, default=None,
                        help="Show only certificates that expire in <= N days")
    p_list.set_defaults(func=cmd_list)

    p_show = sub.add_parser("show", help="Show the certificate behind a stable link, e.g. master/apiserver")
    p_show.add_argument("link")
    p_show.set_defaults(func=cmd_show)

    return p

def _config(args):
    return load_config(args.config, out_dir=args.out_dir, overwrite=args.overwrite,
                       cluster_name=getattr(args, "cluster_name", None))

def cmd_new(args):     ca_new(_config(args), args.output)
def cmd_init_ca(args): ca_init(_config(args), args.output)
def cmd_list(args):    cert_list(_config(args), args.expiring_in, args.output)
def cmd_show(args):    cert_show(_config(args), args.link, args.output)

def cmd_gen_cert(args):
    role = parse_role(args.kind, host=args.host, name=args.name, group=args.group)
    cert_issue(_config(args), role, args.output)

def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    get_logger(level=logging.DEBUG if args.verbose else logging.INFO)
    try:
        args.func(args)
    except PKIError as e:
        log.error("%s", e)
        return 1
    except OSError as e:
        log.error("%s", e)
        return 1
    return 0

if __name__ == "__main__":
    sys.exit(main())
