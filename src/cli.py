import argparse
import logging
import os
import sys
from pathlib import Path

from wg_bond import __version__
from wg_bond.errors import StateError, WgBondError
from wg_bond.ipam import ignore, unignore
from wg_bond.ipop import parse_network
from wg_bond.keys import KEY_PROVIDERS, get_key_provider
from wg_bond.render import (
    export_secrets,
    render_conf,
    render_hosts,
    render_nix,
    render_nixops,
    render_qr,
    save_qr_png,
)
from wg_bond.state import DEFAULT_STATE_PATH, load_state, save_state
from wg_bond.wireguard import (
    PeerEdit,
    add_peer,
    edit_peer,
    get_configuration,
    init_network,
    remove_peer,
    tunnel_view,
)

logger = logging.getLogger("wg_bond.cli")


def _edit_from_args(args) -> PeerEdit:
    return PeerEdit(
        endpoint=args.endpoint,
        dns=args.dns.split(",") if args.dns else None,
        masquerade=args.masquerade,
        center=args.center,
        gateway=args.gateway,
        nixops=args.nixops,
        keepalive=args.keepalive,
        template=args.template,
        use_template=args.use_template,
        use_gateway=args.use_gateway,
        segment=args.segment,
    )


def _export_network(args):
    """Network to export from, narrowed to gateway + peer with -T."""
    net = load_state(args.config)
    if args.tunnel is not None:
        net = tunnel_view(net, args.name, args.tunnel or None)
    return net


# ---------------------------------------------------
# Commande : init
# ---------------------------------------------------

def cmd_init(args):
    if args.config.exists() and not args.force:
        raise StateError(f"{args.config} already exists, use --force to overwrite it")
    net = init_network(args.name, args.network or ["10.0.0.0/24"], centralized=args.centralized)
    save_state(net, args.config)
    print(f"[+] Network '{net.name}' initialized: {', '.join(map(str, net.networks))}")
    print(f"[+] Config written to {args.config}")


# ---------------------------------------------------
# Commandes : add / edit / rm
# ---------------------------------------------------

def cmd_add(args):
    net = load_state(args.config)
    peer = add_peer(net, args.name, get_key_provider(args.keys), _edit_from_args(args))
    save_state(net, args.config)
    print(f"[+] Peer added: {peer.name} ({', '.join(map(str, peer.ips))})")


def cmd_edit(args):
    net = load_state(args.config)
    edit_peer(net, args.name, _edit_from_args(args))
    save_state(net, args.config)
    print(f"[OK] Peer edited: {args.name}")


def cmd_remove(args):
    net = load_state(args.config)
    remove_peer(net, args.name)
    save_state(net, args.config)
    print(f"[OK] Peer removed: {args.name}")


# ---------------------------------------------------
# Commande : list
# ---------------------------------------------------

def cmd_list(args):
    net = load_state(args.config)

    print(f"{'Name':>12}   {'IP':30}   {'Endpoint':15}")
    for peer in net.peers:
        ips = ", ".join(str(a) for a in peer.ips)
        if peer.is_template():
            ips += " (template)"
        print(f"{peer.name:>12}   {ips:30}   {peer.endpoint or '':15}")


# ---------------------------------------------------
# Commandes : ignore / unignore
# ---------------------------------------------------

def cmd_ignore(args):
    net = load_state(args.config)
    subnet = parse_network(args.range)
    if ignore(net, subnet):
        save_state(net, args.config)
        print(f"[OK] Ignoring {subnet}")
    else:
        print(f"[=] {subnet} is already covered by an ignored range")


def cmd_unignore(args):
    net = load_state(args.config)
    subnet = parse_network(args.range)
    unignore(net, subnet)
    save_state(net, args.config)
    print(f"[OK] {subnet} is no longer ignored")


# ---------------------------------------------------
# Exports
# ---------------------------------------------------

def cmd_conf(args):
    net = _export_network(args)
    print(render_conf(get_configuration(net, args.name, get_key_provider(args.keys))), end="")


def cmd_qr(args):
    net = _export_network(args)
    conf = render_conf(get_configuration(net, args.name, get_key_provider(args.keys)))
    if args.png:
        path = save_qr_png(conf, Path(args.png))
        print(f"[OK] QR code saved: {path}")
    else:
        print(render_qr(conf), end="")


def cmd_nix(args):
    net = _export_network(args)
    config = get_configuration(net, args.name, get_key_provider(args.keys))
    keyfile = "/secrets" if args.separate_secrets else None
    print(render_nix(config, use_keyfile=keyfile))


def cmd_nixops(args):
    net = load_state(args.config)
    print(render_nixops(net, get_key_provider(args.keys)), end="")


def cmd_hosts(args):
    net = load_state(args.config)
    print(render_hosts(net), end="")


def cmd_secrets(args):
    net = load_state(args.config)
    written = export_secrets(net, Path(args.target))
    print(f"[OK] {len(written)} secret(s) written to {args.target}")


# ---------------------------------------------------
# CLI / Parser
# ---------------------------------------------------

def _edit_params(p):
    p.add_argument("-e", "--endpoint", metavar="ADDRESS:PORT", help="Endpoint address of a peer")
    p.add_argument("-d", "--dns", metavar="DNS_1,DNS_2", help="DNS for a peer")
    p.add_argument("-G", "--gateway", action="store_true",
                   help="Whether this peer is a gateway. You may also need -M.")
    p.add_argument("-N", "--nixops", action="store_true",
                   help="Whether this peer is a NixOps machine, and should be added to a NixOps export.")
    p.add_argument("-C", "--center", action="store_true",
                   help="Whether this peer is to be used as connection point for other peers.")
    p.add_argument("-M", "--masquerade", metavar="INTERFACE",
                   help="Whether to enable iptables masquerade on this peer.")
    p.add_argument("-K", "--keepalive", metavar="SECONDS", type=_u16,
                   help="Keepalive interval of a host")
    p.add_argument("--template", action="store_true",
                   help="Mark this peer as a template: its flags can be reused, it is never exported.")
    p.add_argument("--use-template", metavar="PEER", help="Inherit all flags of another peer")
    p.add_argument("--use-gateway", metavar="PEER", help="Only connect through this gateway peer")
    p.add_argument("--segment", metavar="MASK", type=int, help="Segment mask of this peer")


def _export_params(p):
    p.add_argument("name", help="Name of the peer to export")
    p.add_argument("-T", "--tunnel", nargs="?", const="", metavar="GATEWAY NAME",
                   help="Whether to remove all peers from resulting config except a gateway")


def _u16(value):
    n = int(value)
    if not 0 <= n <= 65535:
        raise argparse.ArgumentTypeError("Not a number between 0 and 65535.")
    return n


def build_parser():
    parser = argparse.ArgumentParser(prog="wg-bond", description="Wireguard configuration manager")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-c", "--config", type=Path, default=DEFAULT_STATE_PATH,
                        metavar="FILE", help="Config file to use")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More logging (-vv for debug)")
    parser.add_argument("--keys", choices=sorted(KEY_PROVIDERS), default="x25519",
                        help="How to generate and derive keys")
    sub = parser.add_subparsers(dest="cmd")

    # init
    p_init = sub.add_parser("init", help="Initializes a config file")
    p_init.add_argument("name", help="Network name")
    p_init.add_argument("-n", "--network", action="append", metavar="IP/MASK",
                        help="Network for peers to use (repeatable, default 10.0.0.0/24)")
    p_init.add_argument("--centralized", action="store_true",
                        help="Peers only connect to center peers")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing config file")
    p_init.set_defaults(func=cmd_init)

    # add
    p_add = sub.add_parser("add", help="Adds a new peer to the network")
    p_add.add_argument("name", help="Name for a new peer")
    _edit_params(p_add)
    p_add.set_defaults(func=cmd_add)

    # edit
    p_edit = sub.add_parser("edit", help="Edits existing peer")
    p_edit.add_argument("name", help="Name of the peer")
    _edit_params(p_edit)
    p_edit.set_defaults(func=cmd_edit)

    # rm
    p_rm = sub.add_parser("rm", help="Deletes a peer")
    p_rm.add_argument("name")
    p_rm.set_defaults(func=cmd_remove)

    # list
    p_list = sub.add_parser("list", help="Lists all added peers")
    p_list.set_defaults(func=cmd_list)

    # ignore / unignore
    p_ign = sub.add_parser("ignore", help="Never allocate addresses from a range")
    p_ign.add_argument("range", metavar="IP/MASK")
    p_ign.set_defaults(func=cmd_ignore)

    p_unign = sub.add_parser("unignore", help="Allow allocation from a range again")
    p_unign.add_argument("range", metavar="IP/MASK")
    p_unign.set_defaults(func=cmd_unignore)

    # exports
    p_conf = sub.add_parser("conf", help="Generates wg-quick configs")
    _export_params(p_conf)
    p_conf.set_defaults(func=cmd_conf)

    p_qr = sub.add_parser("qr", help="Generates QR code with config")
    _export_params(p_qr)
    p_qr.add_argument("--png", metavar="FILE", help="Save as image instead of printing")
    p_qr.set_defaults(func=cmd_qr)

    p_nix = sub.add_parser("nix", help="Generates Nix configs")
    _export_params(p_nix)
    p_nix.add_argument("--separate-secrets", action="store_true",
                       help="Whether to use external secrets, to avoid putting secrets in the store")
    p_nix.set_defaults(func=cmd_nix)

    p_nixops = sub.add_parser("nixops", help="Generates NixOps config for all peers")
    p_nixops.set_defaults(func=cmd_nixops)

    p_hosts = sub.add_parser("hosts", help="Generates /etc/hosts for all peers")
    p_hosts.set_defaults(func=cmd_hosts)

    p_secrets = sub.add_parser("secrets", help="Generates secret files for all peers")
    p_secrets.add_argument("target", nargs="?", default="./secrets", help="Where to export the secrets")
    p_secrets.set_defaults(func=cmd_secrets)

    return parser


def _setup_logging(verbosity: int) -> None:
    env_level = os.environ.get("WG_BOND_LOG")
    level = {0: "WARNING", 1: "INFO"}.get(verbosity, "DEBUG")
    # getLevelName only returns an int for known level names
    known = env_level is not None and isinstance(logging.getLevelName(env_level.upper()), int)
    if known:
        level = env_level.upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if env_level is not None and not known:
        logger.warning(f"Ignoring unknown log level WG_BOND_LOG={env_level!r}")


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 2

    _setup_logging(args.verbose)
    logger.debug(f"Running '{args.cmd}' on {args.config}")

    try:
        args.func(args)
    except WgBondError as e:
        # nothing has been saved at this point
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
