# src/wg_bond/errors.py
from __future__ import annotations


class WgBondError(Exception):
    """Base class for every error the CLI reports instead of crashing."""


class InvalidEndpoint(WgBondError):
    pass


class InvalidCIDR(WgBondError):
    pass


class InvalidAddress(WgBondError):
    pass


class InvalidKeyMaterial(WgBondError):
    pass


class DuplicatePeerName(WgBondError):
    def __init__(self, name: str):
        super().__init__(f"Peer with name '{name}' already exists")
        self.name = name


class PeerNotFound(WgBondError):
    def __init__(self, ref):
        if isinstance(ref, int):
            msg = f"No peer with id #{ref}"
        else:
            msg = f"No peer with name '{ref}'"
        super().__init__(msg)
        self.ref = ref


class GatewayNotFound(WgBondError):
    pass


class TemplateInUse(WgBondError):
    def __init__(self, name: str, users):
        super().__init__(f"Peer '{name}' is used as a template by: {', '.join(users)}")
        self.name = name
        self.users = list(users)


class TemplateCycle(WgBondError):
    def __init__(self):
        super().__init__("Template dependencies contain a cycle")


class CannotDeriveTemplateInterface(WgBondError):
    def __init__(self, name: str):
        super().__init__(f"Cannot generate interface for template peer '{name}'")
        self.name = name


class NoFreeAddress(WgBondError):
    def __init__(self, network):
        super().__init__(f"No more unreserved IPs left in {network}")
        self.network = network


class AssignedAddressInIgnoreRange(WgBondError):
    def __init__(self, subnet, address):
        super().__init__(
            f"Cannot ignore {subnet}: address {address} is already assigned to a peer"
        )
        self.subnet = subnet
        self.address = address


class StateError(WgBondError):
    """Persisted network file is missing or cannot be decoded."""
