# errors.py
# Exception types raised by the CA engine. Everything fatal derives from PKIError
# so the CLI can report it and exit non-zero.


class PKIError(Exception):
    pass


class ConfigError(PKIError):
    pass


class ResolutionError(PKIError):
    """A role or host/user reference could not be turned into a request."""


class UnknownRoleError(ResolutionError):
    pass


class LedgerError(PKIError):
    """Serial ledger missing, corrupt or not writable."""


class AlreadyBootstrappedError(PKIError):
    pass


class NotBootstrappedError(PKIError):
    pass


class NotASymlinkError(PKIError):
    pass


class BundleError(PKIError):
    pass


class SigningError(PKIError):
    pass
