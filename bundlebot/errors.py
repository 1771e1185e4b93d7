"""
Error taxonomy for wallet custody, scheduling and bundle execution.

Structural and lifecycle violations are raised to the caller immediately.
Per-transaction network failures are captured into execution results by the
executor and never propagate past it.
"""


class BundleBotError(Exception):
    """Base class for all engine errors."""


class InvalidWallet(BundleBotError):
    """Wallet index out of range or missing from custody."""

    def __init__(self, wallet_index: int):
        self.wallet_index = wallet_index
        super().__init__(f"Invalid wallet index: {wallet_index}")


class EmptyQueue(BundleBotError):
    """No pending instructions to bundle."""

    def __init__(self):
        super().__init__("No pending instructions to bundle")


class NoValidTransactions(BundleBotError):
    """Bundle build produced no transactions."""

    def __init__(self):
        super().__init__("Failed to create any valid transactions for the bundle")


class BundleNotFound(BundleBotError):

    def __init__(self, bundle_id: str):
        self.bundle_id = bundle_id
        super().__init__(f"Bundle not found: {bundle_id}")


class InvalidBundleState(BundleBotError):
    """Operation not allowed in the bundle's current lifecycle state."""

    def __init__(self, bundle_id: str, status: str, action: str = "modify"):
        self.bundle_id = bundle_id
        self.status = status
        super().__init__(f"Cannot {action} bundle {bundle_id}: bundle already {status}")


class InsufficientFunds(BundleBotError):
    """Master wallet cannot cover a top-up (reported, not raised, during rebalance)."""

    def __init__(self, wallet_index: int, needed_lamports: int, available_lamports: int):
        self.wallet_index = wallet_index
        self.needed_lamports = needed_lamports
        self.available_lamports = available_lamports
        super().__init__(
            f"Master wallet has insufficient funds to top up wallet {wallet_index}: "
            f"need {needed_lamports} lamports, have {available_lamports}"
        )


class NetworkFailure(BundleBotError):
    """RPC request, submission or confirmation failure."""


class PersistenceFailure(BundleBotError):
    """Wallet configuration or key file I/O failure."""


class KeyDecryptionError(BundleBotError):
    """Encrypted key material failed authentication or is malformed."""
