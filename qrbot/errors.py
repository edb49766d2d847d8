"""Error taxonomy shared by the encoder, renderer and ledger."""


class QRBotError(Exception):
    """Base class for every error raised by qrbot."""


class EncodingOverflow(QRBotError, ValueError):
    """Payload does not fit a QR code at error-correction level H."""

    def __init__(self, length: int, limit: int | None = None):
        self.length = length
        self.limit = limit
        if limit is not None:
            msg = f"Payload too long ({length} chars, maximum {limit})"
        else:
            msg = f"Payload of {length} chars exceeds QR capacity at level H"
        super().__init__(msg)


class EmptyPayload(QRBotError, ValueError):
    """Nothing to encode."""

    def __init__(self):
        super().__init__("QR payload cannot be empty")


class InvalidQualityLogoCombination(QRBotError):
    """A tier's logo reservation does not fit inside its content area."""


class LogoDecodeFailure(QRBotError):
    """The supplied logo could not be decoded or rasterized."""


class InsufficientBalance(QRBotError):
    """The account has no remaining units for the requested tier."""

    def __init__(self, user_id: int, tier):
        self.user_id = user_id
        self.tier = tier
        super().__init__(f"User {user_id} has no remaining {tier.value} renders")


class DuplicateChargeId(QRBotError):
    """A payment with this charge id was already recorded."""

    def __init__(self, charge_id: str):
        self.charge_id = charge_id
        super().__init__(f"Charge {charge_id!r} already recorded")


class UnknownAccount(QRBotError, LookupError):
    """No account exists for the user id."""

    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"No account for user {user_id}")


class TransientFailure(QRBotError):
    """I/O failure the caller may retry."""


class AssetDownloadError(TransientFailure):
    """Logo download failed, timed out or exceeded the size cap."""
