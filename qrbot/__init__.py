"""qrbot — styled QR codes with logo reservation and a metered render ledger."""

__version__ = "1.0.0"
