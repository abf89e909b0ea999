"""Invoice issuance, margin snapshots and commission settlement."""

__version__ = "0.1.0"
