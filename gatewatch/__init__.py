"""GateWatch: offline payment gateway verification and threat matching."""

__version__ = "2.0.0"
