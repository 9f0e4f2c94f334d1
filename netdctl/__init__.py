"""Network daemon control pieces: UID ranges, fwmarks, strict-mode rules, tethering, soft AP and the ndc client."""

__version__ = "0.1.0"