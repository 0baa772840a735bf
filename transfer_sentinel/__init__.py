"""Transfer Sentinel: watches token Transfer events and triggers wallet-risk analysis."""

__version__ = "0.1.0"
