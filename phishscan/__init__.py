"""PhishScan: phishing risk analysis for emails and URLs."""

__version__ = "1.0.0"
