"""hbknowledge - rule lifecycle engine for a framework knowledge server.

Detects framework anti-patterns in submitted source text and keeps the rule
catalogue current by mining deprecations out of upstream release notes.
"""

__version__ = "1.0.0"
