"""
ST-Schema mock partner server

Mock OAuth 2.0 authorization-code server plus a SmartThings-style
partner schema endpoint (discovery, state refresh, command and
callback access grant) for protocol-conformance testing.
"""

__version__ = "1.0.0"
