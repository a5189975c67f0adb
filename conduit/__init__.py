"""
Conduit — resilient integration lifecycle framework.

- conduit.integrations: lifecycle controller, error taxonomy, webhooks
- conduit.resilience: retry with backoff, ordered provider failover
- conduit.telephony: E.164 helpers and a multi-carrier SMS client
"""
__version__ = "0.1.0"
