"""
Splinter provisioning for the Grid daemon.

Module Index
────────────

    addressing.py        Sabre/settings state addresses
    protocol.py          Transaction, batch and Sabre payload messages
    signing.py           secp256k1 keys and signatures
    sabre.py             Contract specs and provisioning transactions
    batch.py             Batch assembly
    submitter.py         Batch submission over HTTP
    events.py            Admin event decoding
    listener.py          Admin event WebSocket listener
    pipeline.py          Provisioning pipeline and worker
    app_auth_handler.py  Daemon wiring
    config.py            Configuration
    resilience.py        Reconnect backoff
    observability.py     Logging
    errors.py            Error types
"""


# Lazy imports so that importing one module does not pull in the network stack
def __getattr__(name):
    """Lazy import splinter modules on first access."""

    if name in ("Keys", "Signer", "load_keys", "read_key_from_file", "verify"):
        from gridd.splinter import signing
        return getattr(signing, name)

    if name in ("ContractSpec", "TransactionBuilder", "default_contract_specs",
                "PIKE_FAMILY_NAME", "PRODUCT_FAMILY_NAME"):
        from gridd.splinter import sabre
        return getattr(sabre, name)

    if name in ("BatchAssembler",):
        from gridd.splinter import batch
        return getattr(batch, name)

    if name in ("Submitter", "SubmissionReceipt", "batches_url"):
        from gridd.splinter import submitter
        return getattr(submitter, name)

    if name in ("AdminEvent", "CircuitReady", "UnhandledEvent", "Service", "ServiceScope",
                "decode_admin_event", "find_local_service"):
        from gridd.splinter import events
        return getattr(events, name)

    if name in ("EventListener", "ListenerState"):
        from gridd.splinter import listener
        return getattr(listener, name)

    if name in ("ProvisioningPipeline", "ProvisioningWorker", "provision"):
        from gridd.splinter import pipeline
        return getattr(pipeline, name)

    if name in ("AdminEventHandler", "get_node_id", "run"):
        from gridd.splinter import app_auth_handler
        return getattr(app_auth_handler, name)

    if name in ("DaemonConfig", "ListenerConfig", "load_config"):
        from gridd.splinter import config
        return getattr(config, name)

    if name in ("GridDaemonError", "ErrorOrigin"):
        from gridd.splinter import errors
        return getattr(errors, name)

    raise AttributeError(f"module 'gridd.splinter' has no attribute '{name}'")
