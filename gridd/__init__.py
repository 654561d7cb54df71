"""Grid daemon v0.1.0

Provisions the Grid smart-contract families on Splinter circuits.

Architecture:
    gridd/
    ├── __init__.py      # Package entry, version
    ├── __main__.py      # Command-line interface
    ├── core.py          # Primitives: sha256/sha512 digests, YAML loading
    └── splinter/        # Admin-event listener and Sabre provisioning

When a circuit that includes this node becomes ready, the daemon builds,
signs, batches and submits the Sabre transactions that register the Pike and
Product contracts on that circuit's scabbard service.
"""

__version__ = "0.1.0"

from gridd.core import (
    load_yaml,
    sha256_hex,
    sha512_hex,
)
