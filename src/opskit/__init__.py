"""opskit - operational automation commands for Azure and local hosts.

Philosophy:
- Ruthless simplicity
- Brick architecture (each command group is self-contained)
- Security by design (no credentials in code or logs)
- Fail fast with helpful guidance

Each command group (lb, kusto, tag, storage, env, watch, batch, sf, util)
is an independent script: nothing is shared between invocations.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
