from __future__ import annotations

"""
MedSecure seed: provision the hospital authorization model in the policy engine.

Creates (if absent):
- project + environment
- resource types with their actions
- the seven hospital roles and their grants
- ABAC policy rules (patient self-access, Emergency nurse edit, doctor specialty approval)

Run:
  python -m medsecure.seeds.provision_policies

Notes:
- Idempotent: safe to run multiple times.
- Talks to the engine directly (or through the relay when MEDSECURE_USE_PROXY=true).
"""

import asyncio
import logging
import sys

from medsecure.core.policy_client import PolicyClient
from medsecure.errors import RemoteRejected, RemoteUnavailable
from medsecure.logger import setup_logging
from medsecure.settings import settings

log = logging.getLogger("medsecure.seed")


async def main() -> int:
    setup_logging()

    if not settings.remote_enabled:
        log.error("MEDSECURE_POLICY_API_KEY is not set and the relay is disabled")
        return 1

    client = PolicyClient.from_settings(settings)
    try:
        await client.provision_schema()
        ready = await client.probe_ready()
    except (RemoteUnavailable, RemoteRejected) as e:
        log.error("provisioning failed err=%s", e)
        return 1
    finally:
        await client.aclose()

    report = client.last_report
    if report:
        print(
            f"Provision complete: created={len(report.created)} existing={len(report.existing)} "
            f"skipped={len(report.skipped)} ready={ready}"
        )
        for item in report.skipped:
            print(f"  skipped: {item}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
