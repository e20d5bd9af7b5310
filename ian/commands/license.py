"""
ian license - Inspect, install or remove the license.
"""

import json
from pathlib import Path

from ian.lib.license import LicenseError
from ian.workflow.engine import Runtime

EXPIRY_WARNING_DAYS = 30


async def cmd_license_status(args, runtime: Runtime) -> int:
    result = await runtime.license.validate()
    if not result.is_valid:
        print(f"License: invalid - {result.error_message}")
        return 1

    print(f"License:    {result.license_type}")
    print(f"Customer:   {result.customer_id}")
    print(f"Expires in: {result.days_remaining} day(s)")
    print(f"Features:   {', '.join(result.features) or 'none'}")
    if result.max_versions is not None:
        print(f"Versions:   up to {result.max_versions} per job")
    if result.days_remaining is not None and result.days_remaining <= EXPIRY_WARNING_DAYS:
        print()
        print("WARNING: License expires soon. Please renew.")
    return 0


async def cmd_license_install(args, runtime: Runtime) -> int:
    path = Path(args.file).expanduser()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"ERROR: Could not read license file: {e}")
        return 2

    try:
        result = await runtime.license.install(data)
    except LicenseError as e:
        print(f"ERROR: {e}")
        return 1

    print(f"Installed {result.license_type} license ({result.days_remaining} day(s) remaining)")
    return 0


async def cmd_license_remove(args, runtime: Runtime) -> int:
    await runtime.license.remove()
    print("License removed")
    return 0
