"""
Minimal end-to-end example that validates and compiles the bundled lead
routing plan.

Run with:

    python -m plan_compiler.examples.basic_usage
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from plan_compiler import CompilerContext, compile_plan_document, validate_plan_document
from plan_compiler.summary import get_validation_summary

PLAN_PATH = Path(__file__).with_name("lead_router.json")


async def main() -> None:
    context = CompilerContext(org_id="org_demo_0001")
    payload = PLAN_PATH.read_text(encoding="utf-8")

    result = await validate_plan_document(payload, context)
    print(get_validation_summary(result))
    if not result.valid:
        for issue in result.issues:
            print(f"  {issue.code} at {issue.path}: {issue.message}")
        return

    compiled = await compile_plan_document(payload, context)
    print(json.dumps(compiled.to_wire(), indent=2))


if __name__ == "__main__":
    asyncio.run(main())
