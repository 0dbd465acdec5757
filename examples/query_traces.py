"""
Example: Querying X-Ray Traces

This demonstrates how to read recorded executions back from the store to
analyze pipeline runs.

Prerequisites:
At least one pipeline run must exist (python examples/competitor_selection.py)
with the same XRAY_DATABASE_URL.
"""

import asyncio
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from xray_sdk import SQLStore, load_config, supports


async def main():
    config = load_config()
    store = SQLStore(config.database_url)

    print("=" * 70)
    print("X-Ray Query Examples")
    print("=" * 70)

    try:
        # Example 1: List recent executions
        print("\n1. Recent executions:")
        print("-" * 70)
        if supports(store, "count_executions"):
            print(f"{await store.count_executions()} executions stored")

        executions = await store.list_executions(limit=5)
        if not executions:
            print("No executions found. Run 'python examples/competitor_selection.py' first.")
            return

        for execution in executions:
            status = "✓" if execution.is_completed else "…"
            duration = execution.duration_ms or 0
            print(f"{status} {execution.id} | {execution.name} | "
                  f"Duration: {duration:.0f}ms | Steps: {len(execution.steps)}")

        # Example 2: Detailed trace for the newest execution
        print("\n2. Detailed trace for the newest execution:")
        print("-" * 70)
        latest = executions[0]
        print(f"Name: {latest.name}")
        print(f"Started: {latest.started_at.isoformat()}")
        print(f"Tags: {latest.tags or []}")

        for i, step in enumerate(latest.steps, 1):
            summary = step.summary()
            print(f"\n  {i}. {step.name}")
            if summary["candidate_count"]:
                print(f"     Candidates: {summary['qualified_count']}/{summary['candidate_count']} qualified")
            if step.selection:
                print(f"     └─ selected {step.selection.id}: {step.selection.reason}")
            if step.reasoning:
                print(f"     └─ {step.reasoning}")

        # Example 3: Why was a candidate rejected?
        print("\n3. Rejected candidates and the filters that failed:")
        print("-" * 70)
        for step in latest.steps:
            for evaluation in (step.evaluations or [])[:20]:
                if evaluation.qualified:
                    continue
                failed = [name for name, result in evaluation.results.items() if not result.passed]
                print(f"  • {step.name}: {evaluation.label} failed {', '.join(failed)}")
    finally:
        await store.close()

    print("\n" + "=" * 70)
    print("Query examples complete!")
    print("=" * 70)


if __name__ == "__main__":
    asyncio.run(main())
