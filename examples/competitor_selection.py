"""
Example: Competitor Selection Pipeline with X-Ray Instrumentation

This demonstrates how to instrument a multi-step, non-deterministic pipeline
to enable deep debugging when results are unexpected.

Scenario:
Given a seller's product, find the most relevant competitor product to benchmark against.

Steps:
1. Generate search keywords (LLM - non-deterministic)
2. Search for candidate products (API call - large result set)
3. Filter candidates (price band, rating)
4. Rank by relevance (LLM - non-deterministic) and select the best match

Run with an in-memory store:
    XRAY_STORE=memory python examples/competitor_selection.py
"""

import asyncio
import os
import random
import sys
from typing import Any, Dict, List

# Add parent directory to path to import xray_sdk
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from xray_sdk import SQLStore, XRayTracer, xray_step
from xray_sdk.logging import configure_logging


class RedactSellerId:
    """Step hook: keep seller identifiers out of stored traces"""

    def after_step_created(self, step):
        if isinstance(step.input, dict) and "seller_id" in step.input:
            return step.replace(input={**step.input, "seller_id": "<redacted>"})
        return step


class TagModel:
    """Middleware: stamp every step with the model configuration"""

    def process(self, step_name, builder):
        return builder.metadata({"model": "gpt-4", "temperature": 0.7})


# Mock functions simulating real pipeline components
async def generate_keywords_llm(product: Dict[str, Any]) -> List[str]:
    """Simulate LLM generating search keywords"""
    await asyncio.sleep(0.01)
    keywords = product['title'].lower().split() + [product['category'].lower()]
    return keywords[:5]


def search_products(keywords: List[str]) -> List[Dict[str, Any]]:
    """Simulate product search API"""
    base_titles = [
        "Pro Laptop Stand", "Ergonomic Riser", "Aluminum Desk Mount",
        "Tablet Stand", "Monitor Arm", "Keyboard Tray",
    ]
    return [
        {
            'id': f'PROD-{i}',
            'title': f"{random.choice(base_titles)} {random.choice(['Pro', 'Max', 'Lite', 'v2'])}",
            'price': round(random.uniform(20.0, 150.0), 2),
            'rating': round(random.uniform(2.5, 5.0), 1),
            'reviews': random.randint(10, 5000),
        }
        for i in range(50)
    ]


def rank_by_relevance_llm(candidates: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Simulate LLM ranking candidates by relevance"""
    ranked = [{**c, 'score': round(random.uniform(0.3, 0.95), 2)} for c in candidates]
    ranked.sort(key=lambda c: c['score'], reverse=True)
    return ranked


async def find_competitor_product(tracer: XRayTracer, product: Dict[str, Any]) -> Dict[str, Any]:
    """
    Find the best competitor product with full X-Ray tracing.

    This shows how a developer would instrument an existing pipeline.
    """
    async with tracer.start_execution("competitor_selection", tags=["team_search"]) as session:
        keywords: List[str] = []

        # Step 1: Generate keywords using LLM
        async def keyword_generation(step):
            keywords.extend(await generate_keywords_llm(product))
            step.input({"title": product['title'], "seller_id": product['seller_id']})
            step.output({"keywords": keywords})
            step.reasoning(f"Generated {len(keywords)} keywords from title and category")

        await session.step("keyword_generation", keyword_generation)

        # Step 2: Search, recorded through the decorator
        search = xray_step(session, "product_search")(search_products)
        candidates = await search(keywords)

        # Step 3: Apply filters to every candidate
        min_price, max_price = product['price'] * 0.7, product['price'] * 1.3

        def check(candidate, index):
            return {
                "price_band": {
                    "passed": min_price <= candidate['price'] <= max_price,
                    "detail": f"${candidate['price']} in ${min_price:.2f}-${max_price:.2f}",
                },
                "min_rating": {
                    "passed": candidate['rating'] >= 4.0,
                    "detail": f"{candidate['rating']} >= 4.0",
                },
            }

        await session.step("candidate_filter", lambda step: step
            .filters({"min_price": min_price, "max_price": max_price, "min_rating": 4.0})
            .evaluate(candidates, check))

        qualified = [
            c for c in candidates
            if all(result["passed"] for result in check(c, 0).values())
        ]

        # Step 4: Rank and select
        ranked = rank_by_relevance_llm(qualified)
        selected = ranked[0] if ranked else None

        def ranking(step):
            step.input({"candidate_count": len(qualified)})
            step.evaluate(ranked[:10], lambda c, i: {
                "top_three": {"passed": i < 3, "detail": f"rank {i + 1}, score {c['score']}"},
            })
            if selected:
                step.select(selected['id'], f"Highest relevance score {selected['score']}")
            else:
                step.reasoning("No candidates remaining after filters")

        await session.step("relevance_ranking", ranking)

    return selected


async def main():
    configure_logging("WARNING")
    tracer = XRayTracer.from_config(
        step_hooks=[RedactSellerId()],
        step_middleware=[TagModel()],
    )

    product = {
        "id": "TEST-1",
        "seller_id": "S-42",
        "title": "Laptop Stand Model 1",
        "category": "Office",
        "price": 60.0,
    }
    selected = await find_competitor_product(tracer, product)
    print(f"Selected competitor: {selected['id'] if selected else None}")

    for execution in await tracer.store.list_executions(limit=1):
        print(f"Execution {execution.id}: {len(execution.steps)} steps, {execution.duration_ms:.0f}ms")
        for step in execution.steps:
            print(f"  {step.summary()}")

    if isinstance(tracer.store, SQLStore):
        await tracer.store.close()


if __name__ == "__main__":
    asyncio.run(main())
